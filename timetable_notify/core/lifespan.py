import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from timetable_notify.config import get_settings
from timetable_notify.core.database import dispose_engine
from timetable_notify.core.logging import initialize_logging
from timetable_notify.notifications.factory import build_notification_engine


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and run the notification engine for the lifetime of the web process."""
  settings = get_settings()
  logger = logging.getLogger("timetable_notify.core.lifespan")
  initialize_logging(settings)

  app.state.notification_engine = None
  if settings.notify_enabled:
    # A broken engine must not take the subscribe routes down with it.
    try:
      engine = build_notification_engine(settings)
      engine.start()
      app.state.notification_engine = engine
    except Exception:  # noqa: BLE001
      logger.warning("Notification engine failed to start.", exc_info=True)
  else:
    logger.info("Notification engine disabled (NOTIFY_ENABLED=false).")

  try:
    yield
  finally:
    if app.state.notification_engine is not None:
      app.state.notification_engine.shutdown()
      # Ticks still hold database sessions; let them finish before the pool is disposed.
      await app.state.notification_engine.wait_idle()
      app.state.notification_engine = None
    await dispose_engine()
