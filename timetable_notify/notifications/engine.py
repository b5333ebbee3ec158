"""Timer wiring for the reminder and digest triggers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from timetable_notify.notifications.digest import DigestScheduler
from timetable_notify.notifications.dispatcher import DispatchSummary
from timetable_notify.notifications.reminders import ReminderScheduler

logger = logging.getLogger(__name__)

REMINDER_JOB_ID = "class_reminders"
DIGEST_JOB_ID = "daily_digest"

Trigger = Literal["reminders", "digest"]


class NotificationEngine:
  """Register the per-minute reminder job and the daily digest job on an asyncio scheduler.

  Both jobs run with `max_instances=1` and `coalesce=True`, so a run that
  would overlap the previous one is dropped instead of queued.
  """

  def __init__(self, *, reminders: ReminderScheduler, digest: DigestScheduler, timezone: ZoneInfo, digest_hour: int = 21, digest_minute: int = 0, scheduler: AsyncIOScheduler | None = None) -> None:
    self._reminders = reminders
    self._digest = digest
    self._timezone = timezone
    self._digest_hour = digest_hour
    self._digest_minute = digest_minute
    self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone)
    self.is_running = False

  def start(self) -> None:
    """Register both triggers and start the scheduler on the running event loop."""
    if self.is_running:
      return

    # Fire at second 0 of every minute so the matcher's minute granularity lines up with the clock.
    self._scheduler.add_job(
      self._run_reminders,
      CronTrigger(minute="*", timezone=self._timezone),
      id=REMINDER_JOB_ID,
      name="Class reminders (every minute)",
      replace_existing=True,
      max_instances=1,
      coalesce=True,
      misfire_grace_time=30,
    )
    self._scheduler.add_job(
      self._run_digest,
      CronTrigger(hour=self._digest_hour, minute=self._digest_minute, timezone=self._timezone),
      id=DIGEST_JOB_ID,
      name=f"Tomorrow's schedule digest ({self._digest_hour:02d}:{self._digest_minute:02d})",
      replace_existing=True,
      max_instances=1,
      coalesce=True,
      misfire_grace_time=300,
    )

    self._scheduler.start()
    self.is_running = True
    logger.info("Notification engine started timezone=%s digest_time=%02d:%02d", self._timezone.key, self._digest_hour, self._digest_minute)

  def shutdown(self) -> None:
    """Stop the scheduler; a tick already running keeps going until `wait_idle` sees it finish."""
    if not self.is_running:
      return

    self._scheduler.shutdown(wait=False)
    self.is_running = False
    logger.info("Notification engine stopped")

  async def wait_idle(self, timeout: float = 30.0) -> bool:
    """Wait for in-flight reminder and digest ticks to finish; returns False on timeout."""
    try:
      await asyncio.wait_for(asyncio.gather(self._reminders.wait_idle(), self._digest.wait_idle()), timeout=timeout)
    except TimeoutError:
      logger.warning("Notification ticks still running after %.0fs; closing anyway", timeout)
      return False
    return True

  async def run_once(self, trigger: Trigger) -> DispatchSummary | None:
    """Run one tick of a trigger immediately, outside the timer."""
    if trigger == "reminders":
      return await self._reminders.tick()
    if trigger == "digest":
      return await self._digest.tick()
    raise ValueError(f"Unknown trigger: {trigger!r}")

  def get_status(self) -> dict[str, Any]:
    jobs = self._scheduler.get_jobs()
    return {
      "is_running": self.is_running,
      "jobs": [{"id": job.id, "name": job.name, "next_run_time": job.next_run_time.isoformat() if getattr(job, "next_run_time", None) else None} for job in jobs],
    }

  async def _run_reminders(self) -> None:
    # Nothing may escape into the scheduler; the next minute must still fire.
    try:
      await self._reminders.tick()
    except Exception as exc:  # noqa: BLE001
      logger.error("Reminder tick crashed: %s", exc, exc_info=True)

  async def _run_digest(self) -> None:
    try:
      await self._digest.tick()
    except Exception as exc:  # noqa: BLE001
      logger.error("Digest tick crashed: %s", exc, exc_info=True)
