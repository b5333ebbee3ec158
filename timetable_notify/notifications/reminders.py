"""Per-minute trigger that reminds students of sessions about to start."""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Callable

from timetable_notify.notifications.contracts import NotificationJob, ScheduleSource
from timetable_notify.notifications.dispatcher import DispatchSummary, PushDispatcher
from timetable_notify.notifications.matcher import fires_at, target_instant, time_of_day
from timetable_notify.notifications.templates import render_reminder

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]


class ReminderScheduler:
  """Find sessions starting `lead_minutes` from now and push one reminder per subscribed device.

  A tick that starts while the previous one is still dispatching is skipped:
  reminders are only useful while fresh, so there is no backlog or catch-up.
  """

  def __init__(self, *, source: ScheduleSource, dispatcher: PushDispatcher, clock: Clock, lead_minutes: int = 10, icon: str | None = None) -> None:
    self._source = source
    self._dispatcher = dispatcher
    self._clock = clock
    self._lead_minutes = lead_minutes
    self._lookahead = datetime.timedelta(minutes=lead_minutes)
    self._icon = icon
    self._lock = asyncio.Lock()

  @property
  def busy(self) -> bool:
    return self._lock.locked()

  async def wait_idle(self) -> None:
    """Return once no tick is in flight."""
    async with self._lock:
      pass

  async def build_jobs(self, now: datetime.datetime) -> list[NotificationJob]:
    """Query the upcoming minute and turn each matching pair into a job; store errors propagate."""
    target = target_instant(now, self._lookahead)
    pairs = await self._source.sessions_starting_at(weekday=target.weekday(), start_time_of_day=time_of_day(target), on_date=target.date())
    return [NotificationJob(subscription=subscription, payload=render_reminder(session, lead_minutes=self._lead_minutes, icon=self._icon)) for subscription, session in pairs if fires_at(now, session, self._lookahead)]

  async def tick(self, now: datetime.datetime | None = None) -> DispatchSummary | None:
    """Run one reminder pass; returns None when the tick was skipped or its query failed."""
    if self._lock.locked():
      logger.warning("Reminder tick skipped; previous tick still running")
      return None

    async with self._lock:
      now = now or self._clock()
      try:
        jobs = await self.build_jobs(now)
      except Exception as exc:  # noqa: BLE001
        logger.error("Reminder query failed at %s: %s", now.isoformat(), exc, exc_info=True)
        return None

      if not jobs:
        logger.debug("No classes starting in the next %s minutes", self._lead_minutes)
        return DispatchSummary()

      summary = await self._dispatcher.dispatch(jobs)
      logger.info("Reminder tick sent jobs=%s delivered=%s transient=%s gone=%s", summary.jobs, summary.delivered, summary.transient, summary.gone)
      return summary
