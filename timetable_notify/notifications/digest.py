"""Nightly digest of the next day's sessions."""

from __future__ import annotations

import asyncio
import datetime
import logging

from timetable_notify.notifications.contracts import NotificationJob, ScheduleSource
from timetable_notify.notifications.dispatcher import DispatchSummary, PushDispatcher
from timetable_notify.notifications.matcher import DIGEST_LOOKAHEAD, occurs_on, target_date
from timetable_notify.notifications.reminders import Clock
from timetable_notify.notifications.templates import render_digest

logger = logging.getLogger(__name__)


class DigestScheduler:
  """Push one aggregated agenda per subscription that has sessions tomorrow."""

  def __init__(self, *, source: ScheduleSource, dispatcher: PushDispatcher, clock: Clock, icon: str | None = None) -> None:
    self._source = source
    self._dispatcher = dispatcher
    self._clock = clock
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
    day = target_date(now, DIGEST_LOOKAHEAD)
    agenda = await self._source.sessions_on_weekday(weekday=day.weekday(), on_date=day)
    jobs = []
    for subscription, sessions in agenda.items():
      tomorrow = [session for session in sessions if occurs_on(now, session, DIGEST_LOOKAHEAD)]
      # Subscriptions without sessions tomorrow get nothing rather than an empty digest.
      if tomorrow:
        jobs.append(NotificationJob(subscription=subscription, payload=render_digest(tomorrow, icon=self._icon)))
    return jobs

  async def tick(self, now: datetime.datetime | None = None) -> DispatchSummary | None:
    """Run one digest pass; returns None when skipped or when the query failed."""
    if self._lock.locked():
      logger.warning("Digest tick skipped; previous tick still running")
      return None

    async with self._lock:
      now = now or self._clock()
      try:
        jobs = await self.build_jobs(now)
      except Exception as exc:  # noqa: BLE001
        logger.error("Digest query failed at %s: %s", now.isoformat(), exc, exc_info=True)
        return None

      summary = await self._dispatcher.dispatch(jobs)
      logger.info("Digest tick sent jobs=%s delivered=%s transient=%s gone=%s", summary.jobs, summary.delivered, summary.transient, summary.gone)
      return summary
