"""Pure time-window matching between a rolling clock and weekly sessions."""

from __future__ import annotations

import datetime

from timetable_notify.notifications.contracts import RecurringSession

REMINDER_LOOKAHEAD = datetime.timedelta(minutes=10)
DIGEST_LOOKAHEAD = datetime.timedelta(days=1)


def advance(now: datetime.datetime, lookahead: datetime.timedelta) -> datetime.datetime:
  """Return the local wall-clock instant `lookahead` of elapsed time after `now`."""
  if now.tzinfo is None:
    return now + lookahead

  # Aware arithmetic in Python is wall-clock arithmetic; go through UTC so DST transitions count real minutes.
  return (now.astimezone(datetime.timezone.utc) + lookahead).astimezone(now.tzinfo)


def target_instant(now: datetime.datetime, lookahead: datetime.timedelta) -> datetime.datetime:
  """Return now + lookahead truncated to the minute."""
  # Full datetime arithmetic so weekday rolls over together with the clock at midnight.
  return advance(now, lookahead).replace(second=0, microsecond=0)


def time_of_day(instant: datetime.datetime) -> str:
  return instant.strftime("%H:%M")


def fires_at(now: datetime.datetime, session: RecurringSession, lookahead: datetime.timedelta = REMINDER_LOOKAHEAD) -> bool:
  """Return True when the session's weekly occurrence starts at now + lookahead, to the minute."""
  target = target_instant(now, lookahead)
  return target.weekday() == session.weekday and time_of_day(target) == session.start_time_of_day and session.active_on(target.date())


def target_date(now: datetime.datetime, lookahead: datetime.timedelta = DIGEST_LOOKAHEAD) -> datetime.date:
  return advance(now, lookahead).date()


def target_weekday(now: datetime.datetime, lookahead: datetime.timedelta = DIGEST_LOOKAHEAD) -> int:
  return target_date(now, lookahead).weekday()


def occurs_on(now: datetime.datetime, session: RecurringSession, lookahead: datetime.timedelta = DIGEST_LOOKAHEAD) -> bool:
  """Return True when the session falls on the weekday of now + lookahead and its series has not ended."""
  day = target_date(now, lookahead)
  return day.weekday() == session.weekday and session.active_on(day)
