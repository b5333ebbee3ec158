"""Read-only timetable queries joined to push subscriptions."""

from __future__ import annotations

import datetime
from collections import defaultdict
from collections.abc import Iterable
from typing import Any

from sqlalchemy import extract, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from timetable_notify.core.database import get_session_factory
from timetable_notify.notifications.contracts import RecurringSession, Subscription, SubscriptionStore
from timetable_notify.notifications.push_subscription_repo import SessionFactoryProvider, subscription_from_row
from timetable_notify.schema.push_subscriptions import WebPushSubscription
from timetable_notify.schema.timetables import Timetable


def _as_date(value: datetime.date | datetime.datetime | None) -> datetime.date | None:
  if isinstance(value, datetime.datetime):
    return value.date()
  return value


def _to_session(row: Timetable) -> RecurringSession:
  """Project a dated timetable row onto its weekly recurrence."""
  return RecurringSession(
    id=row.id,
    user_id=row.user_id,
    subject=row.subject,
    location=row.location,
    weekday=row.start_time.weekday(),
    start_time_of_day=row.start_time.strftime("%H:%M"),
    end_time_of_day=row.end_time.strftime("%H:%M"),
    recurring_end_date=_as_date(row.recurring_end_date),
  )


def _split_time_of_day(value: str) -> tuple[int, int]:
  hour, minute = value.split(":", 1)
  return int(hour), int(minute)


def _not_ended(on_date: datetime.date | None) -> list[Any]:
  if on_date is None:
    return []
  return [or_(Timetable.recurring_end_date.is_(None), Timetable.recurring_end_date >= on_date)]


def _group_by_subscription(pairs: Iterable[tuple[Subscription, RecurringSession]]) -> dict[Subscription, list[RecurringSession]]:
  grouped: dict[Subscription, list[RecurringSession]] = defaultdict(list)
  for subscription, session in pairs:
    grouped[subscription].append(session)
  return dict(grouped)


class TimetableScheduleSource:
  """Query the timetable table in Postgres, treating each row's start as a weekly slot."""

  def __init__(self, *, session_factory: SessionFactoryProvider = get_session_factory) -> None:
    self._session_factory = session_factory

  async def sessions_starting_at(self, *, weekday: int, start_time_of_day: str, on_date: datetime.date | None = None) -> list[tuple[Subscription, RecurringSession]]:
    """Return subscription/session pairs whose weekly start is the given weekday and minute."""
    session_factory = self._session_factory()
    if session_factory is None:
      return []

    hour, minute = _split_time_of_day(start_time_of_day)
    async with session_factory() as session:
      return await self._sessions_starting_at_with_session(session=session, weekday=weekday, hour=hour, minute=minute, on_date=on_date)

  async def _sessions_starting_at_with_session(self, *, session: AsyncSession, weekday: int, hour: int, minute: int, on_date: datetime.date | None = None) -> list[tuple[Subscription, RecurringSession]]:
    # Join on user so only users with at least one device are read; ISO weekday is Monday=1.
    stmt = (
      select(Timetable, WebPushSubscription)
      .join(WebPushSubscription, WebPushSubscription.user_id == Timetable.user_id)
      .where(extract("isodow", Timetable.start_time) == weekday + 1, extract("hour", Timetable.start_time) == hour, extract("minute", Timetable.start_time) == minute, *_not_ended(on_date))
    )
    result = await session.execute(stmt)
    return [(subscription_from_row(subscription), _to_session(timetable)) for timetable, subscription in result.all()]

  async def sessions_on_weekday(self, *, weekday: int, on_date: datetime.date | None = None) -> dict[Subscription, list[RecurringSession]]:
    """Return every subscription's sessions on a weekday."""
    session_factory = self._session_factory()
    if session_factory is None:
      return {}

    async with session_factory() as session:
      return await self._sessions_on_weekday_with_session(session=session, weekday=weekday, on_date=on_date)

  async def _sessions_on_weekday_with_session(self, *, session: AsyncSession, weekday: int, on_date: datetime.date | None = None) -> dict[Subscription, list[RecurringSession]]:
    stmt = (
      select(Timetable, WebPushSubscription)
      .join(WebPushSubscription, WebPushSubscription.user_id == Timetable.user_id)
      .where(extract("isodow", Timetable.start_time) == weekday + 1, *_not_ended(on_date))
      .order_by(WebPushSubscription.id, Timetable.id)
    )
    result = await session.execute(stmt)
    return _group_by_subscription((subscription_from_row(subscription), _to_session(timetable)) for timetable, subscription in result.all())


class InMemoryScheduleSource:
  """Serve weekly sessions from memory, joined against a live subscription store."""

  def __init__(self, *, sessions: Iterable[RecurringSession], subscriptions: SubscriptionStore) -> None:
    self._sessions = list(sessions)
    self._subscriptions = subscriptions

  async def _pairs(self, on_date: datetime.date | None) -> list[tuple[Subscription, RecurringSession]]:
    # Re-read subscriptions on every query so reaped endpoints drop out of later ticks.
    by_user: dict[int, list[Subscription]] = defaultdict(list)
    for subscription in await self._subscriptions.list_all():
      by_user[subscription.user_id].append(subscription)

    sessions = [session for session in self._sessions if on_date is None or session.active_on(on_date)]
    return [(subscription, session) for session in sessions for subscription in by_user.get(session.user_id, [])]

  async def sessions_starting_at(self, *, weekday: int, start_time_of_day: str, on_date: datetime.date | None = None) -> list[tuple[Subscription, RecurringSession]]:
    return [(subscription, session) for subscription, session in await self._pairs(on_date) if session.weekday == weekday and session.start_time_of_day == start_time_of_day]

  async def sessions_on_weekday(self, *, weekday: int, on_date: datetime.date | None = None) -> dict[Subscription, list[RecurringSession]]:
    return _group_by_subscription((subscription, session) for subscription, session in await self._pairs(on_date) if session.weekday == weekday)
