from __future__ import annotations

import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from tests.factories import AUTH, P256DH, make_session, make_subscription
from timetable_notify.notifications.schedule_source import InMemoryScheduleSource, TimetableScheduleSource, _to_session
from timetable_notify.schema.push_subscriptions import WebPushSubscription
from timetable_notify.schema.timetables import Timetable


def _timetable(id: int, subject: str, start: datetime.datetime, user_id: int = 1, location: str | None = None, ends: datetime.date | datetime.datetime | None = None) -> Timetable:
  return Timetable(id=id, user_id=user_id, subject=subject, location=location, start_time=start, end_time=start + datetime.timedelta(hours=1), recurring_end_date=ends)


def _subscription_row(id: int = 1, user_id: int = 1) -> WebPushSubscription:
  return WebPushSubscription(id=id, user_id=user_id, endpoint="https://fcm.googleapis.com/fcm/send/abc", keys_auth=AUTH, keys_p256dh=P256DH)


def _session_returning(rows) -> AsyncMock:
  session = AsyncMock()
  result = MagicMock()
  result.all.return_value = rows
  session.execute.return_value = result
  return session


def test_timetable_row_projects_onto_weekly_slot():
  # 2024-03-12 is a Tuesday; only weekday and wall-clock time survive.
  session = _to_session(_timetable(7, "Algorithms", datetime.datetime(2024, 3, 12, 10, 0), location="Room 4"))

  assert session == make_session(subject="Algorithms", weekday=1, start="10:00", end="11:00", location="Room 4", id=7)


@pytest.mark.anyio
async def test_sessions_starting_at_filters_on_iso_weekday_and_minute():
  rows = [(_timetable(7, "Algorithms", datetime.datetime(2024, 3, 12, 10, 0)), _subscription_row())]
  session = _session_returning(rows)

  pairs = await TimetableScheduleSource()._sessions_starting_at_with_session(session=session, weekday=1, hour=10, minute=0)

  assert pairs == [(make_subscription(id=1), make_session(subject="Algorithms", location=None, id=7))]
  stmt = session.execute.await_args.args[0]
  sql = _compile_lower(stmt)
  assert "join notification_subscriptions" in sql
  assert "isodow" in sql
  # Monday=0 internally, ISO Monday=1 in Postgres.
  assert 2 in stmt.compile(dialect=postgresql.dialect()).params.values()


@pytest.mark.anyio
async def test_sessions_on_weekday_groups_by_subscription():
  first = _subscription_row(id=1, user_id=1)
  second = _subscription_row(id=2, user_id=1)
  second.endpoint = "https://updates.push.services.mozilla.com/wpush/v2/xyz"
  rows = [
    (_timetable(1, "Maths", datetime.datetime(2024, 3, 13, 9, 0)), first),
    (_timetable(2, "Biology", datetime.datetime(2024, 3, 13, 11, 0)), first),
    (_timetable(1, "Maths", datetime.datetime(2024, 3, 13, 9, 0)), second),
  ]

  agenda = await TimetableScheduleSource()._sessions_on_weekday_with_session(session=_session_returning(rows), weekday=2)

  assert [len(sessions) for sessions in agenda.values()] == [2, 1]
  assert [session.subject for session in agenda[make_subscription(id=1)]] == ["Maths", "Biology"]


@pytest.mark.anyio
async def test_source_without_database_returns_nothing():
  source = TimetableScheduleSource(session_factory=lambda: None)

  assert await source.sessions_starting_at(weekday=1, start_time_of_day="10:00") == []
  assert await source.sessions_on_weekday(weekday=1) == {}


@pytest.mark.anyio
async def test_in_memory_source_joins_live_subscriptions(subscription_store):
  await subscription_store.add(make_subscription(user_id=1))
  await subscription_store.add(make_subscription(user_id=1, endpoint="https://web.push.apple.com/QGx"))
  source = InMemoryScheduleSource(sessions=[make_session(user_id=1), make_session(user_id=2, id=2)], subscriptions=subscription_store)

  pairs = await source.sessions_starting_at(weekday=1, start_time_of_day="10:00")
  assert len(pairs) == 2

  await subscription_store.delete_by_endpoint(endpoint="https://web.push.apple.com/QGx")
  pairs = await source.sessions_starting_at(weekday=1, start_time_of_day="10:00")
  assert [subscription.endpoint for subscription, _ in pairs] == ["https://fcm.googleapis.com/fcm/send/abc"]


@pytest.mark.anyio
async def test_in_memory_source_omits_users_without_sessions_that_day(subscription_store):
  await subscription_store.add(make_subscription(user_id=1))
  await subscription_store.add(make_subscription(user_id=2, endpoint="https://fcm.googleapis.com/fcm/send/two"))
  source = InMemoryScheduleSource(sessions=[make_session(user_id=1, weekday=3)], subscriptions=subscription_store)

  agenda = await source.sessions_on_weekday(weekday=3)

  assert [subscription.user_id for subscription in agenda] == [1]


@pytest.mark.parametrize("ends", [datetime.date(2024, 6, 28), datetime.datetime(2024, 6, 28, 0, 0)])
def test_timetable_row_keeps_series_end_date(ends):
  session = _to_session(_timetable(7, "Algorithms", datetime.datetime(2024, 3, 12, 10, 0), ends=ends))

  assert session.recurring_end_date == datetime.date(2024, 6, 28)


@pytest.mark.anyio
async def test_queries_drop_ended_series_for_the_target_date():
  reminder_session = _session_returning([])
  digest_session = _session_returning([])
  source = TimetableScheduleSource()

  await source._sessions_starting_at_with_session(session=reminder_session, weekday=1, hour=10, minute=0, on_date=datetime.date(2024, 3, 12))
  await source._sessions_on_weekday_with_session(session=digest_session, weekday=2, on_date=datetime.date(2024, 3, 13))

  for session, on_date in ((reminder_session, datetime.date(2024, 3, 12)), (digest_session, datetime.date(2024, 3, 13))):
    stmt = session.execute.await_args.args[0]
    assert "timetables.recurring_end_date is null or timetables.recurring_end_date >=" in _compile_lower(stmt)
    assert on_date in stmt.compile(dialect=postgresql.dialect()).params.values()


@pytest.mark.anyio
async def test_queries_without_target_date_do_not_filter_on_end_date():
  session = _session_returning([])

  await TimetableScheduleSource()._sessions_on_weekday_with_session(session=session, weekday=2)

  assert "recurring_end_date is null" not in _compile_lower(session.execute.await_args.args[0])


@pytest.mark.anyio
async def test_in_memory_source_drops_ended_series_on_target_date(subscription_store):
  await subscription_store.add(make_subscription())
  sessions = [make_session(subject="Ended", ends=datetime.date(2024, 1, 1), id=1), make_session(subject="Final Week", ends=datetime.date(2024, 1, 2), id=2), make_session(subject="Open", id=3)]
  source = InMemoryScheduleSource(sessions=sessions, subscriptions=subscription_store)

  pairs = await source.sessions_starting_at(weekday=1, start_time_of_day="10:00", on_date=datetime.date(2024, 1, 2))

  assert [session.subject for _, session in pairs] == ["Final Week", "Open"]
  assert len(await source.sessions_starting_at(weekday=1, start_time_of_day="10:00")) == 3


def _compile_lower(stmt) -> str:
  return str(stmt.compile(dialect=postgresql.dialect())).lower()
