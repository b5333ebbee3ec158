from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from tests.factories import AUTH, P256DH, make_subscription
from timetable_notify.notifications.push_subscription_repo import InMemorySubscriptionStore, PushSubscriptionRepository, subscription_from_row
from timetable_notify.schema.push_subscriptions import WebPushSubscription


def _compile(stmt) -> str:
  return str(stmt.compile(dialect=postgresql.dialect()))


def _session_with_scalar(value) -> AsyncMock:
  session = AsyncMock()
  result = MagicMock()
  result.scalar_one_or_none.return_value = value
  session.execute.return_value = result
  return session


@pytest.mark.anyio
async def test_in_memory_subscribe_is_idempotent(subscription_store):
  assert await subscription_store.add(make_subscription()) is True
  assert await subscription_store.add(make_subscription()) is False

  stored = await subscription_store.list_all()
  assert len(stored) == 1
  assert stored[0].id == 1


@pytest.mark.anyio
async def test_in_memory_same_endpoint_for_two_users_is_two_rows(subscription_store):
  await subscription_store.add(make_subscription(user_id=1))
  await subscription_store.add(make_subscription(user_id=2))

  assert len(subscription_store) == 2
  assert [subscription.user_id for subscription in await subscription_store.list_for_user(user_id=2)] == [2]


@pytest.mark.anyio
async def test_in_memory_deletes_are_no_ops_when_absent():
  store = InMemorySubscriptionStore([make_subscription(user_id=1, id=9)])

  await store.delete_by_endpoint(endpoint="https://fcm.googleapis.com/fcm/send/missing")
  await store.delete_for_user_endpoint(user_id=2, endpoint="https://fcm.googleapis.com/fcm/send/abc")

  assert [subscription.id for subscription in await store.list_all()] == [9]


@pytest.mark.anyio
async def test_repository_add_uses_on_conflict_do_nothing():
  session = _session_with_scalar(42)

  created = await PushSubscriptionRepository()._add_with_session(session=session, subscription=make_subscription(user_id=5))

  assert created is True
  sql = _compile(session.execute.await_args.args[0])
  assert "ON CONFLICT (user_id, endpoint) DO NOTHING" in sql
  assert "RETURNING notification_subscriptions.id" in sql
  session.commit.assert_awaited_once()


@pytest.mark.anyio
async def test_repository_add_reports_duplicate():
  session = _session_with_scalar(None)

  assert await PushSubscriptionRepository()._add_with_session(session=session, subscription=make_subscription()) is False


@pytest.mark.anyio
async def test_repository_delete_by_endpoint_ignores_owner():
  session = AsyncMock()

  await PushSubscriptionRepository()._delete_by_endpoint_with_session(session=session, endpoint="https://fcm.googleapis.com/fcm/send/abc")

  sql = _compile(session.execute.await_args.args[0])
  assert sql.startswith("DELETE FROM notification_subscriptions")
  assert "notification_subscriptions.endpoint" in sql
  assert "user_id" not in sql
  session.commit.assert_awaited_once()


@pytest.mark.anyio
async def test_repository_delete_for_user_endpoint_scopes_by_owner():
  session = AsyncMock()

  await PushSubscriptionRepository()._delete_for_user_endpoint_with_session(session=session, user_id=3, endpoint="https://fcm.googleapis.com/fcm/send/abc")

  sql = _compile(session.execute.await_args.args[0])
  assert "notification_subscriptions.user_id" in sql
  assert "notification_subscriptions.endpoint" in sql


@pytest.mark.anyio
async def test_repository_opens_session_from_factory():
  session = _session_with_scalar(1)
  factory = MagicMock()
  factory.return_value.__aenter__.return_value = session

  assert await PushSubscriptionRepository(session_factory=lambda: factory).add(make_subscription()) is True
  factory.assert_called_once_with()


@pytest.mark.anyio
async def test_repository_without_database_is_inert():
  repo = PushSubscriptionRepository(session_factory=lambda: None)

  assert await repo.add(make_subscription()) is False
  await repo.delete_by_endpoint(endpoint="https://fcm.googleapis.com/fcm/send/abc")
  await repo.delete_for_user_endpoint(user_id=1, endpoint="https://fcm.googleapis.com/fcm/send/abc")
  assert await repo.list_all() == []
  assert await repo.list_for_user(user_id=1) == []


def test_subscription_from_row_maps_key_columns():
  row = WebPushSubscription(id=4, user_id=2, endpoint="https://fcm.googleapis.com/fcm/send/abc", keys_auth=AUTH, keys_p256dh=P256DH)

  assert subscription_from_row(row) == make_subscription(user_id=2, id=4)
