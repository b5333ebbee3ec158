"""Repository helpers for Web Push subscription persistence."""

from __future__ import annotations

import itertools
from collections.abc import Callable

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from timetable_notify.core.database import get_session_factory
from timetable_notify.notifications.contracts import Subscription
from timetable_notify.schema.push_subscriptions import WebPushSubscription

SessionFactoryProvider = Callable[[], async_sessionmaker[AsyncSession] | None]


def subscription_from_row(row: WebPushSubscription) -> Subscription:
  return Subscription(id=row.id, user_id=row.user_id, endpoint=row.endpoint, auth=row.keys_auth, p256dh=row.keys_p256dh)


class PushSubscriptionRepository:
  """Persist and manage push subscriptions in Postgres."""

  def __init__(self, *, session_factory: SessionFactoryProvider = get_session_factory) -> None:
    self._session_factory = session_factory

  async def add(self, subscription: Subscription) -> bool:
    """Insert a subscription row unless the user already registered the endpoint."""
    session_factory = self._session_factory()
    if session_factory is None:
      return False

    async with session_factory() as session:
      return await self._add_with_session(session=session, subscription=subscription)

  async def _add_with_session(self, *, session: AsyncSession, subscription: Subscription) -> bool:
    # Duplicate subscribe attempts from the same browser are no-ops, not key rotations.
    stmt = (
      insert(WebPushSubscription)
      .values(user_id=subscription.user_id, endpoint=subscription.endpoint, keys_auth=subscription.auth, keys_p256dh=subscription.p256dh)
      .on_conflict_do_nothing(index_elements=["user_id", "endpoint"])
      .returning(WebPushSubscription.id)
    )
    result = await session.execute(stmt)
    inserted_id = result.scalar_one_or_none()
    await session.commit()
    return inserted_id is not None

  async def delete_by_endpoint(self, *, endpoint: str) -> None:
    """Delete subscriptions by endpoint regardless of owner."""
    session_factory = self._session_factory()
    if session_factory is None:
      return

    async with session_factory() as session:
      await self._delete_by_endpoint_with_session(session=session, endpoint=endpoint)

  async def _delete_by_endpoint_with_session(self, *, session: AsyncSession, endpoint: str) -> None:
    # A DELETE matching zero rows is the idempotent case when two ticks reap the same endpoint.
    stmt = delete(WebPushSubscription).where(WebPushSubscription.endpoint == endpoint)
    await session.execute(stmt)
    await session.commit()

  async def delete_for_user_endpoint(self, *, user_id: int, endpoint: str) -> None:
    """Delete a subscription for a specific user and endpoint."""
    session_factory = self._session_factory()
    if session_factory is None:
      return

    async with session_factory() as session:
      await self._delete_for_user_endpoint_with_session(session=session, user_id=user_id, endpoint=endpoint)

  async def _delete_for_user_endpoint_with_session(self, *, session: AsyncSession, user_id: int, endpoint: str) -> None:
    # Constrain delete by user ownership so users cannot remove other devices.
    stmt = delete(WebPushSubscription).where(WebPushSubscription.user_id == user_id, WebPushSubscription.endpoint == endpoint)
    await session.execute(stmt)
    await session.commit()

  async def list_all(self) -> list[Subscription]:
    """List every push subscription."""
    session_factory = self._session_factory()
    if session_factory is None:
      return []

    async with session_factory() as session:
      result = await session.execute(select(WebPushSubscription).order_by(WebPushSubscription.id))
      return [subscription_from_row(row) for row in result.scalars().all()]

  async def list_for_user(self, *, user_id: int) -> list[Subscription]:
    """List all push subscriptions for a user."""
    session_factory = self._session_factory()
    if session_factory is None:
      return []

    async with session_factory() as session:
      stmt = select(WebPushSubscription).where(WebPushSubscription.user_id == user_id).order_by(WebPushSubscription.id)
      result = await session.execute(stmt)
      return [subscription_from_row(row) for row in result.scalars().all()]


class InMemorySubscriptionStore:
  """Process-local subscription store used by tests and database-less runs."""

  def __init__(self, subscriptions: list[Subscription] | None = None) -> None:
    self._rows: dict[tuple[int, str], Subscription] = {}
    self._ids = itertools.count(1)
    for subscription in subscriptions or []:
      self._insert(subscription)

  def _insert(self, subscription: Subscription) -> bool:
    key = (subscription.user_id, subscription.endpoint)
    if key in self._rows:
      return False

    stored = subscription if subscription.id is not None else Subscription(id=next(self._ids), user_id=subscription.user_id, endpoint=subscription.endpoint, auth=subscription.auth, p256dh=subscription.p256dh)
    self._rows[key] = stored
    return True

  async def add(self, subscription: Subscription) -> bool:
    return self._insert(subscription)

  async def delete_by_endpoint(self, *, endpoint: str) -> None:
    for key in [key for key in self._rows if key[1] == endpoint]:
      self._rows.pop(key, None)

  async def delete_for_user_endpoint(self, *, user_id: int, endpoint: str) -> None:
    self._rows.pop((user_id, endpoint), None)

  async def list_all(self) -> list[Subscription]:
    return list(self._rows.values())

  async def list_for_user(self, *, user_id: int) -> list[Subscription]:
    return [subscription for subscription in self._rows.values() if subscription.user_id == user_id]

  def __len__(self) -> int:
    return len(self._rows)
