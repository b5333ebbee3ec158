"""Removal of subscriptions whose push endpoint no longer exists."""

from __future__ import annotations

import logging

from timetable_notify.notifications.contracts import Subscription, SubscriptionStore

logger = logging.getLogger(__name__)


class SubscriptionReaper:
  """Delete subscriptions reported as permanently gone by the push service."""

  def __init__(self, *, store: SubscriptionStore) -> None:
    self._store = store

  async def reap(self, subscription: Subscription) -> bool:
    """Delete the subscription keyed by endpoint; return False when the store call failed."""
    try:
      await self._store.delete_by_endpoint(endpoint=subscription.endpoint)
    except Exception as exc:  # noqa: BLE001
      # The endpoint keeps failing with 410, so the next tick retries the delete.
      logger.error("Failed deleting gone push subscription endpoint=%s error=%s", subscription.endpoint, exc, exc_info=True)
      return False

    logger.info("Removed gone push subscription user_id=%s endpoint=%s", subscription.user_id, subscription.endpoint)
    return True
