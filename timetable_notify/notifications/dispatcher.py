"""Push delivery with result classification and bounded fan-out."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

import anyio.to_thread
from anyio import CapacityLimiter

from timetable_notify.notifications.contracts import Delivered, DeliveryResult, InvalidPushSubscriptionError, NotificationJob, NotificationProviderError, PermanentlyGone, PushPayload, PushSender, Subscription, TransientFailure
from timetable_notify.notifications.reaper import SubscriptionReaper

logger = logging.getLogger(__name__)


@dataclass
class DispatchSummary:
  """Counts of delivery outcomes for one tick."""

  jobs: int = 0
  delivered: int = 0
  transient: int = 0
  gone: int = 0

  def record(self, result: DeliveryResult) -> None:
    if isinstance(result, Delivered):
      self.delivered += 1
    elif isinstance(result, PermanentlyGone):
      self.gone += 1
    else:
      self.transient += 1


def classify_failure(exc: BaseException) -> DeliveryResult:
  """Map a transport exception onto a delivery result."""
  if isinstance(exc, InvalidPushSubscriptionError):
    return PermanentlyGone()

  return TransientFailure(reason=str(exc) or type(exc).__name__)


class PushDispatcher:
  """Send payloads through the push transport and hand gone subscriptions to the reaper."""

  def __init__(self, *, sender: PushSender, reaper: SubscriptionReaper, max_concurrency: int = 10) -> None:
    if max_concurrency <= 0:
      raise ValueError("max_concurrency must be a positive integer.")
    self._sender = sender
    self._reaper = reaper
    self._max_concurrency = max_concurrency

  async def send(self, subscription: Subscription, payload: PushPayload, *, limiter: CapacityLimiter | None = None) -> DeliveryResult:
    """Deliver one payload and classify the outcome; never raises for delivery errors.

    Without a limiter the send shares anyio's default worker-thread pool (40 threads).
    """
    try:
      # The transport is blocking, so keep it off the event loop.
      await anyio.to_thread.run_sync(self._sender.send, subscription, payload, limiter=limiter)
    except NotificationProviderError as exc:
      result = classify_failure(exc)
    except Exception as exc:  # noqa: BLE001
      logger.error("Push transport raised unexpectedly endpoint=%s error=%s", subscription.endpoint, exc, exc_info=True)
      result = classify_failure(exc)
    else:
      return Delivered()

    if isinstance(result, TransientFailure):
      logger.warning("Push delivery failed user_id=%s endpoint=%s reason=%s", subscription.user_id, subscription.endpoint, result.reason)
    return result

  async def dispatch(self, jobs: Sequence[NotificationJob]) -> DispatchSummary:
    """Deliver every job with at most `max_concurrency` sends in flight."""
    summary = DispatchSummary(jobs=len(jobs))
    if not jobs:
      return summary

    queue: asyncio.Queue[NotificationJob] = asyncio.Queue()
    for job in jobs:
      queue.put_nowait(job)

    async def _worker() -> None:
      # A fixed pool drains the queue so one slow endpoint only holds one slot.
      while True:
        try:
          job = queue.get_nowait()
        except asyncio.QueueEmpty:
          return

        result = await self.send(job.subscription, job.payload, limiter=limiter)
        summary.record(result)
        if isinstance(result, PermanentlyGone):
          await self._reaper.reap(job.subscription)

    worker_count = min(self._max_concurrency, len(jobs))
    # Own thread budget per dispatch so max_concurrency is not capped by the shared default pool.
    limiter = CapacityLimiter(worker_count)
    await asyncio.gather(*(_worker() for _ in range(worker_count)))
    return summary
