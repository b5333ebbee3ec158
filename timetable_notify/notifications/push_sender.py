"""Push notification transport implementations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from http import HTTPStatus

from pywebpush import WebPushException, webpush

from timetable_notify.notifications.contracts import InvalidPushSubscriptionError, PushPayload, PushSender, Subscription, TransientPushProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VapidConfig:
  """Configuration required to sign Web Push requests."""

  public_key: str
  private_key: str
  sub: str


class WebPushSender(PushSender):
  """`pywebpush` backed transport that reports gone endpoints distinctly from other failures."""

  def __init__(self, *, vapid_config: VapidConfig, timeout_seconds: float = 10.0) -> None:
    self._vapid_config = vapid_config
    self._timeout_seconds = timeout_seconds

  def send(self, subscription: Subscription, payload: PushPayload) -> None:
    """Send one Web Push message; a single attempt, no retry."""
    try:
      # Sign with VAPID so browser push services can verify origin.
      webpush(
        subscription_info=subscription.subscription_info(),
        data=payload.to_json(),
        vapid_private_key=self._vapid_config.private_key,
        vapid_claims={"sub": self._vapid_config.sub},
        timeout=self._timeout_seconds,
      )
    except WebPushException as exc:
      status_code = extract_status_code(exc)

      if status_code == HTTPStatus.GONE:
        raise InvalidPushSubscriptionError(f"Push subscription is gone (status={int(status_code)})") from exc

      raise TransientPushProviderError(f"Push delivery failed (status={int(status_code) if status_code else 'unknown'})") from exc


class NullPushSender(PushSender):
  """No-op transport used when push notifications are disabled or unconfigured."""

  def send(self, subscription: Subscription, payload: PushPayload) -> None:
    """Drop the notification while recording a debug log."""
    logger.debug("Push notifications disabled; dropping push user_id=%s title=%s", subscription.user_id, payload.title)


def extract_status_code(exc: WebPushException) -> int | None:
  """Extract an HTTP status code from a pywebpush exception when available."""
  response = getattr(exc, "response", None)
  if response is None:
    return None

  status = getattr(response, "status_code", None)
  if isinstance(status, int):
    return status

  return None
