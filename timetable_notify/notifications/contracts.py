"""Contracts for class reminder delivery."""

from __future__ import annotations

import datetime
import json
import re
from dataclasses import dataclass
from typing import Any, Protocol

_TIME_OF_DAY_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


@dataclass(frozen=True)
class Subscription:
  """A browser push subscription registered by one user on one device."""

  id: int | None
  user_id: int
  endpoint: str
  auth: str
  p256dh: str

  def subscription_info(self) -> dict[str, Any]:
    """Return the browser subscription object shape expected by Web Push libraries."""
    return {"endpoint": self.endpoint, "keys": {"p256dh": self.p256dh, "auth": self.auth}}


@dataclass(frozen=True)
class RecurringSession:
  """A timetable entry that repeats every week on the same weekday and time."""

  id: int
  user_id: int
  subject: str
  location: str | None
  weekday: int
  start_time_of_day: str
  end_time_of_day: str
  recurring_end_date: datetime.date | None = None

  def __post_init__(self) -> None:
    # Monday is 0 and Sunday is 6, matching datetime.weekday().
    if not 0 <= self.weekday <= 6:
      raise ValueError(f"weekday must be between 0 and 6, got {self.weekday}")

    # Zero padding keeps lexicographic ordering identical to chronological ordering.
    for value in (self.start_time_of_day, self.end_time_of_day):
      if not _TIME_OF_DAY_RE.fullmatch(value):
        raise ValueError(f"time of day must be zero-padded HH:MM, got {value!r}")

  def active_on(self, day: datetime.date) -> bool:
    """Return False once the series has ended; a missing end date recurs indefinitely."""
    return self.recurring_end_date is None or day <= self.recurring_end_date


@dataclass(frozen=True)
class PushPayload:
  """Represents the JSON body delivered to the browser service worker."""

  title: str
  body: str
  icon: str | None = None

  def to_wire(self) -> dict[str, str]:
    payload = {"title": self.title, "body": self.body}
    if self.icon:
      payload["icon"] = self.icon
    return payload

  def to_json(self) -> str:
    return json.dumps(self.to_wire())


@dataclass(frozen=True)
class NotificationJob:
  """One payload addressed to one subscription, alive only for a single tick."""

  subscription: Subscription
  payload: PushPayload


@dataclass(frozen=True)
class Delivered:
  """The push service accepted the message."""


@dataclass(frozen=True)
class TransientFailure:
  """Delivery failed for a reason that does not invalidate the subscription."""

  reason: str


@dataclass(frozen=True)
class PermanentlyGone:
  """The push service reported that the subscription no longer exists."""


DeliveryResult = Delivered | TransientFailure | PermanentlyGone


class NotificationError(Exception):
  """Base class for all notification delivery failures."""


class NotificationProviderError(NotificationError):
  """Exception raised when the push provider returns a delivery error."""


class InvalidPushSubscriptionError(NotificationProviderError):
  """Exception raised when a push subscription endpoint is expired or invalid."""


class TransientPushProviderError(NotificationProviderError):
  """Exception raised for push failures that leave the subscription usable."""


class PushSender(Protocol):
  """Delivery contract for the external push transport."""

  def send(self, subscription: Subscription, payload: PushPayload) -> None:
    """Send a push notification synchronously, raising on failure."""


class SubscriptionStore(Protocol):
  """Persistence contract for push subscriptions."""

  async def add(self, subscription: Subscription) -> bool:
    """Insert a subscription unless (user_id, endpoint) already exists; return True when inserted."""

  async def delete_by_endpoint(self, *, endpoint: str) -> None:
    """Delete every subscription row for an endpoint; absent endpoints are a no-op."""

  async def delete_for_user_endpoint(self, *, user_id: int, endpoint: str) -> None:
    """Delete one user's subscription for an endpoint; absent rows are a no-op."""

  async def list_all(self) -> list[Subscription]:
    """Return every stored subscription."""

  async def list_for_user(self, *, user_id: int) -> list[Subscription]:
    """Return the subscriptions owned by a user."""


class ScheduleSource(Protocol):
  """Read-only queries over the weekly timetable joined to subscriptions."""

  async def sessions_starting_at(self, *, weekday: int, start_time_of_day: str, on_date: datetime.date | None = None) -> list[tuple[Subscription, RecurringSession]]:
    """Return subscription/session pairs for sessions starting at the given weekday and minute.

    When `on_date` is given, series whose recurring end date lies before it are excluded.
    """

  async def sessions_on_weekday(self, *, weekday: int, on_date: datetime.date | None = None) -> dict[Subscription, list[RecurringSession]]:
    """Return sessions on a weekday grouped by every subscription of the owning user, excluding series ended before `on_date`."""
