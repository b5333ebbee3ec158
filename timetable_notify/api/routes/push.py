"""Routes for Web Push subscription lifecycle management."""

from __future__ import annotations

import logging
import re
import urllib.parse
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

from timetable_notify.config import get_settings
from timetable_notify.core.security import get_current_user_id
from timetable_notify.notifications.contracts import Subscription, SubscriptionStore
from timetable_notify.notifications.push_subscription_repo import PushSubscriptionRepository

logger = logging.getLogger(__name__)

_ALLOWED_PUSH_HOSTS = {"fcm.googleapis.com", "updates.push.services.mozilla.com", "push.services.mozilla.com", "web.push.apple.com"}
_ALLOWED_PUSH_HOST_SUFFIXES = (".notify.windows.com",)
_BASE64_RE = re.compile(r"^[A-Za-z0-9_-]+={0,2}$")

router = APIRouter()


def get_subscription_store() -> SubscriptionStore:
  return PushSubscriptionRepository()


def _validate_endpoint(value: str) -> str:
  """Restrict endpoints to known push service hosts over HTTPS."""
  normalized = value.strip()
  parsed = urllib.parse.urlparse(normalized)

  if parsed.scheme.lower() != "https":
    raise PydanticCustomError("push_endpoint_https", "endpoint must use https.")

  host = (parsed.hostname or "").lower()
  if host not in _ALLOWED_PUSH_HOSTS and not host.endswith(_ALLOWED_PUSH_HOST_SUFFIXES):
    raise PydanticCustomError("push_endpoint_host", "endpoint host is not allowed.")

  return normalized


class PushSubscriptionKeys(BaseModel):
  """Browser-provided key material for Web Push encryption."""

  p256dh: str = Field(min_length=40, max_length=512)
  auth: str = Field(min_length=16, max_length=256)
  model_config = ConfigDict(extra="forbid")

  @field_validator("p256dh", "auth")
  @classmethod
  def validate_base64url(cls, value: str) -> str:
    """Validate key shape using a strict base64url policy."""
    normalized = value.strip()
    if not _BASE64_RE.fullmatch(normalized):
      raise PydanticCustomError("push_key_format", "push keys must be base64url encoded.")

    return normalized


class PushSubscribeRequest(BaseModel):
  """Standard browser push subscription object payload."""

  endpoint: str = Field(min_length=1, max_length=2048)
  expiration_time: int | None = Field(default=None, alias="expirationTime")
  keys: PushSubscriptionKeys
  model_config = ConfigDict(extra="forbid", populate_by_name=True)

  @field_validator("endpoint")
  @classmethod
  def validate_endpoint(cls, value: str) -> str:
    return _validate_endpoint(value)


class PushUnsubscribeRequest(BaseModel):
  """Payload for deleting an existing push subscription."""

  endpoint: str = Field(min_length=1, max_length=2048)
  model_config = ConfigDict(extra="forbid")

  @field_validator("endpoint")
  @classmethod
  def validate_endpoint(cls, value: str) -> str:
    return _validate_endpoint(value)


@router.get("/vapid-public-key")
async def vapid_public_key() -> dict[str, str]:
  """Expose the application server key browsers need to subscribe."""
  key = get_settings().push_vapid_public_key
  if not key:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Push notifications are not configured")
  return {"vapid_public_key": key}


@router.post("/subscribe", status_code=status.HTTP_201_CREATED)
async def subscribe_to_push(payload: PushSubscribeRequest, user_id: Annotated[int, Depends(get_current_user_id)], store: Annotated[SubscriptionStore, Depends(get_subscription_store)]) -> dict[str, str | bool]:
  """Register the authenticated user's browser subscription; repeats are no-ops."""
  subscription = Subscription(id=None, user_id=user_id, endpoint=payload.endpoint, auth=payload.keys.auth, p256dh=payload.keys.p256dh)
  try:
    created = await store.add(subscription)
  except Exception as exc:  # noqa: BLE001
    logger.error("Saving push subscription failed user_id=%s error=%s", user_id, exc, exc_info=True)
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to save subscription") from exc

  return {"message": "Subscribed successfully", "created": created}


@router.delete("/unsubscribe", status_code=status.HTTP_204_NO_CONTENT)
async def unsubscribe_from_push(payload: PushUnsubscribeRequest, user_id: Annotated[int, Depends(get_current_user_id)], store: Annotated[SubscriptionStore, Depends(get_subscription_store)]) -> Response:
  """Delete a push subscription owned by the authenticated user."""
  # Delete by user and endpoint while keeping the operation idempotent.
  try:
    await store.delete_for_user_endpoint(user_id=user_id, endpoint=payload.endpoint)
  except Exception as exc:  # noqa: BLE001
    logger.error("Deleting push subscription failed user_id=%s error=%s", user_id, exc, exc_info=True)
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete subscription") from exc

  return Response(status_code=status.HTTP_204_NO_CONTENT)
