"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_CLOCK_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@dataclass(frozen=True)
class Settings:
  """Typed settings for the notification service."""

  environment: str
  debug: bool
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  allowed_origins: tuple[str, ...]
  pg_dsn: str | None
  pg_connect_timeout: int
  notify_enabled: bool
  timezone: str
  reminder_lead_minutes: int
  digest_hour: int
  digest_minute: int
  dispatch_concurrency: int
  push_notifications_enabled: bool
  push_vapid_public_key: str | None
  push_vapid_private_key: str | None
  push_vapid_sub: str | None
  push_timeout_seconds: float
  push_icon_url: str | None
  jwt_secret: str | None

  @property
  def tzinfo(self) -> ZoneInfo:
    return ZoneInfo(self.timezone)


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ()

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if "*" in origins:
    raise ValueError("NOTIFY_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None or raw.strip() == "":
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _parse_clock(raw: str) -> tuple[int, int]:
  """Parse a zero-padded HH:MM wall-clock value."""
  match = _CLOCK_RE.fullmatch(raw.strip())
  if match is None:
    raise ValueError("NOTIFY_DIGEST_TIME must be a zero-padded HH:MM value.")

  return int(match.group(1)), int(match.group(2))


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("NOTIFY_ENV", "development").lower()
  debug = _parse_bool(os.getenv("NOTIFY_DEBUG"))

  log_max_bytes = _positive_int("NOTIFY_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("NOTIFY_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("NOTIFY_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Reminder timing is expressed in the wall-clock zone students read their timetable in.
  timezone = (os.getenv("NOTIFY_TIMEZONE") or "UTC").strip()
  try:
    ZoneInfo(timezone)
  except (ZoneInfoNotFoundError, ValueError) as exc:
    raise ValueError(f"NOTIFY_TIMEZONE is not a known IANA zone: {timezone!r}") from exc

  reminder_lead_minutes = _positive_int("NOTIFY_REMINDER_LEAD_MINUTES", "10")
  digest_hour, digest_minute = _parse_clock(os.getenv("NOTIFY_DIGEST_TIME") or "21:00")
  dispatch_concurrency = _positive_int("NOTIFY_DISPATCH_CONCURRENCY", "10")

  push_notifications_enabled = _parse_bool(os.getenv("NOTIFY_PUSH_ENABLED"))
  push_vapid_public_key = _optional_str(os.getenv("NOTIFY_PUSH_VAPID_PUBLIC_KEY"))
  push_vapid_private_key = _optional_str(os.getenv("NOTIFY_PUSH_VAPID_PRIVATE_KEY"))
  push_vapid_sub = _optional_str(os.getenv("NOTIFY_PUSH_VAPID_SUB"))
  push_timeout_seconds = float(os.getenv("NOTIFY_PUSH_TIMEOUT_SECONDS", "10"))
  if push_timeout_seconds <= 0:
    raise ValueError("NOTIFY_PUSH_TIMEOUT_SECONDS must be positive.")

  # Validate push configuration only when push notifications are enabled.
  if push_notifications_enabled:
    if not push_vapid_public_key:
      raise ValueError("NOTIFY_PUSH_VAPID_PUBLIC_KEY must be set when push notifications are enabled.")

    if not push_vapid_private_key:
      raise ValueError("NOTIFY_PUSH_VAPID_PRIVATE_KEY must be set when push notifications are enabled.")

    if not push_vapid_sub:
      raise ValueError("NOTIFY_PUSH_VAPID_SUB must be set when push notifications are enabled.")

    if not (push_vapid_sub.startswith("mailto:") or push_vapid_sub.startswith("https://")):
      raise ValueError("NOTIFY_PUSH_VAPID_SUB must start with 'mailto:' or 'https://'.")

  database = get_database_settings()

  return Settings(
    environment=environment,
    debug=debug,
    log_dir=(os.getenv("NOTIFY_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    allowed_origins=_parse_origins(os.getenv("NOTIFY_ALLOWED_ORIGINS")),
    pg_dsn=database.pg_dsn,
    pg_connect_timeout=database.pg_connect_timeout,
    notify_enabled=_parse_bool(os.getenv("NOTIFY_ENABLED"), default=True),
    timezone=timezone,
    reminder_lead_minutes=reminder_lead_minutes,
    digest_hour=digest_hour,
    digest_minute=digest_minute,
    dispatch_concurrency=dispatch_concurrency,
    push_notifications_enabled=push_notifications_enabled,
    push_vapid_public_key=push_vapid_public_key,
    push_vapid_private_key=push_vapid_private_key,
    push_vapid_sub=push_vapid_sub,
    push_timeout_seconds=push_timeout_seconds,
    push_icon_url=_optional_str(os.getenv("NOTIFY_PUSH_ICON_URL")),
    jwt_secret=_optional_str(os.getenv("NOTIFY_JWT_SECRET")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring push or scheduling configuration."""
  debug = _parse_bool(os.getenv("NOTIFY_DEBUG"))
  pg_connect_timeout = _positive_int("NOTIFY_PG_CONNECT_TIMEOUT", "5")

  # Support fallback to DATABASE_URL so the service can share the main API's DSN.
  pg_dsn = _optional_str(os.getenv("NOTIFY_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
