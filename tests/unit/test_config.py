from __future__ import annotations

import logging
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from timetable_notify.config import get_settings
from timetable_notify.core.database import _database_url, dispose_engine, get_session_factory
from timetable_notify.core.logging import TruncatedFormatter, _backup_namer
from timetable_notify.main import app


def test_defaults():
  settings = get_settings()

  assert settings.notify_enabled is True
  assert settings.timezone == "UTC"
  assert settings.reminder_lead_minutes == 10
  assert (settings.digest_hour, settings.digest_minute) == (21, 0)
  assert settings.dispatch_concurrency == 10
  assert settings.push_notifications_enabled is False
  assert settings.allowed_origins == ()


def test_digest_time_and_timezone_overrides(monkeypatch):
  monkeypatch.setenv("NOTIFY_DIGEST_TIME", "07:30")
  monkeypatch.setenv("NOTIFY_TIMEZONE", "Europe/London")

  settings = get_settings()

  assert (settings.digest_hour, settings.digest_minute) == (7, 30)
  assert settings.tzinfo.key == "Europe/London"


@pytest.mark.parametrize(
  ("name", "value"),
  [
    ("NOTIFY_DIGEST_TIME", "7:30"),
    ("NOTIFY_DIGEST_TIME", "25:00"),
    ("NOTIFY_TIMEZONE", "Mars/Olympus"),
    ("NOTIFY_ALLOWED_ORIGINS", "https://app.example.com,*"),
    ("NOTIFY_DISPATCH_CONCURRENCY", "0"),
  ],
)
def test_invalid_values_are_rejected(monkeypatch, name, value):
  monkeypatch.setenv(name, value)

  with pytest.raises(ValueError):
    get_settings()


def test_push_requires_vapid_settings(monkeypatch):
  monkeypatch.setenv("NOTIFY_PUSH_ENABLED", "true")
  monkeypatch.setenv("NOTIFY_PUSH_VAPID_PUBLIC_KEY", "pub")
  monkeypatch.setenv("NOTIFY_PUSH_VAPID_PRIVATE_KEY", "priv")

  with pytest.raises(ValueError, match="NOTIFY_PUSH_VAPID_SUB"):
    get_settings()

  monkeypatch.setenv("NOTIFY_PUSH_VAPID_SUB", "ops@example.com")
  get_settings.cache_clear()
  with pytest.raises(ValueError, match="mailto"):
    get_settings()

  monkeypatch.setenv("NOTIFY_PUSH_VAPID_SUB", "mailto:ops@example.com")
  get_settings.cache_clear()
  assert get_settings().push_notifications_enabled is True


def test_database_url_falls_back_to_database_url_and_uses_asyncpg(monkeypatch):
  monkeypatch.setenv("DATABASE_URL", "postgresql://notify:pw@db:5432/timetable")

  assert _database_url() == "postgresql+asyncpg://notify:pw@db:5432/timetable"
  assert get_settings().pg_dsn == "postgresql://notify:pw@db:5432/timetable"


@pytest.mark.anyio
async def test_session_factory_is_absent_without_dsn():
  await dispose_engine()

  assert get_session_factory() is None


def test_log_backup_namer():
  assert _backup_namer("/var/log/notify_1.log.3") == "/var/log/notify_1.log-3"
  assert _backup_namer("/var/log/notify_1.log") == "/var/log/notify_1.log"


def test_truncated_formatter_keeps_header_and_tail():
  def _nested(depth: int) -> None:
    if depth == 0:
      raise RuntimeError("deep failure")
    _nested(depth - 1)

  try:
    _nested(10)
  except RuntimeError:
    record = logging.LogRecord("t", logging.ERROR, __file__, 1, "failed", None, exc_info=sys.exc_info())

  text = TruncatedFormatter().formatException(record.exc_info)

  assert text.startswith("Traceback")
  assert "    ...\n" in text
  assert text.rstrip().endswith("RuntimeError: deep failure")


def test_lifespan_starts_and_stops_engine(monkeypatch):
  calls = []
  engine = MagicMock()
  engine.shutdown.side_effect = lambda: calls.append("shutdown")
  engine.wait_idle = AsyncMock(side_effect=lambda: calls.append("wait_idle"))

  async def _dispose():
    calls.append("dispose")

  monkeypatch.setattr("timetable_notify.core.lifespan.dispose_engine", _dispose)
  engine.get_status.return_value = {"is_running": True, "jobs": [{"id": "class_reminders", "name": "Class reminders (every minute)", "next_run_time": None}]}
  monkeypatch.setattr("timetable_notify.core.lifespan.initialize_logging", lambda settings: None)
  monkeypatch.setattr("timetable_notify.core.lifespan.build_notification_engine", lambda settings: engine)

  with TestClient(app) as client:
    body = client.get("/health").json()

  assert body["notifications"]["is_running"] is True
  engine.start.assert_called_once_with()
  engine.shutdown.assert_called_once_with()
  engine.wait_idle.assert_awaited_once_with()
  # The pool is only disposed after in-flight ticks drain.
  assert calls == ["shutdown", "wait_idle", "dispose"]


def test_lifespan_respects_disabled_switch(monkeypatch):
  monkeypatch.setenv("NOTIFY_ENABLED", "false")
  build = MagicMock()
  monkeypatch.setattr("timetable_notify.core.lifespan.initialize_logging", lambda settings: None)
  monkeypatch.setattr("timetable_notify.core.lifespan.build_notification_engine", build)

  with TestClient(app) as client:
    body = client.get("/health").json()

  build.assert_not_called()
  assert body["notifications"] == {"is_running": False, "jobs": []}
