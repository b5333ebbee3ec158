"""Shared fixtures for the notification service tests."""

from __future__ import annotations

import pytest

from tests.factories import RecordingSender
from timetable_notify.config import get_database_settings, get_settings
from timetable_notify.notifications.dispatcher import PushDispatcher
from timetable_notify.notifications.push_subscription_repo import InMemorySubscriptionStore
from timetable_notify.notifications.reaper import SubscriptionReaper

_ENV_VARS = ("NOTIFY_PUSH_ENABLED", "NOTIFY_TIMEZONE", "NOTIFY_DIGEST_TIME", "NOTIFY_JWT_SECRET", "NOTIFY_PG_DSN", "DATABASE_URL", "NOTIFY_ALLOWED_ORIGINS", "NOTIFY_ENABLED")


@pytest.fixture(autouse=True)
def _clean_settings(monkeypatch):
  for name in _ENV_VARS:
    monkeypatch.delenv(name, raising=False)
  get_settings.cache_clear()
  get_database_settings.cache_clear()
  yield
  get_settings.cache_clear()
  get_database_settings.cache_clear()


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def subscription_store():
  return InMemorySubscriptionStore()


@pytest.fixture
def sender():
  return RecordingSender()


@pytest.fixture
def dispatcher(sender, subscription_store):
  return PushDispatcher(sender=sender, reaper=SubscriptionReaper(store=subscription_store), max_concurrency=4)
