"""Factory helpers for the notification engine."""

from __future__ import annotations

import datetime

from timetable_notify.config import Settings
from timetable_notify.notifications.contracts import PushSender, ScheduleSource, SubscriptionStore
from timetable_notify.notifications.digest import DigestScheduler
from timetable_notify.notifications.dispatcher import PushDispatcher
from timetable_notify.notifications.engine import NotificationEngine
from timetable_notify.notifications.push_sender import NullPushSender, VapidConfig, WebPushSender
from timetable_notify.notifications.push_subscription_repo import PushSubscriptionRepository
from timetable_notify.notifications.reaper import SubscriptionReaper
from timetable_notify.notifications.reminders import Clock, ReminderScheduler
from timetable_notify.notifications.schedule_source import TimetableScheduleSource


def build_push_sender(settings: Settings) -> PushSender:
  """Pick the Web Push transport when VAPID is configured, otherwise the null transport."""
  if settings.push_notifications_enabled and settings.push_vapid_public_key and settings.push_vapid_private_key and settings.push_vapid_sub:
    vapid_config = VapidConfig(public_key=settings.push_vapid_public_key, private_key=settings.push_vapid_private_key, sub=settings.push_vapid_sub)
    return WebPushSender(vapid_config=vapid_config, timeout_seconds=settings.push_timeout_seconds)
  return NullPushSender()


def build_notification_engine(
  settings: Settings, *, subscription_store: SubscriptionStore | None = None, schedule_source: ScheduleSource | None = None, sender: PushSender | None = None, clock: Clock | None = None
) -> NotificationEngine:
  """Construct the engine, defaulting every collaborator to its Postgres or configured implementation."""
  tz = settings.tzinfo
  store = subscription_store or PushSubscriptionRepository()
  source = schedule_source or TimetableScheduleSource()
  now = clock or (lambda: datetime.datetime.now(tz))

  # Both triggers share one dispatcher and reaper; they share no per-tick state.
  dispatcher = PushDispatcher(sender=sender or build_push_sender(settings), reaper=SubscriptionReaper(store=store), max_concurrency=settings.dispatch_concurrency)
  reminders = ReminderScheduler(source=source, dispatcher=dispatcher, clock=now, lead_minutes=settings.reminder_lead_minutes, icon=settings.push_icon_url)
  digest = DigestScheduler(source=source, dispatcher=dispatcher, clock=now, icon=settings.push_icon_url)
  return NotificationEngine(reminders=reminders, digest=digest, timezone=tz, digest_hour=settings.digest_hour, digest_minute=settings.digest_minute)
