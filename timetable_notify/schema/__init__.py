"""Schema package exports."""

from .push_subscriptions import WebPushSubscription
from .timetables import Timetable

__all__ = ["Timetable", "WebPushSubscription"]
