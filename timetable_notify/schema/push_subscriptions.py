"""SQLAlchemy model for browser Web Push subscriptions."""

from __future__ import annotations

import datetime

from sqlalchemy import DateTime, Index, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from timetable_notify.core.database import Base


class WebPushSubscription(Base):
  """Persist a single browser push subscription endpoint for a user."""

  __tablename__ = "notification_subscriptions"
  __table_args__ = (UniqueConstraint("user_id", "endpoint", name="uq_notification_subscriptions_user_endpoint"), Index("ix_notification_subscriptions_endpoint", "endpoint"))

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  user_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
  endpoint: Mapped[str] = mapped_column(Text, nullable=False)
  keys_auth: Mapped[str] = mapped_column(Text, nullable=False)
  keys_p256dh: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
