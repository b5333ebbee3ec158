"""Read-only mapping of the timetable table owned by the main API."""

from __future__ import annotations

import datetime

from sqlalchemy import Date, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from timetable_notify.core.database import Base


class Timetable(Base):
  """A timetable row; its start timestamp encodes the weekly weekday and wall-clock time."""

  __tablename__ = "timetables"

  id: Mapped[int] = mapped_column(Integer, primary_key=True)
  user_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
  subject: Mapped[str] = mapped_column(String, nullable=False)
  location: Mapped[str | None] = mapped_column(String, nullable=True)
  # Stored as local wall-clock time without a zone, as written by the timetable upload route.
  start_time: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=False), nullable=False)
  end_time: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=False), nullable=False)
  # Last date a recurring series runs; NULL means it repeats with no end.
  recurring_end_date: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
