"""Rendering helpers for reminder and digest push payloads."""

from __future__ import annotations

from collections.abc import Sequence

from timetable_notify.notifications.contracts import PushPayload, RecurringSession

REMINDER_TITLE = "Class Reminder"
DIGEST_TITLE = "Tomorrow's Schedule"


def render_reminder(session: RecurringSession, *, lead_minutes: int = 10, icon: str | None = None) -> PushPayload:
  """Render the payload announcing that a session starts soon."""
  body = f"{session.subject} starts in {lead_minutes} mins"
  if session.location:
    body = f"{body} in {session.location}"
  return PushPayload(title=REMINDER_TITLE, body=body, icon=icon)


def sort_agenda(sessions: Sequence[RecurringSession]) -> list[RecurringSession]:
  """Order sessions by zero-padded start time; string order equals clock order."""
  return sorted(sessions, key=lambda session: session.start_time_of_day)


def render_digest(sessions: Sequence[RecurringSession], *, icon: str | None = None) -> PushPayload:
  """Render the nightly summary of tomorrow's sessions."""
  if not sessions:
    raise ValueError("A digest needs at least one session.")

  ordered = sort_agenda(sessions)
  items = ", ".join(f"{session.subject} ({session.start_time_of_day})" for session in ordered)
  return PushPayload(title=DIGEST_TITLE, body=f"You have {len(ordered)} classes tomorrow: {items}", icon=icon)
