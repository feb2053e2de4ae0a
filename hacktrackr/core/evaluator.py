"""Reminder evaluator — pure decision logic.

Given a fixed "now" and one obligation, decides whether a reminder is due and
builds the message for it.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from datetime import datetime, timedelta, timezone, tzinfo

from hacktrackr.data.models import Deadline, HackathonEvent, Quiz

_ONE_DAY = timedelta(days=1)


class NotificationTarget(str, Enum):
    """Which kind of obligation a decision marks as notified."""

    QUIZ = "quiz"
    DEADLINE = "deadline"


@dataclass(frozen=True)
class ReminderPolicy:
    """Timing rules shared by every tick."""

    reminder_lead: timedelta = timedelta(hours=1)          # quiz firing window
    reminder_query_window: timedelta = timedelta(hours=24)  # quiz pre-filter
    deadline_window_days: int = 3
    cooldown: timedelta = timedelta(hours=12)


@dataclass(frozen=True)
class NotificationDecision:
    """A reminder that should be sent now, and where to record it."""

    recipient: str
    subject: str
    body: str
    target: NotificationTarget
    obligation_id: int
    deadline_id: str | None = None


def _require_aware(dt: datetime, name: str) -> None:
    if dt.tzinfo is None or dt.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware, got {dt!r}")


def _format_time(dt: datetime, tz: tzinfo | None) -> str:
    return dt.astimezone(tz or timezone.utc).strftime("%Y-%m-%d %H:%M %Z")


def days_until(due_at: datetime, now: datetime) -> int:
    """Whole days left until due_at, rounded up (due in 25h → 2)."""
    return math.ceil((due_at - now) / _ONE_DAY)


def _days_phrase(days: int) -> str:
    return "1 day" if days == 1 else f"{days} days"


def decide_quiz(
    quiz: Quiz,
    now: datetime,
    policy: ReminderPolicy | None = None,
    tz: tzinfo | None = None,
) -> NotificationDecision | None:
    """Return a decision if the quiz starts within the lead window.

    A quiz fires once per window: a watermark at or after the window start
    means this trigger time was already announced. Moving the quiz later
    opens a new window.
    """
    policy = policy or ReminderPolicy()
    _require_aware(now, "now")
    _require_aware(quiz.trigger_at, "trigger_at")

    if not quiz.reminder_enabled or quiz.completed or not quiz.email:
        return None

    remaining = quiz.trigger_at - now
    if not (timedelta(0) < remaining <= policy.reminder_lead):
        return None

    window_start = quiz.trigger_at - policy.reminder_lead
    if quiz.last_notified_at is not None and quiz.last_notified_at >= window_start:
        return None

    when = _format_time(quiz.trigger_at, tz)
    subject = f"Reminder: {quiz.quiz_name} quiz coming up"
    body = f'Your quiz "{quiz.quiz_name}" on topic "{quiz.topic}" is scheduled at {when}.'
    if quiz.platform:
        body += f"\nPlatform: {quiz.platform}"
    if quiz.notes:
        body += f"\nNotes: {quiz.notes}"

    return NotificationDecision(
        recipient=quiz.email,
        subject=subject,
        body=body,
        target=NotificationTarget.QUIZ,
        obligation_id=quiz.id,
    )


def decide_deadline(
    event: HackathonEvent,
    deadline: Deadline,
    now: datetime,
    policy: ReminderPolicy | None = None,
    tz: tzinfo | None = None,
) -> NotificationDecision | None:
    """Return a decision if the deadline is inside the reminder window.

    Due when the deadline is still ahead, at most `deadline_window_days`
    whole days away, and the cooldown since the last reminder has fully
    elapsed (inclusive boundary).
    """
    policy = policy or ReminderPolicy()
    _require_aware(now, "now")
    _require_aware(deadline.due_at, "due_at")

    if not deadline.reminder_enabled or deadline.completed or not event.email:
        return None
    if deadline.due_at <= now:
        return None

    days = days_until(deadline.due_at, now)
    if not (0 <= days <= policy.deadline_window_days):
        return None

    if (
        deadline.last_notified_at is not None
        and now - deadline.last_notified_at < policy.cooldown
    ):
        return None

    kind = deadline.kind.value
    remaining = _days_phrase(days)
    subject = f"Reminder: {event.title} {kind} deadline in {remaining}"
    lines = [
        f'The {kind} deadline for "{event.title}" is due at '
        f"{_format_time(deadline.due_at, tz)}.",
        f"{remaining} remaining.",
    ]
    if event.registration_link:
        lines.append(f"Link: {event.registration_link}")
    if deadline.notes:
        lines.append(f"Notes: {deadline.notes}")

    return NotificationDecision(
        recipient=event.email,
        subject=subject,
        body="\n".join(lines),
        target=NotificationTarget.DEADLINE,
        obligation_id=event.id,
        deadline_id=deadline.id,
    )
