"""Obligation port — abstract interface for the reminder store.

The scheduler reads candidates through this protocol and writes back only
the notification watermarks.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol

from hacktrackr.data.models import HackathonEvent, Quiz


class StoreError(Exception):
    """Raised when the obligation store cannot be read or written."""


class ObligationStore(Protocol):
    """Abstract store interface used by the scheduler."""

    def query_reminders(
        self, now: datetime, due_within: timedelta
    ) -> list[Quiz]: ...

    def query_events_with_recipients(self) -> list[HackathonEvent]: ...

    def mark_deadline_notified(
        self, event_id: int, deadline_id: str, at: datetime
    ) -> bool: ...

    def mark_quiz_notified(self, quiz_id: int, at: datetime) -> bool: ...
