"""
HackTrackr — Data Models.

Quizzes carry a single trigger time; hackathon events own an ordered set of
deadlines. All timestamps are timezone-aware UTC datetimes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class DeadlineKind(str, Enum):
    """Which milestone of a hackathon a deadline marks."""

    REGISTRATION = "registration"
    IDEA = "idea"
    PPT = "ppt"
    CODE = "code"
    DEMO = "demo"
    FINAL = "final"
    RESULT = "result"


class EventStatus(str, Enum):
    PLANNING = "Planning"
    REGISTERED = "Registered"
    WORKING = "Working"
    SUBMITTED = "Submitted"
    RESULT_AWAITED = "ResultAwaited"
    COMPLETED = "Completed"


@dataclass
class Quiz:
    """A quiz with one reminder window before it starts.

    last_notified_at is the de-duplication watermark for that window.
    """

    id: int
    quiz_name: str
    trigger_at: datetime
    platform: str = ""
    topic: str = ""
    notes: str | None = None
    reminder_enabled: bool = True
    completed: bool = False
    email: str | None = None              # recipient; None → never notified
    score: str | None = None
    last_notified_at: datetime | None = None


@dataclass
class Deadline:
    """One milestone of a hackathon event, addressed by (event id, deadline id)."""

    id: str
    kind: DeadlineKind
    due_at: datetime
    reminder_enabled: bool = True
    completed: bool = False
    last_notified_at: datetime | None = None
    notes: str | None = None
    position: int = 0                     # order within the parent event


@dataclass
class HackathonEvent:
    """A hackathon whose deadlines all notify the same recipient."""

    id: int
    title: str
    source_platform: str = "Other"
    organizer: str = ""
    registration_link: str | None = None
    status: EventStatus | str = EventStatus.PLANNING   # raw text if unrecognised
    email: str | None = None
    deadlines: list[Deadline] = field(default_factory=list)

    def get_deadline(self, deadline_id: str) -> Deadline | None:
        """Find a loaded deadline by id.

        Lookup helper for callers holding a fetched event (the CRUD layer and
        tests). The scheduler never uses it: watermark writes go through the
        store addressed by (event id, deadline id).
        """
        for deadline in self.deadlines:
            if deadline.id == deadline_id:
                return deadline
        return None
