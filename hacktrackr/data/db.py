"""
HackTrackr — Obligation Database.

Quizzes and hackathon events persist in SQLite across restarts, together with
the notification watermarks the scheduler writes back. Deadlines live in their
own table keyed by (event_id, id) so a watermark update touches exactly one
deadline and never rewrites its siblings.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

from hacktrackr.data.models import (
    Deadline,
    DeadlineKind,
    EventStatus,
    HackathonEvent,
    Quiz,
)
from hacktrackr.ports.obligation_port import StoreError

logger = logging.getLogger(__name__)


def _to_db(dt: datetime) -> str:
    """Serialize an aware datetime as fixed-width UTC ISO text.

    The fixed width keeps lexical order equal to chronological order, which
    the range filters and the monotonic watermark check rely on.
    """
    if dt.tzinfo is None:
        raise ValueError(f"Naive datetime not allowed: {dt!r}")
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db(raw: str | None) -> datetime | None:
    if raw is None:
        return None
    return datetime.fromisoformat(raw)


class ObligationDB:
    """SQLite-backed storage for quizzes, hackathon events and deadlines."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from hacktrackr.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create tables if they don't exist, and migrate schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS quizzes (
                    id               INTEGER PRIMARY KEY AUTOINCREMENT,
                    quiz_name        TEXT    NOT NULL,
                    platform         TEXT    NOT NULL DEFAULT '',
                    trigger_at       TEXT    NOT NULL,
                    topic            TEXT    NOT NULL DEFAULT '',
                    notes            TEXT,
                    reminder_enabled INTEGER NOT NULL DEFAULT 1,
                    completed        INTEGER NOT NULL DEFAULT 0,
                    email            TEXT,
                    score            TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    id                INTEGER PRIMARY KEY AUTOINCREMENT,
                    title             TEXT NOT NULL,
                    source_platform   TEXT NOT NULL DEFAULT 'Other',
                    organizer         TEXT NOT NULL DEFAULT '',
                    registration_link TEXT,
                    status            TEXT NOT NULL DEFAULT 'Planning',
                    email             TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS deadlines (
                    event_id         INTEGER NOT NULL,
                    id               TEXT    NOT NULL,
                    kind             TEXT    NOT NULL,
                    due_at           TEXT    NOT NULL,
                    reminder_enabled INTEGER NOT NULL DEFAULT 1,
                    completed        INTEGER NOT NULL DEFAULT 0,
                    last_notified_at TEXT,
                    notes            TEXT,
                    position         INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (event_id, id)
                )
            """)
            # Migrate existing DBs: quizzes predating the watermark column
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(quizzes)").fetchall()
            }
            if "last_notified_at" not in existing_cols:
                conn.execute("ALTER TABLE quizzes ADD COLUMN last_notified_at TEXT")
        logger.debug("Obligation tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_quiz(row: sqlite3.Row) -> Quiz:
        return Quiz(
            id=row["id"],
            quiz_name=row["quiz_name"],
            platform=row["platform"],
            trigger_at=_from_db(row["trigger_at"]),
            topic=row["topic"],
            notes=row["notes"],
            reminder_enabled=bool(row["reminder_enabled"]),
            completed=bool(row["completed"]),
            email=row["email"],
            score=row["score"],
            last_notified_at=_from_db(row["last_notified_at"]),
        )

    @staticmethod
    def _row_to_deadline(row: sqlite3.Row) -> Deadline:
        return Deadline(
            id=row["id"],
            kind=DeadlineKind(row["kind"]),
            due_at=_from_db(row["due_at"]),
            reminder_enabled=bool(row["reminder_enabled"]),
            completed=bool(row["completed"]),
            last_notified_at=_from_db(row["last_notified_at"]),
            notes=row["notes"],
            position=row["position"],
        )

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> HackathonEvent:
        return HackathonEvent(
            id=row["id"],
            title=row["title"],
            source_platform=row["source_platform"],
            organizer=row["organizer"],
            registration_link=row["registration_link"],
            status=EventStatus(row["status"]),
            email=row["email"],
        )

    @staticmethod
    def _row_to_scheduled_event(row: sqlite3.Row) -> HackathonEvent:
        """Decode an event for the reminder sweep, which never reads status.

        An unrecognised status is kept as its raw text rather than dropping
        the event's reminders.
        """
        try:
            status = EventStatus(row["status"])
        except ValueError:
            logger.warning(
                "Event #%d has unknown status %r", row["id"], row["status"],
            )
            status = row["status"]
        return HackathonEvent(
            id=row["id"],
            title=row["title"],
            source_platform=row["source_platform"],
            organizer=row["organizer"],
            registration_link=row["registration_link"],
            status=status,
            email=row["email"],
        )

    def _attach_deadlines(
        self,
        conn: sqlite3.Connection,
        events: list[HackathonEvent],
        skip_invalid: bool = False,
    ) -> None:
        """Load each event's deadlines in order.

        With skip_invalid, a row that cannot be decoded (unknown kind, bad
        timestamp) is logged and dropped instead of failing the whole load.
        """
        if not events:
            return
        by_id = {ev.id: ev for ev in events}
        placeholders = ", ".join("?" for _ in by_id)
        rows = conn.execute(
            f"SELECT * FROM deadlines WHERE event_id IN ({placeholders}) "
            "ORDER BY event_id, position",
            list(by_id),
        ).fetchall()
        for row in rows:
            try:
                deadline = self._row_to_deadline(row)
            except (ValueError, TypeError) as exc:
                if not skip_invalid:
                    raise
                logger.error(
                    "Skipping unreadable deadline %s of event #%d: %s",
                    row["id"], row["event_id"], exc,
                )
                continue
            by_id[row["event_id"]].deadlines.append(deadline)

    @staticmethod
    def _decode_rows(rows: list[sqlite3.Row], decode, label: str) -> list:
        """Decode rows one by one, logging and dropping any that fail."""
        decoded = []
        for row in rows:
            try:
                decoded.append(decode(row))
            except (ValueError, TypeError) as exc:
                logger.error("Skipping unreadable %s #%s: %s", label, row["id"], exc)
        return decoded

    # ------------------------------------------------------------------
    # Quizzes
    # ------------------------------------------------------------------

    def add_quiz(
        self,
        quiz_name: str,
        trigger_at: datetime,
        platform: str = "",
        topic: str = "",
        notes: str | None = None,
        reminder_enabled: bool = True,
        email: str | None = None,
    ) -> Quiz:
        """Insert a new quiz."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO quizzes
                    (quiz_name, platform, trigger_at, topic, notes,
                     reminder_enabled, completed, email)
                VALUES (?, ?, ?, ?, ?, ?, 0, ?)
                """,
                (
                    quiz_name, platform, _to_db(trigger_at), topic, notes,
                    int(reminder_enabled), email,
                ),
            )
            quiz_id = cursor.lastrowid

        logger.info("Quiz added: #%d '%s' at %s", quiz_id, quiz_name, trigger_at)
        return Quiz(
            id=quiz_id,
            quiz_name=quiz_name,
            trigger_at=_from_db(_to_db(trigger_at)),
            platform=platform,
            topic=topic,
            notes=notes,
            reminder_enabled=reminder_enabled,
            completed=False,
            email=email,
        )

    def get_quiz(self, quiz_id: int) -> Quiz | None:
        """Fetch a single quiz by ID."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM quizzes WHERE id = ?", (quiz_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_quiz(row)

    def list_quizzes(self) -> list[Quiz]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM quizzes ORDER BY trigger_at"
            ).fetchall()
        return [self._row_to_quiz(r) for r in rows]

    def update_quiz_schedule(self, quiz_id: int, trigger_at: datetime) -> bool:
        """Move a quiz to a new time. The watermark is kept as is."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE quizzes SET trigger_at = ? WHERE id = ?",
                (_to_db(trigger_at), quiz_id),
            )
        return cursor.rowcount > 0

    def set_quiz_completed(self, quiz_id: int, completed: bool = True) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE quizzes SET completed = ? WHERE id = ?",
                (int(completed), quiz_id),
            )
        return cursor.rowcount > 0

    def delete_quiz(self, quiz_id: int) -> bool:
        """Permanently delete a quiz by ID."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM quizzes WHERE id = ?", (quiz_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Quiz #%d deleted", quiz_id)
        return deleted

    # ------------------------------------------------------------------
    # Events and deadlines
    # ------------------------------------------------------------------

    def add_event(
        self,
        title: str,
        email: str | None = None,
        source_platform: str = "Other",
        organizer: str = "",
        registration_link: str | None = None,
        status: EventStatus = EventStatus.PLANNING,
    ) -> HackathonEvent:
        """Insert a new hackathon event with no deadlines."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO events
                    (title, source_platform, organizer, registration_link, status, email)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (title, source_platform, organizer, registration_link,
                 EventStatus(status).value, email),
            )
            event_id = cursor.lastrowid

        logger.info("Event added: #%d '%s'", event_id, title)
        return HackathonEvent(
            id=event_id,
            title=title,
            source_platform=source_platform,
            organizer=organizer,
            registration_link=registration_link,
            status=EventStatus(status),
            email=email,
        )

    def add_deadline(
        self,
        event_id: int,
        kind: DeadlineKind | str,
        due_at: datetime,
        reminder_enabled: bool = True,
        notes: str | None = None,
        deadline_id: str | None = None,
    ) -> Deadline:
        """Append a deadline to an event. Raises ValueError if the event is missing."""
        kind = DeadlineKind(kind)
        if deadline_id is None:
            deadline_id = uuid.uuid4().hex

        with self._connect() as conn:
            exists = conn.execute(
                "SELECT 1 FROM events WHERE id = ?", (event_id,)
            ).fetchone()
            if exists is None:
                raise ValueError(f"Event {event_id} not found")

            (position,) = conn.execute(
                "SELECT COALESCE(MAX(position) + 1, 0) FROM deadlines WHERE event_id = ?",
                (event_id,),
            ).fetchone()
            conn.execute(
                """
                INSERT INTO deadlines
                    (event_id, id, kind, due_at, reminder_enabled, completed,
                     last_notified_at, notes, position)
                VALUES (?, ?, ?, ?, ?, 0, NULL, ?, ?)
                """,
                (event_id, deadline_id, kind.value, _to_db(due_at),
                 int(reminder_enabled), notes, position),
            )

        logger.info(
            "Deadline added: event #%d %s (%s) due %s",
            event_id, deadline_id, kind.value, due_at,
        )
        return Deadline(
            id=deadline_id,
            kind=kind,
            due_at=_from_db(_to_db(due_at)),
            reminder_enabled=reminder_enabled,
            notes=notes,
            position=position,
        )

    def get_event(self, event_id: int) -> HackathonEvent | None:
        """Fetch an event with its deadlines in order."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM events WHERE id = ?", (event_id,)
            ).fetchone()
            if row is None:
                return None
            event = self._row_to_event(row)
            self._attach_deadlines(conn, [event])
        return event

    def list_events(self) -> list[HackathonEvent]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM events ORDER BY id").fetchall()
            events = [self._row_to_event(r) for r in rows]
            self._attach_deadlines(conn, events)
        return events

    def set_deadline_completed(
        self, event_id: int, deadline_id: str, completed: bool = True,
    ) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE deadlines SET completed = ? WHERE event_id = ? AND id = ?",
                (int(completed), event_id, deadline_id),
            )
        return cursor.rowcount > 0

    def delete_event(self, event_id: int) -> bool:
        """Permanently delete an event and all its deadlines."""
        with self._connect() as conn:
            conn.execute("DELETE FROM deadlines WHERE event_id = ?", (event_id,))
            cursor = conn.execute("DELETE FROM events WHERE id = ?", (event_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Event #%d deleted", event_id)
        return deleted

    # ------------------------------------------------------------------
    # Scheduler queries and watermarks
    # ------------------------------------------------------------------

    def query_reminders(self, now: datetime, due_within: timedelta) -> list[Quiz]:
        """Return enabled, open quizzes triggering in (now, now + due_within]."""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM quizzes
                    WHERE reminder_enabled = 1
                      AND completed = 0
                      AND trigger_at > ?
                      AND trigger_at <= ?
                    ORDER BY trigger_at
                    """,
                    (_to_db(now), _to_db(now + due_within)),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Quiz query failed: {exc}") from exc
        return self._decode_rows(rows, self._row_to_quiz, "quiz")

    def query_events_with_recipients(self) -> list[HackathonEvent]:
        """Return events that have a recipient and at least one deadline."""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM events
                    WHERE email IS NOT NULL AND email != ''
                      AND EXISTS (SELECT 1 FROM deadlines d WHERE d.event_id = events.id)
                    ORDER BY id
                    """
                ).fetchall()
                events = self._decode_rows(rows, self._row_to_scheduled_event, "event")
                self._attach_deadlines(conn, events, skip_invalid=True)
        except sqlite3.Error as exc:
            raise StoreError(f"Event query failed: {exc}") from exc
        return events

    def mark_deadline_notified(
        self, event_id: int, deadline_id: str, at: datetime,
    ) -> bool:
        """Advance one deadline's watermark to `at`.

        Returns False when the deadline no longer exists or already carries a
        later watermark; neither case is an error.
        """
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    UPDATE deadlines SET last_notified_at = ?
                    WHERE event_id = ? AND id = ?
                      AND (last_notified_at IS NULL OR last_notified_at <= ?)
                    """,
                    (_to_db(at), event_id, deadline_id, _to_db(at)),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"Deadline mark failed: {exc}") from exc
        return cursor.rowcount > 0

    def mark_quiz_notified(self, quiz_id: int, at: datetime) -> bool:
        """Advance a quiz's watermark to `at`. Same semantics as for deadlines."""
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    UPDATE quizzes SET last_notified_at = ?
                    WHERE id = ?
                      AND (last_notified_at IS NULL OR last_notified_at <= ?)
                    """,
                    (_to_db(at), quiz_id, _to_db(at)),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"Quiz mark failed: {exc}") from exc
        return cursor.rowcount > 0
