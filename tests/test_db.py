"""Tests for hacktrackr.data.db — ObligationDB (SQLite storage)."""

import sqlite3
from datetime import timedelta, timezone
from unittest.mock import patch

import pytest

from hacktrackr.data.db import ObligationDB
from hacktrackr.data.models import DeadlineKind, EventStatus
from hacktrackr.ports.obligation_port import StoreError


class TestQuizzes:
    def test_add_quiz_returns_quiz(self, obligation_db, now):
        quiz = obligation_db.add_quiz(
            "Cloud Basics", now + timedelta(hours=2), topic="AWS", email="me@example.com",
        )
        assert quiz.id is not None
        assert quiz.quiz_name == "Cloud Basics"
        assert quiz.trigger_at == now + timedelta(hours=2)
        assert quiz.completed is False
        assert quiz.last_notified_at is None

    def test_get_quiz_round_trips_aware_datetime(self, obligation_db, now):
        added = obligation_db.add_quiz("Q", now, email="me@example.com")
        fetched = obligation_db.get_quiz(added.id)
        assert fetched.trigger_at == now
        assert fetched.trigger_at.tzinfo is not None

    def test_get_quiz_not_found(self, obligation_db):
        assert obligation_db.get_quiz(999) is None

    def test_naive_datetime_rejected(self, obligation_db, now):
        with pytest.raises(ValueError):
            obligation_db.add_quiz("Q", now.replace(tzinfo=None))

    def test_update_schedule_and_complete(self, obligation_db, now):
        quiz = obligation_db.add_quiz("Q", now)
        assert obligation_db.update_quiz_schedule(quiz.id, now + timedelta(days=1)) is True
        assert obligation_db.set_quiz_completed(quiz.id) is True
        fetched = obligation_db.get_quiz(quiz.id)
        assert fetched.trigger_at == now + timedelta(days=1)
        assert fetched.completed is True

    def test_delete_quiz(self, obligation_db, now):
        quiz = obligation_db.add_quiz("Q", now)
        assert obligation_db.delete_quiz(quiz.id) is True
        assert obligation_db.delete_quiz(quiz.id) is False
        assert obligation_db.list_quizzes() == []


class TestQueryReminders:
    def test_filters_enabled_open_and_window(self, obligation_db, now):
        obligation_db.add_quiz("Soon", now + timedelta(minutes=30))
        obligation_db.add_quiz("Later", now + timedelta(hours=30))
        obligation_db.add_quiz("Past", now - timedelta(minutes=1))
        obligation_db.add_quiz("Off", now + timedelta(minutes=30), reminder_enabled=False)
        done = obligation_db.add_quiz("Done", now + timedelta(minutes=30))
        obligation_db.set_quiz_completed(done.id)

        result = obligation_db.query_reminders(now, timedelta(hours=24))
        assert [q.quiz_name for q in result] == ["Soon"]

    def test_window_end_is_inclusive(self, obligation_db, now):
        obligation_db.add_quiz("Edge", now + timedelta(hours=24))
        result = obligation_db.query_reminders(now, timedelta(hours=24))
        assert len(result) == 1

    def test_compares_across_offsets(self, obligation_db, now):
        from zoneinfo import ZoneInfo

        local = (now + timedelta(minutes=30)).astimezone(ZoneInfo("America/New_York"))
        obligation_db.add_quiz("Offset", local)
        result = obligation_db.query_reminders(now, timedelta(hours=1))
        assert len(result) == 1
        assert result[0].trigger_at.tzinfo == timezone.utc


class TestEvents:
    def test_add_event_with_ordered_deadlines(self, obligation_db, now):
        event = obligation_db.add_event("HackMIT", email="team@example.com")
        obligation_db.add_deadline(event.id, "registration", now + timedelta(days=1))
        obligation_db.add_deadline(event.id, DeadlineKind.PPT, now + timedelta(days=5))
        obligation_db.add_deadline(event.id, DeadlineKind.FINAL, now + timedelta(days=2))

        fetched = obligation_db.get_event(event.id)
        assert [d.kind for d in fetched.deadlines] == [
            DeadlineKind.REGISTRATION, DeadlineKind.PPT, DeadlineKind.FINAL,
        ]
        assert [d.position for d in fetched.deadlines] == [0, 1, 2]
        assert fetched.status is EventStatus.PLANNING

    def test_add_deadline_with_explicit_id(self, obligation_db, now):
        event = obligation_db.add_event("HackMIT")
        deadline = obligation_db.add_deadline(event.id, "code", now, deadline_id="code-1")
        assert deadline.id == "code-1"
        assert obligation_db.get_event(event.id).get_deadline("code-1") is not None

    def test_add_deadline_missing_event_raises(self, obligation_db, now):
        with pytest.raises(ValueError):
            obligation_db.add_deadline(999, "code", now)

    def test_unknown_kind_raises(self, obligation_db, now):
        event = obligation_db.add_event("HackMIT")
        with pytest.raises(ValueError):
            obligation_db.add_deadline(event.id, "party", now)

    def test_delete_event_removes_deadlines(self, obligation_db, now, tmp_db_path):
        event = obligation_db.add_event("HackMIT", email="team@example.com")
        obligation_db.add_deadline(event.id, "code", now)
        assert obligation_db.delete_event(event.id) is True
        assert obligation_db.get_event(event.id) is None

        conn = sqlite3.connect(tmp_db_path)
        (count,) = conn.execute("SELECT COUNT(*) FROM deadlines").fetchone()
        conn.close()
        assert count == 0

    def test_query_events_requires_recipient_and_deadline(self, obligation_db, now):
        with_all = obligation_db.add_event("A", email="a@example.com")
        obligation_db.add_deadline(with_all.id, "code", now + timedelta(days=1))
        no_email = obligation_db.add_event("B")
        obligation_db.add_deadline(no_email.id, "code", now + timedelta(days=1))
        blank_email = obligation_db.add_event("C", email="")
        obligation_db.add_deadline(blank_email.id, "code", now + timedelta(days=1))
        obligation_db.add_event("D", email="d@example.com")

        events = obligation_db.query_events_with_recipients()
        assert [e.title for e in events] == ["A"]
        assert len(events[0].deadlines) == 1

    def test_list_events(self, obligation_db):
        obligation_db.add_event("A")
        obligation_db.add_event("B")
        assert [e.title for e in obligation_db.list_events()] == ["A", "B"]


class TestWatermarks:
    def test_mark_deadline_touches_only_that_deadline(self, obligation_db, now):
        event = obligation_db.add_event("HackMIT", email="team@example.com")
        first = obligation_db.add_deadline(event.id, "idea", now + timedelta(days=1))
        second = obligation_db.add_deadline(event.id, "code", now + timedelta(days=2))

        assert obligation_db.mark_deadline_notified(event.id, first.id, now) is True

        fetched = obligation_db.get_event(event.id)
        assert fetched.get_deadline(first.id).last_notified_at == now
        assert fetched.get_deadline(second.id).last_notified_at is None

    def test_mark_missing_deadline_is_noop(self, obligation_db, now):
        event = obligation_db.add_event("HackMIT", email="team@example.com")
        assert obligation_db.mark_deadline_notified(event.id, "nope", now) is False
        assert obligation_db.mark_deadline_notified(999, "nope", now) is False

    def test_mark_deadline_after_delete_is_noop(self, obligation_db, now):
        event = obligation_db.add_event("HackMIT", email="team@example.com")
        deadline = obligation_db.add_deadline(event.id, "code", now + timedelta(days=1))
        obligation_db.delete_event(event.id)
        assert obligation_db.mark_deadline_notified(event.id, deadline.id, now) is False

    def test_watermark_never_moves_backwards(self, obligation_db, now):
        event = obligation_db.add_event("HackMIT", email="team@example.com")
        deadline = obligation_db.add_deadline(event.id, "code", now + timedelta(days=1))
        obligation_db.mark_deadline_notified(event.id, deadline.id, now)

        assert obligation_db.mark_deadline_notified(
            event.id, deadline.id, now - timedelta(hours=1),
        ) is False
        assert obligation_db.get_event(event.id).deadlines[0].last_notified_at == now

        later = now + timedelta(hours=13)
        assert obligation_db.mark_deadline_notified(event.id, deadline.id, later) is True
        assert obligation_db.get_event(event.id).deadlines[0].last_notified_at == later

    def test_mark_quiz(self, obligation_db, now):
        quiz = obligation_db.add_quiz("Q", now + timedelta(minutes=30))
        assert obligation_db.mark_quiz_notified(quiz.id, now) is True
        assert obligation_db.get_quiz(quiz.id).last_notified_at == now
        assert obligation_db.mark_quiz_notified(quiz.id, now - timedelta(minutes=1)) is False
        assert obligation_db.mark_quiz_notified(999, now) is False

    def test_watermark_survives_reopen(self, tmp_db_path, now):
        db = ObligationDB(db_path=tmp_db_path)
        event = db.add_event("HackMIT", email="team@example.com")
        deadline = db.add_deadline(event.id, "code", now + timedelta(days=1))
        db.mark_deadline_notified(event.id, deadline.id, now)

        reopened = ObligationDB(db_path=tmp_db_path)
        assert reopened.get_event(event.id).deadlines[0].last_notified_at == now


class TestUnreadableRows:
    def _raw(self, tmp_db_path, sql, params):
        conn = sqlite3.connect(tmp_db_path)
        conn.execute(sql, params)
        conn.commit()
        conn.close()

    def test_unknown_status_keeps_event_in_sweep(self, obligation_db, now, tmp_db_path):
        odd = obligation_db.add_event("Odd", email="odd@example.com")
        obligation_db.add_deadline(odd.id, "code", now + timedelta(days=1))
        good = obligation_db.add_event("Good", email="good@example.com")
        obligation_db.add_deadline(good.id, "code", now + timedelta(days=1))
        self._raw(tmp_db_path, "UPDATE events SET status = ? WHERE id = ?", ("planning", odd.id))

        events = obligation_db.query_events_with_recipients()

        assert [e.title for e in events] == ["Odd", "Good"]
        assert events[0].status == "planning"
        assert events[1].status is EventStatus.PLANNING

    def test_unknown_deadline_kind_is_skipped(self, obligation_db, now, tmp_db_path):
        event = obligation_db.add_event("HackMIT", email="team@example.com")
        bad = obligation_db.add_deadline(event.id, "code", now + timedelta(days=1))
        obligation_db.add_deadline(event.id, "demo", now + timedelta(days=2))
        self._raw(
            tmp_db_path,
            "UPDATE deadlines SET kind = ? WHERE event_id = ? AND id = ?",
            ("party", event.id, bad.id),
        )

        events = obligation_db.query_events_with_recipients()

        assert [d.kind for d in events[0].deadlines] == [DeadlineKind.DEMO]

    def test_bad_quiz_timestamp_is_skipped(self, obligation_db, now, tmp_db_path):
        broken = obligation_db.add_quiz("Broken", now + timedelta(minutes=30))
        obligation_db.add_quiz("Fine", now + timedelta(minutes=40))
        self._raw(
            tmp_db_path,
            "UPDATE quizzes SET last_notified_at = ? WHERE id = ?",
            ("yesterday", broken.id),
        )

        result = obligation_db.query_reminders(now, timedelta(hours=1))

        assert [q.quiz_name for q in result] == ["Fine"]


class TestStoreErrors:
    def test_query_failure_raises_store_error(self, obligation_db, now):
        with patch.object(
            obligation_db, "_connect", side_effect=sqlite3.OperationalError("disk I/O error"),
        ):
            with pytest.raises(StoreError):
                obligation_db.query_reminders(now, timedelta(hours=1))
            with pytest.raises(StoreError):
                obligation_db.query_events_with_recipients()
            with pytest.raises(StoreError):
                obligation_db.mark_deadline_notified(1, "x", now)


class TestObligationDBMigration:
    def test_migration_adds_watermark_to_old_quiz_table(self, tmp_db_path):
        """Simulate an old DB without last_notified_at, verify migration works."""
        conn = sqlite3.connect(tmp_db_path)
        conn.execute("""
            CREATE TABLE quizzes (
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
        conn.execute(
            "INSERT INTO quizzes (quiz_name, trigger_at) VALUES (?, ?)",
            ("Old quiz", "2026-01-01T10:00:00.000000+00:00"),
        )
        conn.commit()
        conn.close()

        db = ObligationDB(db_path=tmp_db_path)
        quizzes = db.list_quizzes()
        assert len(quizzes) == 1
        assert quizzes[0].quiz_name == "Old quiz"
        assert quizzes[0].last_notified_at is None
