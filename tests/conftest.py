"""Shared test fixtures and configuration.

Sets up fake environment variables before any hacktrackr import so settings
never pick up a developer's real .env transport, and provides a temp DB plus
a fixed clock.
"""

import os

# Patch env vars BEFORE any hacktrackr imports
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("NOTIFY_TRANSPORT", "none")
os.environ.setdefault("SMTP_HOST", "")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")
os.environ.setdefault("TIMEZONE", "UTC")

from datetime import datetime, timezone

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_hacktrackr.db")


@pytest.fixture
def obligation_db(tmp_db_path):
    """Return an ObligationDB instance backed by a temp file."""
    from hacktrackr.data.db import ObligationDB
    return ObligationDB(db_path=tmp_db_path)


@pytest.fixture
def now():
    """A fixed, timezone-aware tick time."""
    return datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
