"""
HackTrackr — Centralized configuration.

Loads all settings from .env and coerces them into typed values.
Nothing here is mandatory: a missing transport is a soft failure at send
time, not a startup error.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from hacktrackr/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite
    DATABASE_PATH: str = "data/hacktrackr.db"

    # Used to render times in messages and to evaluate TICK_CRON
    TIMEZONE: str = "UTC"

    # Transport: "email" | "telegram" | "none"
    NOTIFY_TRANSPORT: str = "email"

    # SMTP (only needed when NOTIFY_TRANSPORT=email)
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_STARTTLS: bool = True
    EMAIL_FROM: str = ""

    # Telegram (only needed when NOTIFY_TRANSPORT=telegram)
    TELEGRAM_BOT_TOKEN: str = ""

    # Cadence: TICK_CRON wins over the interval when set
    TICK_INTERVAL_MINUTES: int = 15
    TICK_CRON: str = ""

    # Reminder policy
    REMINDER_LEAD_MINUTES: int = 60
    REMINDER_QUERY_WINDOW_HOURS: int = 24
    DEADLINE_WINDOW_DAYS: int = 3
    NOTIFY_COOLDOWN_HOURS: int = 12

    LOG_LEVEL: str = "INFO"

    @field_validator(
        "SMTP_PORT",
        "TICK_INTERVAL_MINUTES",
        "REMINDER_LEAD_MINUTES",
        "REMINDER_QUERY_WINDOW_HOURS",
        "DEADLINE_WINDOW_DAYS",
        "NOTIFY_COOLDOWN_HOURS",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        if isinstance(v, str):
            v = int(v.strip())
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("TICK_INTERVAL_MINUTES")
    @classmethod
    def positive_interval(cls, v: int) -> int:
        if v == 0:
            raise ValueError("TICK_INTERVAL_MINUTES must be positive")
        return v

    @field_validator("SMTP_STARTTLS", mode="before")
    @classmethod
    def parse_bool(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return v.strip().lower() in ("1", "true", "yes", "on")

    @field_validator("NOTIFY_TRANSPORT", "LOG_LEVEL", mode="before")
    @classmethod
    def normalize_choice(cls, v: str) -> str:
        return v.strip()


def _load_settings() -> Settings:
    """Load settings from environment."""
    return Settings(
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/hacktrackr.db"),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        NOTIFY_TRANSPORT=os.getenv("NOTIFY_TRANSPORT", "email"),
        SMTP_HOST=os.getenv("SMTP_HOST", ""),
        SMTP_PORT=os.getenv("SMTP_PORT", "587"),
        SMTP_USER=os.getenv("SMTP_USER", ""),
        SMTP_PASSWORD=os.getenv("SMTP_PASSWORD", ""),
        SMTP_STARTTLS=os.getenv("SMTP_STARTTLS", "true"),
        EMAIL_FROM=os.getenv("EMAIL_FROM", ""),
        TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        TICK_INTERVAL_MINUTES=os.getenv("TICK_INTERVAL_MINUTES", "15"),
        TICK_CRON=os.getenv("TICK_CRON", ""),
        REMINDER_LEAD_MINUTES=os.getenv("REMINDER_LEAD_MINUTES", "60"),
        REMINDER_QUERY_WINDOW_HOURS=os.getenv("REMINDER_QUERY_WINDOW_HOURS", "24"),
        DEADLINE_WINDOW_DAYS=os.getenv("DEADLINE_WINDOW_DAYS", "3"),
        NOTIFY_COOLDOWN_HOURS=os.getenv("NOTIFY_COOLDOWN_HOURS", "12"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton — imported by all other modules as:
#   from hacktrackr.config import settings
settings = _load_settings()
