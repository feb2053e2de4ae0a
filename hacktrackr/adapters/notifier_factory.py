"""Notifier factory — creates the right adapter based on config."""

from __future__ import annotations

import logging

from hacktrackr.config import settings
from hacktrackr.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


class DisabledNotifier:
    """NotificationPort that never delivers; used when no transport is set up."""

    async def deliver(self, recipient: str, subject: str, body: str) -> bool:
        logger.warning("No notification transport configured; dropping reminder for %s", recipient)
        return False


def create_notifier() -> NotificationPort:
    """Return the notifier matching the NOTIFY_TRANSPORT setting."""
    transport = settings.NOTIFY_TRANSPORT.lower()

    if transport == "email":
        from hacktrackr.adapters.email_notifier import EmailNotifier

        return EmailNotifier(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            sender=settings.EMAIL_FROM,
            starttls=settings.SMTP_STARTTLS,
        )

    if transport == "telegram":
        if not settings.TELEGRAM_BOT_TOKEN:
            logger.warning("NOTIFY_TRANSPORT=telegram but TELEGRAM_BOT_TOKEN is empty")
            return DisabledNotifier()

        from telegram import Bot

        from hacktrackr.adapters.telegram_notifier import TelegramNotifier

        return TelegramNotifier(Bot(settings.TELEGRAM_BOT_TOKEN))

    if transport in ("", "none"):
        return DisabledNotifier()

    raise ValueError(f"Unknown NOTIFY_TRANSPORT: {transport!r}")
