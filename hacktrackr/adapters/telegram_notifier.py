"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance. The recipient is a Telegram chat id.
"""

from __future__ import annotations

import logging

from telegram import Bot
from telegram.error import TelegramError

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def deliver(self, recipient: str, subject: str, body: str) -> bool:
        try:
            chat_id = int(recipient)
        except ValueError:
            logger.warning("Recipient %r is not a Telegram chat id", recipient)
            return False

        try:
            await self._bot.send_message(chat_id=chat_id, text=f"{subject}\n\n{body}")
        except TelegramError as exc:
            logger.error("Failed to send Telegram reminder to %d: %s", chat_id, exc)
            return False

        logger.info("Telegram reminder sent to %d: %s", chat_id, subject)
        return True
