"""Email notification adapter — implements NotificationPort over SMTP.

smtplib is synchronous, so each send runs in asyncio.to_thread to keep the
scheduler's event loop free.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage

logger = logging.getLogger(__name__)


class EmailNotifier:
    """SMTP implementation of NotificationPort.

    With no host configured every delivery is a logged no-op returning False.
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        sender: str = "",
        starttls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._sender = sender or username
        self._starttls = starttls
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._host)

    def _build_message(self, recipient: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    def _send(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
            if self._starttls:
                smtp.starttls()
            if self._username:
                smtp.login(self._username, self._password)
            smtp.send_message(msg)

    async def deliver(self, recipient: str, subject: str, body: str) -> bool:
        if not self.configured:
            logger.warning("Email transport not configured; skipping email to %s", recipient)
            return False

        msg = self._build_message(recipient, subject, body)
        try:
            await asyncio.to_thread(self._send, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send reminder email to %s: %s", recipient, exc)
            return False

        logger.info("Reminder email sent to %s: %s", recipient, subject)
        return True
