"""Notification port — abstract interface for delivering reminders.

Core modules depend on this protocol, never on a specific transport.
"""

from __future__ import annotations

from typing import Protocol


class NotificationPort(Protocol):
    """Abstract notification interface used by core modules.

    deliver() returns True only when the transport accepted the message.
    An unconfigured transport returns False instead of raising.
    """

    async def deliver(self, recipient: str, subject: str, body: str) -> bool: ...
