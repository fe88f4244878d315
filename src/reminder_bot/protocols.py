"""Protocol interfaces for the reminder bot's collaborators.

The handler and dispatcher depend on these rather than on the SQLite and
HTTP implementations, which keeps them easy to exercise with fakes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from .models import Reminder, SmsResult


@runtime_checkable
class ReminderStoreProtocol(Protocol):
    """Protocol for persistent reminder storage."""

    def add(self, reminder: Reminder) -> None:
        """Insert an unsent reminder. Raises DuplicateId on collision."""
        ...

    def due_before(self, now: datetime) -> list[Reminder]:
        """Return unsent reminders due at or before ``now``."""
        ...

    def mark_sent(self, reminder_id: str) -> None:
        """Mark a reminder as sent."""
        ...


@runtime_checkable
class AddressBookProtocol(Protocol):
    """Protocol for chat user id -> msisdn lookups."""

    def lookup(self, user_id: str) -> str | None:
        """Return the SMS destination for a user, or None."""
        ...


@runtime_checkable
class MessageSenderProtocol(Protocol):
    """Protocol for posting chat replies."""

    async def send_text_message(self, room_id: str, text: str) -> None:
        """Send a plain-text message to a room."""
        ...


@runtime_checkable
class SmsSenderProtocol(Protocol):
    """Protocol for the SMS provider."""

    async def send_sms(self, from_: str, to: str, body: str) -> SmsResult:
        """Send one SMS."""
        ...
