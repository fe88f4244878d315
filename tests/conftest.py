"""Shared test fixtures for reminder bot tests."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from reminder_bot.errors import DuplicateId, NotFound, PersistenceError  # noqa: E402
from reminder_bot.matrix import Event  # noqa: E402
from reminder_bot.models import Reminder, SmsResult  # noqa: E402

# Tuesday
NOW = datetime(2014, 7, 8, 9, 10, 11, tzinfo=UTC)


class FakeStore:
    """In-memory reminder store with optional failure injection."""

    def __init__(self) -> None:
        self.reminders: dict[str, Reminder] = {}
        self.fail_add = False
        self.fail_query = False
        self.fail_mark = False
        self.mark_calls: list[str] = []

    def add(self, reminder: Reminder) -> None:
        if self.fail_add:
            raise PersistenceError("disk full")
        if reminder.id in self.reminders:
            raise DuplicateId(reminder.id)
        self.reminders[reminder.id] = Reminder(
            id=reminder.id,
            due=reminder.due,
            destination=reminder.destination,
            text=reminder.text,
            sent=False,
        )

    def due_before(self, now: datetime) -> list[Reminder]:
        if self.fail_query:
            raise PersistenceError("database is locked")
        return sorted(
            (r for r in self.reminders.values() if not r.sent and r.due <= now),
            key=lambda r: r.due,
        )

    def mark_sent(self, reminder_id: str) -> None:
        self.mark_calls.append(reminder_id)
        if self.fail_mark:
            raise PersistenceError("database is locked")
        if reminder_id not in self.reminders:
            raise NotFound(reminder_id)
        self.reminders[reminder_id].sent = True


class FakeAddressBook:
    def __init__(self, entries: dict[str, str] | None = None, fail: bool = False) -> None:
        self.entries = dict(entries or {})
        self.fail = fail
        self.lookups: list[str] = []

    def lookup(self, user_id: str) -> str | None:
        self.lookups.append(user_id)
        if self.fail:
            raise PersistenceError("address book unavailable")
        return self.entries.get(user_id)


@dataclass
class FakeMessageSender:
    """Records chat replies instead of posting them."""

    messages: list[tuple[str, str]] = field(default_factory=list)
    error: Exception | None = None

    async def send_text_message(self, room_id: str, text: str) -> None:
        if self.error is not None:
            raise self.error
        self.messages.append((room_id, text))


@dataclass
class FakeSmsSender:
    sent: list[tuple[str, str, str]] = field(default_factory=list)
    error: Exception | None = None
    error_message: str | None = None

    async def send_sms(self, from_: str, to: str, body: str) -> SmsResult:
        if self.error is not None:
            raise self.error
        self.sent.append((from_, to, body))
        return SmsResult(sid=f"SM{len(self.sent)}", status="queued", error_message=self.error_message)


def make_event(body: str | None, sender: str = "@alice:example.org", type_: str = "m.room.message") -> Event:
    content = {"msgtype": "m.text"}
    if body is not None:
        content["body"] = body
    return Event(type=type_, sender=sender, origin_server_ts=1404810611000, content=content)


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fake_sender() -> FakeMessageSender:
    return FakeMessageSender()
