"""Turns chat messages addressed to the bot into queued reminders."""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
import string
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import format_datetime
from enum import Enum

from .dateparse import parse_human_datetime
from .errors import ParseFailure, PastDueDate, PersistenceError, ReminderBotError
from .matrix import MESSAGE_EVENT_TYPE, Event
from .models import Reminder
from .protocols import MessageSenderProtocol, ReminderStoreProtocol

logger = logging.getLogger("reminder_bot.handler")

ID_ALPHABET = string.ascii_letters + string.digits
ID_LENGTH = 20


class HandleOutcome(str, Enum):
    IGNORED = "ignored"
    UNRECOGNIZED = "unrecognized"
    PARSE_FAILED = "parse_failed"
    PAST_DUE = "past_due"
    PERSISTENCE_FAILED = "persistence_failed"
    QUEUED = "queued"


@dataclass(slots=True)
class HandleResult:
    outcome: HandleOutcome
    reply: str | None = None
    reminder: Reminder | None = None


def generate_reminder_id() -> str:
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))


def _utc_now() -> datetime:
    return datetime.now(UTC).replace(microsecond=0)


class EventHandler:
    def __init__(
        self,
        store: ReminderStoreProtocol,
        sender: MessageSenderProtocol,
        command_prefix: str = "testbot",
        clock: Callable[[], datetime] = _utc_now,
        id_factory: Callable[[], str] = generate_reminder_id,
    ):
        self.store = store
        self.sender = sender
        self.command_prefix = command_prefix
        self.clock = clock
        self.id_factory = id_factory
        self._command_re = re.compile(
            rf"^{re.escape(command_prefix)}:\s+remind\s*me\s+(?P<when>.*)\s+to\s+(?P<what>.*)$"
        )

    @property
    def usage(self) -> str:
        return f"Unrecognized command. Try: {self.command_prefix}: remind me <when> to <what>"

    async def handle_event(self, room_id: str, event: Event) -> HandleResult:
        if event.type != MESSAGE_EVENT_TYPE:
            return HandleResult(HandleOutcome.IGNORED)

        body = event.body()
        if body is None or not body.startswith(f"{self.command_prefix}:"):
            return HandleResult(HandleOutcome.IGNORED)

        logger.info("Got command room=%s sender=%s", room_id, event.sender)

        match = self._command_re.match(body)
        if match is None:
            logger.info("Unrecognized command room=%s sender=%s body=%r", room_id, event.sender, body[:120])
            return await self._reply(room_id, HandleResult(HandleOutcome.UNRECOGNIZED, self.usage))

        when, what = match.group("when"), match.group("what")
        now = self.clock()
        try:
            due = self._resolve_due(when, now)
        except ParseFailure as exc:
            logger.info("Failed to parse date %r: %s", when, exc)
            reply = f"Sorry, I couldn't understand the time '{when}'"
            return await self._reply(room_id, HandleResult(HandleOutcome.PARSE_FAILED, reply))
        except PastDueDate:
            logger.info("Due date in past: %r", when)
            return await self._reply(room_id, HandleResult(HandleOutcome.PAST_DUE, "That due date is in the past"))

        reminder = Reminder(id=self.id_factory(), due=due, destination=event.sender, text=what)
        logger.info("Queuing reminder id=%s due=%s destination=%s", reminder.id, due.isoformat(), reminder.destination)
        try:
            await asyncio.to_thread(self.store.add, reminder)
        except PersistenceError as exc:
            logger.error("Failed to store reminder id=%s: %s", reminder.id, exc)
            reply = "Sorry, I couldn't save that reminder"
            return await self._reply(room_id, HandleResult(HandleOutcome.PERSISTENCE_FAILED, reply))

        reply = f"Queued for {format_datetime(due)}"
        return await self._reply(room_id, HandleResult(HandleOutcome.QUEUED, reply, reminder))

    @staticmethod
    def _resolve_due(when: str, now: datetime) -> datetime:
        due = parse_human_datetime(when, now)
        if due <= now:
            raise PastDueDate(f"{due.isoformat()} is not after {now.isoformat()}")
        return due

    async def _reply(self, room_id: str, result: HandleResult) -> HandleResult:
        if result.reply is None:
            return result
        try:
            await self.sender.send_text_message(room_id, result.reply)
        except ReminderBotError as exc:
            logger.error("Failed to send reply to room=%s: %s", room_id, exc)
        return result
