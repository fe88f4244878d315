"""Periodic delivery of due reminders over SMS.

Each tick drains the reminders due so far, spawns one send task per
reminder and marks the reminder sent straight away. A crash between the two
drops the notification rather than sending it twice.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

from .errors import Cancelled, NotFound, PersistenceError, ReminderBotError
from .flag import CancellationFlag
from .models import Reminder
from .protocols import AddressBookProtocol, ReminderStoreProtocol, SmsSenderProtocol

logger = logging.getLogger("reminder_bot.dispatcher")


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ReminderDispatcher:
    def __init__(
        self,
        store: ReminderStoreProtocol,
        address_book: AddressBookProtocol,
        sms: SmsSenderProtocol,
        from_num: str,
        tick_interval_seconds: float = 0.5,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.store = store
        self.address_book = address_book
        self.sms = sms
        self.from_num = from_num
        self.tick_interval_seconds = tick_interval_seconds
        self.clock = clock
        self._send_tasks: set[asyncio.Task] = set()
        self._ticking = False

    @property
    def in_flight(self) -> int:
        return len(self._send_tasks)

    async def run_forever(self, stop_flag: CancellationFlag) -> None:
        """Tick every ``tick_interval_seconds`` until the flag is set.

        Ticks never overlap; ticks that come due while a scan is still running
        are dropped.
        """
        logger.info("Reminder dispatcher started (interval=%.2fs)", self.tick_interval_seconds)
        next_tick = time.monotonic()
        while not stop_flag.is_set():
            await self.tick()

            next_tick += self.tick_interval_seconds
            now = time.monotonic()
            if now > next_tick:
                missed = int((now - next_tick) // self.tick_interval_seconds) + 1
                logger.debug("Dropped %d tick(s) while scanning", missed)
                next_tick += missed * self.tick_interval_seconds
            try:
                await stop_flag.sleep(next_tick - now)
            except Cancelled:
                break
        logger.info("Reminder dispatcher stopped")

    async def tick(self) -> int:
        """Drain due reminders once. Returns how many were dispatched."""
        if self._ticking:
            logger.debug("Previous tick still scanning; dropping tick")
            return 0
        self._ticking = True
        try:
            return await self._tick()
        finally:
            self._ticking = False

    async def _tick(self) -> int:
        try:
            due = await asyncio.to_thread(self.store.due_before, self.clock())
        except PersistenceError as exc:
            logger.error("Failed to get reminders from database: %s", exc)
            return 0

        for reminder in due:
            task = asyncio.create_task(self.send_reminder(reminder))
            self._send_tasks.add(task)
            task.add_done_callback(self._send_tasks.discard)

            try:
                await asyncio.to_thread(self.store.mark_sent, reminder.id)
            except NotFound:
                logger.debug("Reminder id=%s vanished before mark_sent", reminder.id)
            except PersistenceError as exc:
                logger.error("Failed to mark reminder id=%s sent: %s", reminder.id, exc)
        return len(due)

    async def send_reminder(self, reminder: Reminder) -> None:
        logger.info("Sending reminder id=%s", reminder.id)
        try:
            msisdn = await asyncio.to_thread(self.address_book.lookup, reminder.destination)
        except PersistenceError as exc:
            logger.error("Failed to get msisdn id=%s destination=%s: %s", reminder.id, reminder.destination, exc)
            return
        if msisdn is None:
            logger.warning("Failed to find msisdn id=%s destination=%s", reminder.id, reminder.destination)
            return

        try:
            result = await self.sms.send_sms(self.from_num, msisdn, reminder.text)
        except ReminderBotError as exc:
            logger.error("Error sending sms id=%s: %s", reminder.id, exc)
            return

        if result.error_message:
            logger.error("Error from twilio id=%s: %s", reminder.id, result.error_message)
        else:
            logger.info("Message sent id=%s status=%s", reminder.id, result.status)

    async def drain(self) -> None:
        """Wait for in-flight send tasks to finish."""
        if self._send_tasks:
            await asyncio.gather(*list(self._send_tasks), return_exceptions=True)
