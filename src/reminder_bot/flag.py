"""One-shot cancellation flag shared by the sync loop, ticker and signal handler.

Any awaitable can be raced against the flag with :meth:`CancellationFlag.guard`.
If the flag is set first the operation is cancelled and :class:`Cancelled` is
raised in its place.
"""

from __future__ import annotations

import asyncio
import itertools
import threading
from collections.abc import Awaitable
from contextlib import suppress
from typing import TypeVar

from .errors import Cancelled

T = TypeVar("T")


def _wake(fut: asyncio.Future) -> None:
    if not fut.done():
        fut.set_result(None)


class CancellationFlag:
    """Wakes every waiting task once set; stays set afterwards."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = False
        self._ids = itertools.count()
        self._waiters: dict[int, tuple[asyncio.AbstractEventLoop, asyncio.Future]] = {}

    def is_set(self) -> bool:
        with self._lock:
            return self._value

    @property
    def waiter_count(self) -> int:
        with self._lock:
            return len(self._waiters)

    def set(self) -> None:
        """Set the flag. Safe to call repeatedly and from any thread."""
        with self._lock:
            self._value = True
            waiters = list(self._waiters.values())
        for loop, fut in waiters:
            if loop.is_closed():
                continue
            loop.call_soon_threadsafe(_wake, fut)

    async def wait(self) -> None:
        """Suspend until the flag is set."""
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._value:
                return
            fut = loop.create_future()
            waiter_id = next(self._ids)
            self._waiters[waiter_id] = (loop, fut)
        try:
            await fut
        finally:
            with self._lock:
                self._waiters.pop(waiter_id, None)

    async def guard(self, aw: Awaitable[T]) -> T:
        """Await ``aw`` unless the flag is set first, in which case raise Cancelled."""
        if self.is_set():
            if asyncio.iscoroutine(aw):
                aw.close()
            raise Cancelled()

        op = asyncio.ensure_future(aw)
        stop = asyncio.ensure_future(self.wait())
        try:
            done, _ = await asyncio.wait({op, stop}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            op.cancel()
            stop.cancel()
            raise

        if op in done:
            stop.cancel()
            with suppress(asyncio.CancelledError):
                await stop
            return op.result()

        op.cancel()
        with suppress(asyncio.CancelledError, Exception):
            await op
        raise Cancelled()

    async def sleep(self, seconds: float) -> None:
        await self.guard(asyncio.sleep(seconds))
