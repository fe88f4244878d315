"""Tests for the cancellation flag."""

from __future__ import annotations

import asyncio
import threading

import pytest

from reminder_bot.errors import Cancelled
from reminder_bot.flag import CancellationFlag


@pytest.mark.asyncio
async def test_set_wakes_every_waiter():
    flag = CancellationFlag()
    waiters = [asyncio.create_task(flag.wait()) for _ in range(5)]
    await asyncio.sleep(0)
    assert flag.waiter_count == 5

    flag.set()
    await asyncio.wait_for(asyncio.gather(*waiters), timeout=1.0)
    assert flag.waiter_count == 0


@pytest.mark.asyncio
async def test_set_is_idempotent_and_sticky():
    flag = CancellationFlag()
    flag.set()
    flag.set()
    assert flag.is_set()
    await asyncio.wait_for(flag.wait(), timeout=1.0)


@pytest.mark.asyncio
async def test_guard_returns_result_when_operation_wins():
    flag = CancellationFlag()

    async def work():
        return 42

    assert await flag.guard(work()) == 42
    assert flag.waiter_count == 0


@pytest.mark.asyncio
async def test_guard_propagates_operation_errors():
    flag = CancellationFlag()

    async def boom():
        raise ValueError("nope")

    with pytest.raises(ValueError):
        await flag.guard(boom())


@pytest.mark.asyncio
async def test_guard_raises_cancelled_when_flag_wins():
    flag = CancellationFlag()
    started = asyncio.Event()
    finished = False

    async def slow():
        nonlocal finished
        started.set()
        await asyncio.sleep(60)
        finished = True

    task = asyncio.create_task(flag.guard(slow()))
    await started.wait()
    flag.set()
    with pytest.raises(Cancelled):
        await asyncio.wait_for(task, timeout=1.0)
    assert finished is False


@pytest.mark.asyncio
async def test_guard_on_set_flag_does_not_start_operation():
    flag = CancellationFlag()
    flag.set()
    ran = False

    async def work():
        nonlocal ran
        ran = True

    with pytest.raises(Cancelled):
        await flag.guard(work())
    assert ran is False


@pytest.mark.asyncio
async def test_sleep_is_cancellable():
    flag = CancellationFlag()
    task = asyncio.create_task(flag.sleep(60))
    await asyncio.sleep(0)
    flag.set()
    with pytest.raises(Cancelled):
        await asyncio.wait_for(task, timeout=1.0)


@pytest.mark.asyncio
async def test_short_lived_waiters_deregister():
    flag = CancellationFlag()
    for _ in range(50):
        await flag.guard(asyncio.sleep(0))
    assert flag.waiter_count == 0


@pytest.mark.asyncio
async def test_cancelled_waiter_deregisters():
    flag = CancellationFlag()
    task = asyncio.create_task(flag.wait())
    await asyncio.sleep(0)
    assert flag.waiter_count == 1
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert flag.waiter_count == 0


@pytest.mark.asyncio
async def test_set_from_another_thread():
    flag = CancellationFlag()
    waiter = asyncio.create_task(flag.wait())
    await asyncio.sleep(0)

    thread = threading.Thread(target=flag.set)
    thread.start()
    thread.join()

    await asyncio.wait_for(waiter, timeout=1.0)
    assert flag.is_set()
