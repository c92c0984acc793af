"""Tests for the outbound write channel."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from sixzone.amp_client.exceptions import AmpConnectionError
from sixzone.amp_client.scheduler import CommandScheduler


@pytest.mark.asyncio
async def test_lines_written_in_enqueue_order():
    written = []

    async def execute(line):
        await asyncio.sleep(0)
        written.append(line)

    scheduler = CommandScheduler(execute)
    await scheduler.start()
    for line in ("?10", "<11VO10", "<11VO11", "<12MU01"):
        scheduler.enqueue(line)

    await asyncio.wait_for(scheduler.join(), timeout=1)
    await scheduler.stop()

    assert written == ["?10", "<11VO10", "<11VO11", "<12MU01"]


@pytest.mark.asyncio
async def test_submit_waits_for_write():
    execute = AsyncMock()
    scheduler = CommandScheduler(execute)
    await scheduler.start()

    await asyncio.wait_for(scheduler.submit("<11PR01"), timeout=1)
    await scheduler.stop()

    execute.assert_awaited_once_with("<11PR01")


@pytest.mark.asyncio
async def test_history_keeps_last_lines():
    scheduler = CommandScheduler(AsyncMock(), history_size=3)
    await scheduler.start()
    for volume in range(5):
        scheduler.enqueue(f"<11VO{volume:02d}")

    await asyncio.wait_for(scheduler.join(), timeout=1)
    await scheduler.stop()

    assert scheduler.history == ("<11VO02", "<11VO03", "<11VO04")


def test_new_scheduler_is_ready():
    assert not CommandScheduler(AsyncMock()).is_paused


@pytest.mark.asyncio
async def test_paused_scheduler_holds_writes():
    execute = AsyncMock()
    scheduler = CommandScheduler(execute)
    scheduler.pause()
    await scheduler.start()

    scheduler.enqueue("<11VO05")
    await asyncio.sleep(0.01)
    execute.assert_not_awaited()
    assert scheduler.is_paused

    scheduler.resume()
    await asyncio.wait_for(scheduler.join(), timeout=1)
    await scheduler.stop()

    execute.assert_awaited_once_with("<11VO05")


@pytest.mark.asyncio
async def test_link_error_holds_request_until_resumed():
    """A failed write is retried, in order, once the link is back."""
    written = []
    failures = [AmpConnectionError("Write failed: cable pulled")]

    async def execute(line):
        if failures:
            raise failures.pop()
        written.append(line)

    on_link_error = Mock()
    scheduler = CommandScheduler(execute, on_link_error=on_link_error)
    await scheduler.start()

    scheduler.enqueue("<11VO05")
    scheduler.enqueue("<11VO06")
    await asyncio.sleep(0.01)

    on_link_error.assert_called_once()
    assert scheduler.is_paused
    assert written == []

    scheduler.resume()
    await asyncio.wait_for(scheduler.join(), timeout=1)
    await scheduler.stop()

    assert written == ["<11VO05", "<11VO06"]


@pytest.mark.asyncio
async def test_stop_cancels_pending_requests():
    scheduler = CommandScheduler(AsyncMock())
    scheduler.pause()
    await scheduler.start()

    first = scheduler.enqueue("<11VO05")
    second = scheduler.enqueue("<11VO06")
    await asyncio.sleep(0)
    await scheduler.stop()

    assert first.future.cancelled()
    assert second.future.cancelled()
    assert scheduler.queue_size == 0


def test_enqueue_without_loop_still_queues():
    scheduler = CommandScheduler(AsyncMock())

    request = scheduler.enqueue("?10")

    assert request.future is None
    assert scheduler.queue_size == 1
