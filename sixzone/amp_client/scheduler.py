"""Outbound command channel for the amplifier.

Every write (client request, ramp tick, scenario engage, startup poll)
goes through one FIFO queue drained by a single worker task, so lines
reach the wire strictly in the order they were enqueued and never
interleave.

Architecture:
    enqueue() ──> FIFO queue ──> worker ──> execute_fn(line)
                                   │
                                   └─> history (last N lines sent)

The worker pauses while the link is down and resumes with the same
request once the session reopens it, so queued writes survive a
reconnect.
"""

import asyncio
import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, Optional

from .exceptions import AmpConnectionError

_LOGGER = logging.getLogger(__name__)

# Trace ID counter
_trace_counter = itertools.count(1)

DEFAULT_HISTORY_SIZE = 10


@dataclass
class CommandRequest:
    """A line waiting to be written."""

    command: str
    trace_id: int = field(default_factory=lambda: next(_trace_counter))
    queued_at: float = field(default_factory=time.monotonic)
    future: Optional[asyncio.Future] = None

    def set_result(self) -> None:
        if self.future is not None and not self.future.done():
            self.future.set_result(self.command)

    def set_exception(self, exc: BaseException) -> None:
        if self.future is not None and not self.future.done():
            self.future.set_exception(exc)

    def cancel(self) -> None:
        if self.future is not None:
            self.future.cancel()


class CommandScheduler:
    """FIFO write scheduler with a single worker."""

    def __init__(
        self,
        execute_fn: Callable[[str], Awaitable[None]],
        on_link_error: Optional[Callable[[AmpConnectionError], None]] = None,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ):
        """Initialize scheduler.

        Args:
            execute_fn: Coroutine function writing one line to the link
            on_link_error: Called when a write fails because the link dropped
            history_size: How many sent lines to keep for diagnostics
        """
        self._execute_fn = execute_fn
        self._on_link_error = on_link_error
        self._queue: "asyncio.Queue[CommandRequest]" = asyncio.Queue()
        self._history: Deque[str] = deque(maxlen=history_size)
        self._ready = asyncio.Event()
        self._ready.set()
        self._worker_task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def queue_size(self) -> int:
        """Number of lines waiting."""
        return self._queue.qsize()

    @property
    def history(self) -> tuple:
        """Most recently sent lines, oldest first."""
        return tuple(self._history)

    @property
    def is_paused(self) -> bool:
        return not self._ready.is_set()

    def pause(self) -> None:
        """Hold the worker until resume() is called."""
        self._ready.clear()

    def resume(self) -> None:
        """Let the worker drain the queue."""
        self._ready.set()

    async def start(self) -> None:
        """Start the scheduler worker."""
        if self._running:
            return

        self._running = True
        self._worker_task = asyncio.create_task(self._worker_loop())
        _LOGGER.info("Command scheduler started")

    async def stop(self) -> None:
        """Stop the scheduler worker and cancel anything still queued."""
        self._running = False
        if self._worker_task:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
            self._worker_task = None

        while not self._queue.empty():
            req = self._queue.get_nowait()
            req.cancel()
            self._queue.task_done()

        _LOGGER.info("Command scheduler stopped")

    def enqueue(self, command: str) -> CommandRequest:
        """Queue a line without waiting for it to be written."""
        request = CommandRequest(command=command)
        try:
            request.future = asyncio.get_running_loop().create_future()
        except RuntimeError:
            # No loop yet: the line is still queued, nobody can await it
            request.future = None
        _LOGGER.debug(
            "cmd id=%d cmd=%s queue_depth=%d submitted",
            request.trace_id, command, self._queue.qsize()
        )
        self._queue.put_nowait(request)
        return request

    async def submit(self, command: str) -> None:
        """Queue a line and wait until it has been written."""
        request = self.enqueue(command)
        await request.future

    async def join(self) -> None:
        """Wait until every queued line has been written."""
        await self._queue.join()

    async def _worker_loop(self) -> None:
        """Worker loop that writes queued lines in order."""
        _LOGGER.debug("Scheduler worker started")

        while self._running:
            request = None
            try:
                request = await self._queue.get()
                queue_wait_ms = int((time.monotonic() - request.queued_at) * 1000)

                while True:
                    await self._ready.wait()
                    io_start = time.monotonic()
                    try:
                        await self._execute_fn(request.command)
                    except AmpConnectionError as err:
                        _LOGGER.warning(
                            "cmd id=%d cmd=%s ok=false err=%s (held until link is back)",
                            request.trace_id, request.command, err
                        )
                        self._ready.clear()
                        if self._on_link_error is not None:
                            self._on_link_error(err)
                        continue
                    break

                io_ms = int((time.monotonic() - io_start) * 1000)
                self._history.append(request.command)
                _LOGGER.debug(
                    "cmd id=%d cmd=%s queue_wait_ms=%d io_ms=%d pending=%d ok=true",
                    request.trace_id, request.command, queue_wait_ms, io_ms,
                    self._queue.qsize()
                )
                request.set_result()

            except asyncio.CancelledError:
                # Worker cancelled, clean up current request if any
                if request is not None:
                    request.cancel()
                break

            except Exception as e:
                _LOGGER.error("Scheduler worker error: %s", e)
                if request is not None:
                    request.set_exception(e)

            finally:
                if request is not None:
                    self._queue.task_done()

        _LOGGER.debug("Scheduler worker stopped")
