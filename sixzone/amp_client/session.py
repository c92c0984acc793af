"""Device session: owns the link, the write channel and inbound dispatch."""

import asyncio
import logging
import time
from typing import Callable, Optional, Set

from .commands import (
    Acknowledgement,
    AmpCommands,
    CommandErrorFrame,
    Telemetry,
)
from .exceptions import (
    AmpConnectionError,
    AmpError,
    AmpProtocolError,
    AmpTimeoutError,
)
from .models import zone_ids_for
from .scheduler import DEFAULT_HISTORY_SIZE, CommandScheduler
from .store import ZoneStateStore

_LOGGER = logging.getLogger(__name__)


class DeviceSession:
    """Keeps one amplifier link alive and the zone store in sync with it.

    On every (re)connect the session polls each amp in ascending order.
    Inbound telemetry is merged into the store; an error frame or a link
    failure ends the current connection. The supervisor then closes the
    link, logs the last commands sent, and reopens it with exponential
    backoff. Zone state and queued writes survive the restart.

    With ``exit_on_error`` the first failure is final instead: the session
    stops and ``on_fatal`` is called with the error.
    """

    def __init__(
        self,
        connection,
        store: ZoneStateStore,
        amp_count: int = 1,
        exit_on_error: bool = False,
        on_fatal: Optional[Callable[[AmpError], None]] = None,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ) -> None:
        """Initialize session.

        Args:
            connection: Transport with open/close/reopen_with_backoff,
                write_line, read_line and is_connected
            store: Zone store to keep in sync; its writes are routed here
            amp_count: Number of amps to poll (1-3)
            exit_on_error: Stop on the first protocol or link error
            on_fatal: Called with the error when exit_on_error stops the session
            history_size: Number of sent lines logged on failure
        """
        self._connection = connection
        self._store = store
        self.amp_count = amp_count
        self.exit_on_error = exit_on_error
        self._on_fatal = on_fatal

        self._scheduler = CommandScheduler(
            connection.write_line,
            on_link_error=self._handle_link_error,
            history_size=history_size,
        )
        self._supervisor_task: Optional[asyncio.Task] = None
        self._running = False
        self._link_lost = asyncio.Event()
        self._link_error: Optional[AmpConnectionError] = None
        self._pending_zones: Set[int] = set()
        self._poll_done = asyncio.Event()
        self.last_error: Optional[AmpError] = None

        store.attach(self.send)

    @property
    def is_connected(self) -> bool:
        return self._running and self._connection.is_connected

    @property
    def history(self) -> tuple:
        """Last lines written to the device, oldest first."""
        return self._scheduler.history

    @property
    def scheduler(self) -> CommandScheduler:
        return self._scheduler

    def send(self, line: str) -> None:
        """Queue a line for the device."""
        self._scheduler.enqueue(line)

    def poll(self) -> None:
        """Query every amp, in ascending order."""
        self._pending_zones = set(zone_ids_for(self.amp_count))
        self._poll_done.clear()
        for amp in range(1, self.amp_count + 1):
            self.send(AmpCommands.query(amp))

    async def wait_for_poll(self, timeout: Optional[float] = None) -> None:
        """Wait until every polled zone has reported.

        Raises:
            AmpTimeoutError: Not all zones reported within ``timeout``
        """
        try:
            await asyncio.wait_for(self._poll_done.wait(), timeout=timeout)
        except asyncio.TimeoutError as err:
            raise AmpTimeoutError(
                f"No telemetry for zones {sorted(self._pending_zones)} "
                f"after {timeout}s"
            ) from err

    def handle_line(self, line: str) -> None:
        """Dispatch one inbound line.

        Raises:
            AmpProtocolError: The device sent an error frame
        """
        frame = AmpCommands.parse_line(line)

        if isinstance(frame, Telemetry):
            if self._store.apply_telemetry(frame) is not None:
                self._pending_zones.discard(frame.zone_id)
                if not self._pending_zones and not self._poll_done.is_set():
                    self._poll_done.set()
                    _LOGGER.info("sixzone: poll complete amps=%d", self.amp_count)
        elif isinstance(frame, CommandErrorFrame):
            raise AmpProtocolError(
                f"Device rejected command: {frame.line}", self.history
            )
        elif isinstance(frame, Acknowledgement):
            _LOGGER.debug("Device acknowledged: %s", frame.line)
        elif line:
            _LOGGER.debug("Ignoring unrecognised line: %r", line)

    async def start(self) -> None:
        """Start the write worker and the link supervisor."""
        if self._running:
            return
        self._running = True
        self._scheduler.pause()
        await self._scheduler.start()
        self._supervisor_task = asyncio.create_task(self._supervise())

    async def stop(self) -> None:
        """Stop the session and close the link."""
        self._running = False
        if self._supervisor_task is not None:
            self._supervisor_task.cancel()
            try:
                await self._supervisor_task
            except asyncio.CancelledError:
                pass
            self._supervisor_task = None
        await self._scheduler.stop()
        await self._connection.close()

    def _handle_link_error(self, err: AmpConnectionError) -> None:
        self._link_error = err
        self._link_lost.set()

    async def _supervise(self) -> None:
        first_attempt = True
        while self._running:
            try:
                if first_attempt:
                    first_attempt = False
                    await self._connection.open()
                else:
                    await self._connection.reopen_with_backoff()
                await self._serve()
            except (AmpProtocolError, AmpConnectionError, AmpTimeoutError) as err:
                self._scheduler.pause()
                self.last_error = err
                self._log_failure(err)
                if self.exit_on_error:
                    self._running = False
                    await self._connection.close()
                    if self._on_fatal is not None:
                        self._on_fatal(err)
                    return

    async def _serve(self) -> None:
        """Run one connection until it fails."""
        connect_start = time.monotonic()
        self._link_lost.clear()
        self._link_error = None
        self.poll()
        self._scheduler.resume()

        reader = asyncio.create_task(self._read_loop())
        lost = asyncio.create_task(self._link_lost.wait())
        try:
            done, _ = await asyncio.wait(
                {reader, lost}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (reader, lost):
                if not task.done():
                    task.cancel()
                    try:
                        await task
                    except asyncio.CancelledError:
                        pass

        _LOGGER.info(
            "sixzone: link stage=down uptime_ms=%d",
            int((time.monotonic() - connect_start) * 1000)
        )
        if reader in done:
            reader.result()
        raise self._link_error or AmpConnectionError("Link lost")

    async def _read_loop(self) -> None:
        while True:
            line = await self._connection.read_line()
            self.handle_line(line)

    def _log_failure(self, err: AmpError) -> None:
        history = getattr(err, "recent_commands", None) or self.history
        _LOGGER.error(
            "sixzone: link stage=failed err=%s exit_on_error=%s", err, self.exit_on_error
        )
        for index, line in enumerate(history, start=1 - len(history)):
            _LOGGER.error("sixzone: recent cmd[%d]=%s", index, line)
