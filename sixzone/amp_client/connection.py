"""Persistent async serial connection to the amplifier."""

import asyncio
import logging
import random
from typing import Optional

import serial_asyncio

from .exceptions import (
    AmpConnectionError,
    AmpTimeoutError,
)

_LOGGER = logging.getLogger(__name__)

LINE_TERMINATOR = b"\n"


class AmpConnection:
    """Manages the serial link to the amplifier.

    ``url`` is anything pyserial accepts: a device path such as
    ``/dev/ttyUSB0`` or ``COM4``, or ``socket://host:port`` for a
    serial-to-ethernet adapter.
    """

    def __init__(
        self,
        url: str,
        baudrate: int = 9600,
        timeout: float = 5.0,
    ) -> None:
        """Initialize connection.

        Args:
            url: Serial device path or pyserial URL
            baudrate: Serial line speed
            timeout: Open timeout in seconds
        """
        self.url = url
        self.baudrate = baudrate
        self.timeout = timeout

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._connected = False
        self._lock = asyncio.Lock()  # One line on the wire at a time

        # Reconnection backoff
        self._reconnect_delay = 1.0  # Start with 1 second
        self._max_reconnect_delay = 60.0  # Max 60 seconds

    @property
    def is_connected(self) -> bool:
        """Check if connection is active."""
        return self._connected and self._writer is not None

    async def open(self) -> None:
        """Open the serial link."""
        if self.is_connected:
            _LOGGER.debug("Already connected to %s", self.url)
            return

        try:
            _LOGGER.info("Opening amplifier link %s at %d baud", self.url, self.baudrate)
            self._reader, self._writer = await asyncio.wait_for(
                serial_asyncio.open_serial_connection(
                    url=self.url, baudrate=self.baudrate
                ),
                timeout=self.timeout,
            )
            self._connected = True
            self._reconnect_delay = 1.0  # Reset backoff on successful open
            _LOGGER.info("Opened amplifier link %s", self.url)

        except asyncio.TimeoutError as err:
            _LOGGER.error("Timeout opening amplifier link %s", self.url)
            raise AmpTimeoutError(f"Open timeout: {err}") from err

        except (OSError, ValueError) as err:
            # pyserial's SerialException derives from OSError
            _LOGGER.error("Failed to open amplifier link %s: %s", self.url, err)
            raise AmpConnectionError(f"Open failed: {err}") from err

    async def close(self) -> None:
        """Close the serial link."""
        if not self._writer:
            return

        try:
            _LOGGER.info("Closing amplifier link %s", self.url)
            self._writer.close()
            await self._writer.wait_closed()
        except Exception as err:
            _LOGGER.warning("Error closing connection: %s", err)
        finally:
            self._reader = None
            self._writer = None
            self._connected = False

    async def reopen_with_backoff(self) -> None:
        """Close, wait with exponential backoff + jitter, then open again."""
        await self.close()

        delay = min(self._reconnect_delay, self._max_reconnect_delay)
        jitter = random.uniform(0, delay * 0.1)  # 10% jitter
        total_delay = delay + jitter

        _LOGGER.info("Reopening %s in %.1f seconds", self.url, total_delay)
        await asyncio.sleep(total_delay)

        # Increase backoff for next time (exponential)
        self._reconnect_delay = min(self._reconnect_delay * 2, self._max_reconnect_delay)

        await self.open()

    async def write_line(self, line: str) -> None:
        """Send one protocol line.

        Raises:
            AmpConnectionError: Link is closed or the write failed
        """
        async with self._lock:
            if not self.is_connected:
                raise AmpConnectionError(f"Not connected, dropped: {line}")
            try:
                self._writer.write(line.encode("ascii") + LINE_TERMINATOR)
                await self._writer.drain()
            except (OSError, ConnectionResetError, BrokenPipeError) as err:
                self._connected = False
                raise AmpConnectionError(f"Write failed: {err}") from err
            _LOGGER.debug("Sent line: %s", line)

    async def read_line(self) -> str:
        """Wait for the next inbound line.

        Raises:
            AmpConnectionError: Link closed or read failed
        """
        if not self.is_connected or self._reader is None:
            raise AmpConnectionError("Not connected")
        try:
            data = await self._reader.readline()
        except (OSError, asyncio.IncompleteReadError) as err:
            self._connected = False
            raise AmpConnectionError(f"Read failed: {err}") from err

        if not data:
            self._connected = False
            raise AmpConnectionError("Link closed by device")

        # Serial adapters can emit noise bytes (0xFF) on connect
        line = data.decode("ascii", errors="ignore").strip()
        _LOGGER.debug("Received line: %s", line)
        return line
