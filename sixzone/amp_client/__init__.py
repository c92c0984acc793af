"""Six-zone amplifier async client library."""

from .commands import AmpCommands, Telemetry
from .connection import AmpConnection
from .exceptions import (
    AmpError,
    AmpValidationError,
    AmpNotFoundError,
    AmpConnectionError,
    AmpTimeoutError,
    AmpProtocolError,
)
from .models import Attribute, Scenario, Source, ZoneState
from .ramp import Direction, RampScheduler
from .session import DeviceSession
from .store import ZoneStateStore

__all__ = [
    "AmpCommands",
    "AmpConnection",
    "AmpError",
    "AmpValidationError",
    "AmpNotFoundError",
    "AmpConnectionError",
    "AmpTimeoutError",
    "AmpProtocolError",
    "Attribute",
    "DeviceSession",
    "Direction",
    "RampScheduler",
    "Scenario",
    "Source",
    "Telemetry",
    "ZoneState",
    "ZoneStateStore",
]
