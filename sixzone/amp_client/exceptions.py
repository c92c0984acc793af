"""Exceptions for the six-zone amplifier client."""


class AmpError(Exception):
    """Base exception for the amplifier client."""


class AmpValidationError(AmpError, ValueError):
    """Request rejected before reaching the device."""


class AmpNotFoundError(AmpValidationError):
    """Zone, source or scenario id is not known."""


class AmpConnectionError(AmpError):
    """Connection to device failed."""


class AmpTimeoutError(AmpError):
    """Device did not answer in time."""


class AmpProtocolError(AmpError):
    """Device rejected a command with an error frame."""

    def __init__(self, message: str, recent_commands: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.recent_commands = recent_commands
