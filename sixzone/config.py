"""Process configuration: defaults, environment and command line."""
from __future__ import annotations

import argparse
import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

import voluptuous as vol

from .amp_client.models import MAX_AMPS
from .const import (
    BAUDRATES,
    CONF_AMP_COUNT,
    CONF_BAUDRATE,
    CONF_CORS_ORIGINS,
    CONF_DATA_DIR,
    CONF_DEVICE,
    CONF_EXIT_ON_ERROR,
    CONF_HOST,
    CONF_LOG_LEVEL,
    CONF_POLL_TIMEOUT,
    CONF_PORT,
    CONF_RAMP_INTERVAL,
    DEFAULT_AMP_COUNT,
    DEFAULT_BAUDRATE,
    DEFAULT_CORS_ORIGINS,
    DEFAULT_DATA_DIR,
    DEFAULT_DEVICE,
    DEFAULT_HOST,
    DEFAULT_LOG_LEVEL,
    DEFAULT_POLL_TIMEOUT,
    DEFAULT_PORT,
    DEFAULT_RAMP_INTERVAL_MS,
    DOMAIN,
    ENV_VARS,
    LOG_LEVELS,
    MAX_RAMP_INTERVAL_MS,
    MIN_RAMP_INTERVAL_MS,
)

_LOGGER = logging.getLogger(__name__)


class ConfigError(vol.Invalid):
    """Configuration could not be validated."""


def _origins(value: Any) -> list[str]:
    """Accept a list or a comma separated string of CORS origins."""
    if isinstance(value, str):
        value = [part.strip() for part in value.split(",")]
    if not isinstance(value, (list, tuple)):
        raise vol.Invalid("expected a list of origins")
    return [str(v) for v in value if str(v)]


CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_DEVICE, default=DEFAULT_DEVICE): vol.All(
            str, vol.Length(min=1)
        ),
        vol.Optional(CONF_BAUDRATE, default=DEFAULT_BAUDRATE): vol.All(
            vol.Coerce(int), vol.In(BAUDRATES)
        ),
        vol.Optional(CONF_AMP_COUNT, default=DEFAULT_AMP_COUNT): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=MAX_AMPS)
        ),
        vol.Optional(CONF_RAMP_INTERVAL, default=DEFAULT_RAMP_INTERVAL_MS): vol.All(
            vol.Coerce(int),
            vol.Range(min=MIN_RAMP_INTERVAL_MS, max=MAX_RAMP_INTERVAL_MS),
        ),
        vol.Optional(CONF_POLL_TIMEOUT, default=DEFAULT_POLL_TIMEOUT): vol.All(
            vol.Coerce(float), vol.Range(min=0)
        ),
        vol.Optional(CONF_EXIT_ON_ERROR, default=False): vol.Boolean(),
        vol.Optional(CONF_DATA_DIR, default=DEFAULT_DATA_DIR): vol.All(
            str, vol.Length(min=1)
        ),
        vol.Optional(CONF_HOST, default=DEFAULT_HOST): str,
        vol.Optional(CONF_PORT, default=DEFAULT_PORT): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=65535)
        ),
        vol.Optional(CONF_LOG_LEVEL, default=DEFAULT_LOG_LEVEL): vol.All(
            str, vol.Upper, vol.In(LOG_LEVELS)
        ),
        vol.Optional(CONF_CORS_ORIGINS, default=DEFAULT_CORS_ORIGINS): _origins,
    }
)


@dataclass(frozen=True)
class Config:
    """Validated process configuration."""

    device: str
    baudrate: int
    amp_count: int
    ramp_interval: int  # milliseconds
    poll_timeout: float  # seconds, 0 = wait forever
    exit_on_error: bool
    data_dir: str
    host: str
    port: int
    log_level: str
    cors_origins: tuple

    @property
    def ramp_interval_seconds(self) -> float:
        return self.ramp_interval / 1000.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        """Validate a raw mapping and build a Config.

        Raises:
            ConfigError: A value is missing its constraints
        """
        try:
            valid = CONFIG_SCHEMA(dict(data))
        except vol.Invalid as err:
            raise ConfigError(f"Invalid configuration: {err}") from err
        valid[CONF_CORS_ORIGINS] = tuple(valid[CONF_CORS_ORIGINS])
        return cls(**valid)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=DOMAIN,
        description="HTTP bridge for a six-zone whole-house audio amplifier",
    )
    # Defaults stay None so only flags given on the command line override
    parser.add_argument("--device", help="Serial device or pyserial URL (socket://host:port)")
    parser.add_argument("--baudrate", type=int, help="Serial line speed")
    parser.add_argument("--amp-count", dest=CONF_AMP_COUNT, type=int, help="Number of amps (1-3)")
    parser.add_argument(
        "--ramp-interval", dest=CONF_RAMP_INTERVAL, type=int, help="Ramp tick in milliseconds"
    )
    parser.add_argument(
        "--poll-timeout", dest=CONF_POLL_TIMEOUT, type=float,
        help="Seconds to wait for the startup poll (0 = forever)",
    )
    parser.add_argument(
        "--exit-on-error", dest=CONF_EXIT_ON_ERROR, action="store_true", default=None,
        help="Exit on the first device error instead of reconnecting",
    )
    parser.add_argument("--data-dir", dest=CONF_DATA_DIR, help="Directory for JSON state files")
    parser.add_argument("--host", help="HTTP listen address")
    parser.add_argument("--port", type=int, help="HTTP listen port")
    parser.add_argument("--log-level", dest=CONF_LOG_LEVEL, help="DEBUG, INFO, WARNING or ERROR")
    return parser


def load_config(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """Merge defaults, environment variables and flags, then validate."""
    environ = os.environ if environ is None else environ

    raw: dict[str, Any] = {}
    for key, env_name in ENV_VARS.items():
        if environ.get(env_name):
            raw[key] = environ[env_name]

    args = build_parser().parse_args(argv)
    for key, value in vars(args).items():
        if value is not None:
            raw[key] = value

    config = Config.from_dict(raw)
    _LOGGER.debug("Loaded configuration: %s", config)
    return config
