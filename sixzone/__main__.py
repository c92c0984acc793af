"""Command line entry point: ``python -m sixzone`` or ``sixzone``."""

import logging
import os
import signal
import sys
from typing import List, Optional

import uvicorn

from .amp_client.connection import AmpConnection
from .amp_client.exceptions import AmpError
from .api import create_app
from .bridge import AmpBridge
from .config import ConfigError, load_config
from .storage import JsonStorage

_LOGGER = logging.getLogger(__name__)


def main(argv: Optional[List[str]] = None) -> int:
    try:
        config = load_config(argv)
    except ConfigError as err:
        print(f"sixzone: {err}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    fatal: List[AmpError] = []

    def on_fatal(err: AmpError) -> None:
        # uvicorn shuts down cleanly on SIGTERM, the exit code is set below
        fatal.append(err)
        os.kill(os.getpid(), signal.SIGTERM)

    connection = AmpConnection(config.device, baudrate=config.baudrate)
    bridge = AmpBridge(
        JsonStorage(config.data_dir),
        connection,
        amp_count=config.amp_count,
        ramp_interval=config.ramp_interval_seconds,
        poll_timeout=config.poll_timeout,
        exit_on_error=config.exit_on_error,
        on_fatal=on_fatal,
    )
    app = create_app(bridge, cors_origins=config.cors_origins)

    _LOGGER.info(
        "sixzone: startup stage=listen host=%s port=%d device=%s amps=%d",
        config.host, config.port, config.device, config.amp_count
    )
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())

    if fatal:
        _LOGGER.error("sixzone: exiting after device error: %s", fatal[0])
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
