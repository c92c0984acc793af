"""FastAPI application factory."""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..amp_client.exceptions import (
    AmpConnectionError,
    AmpError,
    AmpNotFoundError,
    AmpValidationError,
)
from .. import __version__
from ..bridge import AmpBridge
from ..const import DOMAIN
from . import deps
from .routes import health_router, router

_LOGGER = logging.getLogger(__name__)


def _status_for(err: AmpError) -> int:
    if isinstance(err, AmpNotFoundError):
        return 404
    if isinstance(err, AmpValidationError):
        return 400
    if isinstance(err, AmpConnectionError):
        return 503
    return 500


async def _amp_error_handler(request: Request, exc: AmpError) -> JSONResponse:
    status = _status_for(exc)
    if status >= 500:
        _LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


def create_app(
    bridge: Optional[AmpBridge] = None,
    cors_origins: Sequence[str] = ("*",),
) -> FastAPI:
    """Build the HTTP app around a bridge.

    Args:
        bridge: Bridge to serve; started and stopped with the app. When
            None, ``deps.get_bridge`` must be overridden.
        cors_origins: Origins allowed to call the API
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if bridge is not None:
            deps.set_bridge(bridge)
            await bridge.start()
        try:
            yield
        finally:
            if bridge is not None:
                await bridge.stop()
                deps.set_bridge(None)

    app = FastAPI(title=DOMAIN, version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.monotonic()
        response = await call_next(request)
        _LOGGER.info(
            "http method=%s path=%s status=%d duration_ms=%d",
            request.method, request.url.path, response.status_code,
            int((time.monotonic() - started) * 1000),
        )
        return response

    app.add_exception_handler(AmpError, _amp_error_handler)
    app.include_router(health_router)
    app.include_router(router)
    return app
