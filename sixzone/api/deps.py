"""FastAPI dependency providers.

The bridge is created once by the entry point (or a test) and handed to
``set_bridge``; routes receive it through ``get_bridge`` so tests can
swap it with ``app.dependency_overrides``.
"""

from typing import Optional

from ..bridge import AmpBridge

_bridge: Optional[AmpBridge] = None


def set_bridge(bridge: Optional[AmpBridge]) -> None:
    global _bridge
    _bridge = bridge


def get_bridge() -> AmpBridge:
    """Return the process-wide bridge.

    Raises:
        RuntimeError: No bridge has been set up yet
    """
    if _bridge is None:
        raise RuntimeError("Bridge not initialized")
    return _bridge
