"""HTTP route layer."""

from .app import create_app
from .deps import get_bridge

__all__ = ["create_app", "get_bridge"]
