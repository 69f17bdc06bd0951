"""HTTP API for graft-hook."""

from .health import router as health_router
from .webhook import router as webhook_router

__all__ = [
    "health_router",
    "webhook_router",
]
