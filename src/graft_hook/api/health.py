"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request

from graft_hook import __version__

router = APIRouter()

# Track start time
START_TIME = datetime.now(timezone.utc)


@router.get("/health")
async def health_check(request: Request) -> Dict[str, Any]:
    """Simple health check endpoint."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "started_at": START_TIME.isoformat(),
        "projects": len(dispatcher.registry) if dispatcher else 0,
    }
