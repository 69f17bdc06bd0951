"""Webhook endpoint that triggers a deployment."""

from __future__ import annotations

import json
from typing import List

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from graft_hook.core.models import DeploymentOutcome, FailureReason
from graft_hook.deploy.dispatcher import Dispatcher
from graft_hook.utils.logging import bind_deployment_context


router = APIRouter()
logger = structlog.get_logger()

# Used only when strict status codes are enabled
OUTCOME_STATUS_CODES = {
    FailureReason.INVALID_REQUEST: 400,
    FailureReason.PROJECT_NOT_FOUND: 404,
    FailureReason.MISSING_CREDENTIALS: 401,
    FailureReason.SOURCE_SYNC_FAILED: 502,
    FailureReason.REGISTRY_AUTH_FAILED: 502,
    FailureReason.REBUILD_FAILED: 502,
    FailureReason.EXECUTION_ERROR: 500,
}


def get_dispatcher(request: Request) -> Dispatcher:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise RuntimeError("Dispatcher not initialized")
    return dispatcher


def status_code_for(outcome: DeploymentOutcome, strict: bool) -> int:
    if outcome.success or not strict:
        return 200
    return OUTCOME_STATUS_CODES.get(outcome.reason, 500)


@router.post("/webhook", response_class=PlainTextResponse)
async def webhook(request: Request, dispatcher: Dispatcher = Depends(get_dispatcher)) -> PlainTextResponse:
    """Run the deployment named by the JSON body and report its outcome as text.

    The body is parsed here rather than by FastAPI so that malformed input is
    reported as an `InvalidRequest` outcome like every other failure.
    """
    raw = await request.body()
    try:
        payload = json.loads(raw) if raw else None
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = None
        logger.warning("Webhook body is not valid JSON", size=len(raw))

    if isinstance(payload, dict):
        project = payload.get("project")
        mode = payload.get("type") or payload.get("mode")
        bind_deployment_context(
            project if isinstance(project, str) else None,
            mode if isinstance(mode, str) else None,
        )

    outcome = await dispatcher.dispatch(payload)

    strict = getattr(request.app.state.settings, "strict_status_codes", False)
    return PlainTextResponse(outcome.message, status_code=status_code_for(outcome, strict))


@router.get("/projects", response_model=List[str])
async def list_projects(dispatcher: Dispatcher = Depends(get_dispatcher)) -> List[str]:
    """Names of the registered projects. Paths are not exposed."""
    return dispatcher.registry.names()
