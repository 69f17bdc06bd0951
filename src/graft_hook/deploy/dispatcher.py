"""Webhook dispatch: validate, resolve the project, run its strategy, classify."""

from __future__ import annotations

import time
from typing import Any, Dict, Mapping, Optional, Type, Union

import structlog
from prometheus_client import Counter, Histogram
from pydantic import ValidationError

from graft_hook.core.exceptions import ProjectNotFoundError
from graft_hook.core.models import DeploymentMode, DeploymentOutcome, FailureReason, WebhookPayload
from graft_hook.deploy.credentials import CredentialResolver
from graft_hook.deploy.executor import CommandExecutor
from graft_hook.deploy.locks import ProjectLocks
from graft_hook.deploy.registry import ProjectRegistry
from graft_hook.deploy.strategies import STRATEGIES, DeploymentStrategy, ToolConfig

logger = structlog.get_logger()

DEPLOYMENT_COUNT = Counter(
    "graft_hook_deployments_total",
    "Dispatched webhook deployments",
    ["mode", "outcome"],
)

DEPLOYMENT_DURATION = Histogram(
    "graft_hook_deployment_duration_seconds",
    "Time spent running a deployment strategy",
    ["mode"],
)


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "body"
        problems.append(f"{location}: {error.get('msg')}")
    return "; ".join(problems)


class Dispatcher:
    """Entry point for one webhook request.

    The registry is passed in at construction and never modified; each
    dispatch owns its request, credentials and strategy instance.
    """

    def __init__(
        self,
        registry: ProjectRegistry,
        executor: CommandExecutor,
        resolver: CredentialResolver,
        tools: Optional[ToolConfig] = None,
        locks: Optional[ProjectLocks] = None,
        strategies: Optional[Dict[DeploymentMode, Type[DeploymentStrategy]]] = None,
    ):
        self.registry = registry
        self.executor = executor
        self.resolver = resolver
        self.tools = tools or ToolConfig()
        self.locks = locks if locks is not None else ProjectLocks()
        self.strategies = strategies or STRATEGIES

    @classmethod
    def from_settings(cls, settings, registry: ProjectRegistry, executor: Optional[CommandExecutor] = None) -> "Dispatcher":
        return cls(
            registry=registry,
            executor=executor or CommandExecutor(timeout=settings.command_timeout),
            resolver=CredentialResolver.from_settings(settings),
            tools=ToolConfig.from_settings(settings),
            locks=ProjectLocks(enabled=settings.serialize_deployments),
        )

    def validate(self, payload: Union[WebhookPayload, Mapping[str, Any], Any]) -> WebhookPayload:
        if isinstance(payload, WebhookPayload):
            return payload
        if not isinstance(payload, Mapping):
            raise ValueError("Request body must be a JSON object")
        return WebhookPayload.model_validate(dict(payload))

    def strategy_for(self, mode: DeploymentMode) -> DeploymentStrategy:
        strategy_cls = self.strategies[mode]
        return strategy_cls(self.executor, self.resolver, self.tools)

    async def dispatch(self, payload: Union[WebhookPayload, Mapping[str, Any], Any]) -> DeploymentOutcome:
        try:
            request = self.validate(payload)
        except ValidationError as exc:
            outcome = DeploymentOutcome.failed(
                FailureReason.INVALID_REQUEST,
                f"Invalid request: {_describe_validation_error(exc)}",
            )
            return self._record(None, None, outcome)
        except ValueError as exc:
            outcome = DeploymentOutcome.failed(FailureReason.INVALID_REQUEST, f"Invalid request: {exc}")
            return self._record(None, None, outcome)

        try:
            project = self.registry.lookup(request.project)
        except ProjectNotFoundError as exc:
            outcome = DeploymentOutcome.failed(FailureReason.PROJECT_NOT_FOUND, str(exc))
            return self._record(request.project, request.mode, outcome)

        strategy = self.strategy_for(request.mode)
        logger.info("Deployment requested", project=project.name, mode=request.mode.value)

        if self.locks.is_locked(project.name):
            logger.info("Waiting for running deployment of project", project=project.name)

        start_time = time.monotonic()
        async with self.locks.hold(project.name):
            try:
                outcome = await strategy.execute(project, request)
            except Exception as exc:
                logger.exception("Deployment strategy crashed", project=project.name, mode=request.mode.value)
                outcome = DeploymentOutcome.failed(
                    FailureReason.EXECUTION_ERROR,
                    f"Execution error: {exc.__class__.__name__}",
                    detail=str(exc),
                )
        DEPLOYMENT_DURATION.labels(mode=request.mode.value).observe(time.monotonic() - start_time)
        return self._record(project.name, request.mode, outcome)

    def _record(
        self,
        project: Optional[str],
        mode: Optional[DeploymentMode],
        outcome: DeploymentOutcome,
    ) -> DeploymentOutcome:
        mode_label = mode.value if mode else "unknown"
        DEPLOYMENT_COUNT.labels(mode=mode_label, outcome=outcome.label).inc()
        if outcome.success:
            logger.info("Deployment succeeded", project=project, mode=mode_label, message=outcome.message)
        else:
            logger.warning(
                "Deployment failed",
                project=project,
                mode=mode_label,
                reason=outcome.label,
                step=outcome.step,
                message=outcome.message,
                detail=outcome.detail,
            )
        return outcome
