"""Deployment strategies as explicit step machines.

Each strategy walks a fixed list of steps and stops at the first failure.
The failing step determines the failure reason, so a failed pull and a
failed rebuild are distinguishable even though both are external commands.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import structlog

from graft_hook.core.config import DEFAULT_BRANCH
from graft_hook.core.exceptions import CommandSpawnError, MissingCredentialsError
from graft_hook.core.models import (
    Credentials,
    DeploymentMode,
    DeploymentOutcome,
    FailureReason,
    WebhookPayload,
)
from graft_hook.deploy.credentials import CredentialResolver
from graft_hook.deploy.executor import CommandExecutor, ExecutionResult
from graft_hook.deploy.registry import ProjectConfig

logger = structlog.get_logger()

# Environment variables read by the inline git credential helper
GIT_USER_ENV = "GRAFT_GIT_USER"
GIT_TOKEN_ENV = "GRAFT_GIT_TOKEN"

# Evaluated by git through `sh`; the secrets are expanded from the
# environment at run time and never appear in argv.
GIT_CREDENTIAL_HELPER = (
    '!f() { echo "username=${%s}"; echo "password=${%s}"; }; f' % (GIT_USER_ENV, GIT_TOKEN_ENV)
)


class DeploymentStep(str, Enum):
    RESOLVE_CREDENTIALS = "resolve_credentials"
    PULL = "pull"
    REBUILD = "rebuild"
    REGISTRY_LOGIN = "registry_login"
    PULL_AND_RESTART = "pull_and_restart"
    DONE = "done"


@dataclass
class StepContext:
    """Per-run state handed from step to step."""

    project: ProjectConfig
    request: WebhookPayload
    credentials: Optional[Credentials] = None
    completed: List[DeploymentStep] = field(default_factory=list)


@dataclass(frozen=True)
class ToolConfig:
    """External tool command lines used by the strategies."""

    git_binary: str = "git"
    docker_binary: str = "docker"
    compose_argv: tuple = ("docker", "compose")
    default_branch: str = DEFAULT_BRANCH

    @classmethod
    def from_settings(cls, settings) -> "ToolConfig":
        return cls(
            git_binary=settings.git_binary,
            docker_binary=settings.docker_binary,
            compose_argv=tuple(settings.compose_argv),
            default_branch=settings.default_branch,
        )


class DeploymentStrategy:
    """Base step machine. Subclasses declare the step order and failure reasons."""

    mode: DeploymentMode
    success_message: str
    steps: List[DeploymentStep] = []
    failure_reasons: Dict[DeploymentStep, FailureReason] = {}
    failure_labels: Dict[DeploymentStep, str] = {}
    # Steps missing here report a command that cannot start as ExecutionError
    spawn_failure_reasons: Dict[DeploymentStep, FailureReason] = {}

    def __init__(
        self,
        executor: CommandExecutor,
        resolver: CredentialResolver,
        tools: Optional[ToolConfig] = None,
    ):
        self.executor = executor
        self.resolver = resolver
        self.tools = tools or ToolConfig()

    def next_step(self, step: DeploymentStep) -> DeploymentStep:
        index = self.steps.index(step)
        if index + 1 < len(self.steps):
            return self.steps[index + 1]
        return DeploymentStep.DONE

    async def execute(self, project: ProjectConfig, request: WebhookPayload) -> DeploymentOutcome:
        ctx = StepContext(project=project, request=request)
        step = self.steps[0]
        log = logger.bind(project=project.name, mode=self.mode.value)

        while step is not DeploymentStep.DONE:
            handler = getattr(self, f"_step_{step.value}")
            log.info("Deployment step started", step=step.value)
            try:
                result = await handler(ctx)
            except MissingCredentialsError as exc:
                return DeploymentOutcome.failed(
                    FailureReason.MISSING_CREDENTIALS, str(exc), step=step.value
                )
            except CommandSpawnError as exc:
                log.error("Deployment command could not be started", step=step.value, error=str(exc))
                reason = self.spawn_failure_reasons.get(step, FailureReason.EXECUTION_ERROR)
                if reason is FailureReason.EXECUTION_ERROR:
                    message = f"Execution error during {step.value}: {exc}"
                else:
                    message = f"{self.failure_labels.get(step, step.value)} failed: {exc}"
                return DeploymentOutcome.failed(reason, message, step=step.value, detail=exc.reason)

            if result is not None and not result.exit_success:
                return self._command_failure(step, result)

            if result is not None:
                log.info(
                    "Deployment step finished",
                    step=step.value,
                    returncode=result.returncode,
                    duration_seconds=round(result.duration, 3),
                )
            ctx.completed.append(step)
            step = self.next_step(step)

        return DeploymentOutcome.succeeded(self.success_message)

    def _command_failure(self, step: DeploymentStep, result: ExecutionResult) -> DeploymentOutcome:
        label = self.failure_labels.get(step, step.value)
        if result.timed_out:
            message = f"{label} timed out"
        else:
            message = f"{label} failed (exit code {result.returncode})"
        logger.error(
            "Deployment step failed",
            step=step.value,
            returncode=result.returncode,
            timed_out=result.timed_out,
            stderr=result.stderr,
        )
        return DeploymentOutcome.failed(
            self.failure_reasons[step], message, step=step.value, detail=result.stderr
        )

    async def _step_resolve_credentials(self, ctx: StepContext) -> None:
        ctx.credentials = self.resolver.resolve(ctx.request)
        return None

    def compose_command(self, project: ProjectConfig, *args: str) -> List[str]:
        argv = list(self.tools.compose_argv)
        if project.compose_file:
            argv += ["-f", project.compose_file]
        return argv + list(args)


class SourceStrategy(DeploymentStrategy):
    """Pull the branch with git, then rebuild and restart the containers."""

    mode = DeploymentMode.SOURCE
    success_message = "source synced and containers rebuilt"
    steps = [
        DeploymentStep.RESOLVE_CREDENTIALS,
        DeploymentStep.PULL,
        DeploymentStep.REBUILD,
    ]
    failure_reasons = {
        DeploymentStep.PULL: FailureReason.SOURCE_SYNC_FAILED,
        DeploymentStep.REBUILD: FailureReason.REBUILD_FAILED,
    }
    failure_labels = {
        DeploymentStep.PULL: "Source sync",
        DeploymentStep.REBUILD: "Container rebuild",
    }
    spawn_failure_reasons = {
        DeploymentStep.PULL: FailureReason.SOURCE_SYNC_FAILED,
    }

    def pull_command(self, project: ProjectConfig) -> List[str]:
        branch = project.branch or self.tools.default_branch
        return [
            self.tools.git_binary,
            # Drop configured helpers so only the request credentials are offered
            "-c", "credential.helper=",
            "-c", f"credential.helper={GIT_CREDENTIAL_HELPER}",
            "pull", "--ff-only", project.remote, branch,
        ]

    async def _step_pull(self, ctx: StepContext) -> ExecutionResult:
        env = {
            GIT_USER_ENV: ctx.credentials.user,
            GIT_TOKEN_ENV: ctx.credentials.token,
            "GIT_TERMINAL_PROMPT": "0",
        }
        return await self.executor.run(ctx.project.path, self.pull_command(ctx.project), env=env)

    async def _step_rebuild(self, ctx: StepContext) -> ExecutionResult:
        argv = self.compose_command(ctx.project, "up", "-d", "--build")
        return await self.executor.run(ctx.project.path, argv)


class ImageStrategy(DeploymentStrategy):
    """Log in to the registry, then pull fresh images and restart the containers."""

    mode = DeploymentMode.IMAGE
    success_message = "images pulled and containers restarted"
    steps = [
        DeploymentStep.RESOLVE_CREDENTIALS,
        DeploymentStep.REGISTRY_LOGIN,
        DeploymentStep.PULL_AND_RESTART,
    ]
    failure_reasons = {
        DeploymentStep.REGISTRY_LOGIN: FailureReason.REGISTRY_AUTH_FAILED,
        DeploymentStep.PULL_AND_RESTART: FailureReason.REBUILD_FAILED,
    }
    failure_labels = {
        DeploymentStep.REGISTRY_LOGIN: "Registry login",
        DeploymentStep.PULL_AND_RESTART: "Image pull and restart",
    }

    def login_command(self, credentials: Credentials) -> List[str]:
        return [
            self.tools.docker_binary, "login", credentials.registry,
            "--username", credentials.user,
            "--password-stdin",
        ]

    async def _step_registry_login(self, ctx: StepContext) -> ExecutionResult:
        return await self.executor.run(
            ctx.project.path,
            self.login_command(ctx.credentials),
            input=ctx.credentials.token,
        )

    async def _step_pull_and_restart(self, ctx: StepContext) -> ExecutionResult:
        argv = self.compose_command(ctx.project, "up", "-d", "--pull", "always")
        return await self.executor.run(ctx.project.path, argv)


STRATEGIES = {
    DeploymentMode.SOURCE: SourceStrategy,
    DeploymentMode.IMAGE: ImageStrategy,
}
