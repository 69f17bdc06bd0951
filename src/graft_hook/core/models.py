"""Core data models for graft-hook."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class DeploymentMode(str, Enum):
    """How a project is brought up to date."""

    SOURCE = "repo"     # git pull, then compose rebuild
    IMAGE = "image"     # registry login, then compose pull-and-restart


class FailureReason(str, Enum):
    """Terminal failure classes of one dispatch. Mutually exclusive."""

    INVALID_REQUEST = "InvalidRequest"
    PROJECT_NOT_FOUND = "ProjectNotFound"
    MISSING_CREDENTIALS = "MissingCredentials"
    SOURCE_SYNC_FAILED = "SourceSyncFailed"
    REGISTRY_AUTH_FAILED = "RegistryAuthFailed"
    REBUILD_FAILED = "RebuildFailed"
    EXECUTION_ERROR = "ExecutionError"


class WebhookPayload(BaseModel):
    """Inbound webhook body.

    Accepts both the legacy field names (`type`, `githubtoken`) and the
    descriptive ones (`mode`, `token`).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    project: str = Field(..., min_length=1, description="Registered project name")
    mode: DeploymentMode = Field(..., validation_alias=AliasChoices("type", "mode"))
    user: Optional[str] = Field(None, description="User for git/registry authentication")
    token: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("githubtoken", "token"),
        repr=False,
    )
    registry: Optional[str] = Field(None, description="Registry host for image deployments")

    @field_validator("mode", mode="before")
    @classmethod
    def normalize_mode(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("user", "token", "registry", mode="before")
    @classmethod
    def blank_as_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


@dataclass(frozen=True)
class Credentials:
    """Resolved credential triple. Lives for one request only."""

    user: str
    token: str = field(repr=False)
    registry: str


@dataclass(frozen=True)
class DeploymentOutcome:
    """Classified result of one dispatch.

    `detail` carries captured diagnostics (stderr) for operators and is not
    echoed to the webhook caller.
    """

    success: bool
    message: str
    reason: Optional[FailureReason] = None
    step: Optional[str] = None
    detail: Optional[str] = None

    @classmethod
    def succeeded(cls, message: str) -> "DeploymentOutcome":
        return cls(success=True, message=message)

    @classmethod
    def failed(
        cls,
        reason: FailureReason,
        message: str,
        step: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> "DeploymentOutcome":
        return cls(success=False, message=message, reason=reason, step=step, detail=detail)

    @property
    def label(self) -> str:
        """Short outcome label for logs and metrics."""
        return "Success" if self.success else self.reason.value
