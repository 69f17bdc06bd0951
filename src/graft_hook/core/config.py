"""Configuration management for graft-hook."""

import os
import shlex
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CONFIG_FILENAME = "projects.json"
DEFAULT_REGISTRY = "ghcr.io"
DEFAULT_BRANCH = "main"


class Settings(BaseSettings):
    """Process-wide dispatcher settings, read from the environment and `.env`."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Server configuration
    host: str = Field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"), description="Server host")
    port: int = Field(default_factory=lambda: int(os.getenv("PORT", "3000")), description="Server port")

    # Project registry
    config_path: str = Field(
        DEFAULT_CONFIG_FILENAME,
        description="Path to the project registry file (JSON or YAML)",
        validation_alias=AliasChoices("CONFIGPATH", "GRAFT_CONFIG_PATH", "config_path"),
    )

    # Default credentials, used when a webhook omits them
    default_user: Optional[str] = Field(
        None,
        description="Fallback user for git and registry authentication",
        validation_alias=AliasChoices("DEPLOY_USER", "GITHUB_USER", "default_user"),
    )
    default_token: Optional[str] = Field(
        None,
        description="Fallback token for git and registry authentication",
        validation_alias=AliasChoices("DEPLOY_TOKEN", "GITHUB_TOKEN", "default_token"),
    )
    default_registry: str = Field(DEFAULT_REGISTRY, description="Registry used when a webhook names none")
    default_branch: str = Field(DEFAULT_BRANCH, description="Branch pulled when a project names none")

    # External tools
    git_binary: str = Field("git", description="Source-control client executable")
    docker_binary: str = Field("docker", description="Container runtime executable")
    compose_command: str = Field("docker compose", description="Compose orchestrator command line")

    # Execution limits
    command_timeout: float = Field(
        600.0,
        description="Seconds allowed for each external command",
        validation_alias=AliasChoices("GRAFT_COMMAND_TIMEOUT", "command_timeout"),
    )
    serialize_deployments: bool = Field(
        True,
        description="Run at most one deployment per project at a time",
        validation_alias=AliasChoices("GRAFT_SERIALIZE_DEPLOYMENTS", "serialize_deployments"),
    )
    strict_status_codes: bool = Field(
        False,
        description="Map failed outcomes to non-2xx HTTP status codes",
        validation_alias=AliasChoices("GRAFT_STRICT_STATUS_CODES", "strict_status_codes"),
    )

    # Observability
    log_level: str = Field("INFO")
    log_format: str = Field("json")
    metrics_enabled: bool = Field(True)

    @field_validator("default_user", "default_token", mode="before")
    @classmethod
    def blank_as_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty environment values as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("command_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("command_timeout must be positive")
        return v

    @property
    def compose_argv(self) -> List[str]:
        """Compose command split into an argument vector."""
        return shlex.split(self.compose_command)
