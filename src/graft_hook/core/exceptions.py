"""Custom exceptions for graft-hook."""

from typing import List, Optional


class GraftHookError(Exception):
    """Base exception for all dispatcher errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ConfigurationError(GraftHookError):
    """Configuration error. Fatal at startup."""
    pass


class ProjectNotFoundError(GraftHookError):
    """Project name is not in the registry."""

    def __init__(self, name: str):
        super().__init__(f"Project not found: {name}", code="project_not_found")
        self.name = name


class MissingCredentialsError(GraftHookError):
    """Neither the request nor the environment supplies a credential pair."""

    def __init__(self, missing: List[str]):
        super().__init__(
            f"Missing credentials: {', '.join(missing)}",
            code="missing_credentials",
        )
        self.missing = missing


class CommandSpawnError(GraftHookError):
    """External command could not be started at all."""

    def __init__(self, program: str, reason: str):
        super().__init__(f"Failed to start {program}: {reason}", code="spawn_error")
        self.program = program
        self.reason = reason
