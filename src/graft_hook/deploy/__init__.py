"""Deployment pipeline: registry, credentials, command execution, strategies, dispatch."""

from .credentials import CredentialResolver
from .dispatcher import Dispatcher
from .executor import CommandExecutor, ExecutionResult
from .locks import ProjectLocks
from .registry import ProjectConfig, ProjectRegistry, load_registry
from .strategies import DeploymentStep, ImageStrategy, SourceStrategy

__all__ = [
    "CommandExecutor",
    "CredentialResolver",
    "DeploymentStep",
    "Dispatcher",
    "ExecutionResult",
    "ImageStrategy",
    "ProjectConfig",
    "ProjectLocks",
    "ProjectRegistry",
    "SourceStrategy",
    "load_registry",
]
