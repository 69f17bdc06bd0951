"""graft-hook - webhook-triggered compose deployment dispatcher."""

__version__ = "0.1.0"

from graft_hook.core.config import Settings
from graft_hook.core.models import DeploymentMode, DeploymentOutcome, FailureReason

__all__ = ["Settings", "DeploymentMode", "DeploymentOutcome", "FailureReason", "__version__"]
