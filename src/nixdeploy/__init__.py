"""nixdeploy - continuous deployment agent for NixOS flake configurations."""

__version__ = "0.1.0"

from nixdeploy.core.config import Settings
from nixdeploy.core.models import DeploymentResult, ExecutionMode, OperationKind

__all__ = ["Settings", "DeploymentResult", "ExecutionMode", "OperationKind", "__version__"]
