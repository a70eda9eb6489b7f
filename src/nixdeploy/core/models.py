"""Core data models for nixdeploy."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class OperationKind(str, Enum):
    """Argument passed to switch-to-configuration."""

    SWITCH = "switch"
    BOOT = "boot"
    TEST = "test"
    DRY_ACTIVATE = "dry-activate"

    @property
    def updates_profile(self) -> bool:
        """Whether the system profile must point at the new output."""
        return self in (OperationKind.SWITCH, OperationKind.BOOT)


class ExecutionMode(str, Enum):
    """Whether side effects are performed or only logged."""

    APPLY = "apply"
    SIMULATE = "simulate"

    @property
    def simulated(self) -> bool:
        return self is ExecutionMode.SIMULATE


class DeploymentPhase(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    SAFETY_CHECKING = "safety_checking"
    BUILDING = "building"
    ACTIVATING = "activating"
    FINALIZING = "finalizing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ConfigurationReference(BaseModel):
    """A deployable target: one host of one flake."""

    model_config = ConfigDict(frozen=True)

    flake_url: str = Field(..., description="Flake URL or path")
    hostname: str = Field(..., description="Name under nixosConfigurations")

    def attribute(self, path: str) -> str:
        """Installable for an attribute of this host's configuration."""
        return f"{self.flake_url}#nixosConfigurations.{self.hostname}.{path}"


class BuildArtifact(BaseModel):
    """An evaluated system derivation and the store path it produces."""

    model_config = ConfigDict(frozen=True)

    drv_path: str = Field(..., description="Derivation path")
    output_path: str = Field(..., description="Content-addressed output path")


class DeploymentResult(BaseModel):
    """Outcome of one orchestrator run."""

    hostname: str
    operation: OperationKind
    mode: ExecutionMode
    output_path: Optional[str] = Field(None, description="Output path, if the build got that far")
    needs_restart: bool = Field(False, description="Agent unit changed during activation")
    error: Optional[str] = Field(None, description="Error message if the run failed")
    error_type: Optional[str] = Field(None, description="Exception class of the failure")
    failed_phase: Optional[DeploymentPhase] = None
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class StatusSnapshot(BaseModel):
    """Published agent state, served by GET /status."""

    hostname: str
    flake_url: str
    operation: OperationKind
    mode: ExecutionMode
    deploying: bool = False
    phase: DeploymentPhase = DeploymentPhase.IDLE
    deployment_count: int = 0
    last_result: Optional[DeploymentResult] = None
    gc_root: Optional[str] = Field(None, description="Current GC root target for the host")
