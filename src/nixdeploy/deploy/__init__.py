"""Deployment pipeline and its single-flight trigger gate."""

from .activator import Activator
from .fingerprint import UnitFingerprinter
from .gate import TriggerGate
from .gcroots import GcRootManager
from .manager import DeploymentManager
from .orchestrator import DeploymentOrchestrator
from .safety import check_identity
from .scheduler import PollScheduler
from .status import StatusStore

__all__ = [
    "Activator",
    "UnitFingerprinter",
    "TriggerGate",
    "GcRootManager",
    "DeploymentManager",
    "DeploymentOrchestrator",
    "check_identity",
    "PollScheduler",
    "StatusStore",
]
