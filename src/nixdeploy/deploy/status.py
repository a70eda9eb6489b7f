"""In-memory status publisher behind GET /status."""

import threading
from typing import Callable, Optional

from nixdeploy.core.models import (
    ConfigurationReference,
    DeploymentPhase,
    DeploymentResult,
    ExecutionMode,
    OperationKind,
    StatusSnapshot,
)


class StatusStore:
    """Thread-safe holder of the agent state.

    Written from the deployment worker thread, read from request handlers.
    """

    def __init__(
        self,
        reference: ConfigurationReference,
        operation: OperationKind,
        mode: ExecutionMode,
        gc_root_lookup: Optional[Callable[[str], Optional[str]]] = None,
    ):
        self._lock = threading.Lock()
        self._gc_root_lookup = gc_root_lookup
        self._busy_lookup: Optional[Callable[[], bool]] = None
        self._snapshot = StatusSnapshot(
            hostname=reference.hostname,
            flake_url=reference.flake_url,
            operation=operation,
            mode=mode,
        )

    def track_busy(self, busy_lookup: Callable[[], bool]) -> None:
        """Report `deploying` from the gate's busy flag instead of the phase."""
        self._busy_lookup = busy_lookup

    def publish_phase(self, phase: DeploymentPhase) -> None:
        with self._lock:
            self._snapshot.phase = phase
            self._snapshot.deploying = phase not in (
                DeploymentPhase.IDLE,
                DeploymentPhase.SUCCEEDED,
                DeploymentPhase.FAILED,
            )

    def publish_result(self, result: DeploymentResult) -> None:
        with self._lock:
            self._snapshot.last_result = result
            self._snapshot.deployment_count += 1
            self._snapshot.deploying = False
            self._snapshot.phase = DeploymentPhase.SUCCEEDED if result.succeeded else DeploymentPhase.FAILED

    def snapshot(self) -> StatusSnapshot:
        with self._lock:
            snapshot = self._snapshot.model_copy(deep=True)
        if self._gc_root_lookup is not None:
            snapshot.gc_root = self._gc_root_lookup(snapshot.hostname)
        if self._busy_lookup is not None:
            snapshot.deploying = self._busy_lookup()
        return snapshot
