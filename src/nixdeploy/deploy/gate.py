"""Single-flight gate in front of the deployment orchestrator."""

from __future__ import annotations

import asyncio
import threading
import time
import uuid
from datetime import datetime
from typing import Callable, Optional

import structlog
from prometheus_client import Counter, Histogram
from structlog.contextvars import bound_contextvars

from nixdeploy.core.models import (
    ConfigurationReference,
    DeploymentPhase,
    DeploymentResult,
    ExecutionMode,
    OperationKind,
)
from nixdeploy.deploy.orchestrator import DeploymentOrchestrator
from nixdeploy.deploy.status import StatusStore

logger = structlog.get_logger()

DEPLOYMENTS_TOTAL = Counter(
    "nixdeploy_deployments_total",
    "Finished deployments",
    ["outcome"],
)

DEPLOYMENT_DURATION = Histogram(
    "nixdeploy_deployment_duration_seconds",
    "Deployment duration",
)

TRIGGERS_REJECTED = Counter(
    "nixdeploy_triggers_rejected_total",
    "Triggers dropped because a deployment was already running",
)


class TriggerGate:
    """Admits at most one orchestrator run at a time.

    Triggers arriving while a run is in progress are dropped, not queued.
    The busy flag is released by the worker itself once the run is over,
    whatever its outcome.
    """

    def __init__(
        self,
        orchestrator: DeploymentOrchestrator,
        reference: ConfigurationReference,
        operation: OperationKind,
        mode: ExecutionMode,
        status: Optional[StatusStore] = None,
        on_restart_required: Optional[Callable[[], None]] = None,
    ):
        self.orchestrator = orchestrator
        self.reference = reference
        self.operation = operation
        self.mode = mode
        self.status = status
        self.on_restart_required = on_restart_required
        self.last_result: Optional[DeploymentResult] = None

        self._busy = threading.Lock()
        self._future: Optional[asyncio.Future] = None
        if status is not None:
            status.track_busy(self._busy.locked)

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def _admit(self) -> bool:
        if not self._busy.acquire(blocking=False):
            TRIGGERS_REJECTED.inc()
            return False
        if self.status is not None:
            self.status.publish_phase(DeploymentPhase.PREPARING)
        return True

    def trigger(self) -> bool:
        """Start a deployment in the background unless one is running.

        Must be called from the event loop thread.
        """
        loop = asyncio.get_running_loop()
        if not self._admit():
            logger.info("A deployment is already running, trigger dropped")
            return False
        try:
            self._future = loop.run_in_executor(None, self._execute_and_release)
        except BaseException:
            self._busy.release()
            raise
        logger.info("A deployment has been triggered")
        return True

    def run_now(self) -> Optional[DeploymentResult]:
        """Run a deployment in the calling thread; None if one is running."""
        if not self._admit():
            logger.info("A deployment is already running")
            return None
        return self._execute_and_release()

    async def wait_idle(self) -> Optional[DeploymentResult]:
        """Wait for the background deployment, if any, and return the last result."""
        if self._future is not None:
            await self._future
        return self.last_result

    def _execute_and_release(self) -> DeploymentResult:
        try:
            return self._execute()
        finally:
            self._busy.release()

    def _execute(self) -> DeploymentResult:
        started = time.monotonic()
        with bound_contextvars(hostname=self.reference.hostname, deploymentId=uuid.uuid4().hex[:12]):
            try:
                result = self.orchestrator.run(self.reference, self.operation, self.mode)
            except Exception as exc:
                logger.exception("Deployment crashed")
                result = DeploymentResult(
                    hostname=self.reference.hostname,
                    operation=self.operation,
                    mode=self.mode,
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                    failed_phase=self.orchestrator.phase,
                    finished_at=datetime.utcnow(),
                )

            self.last_result = result
            if self.status is not None:
                self.status.publish_result(result)
            DEPLOYMENTS_TOTAL.labels(outcome="succeeded" if result.succeeded else "failed").inc()
            DEPLOYMENT_DURATION.observe(time.monotonic() - started)

            if result.needs_restart and self.on_restart_required is not None:
                try:
                    self.on_restart_required()
                except Exception:
                    logger.exception("Failed to restart the agent")
        return result
