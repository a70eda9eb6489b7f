"""Deployment pipeline: safety check, build, activation, gcroot bookkeeping."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import structlog

from nixdeploy.core.exceptions import FilesystemError, NixDeployError
from nixdeploy.core.models import (
    ConfigurationReference,
    DeploymentPhase,
    DeploymentResult,
    ExecutionMode,
    OperationKind,
)
from nixdeploy.deploy.activator import Activator
from nixdeploy.deploy.fingerprint import UnitFingerprinter
from nixdeploy.deploy.gcroots import GcRootManager
from nixdeploy.deploy.safety import MACHINE_ID_PATH, check_identity
from nixdeploy.nix.builder import Builder
from nixdeploy.nix.evaluator import Evaluator

logger = structlog.get_logger()

PhaseListener = Callable[[DeploymentPhase], None]


class DeploymentOrchestrator:
    """Runs one deployment of a host configuration on the local machine.

    Phases run strictly in order and the first error ends the run. Nothing
    done before the failure is undone; in particular the gcroot is only
    moved once activation succeeded.
    """

    def __init__(
        self,
        evaluator: Evaluator,
        builder: Builder,
        activator: Activator,
        fingerprinter: UnitFingerprinter,
        gc_roots: GcRootManager,
        machine_id_path: Path = MACHINE_ID_PATH,
        on_phase: Optional[PhaseListener] = None,
    ):
        self.evaluator = evaluator
        self.builder = builder
        self.activator = activator
        self.fingerprinter = fingerprinter
        self.gc_roots = gc_roots
        self.machine_id_path = Path(machine_id_path)
        self.on_phase = on_phase
        self.phase = DeploymentPhase.IDLE

    def _enter(self, phase: DeploymentPhase) -> None:
        self.phase = phase
        logger.debug("Deployment phase", phase=phase.value)
        if self.on_phase is not None:
            self.on_phase(phase)

    def run(
        self,
        reference: ConfigurationReference,
        operation: OperationKind,
        mode: ExecutionMode,
    ) -> DeploymentResult:
        result = DeploymentResult(hostname=reference.hostname, operation=operation, mode=mode)
        logger.info(
            "Starting deployment",
            hostname=reference.hostname,
            flake_url=reference.flake_url,
            operation=operation.value,
            mode=mode.value,
        )
        try:
            self._run_phases(reference, operation, mode, result)
        except NixDeployError as exc:
            result.error = str(exc)
            result.error_type = exc.__class__.__name__
            result.failed_phase = self.phase
            result.finished_at = datetime.utcnow()
            logger.error(
                "Deployment failed",
                hostname=reference.hostname,
                phase=self.phase.value,
                error=str(exc),
                error_type=result.error_type,
            )
            self._enter(DeploymentPhase.FAILED)
            return result

        result.finished_at = datetime.utcnow()
        logger.info(
            "Deployment succeeded",
            hostname=reference.hostname,
            output_path=result.output_path,
            needs_restart=result.needs_restart,
        )
        self._enter(DeploymentPhase.SUCCEEDED)
        return result

    def _run_phases(
        self,
        reference: ConfigurationReference,
        operation: OperationKind,
        mode: ExecutionMode,
        result: DeploymentResult,
    ) -> None:
        self._enter(DeploymentPhase.PREPARING)
        state_dir = self.gc_roots.state_dir
        try:
            state_dir.mkdir(mode=0o750, parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Failed to create state directory '{state_dir}': {e}", str(state_dir)) from e

        self._enter(DeploymentPhase.SAFETY_CHECKING)
        expected = self.evaluator.resolve_expected_identity(reference)
        check_identity(expected, self.machine_id_path)

        self._enter(DeploymentPhase.BUILDING)
        artifact = self.evaluator.resolve_artifact(reference)
        result.output_path = artifact.output_path
        output_path = self.builder.build(artifact)
        result.output_path = output_path

        self._enter(DeploymentPhase.ACTIVATING)
        before = self.fingerprinter.fingerprint()
        self.activator.set_system_profile(operation, output_path, mode)
        self.activator.activate(operation, output_path, mode)
        after = self.fingerprinter.fingerprint()
        result.needs_restart = before != after
        if result.needs_restart:
            logger.info("Agent unit changed during activation", unit=self.fingerprinter.unit)

        self._enter(DeploymentPhase.FINALIZING)
        self.gc_roots.record_root(reference.hostname, output_path, mode)
