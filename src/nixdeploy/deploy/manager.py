"""Wiring of the deployment pipeline from settings."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import structlog

from nixdeploy.core.config import Settings
from nixdeploy.deploy.activator import Activator
from nixdeploy.deploy.fingerprint import UnitFingerprinter
from nixdeploy.deploy.gate import TriggerGate
from nixdeploy.deploy.gcroots import GcRootManager
from nixdeploy.deploy.orchestrator import DeploymentOrchestrator
from nixdeploy.deploy.scheduler import PollScheduler
from nixdeploy.deploy.status import StatusStore
from nixdeploy.nix.builder import Builder
from nixdeploy.nix.evaluator import Evaluator
from nixdeploy.nix.runner import CommandRunner, SubprocessCommandRunner

logger = structlog.get_logger()


class DeploymentManager:
    """Owns the component graph, the trigger gate and the optional scheduler."""

    def __init__(self, settings: Settings, runner: Optional[CommandRunner] = None):
        self.settings = settings
        self.runner = runner or SubprocessCommandRunner(timeout=settings.command_timeout_seconds)

        self.evaluator = Evaluator(self.runner, machine_id_option=settings.machine_id_option)
        self.builder = Builder(self.runner)
        self.activator = Activator(self.runner, system_profile=settings.system_profile)
        self.fingerprinter = UnitFingerprinter(self.runner, unit=settings.agent_unit)
        self.gc_roots = GcRootManager(Path(settings.state_dir))

        self.status = StatusStore(
            settings.reference,
            settings.operation,
            settings.execution_mode,
            gc_root_lookup=self.gc_roots.current_root,
        )
        self.orchestrator = DeploymentOrchestrator(
            self.evaluator,
            self.builder,
            self.activator,
            self.fingerprinter,
            self.gc_roots,
            machine_id_path=Path(settings.machine_id_path),
            on_phase=self.status.publish_phase,
        )
        self.gate = TriggerGate(
            self.orchestrator,
            settings.reference,
            settings.operation,
            settings.execution_mode,
            status=self.status,
            on_restart_required=self.fingerprinter.request_restart if settings.restart_agent_on_change else None,
        )
        self.scheduler: Optional[PollScheduler] = None
        if settings.poll_interval_seconds > 0:
            self.scheduler = PollScheduler(self.gate, settings.poll_interval_seconds)

    def start(self) -> None:
        if self.scheduler is not None:
            self.scheduler.start()

    async def shutdown(self) -> None:
        if self.scheduler is not None:
            await self.scheduler.stop()
        if self.gate.busy:
            logger.info("Waiting for the running deployment to finish")
            await self.gate.wait_idle()
