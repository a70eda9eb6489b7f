"""Tests for the component wiring."""

import asyncio

import pytest

from nixdeploy.core.models import DeploymentPhase, ExecutionMode
from nixdeploy.deploy.manager import DeploymentManager
from nixdeploy.nix.runner import SubprocessCommandRunner


def test_default_runner_uses_timeout(settings):
    manager = DeploymentManager(settings.model_copy(update={"command_timeout_seconds": 30.0}))
    assert isinstance(manager.runner, SubprocessCommandRunner)
    assert manager.runner.timeout == 30.0


def test_scheduler_only_when_polling(settings, runner):
    assert DeploymentManager(settings, runner=runner).scheduler is None
    polling = settings.model_copy(update={"poll_interval_seconds": 60})
    assert DeploymentManager(polling, runner=runner).scheduler is not None


def test_restart_hook_follows_setting(settings, runner):
    assert DeploymentManager(settings, runner=runner).gate.on_restart_required is not None
    no_restart = settings.model_copy(update={"restart_agent_on_change": False})
    assert DeploymentManager(no_restart, runner=runner).gate.on_restart_required is None


def test_dry_run_setting_selects_simulate(settings, runner):
    manager = DeploymentManager(settings.model_copy(update={"dry_run": True}), runner=runner)
    assert manager.gate.mode == ExecutionMode.SIMULATE
    assert manager.status.snapshot().mode == ExecutionMode.SIMULATE


def test_changed_unit_restarts_agent(settings, runner):
    from conftest import OUT_PATH, show_derivation_output

    runner.on("eval", "null")
    runner.on("show-derivation", show_derivation_output())
    runner.on("build")
    runner.on("cat", ["before", "after"])
    runner.on("nix-env")
    runner.on(f"{OUT_PATH}/bin/switch-to-configuration")
    runner.on("restart")

    manager = DeploymentManager(settings, runner=runner)
    result = manager.gate.run_now()

    assert result.needs_restart is True
    assert runner.calls[-1] == ["systemctl", "restart", "--no-block", "nixdeploy.service"]
    assert manager.status.snapshot().phase == DeploymentPhase.SUCCEEDED


@pytest.mark.asyncio
async def test_start_and_shutdown(settings, runner):
    manager = DeploymentManager(settings.model_copy(update={"poll_interval_seconds": 3600}), runner=runner)
    runner.on("eval", fail=True)

    manager.start()
    await asyncio.sleep(0)
    await manager.shutdown()

    assert manager.gate.last_result is not None
    assert manager.gate.last_result.error_type == "ToolInvocationError"
    assert not manager.gate.busy
