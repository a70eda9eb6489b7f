"""
Pytest configuration and fixtures for nixdeploy tests.
"""

import json
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import pytest

from nixdeploy.core.config import Settings
from nixdeploy.core.exceptions import ToolInvocationError
from nixdeploy.nix.runner import CommandResult

MACHINE_ID = "0123456789abcdef0123456789abcdef"
OUT_PATH = "/nix/store/abc-web1"
DRV_PATH = "/nix/store/xyz-nixos-system-web1-24.05.drv"


class ScriptedRunner:
    """CommandRunner double answering commands from registered rules.

    A rule matches when its token appears among the command arguments.
    ``stdout`` may be a list, consumed one entry per call (the last entry
    repeats).
    """

    def __init__(self):
        self.calls: List[List[str]] = []
        self.streamed: List[bool] = []
        self._rules = []

    def on(
        self,
        token: str,
        stdout: Union[str, List[str]] = "",
        fail: bool = False,
        effect: Optional[Callable[[List[str]], None]] = None,
    ) -> "ScriptedRunner":
        outputs = list(stdout) if isinstance(stdout, list) else [stdout]
        self._rules.append((token, outputs, fail, effect))
        return self

    def run(self, args: Sequence[str], *, stream: bool = False) -> CommandResult:
        args = list(args)
        self.calls.append(args)
        self.streamed.append(stream)
        for token, outputs, fail, effect in self._rules:
            if token in args:
                if effect is not None:
                    effect(args)
                if fail:
                    raise ToolInvocationError(f"Command '{' '.join(args)}' fails with exit status 1", args, returncode=1)
                out = outputs.pop(0) if len(outputs) > 1 else outputs[0]
                return CommandResult(args=args, returncode=0, stdout=out)
        raise AssertionError(f"Unexpected command: {args}")

    def count(self, token: str) -> int:
        return sum(1 for call in self.calls if token in call)


def show_derivation_output(drv_path: str = DRV_PATH, out_path: str = OUT_PATH, name: str = "nixos-system-web1-24.05") -> str:
    return json.dumps({drv_path: {"outputs": {"out": {"path": out_path}}, "env": {"name": name}}})


@pytest.fixture
def runner() -> ScriptedRunner:
    return ScriptedRunner()


@pytest.fixture
def web1_runner(runner: ScriptedRunner) -> ScriptedRunner:
    """Runner scripted for a successful deployment of web1."""
    runner.on("eval", "null")
    runner.on("show-derivation", show_derivation_output())
    runner.on("build")
    runner.on("cat", "[Service]\nExecStart=/bin/nixdeploy\n")
    runner.on("nix-env")
    runner.on(f"{OUT_PATH}/bin/switch-to-configuration")
    return runner


@pytest.fixture
def machine_id_file(tmp_path: Path) -> Path:
    path = tmp_path / "machine-id"
    path.write_text(MACHINE_ID + "\n")
    return path


@pytest.fixture
def settings(tmp_path: Path, machine_id_file: Path) -> Settings:
    return Settings(
        flake_url="github:example/infra",
        hostname="web1",
        state_dir=str(tmp_path / "state"),
        machine_id_path=str(machine_id_file),
        log_format="console",
        metrics_enabled=False,
        _env_file=None,
    )


@pytest.fixture(autouse=True)
def clear_nixdeploy_env(monkeypatch):
    """Keep NIXDEPLOY_* variables of the host out of the tests."""
    import os
    for key in list(os.environ):
        if key.startswith("NIXDEPLOY_"):
            monkeypatch.delenv(key)
