"""Activation of a built system: profile update and switch-to-configuration.

This is the only component that changes the running machine. Nothing here
rolls back: a failed activation may leave the machine partially switched.
"""

from pathlib import Path

import structlog

from nixdeploy.core.models import ExecutionMode, OperationKind
from nixdeploy.nix.runner import CommandRunner

logger = structlog.get_logger()

SYSTEM_PROFILE = "/nix/var/nix/profiles/system"


def switch_to_configuration_path(output_path: str) -> str:
    return str(Path(output_path) / "bin" / "switch-to-configuration")


class Activator:
    def __init__(self, runner: CommandRunner, system_profile: str = SYSTEM_PROFILE):
        self.runner = runner
        self.system_profile = system_profile

    def set_system_profile(self, operation: OperationKind, output_path: str, mode: ExecutionMode) -> bool:
        """Point the system profile at ``output_path`` for switch and boot.

        Required for the boot loader entries to be written. Returns whether
        the profile was changed.
        """
        if not operation.updates_profile:
            return False
        args = ["nix-env", "--profile", self.system_profile, "--set", output_path]
        if mode.simulated:
            logger.info("Dry-run enabled: command has not been executed", command=" ".join(args))
            return False
        self.runner.run(args, stream=True)
        logger.info("System profile updated", profile=self.system_profile, output_path=output_path)
        return True

    def activate(self, operation: OperationKind, output_path: str, mode: ExecutionMode) -> bool:
        """Run the configuration's switch-to-configuration with ``operation``."""
        args = [switch_to_configuration_path(output_path), operation.value]
        if mode.simulated:
            logger.info("Dry-run enabled: command has not been executed", command=" ".join(args))
            return False
        self.runner.run(args, stream=True)
        logger.info("Switch successfully terminated", operation=operation.value)
        return True
