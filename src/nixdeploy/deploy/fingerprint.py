"""Detection of changes to the agent's own systemd unit."""

import hashlib

import structlog

from nixdeploy.nix.runner import CommandRunner

logger = structlog.get_logger()


class UnitFingerprinter:
    """Hashes the unit definition as currently loaded by systemd."""

    def __init__(self, runner: CommandRunner, unit: str = "nixdeploy.service"):
        self.runner = runner
        self.unit = unit

    def fingerprint(self) -> str:
        result = self.runner.run(["systemctl", "cat", self.unit])
        digest = hashlib.sha256(result.stdout.encode("utf-8")).hexdigest()
        logger.info("Agent unit file hashed", unit=self.unit, sha256=digest)
        return digest

    def request_restart(self) -> None:
        """Ask systemd to restart the agent without waiting for the job."""
        logger.info("Restarting agent unit", unit=self.unit)
        self.runner.run(["systemctl", "restart", "--no-block", self.unit])
