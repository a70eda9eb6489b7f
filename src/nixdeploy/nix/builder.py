"""Realization of system derivations."""

import structlog

from nixdeploy.core.models import BuildArtifact
from nixdeploy.nix.runner import CommandRunner, nix_command

logger = structlog.get_logger()


class Builder:
    """Builds an evaluated artifact without creating a result link.

    The GC root manager owns the only durable link to the output.
    """

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def build(self, artifact: BuildArtifact) -> str:
        self.runner.run(nix_command("build", artifact.drv_path, "-L", "--no-link"), stream=True)
        logger.info("Build succeeded", output_path=artifact.output_path)
        return artifact.output_path
