"""Flake evaluation: expected machine identity, system derivation, host list."""

import json
from typing import Any, Dict, List, Optional

import structlog

from nixdeploy.core.exceptions import ToolInvocationError
from nixdeploy.core.models import BuildArtifact, ConfigurationReference
from nixdeploy.nix.runner import CommandRunner, nix_command

logger = structlog.get_logger()

TOPLEVEL_ATTRIBUTE = "config.system.build.toplevel"


def _parse_json(stdout: str, args: List[str]) -> Any:
    try:
        return json.loads(stdout)
    except ValueError as e:
        raise ToolInvocationError(
            f"Can not parse the output of '{' '.join(args)}' as JSON: {e}", args
        ) from e


def _derivation_name(info: Any) -> str:
    env = info.get("env") if isinstance(info, dict) else None
    return str(env.get("name") or "") if isinstance(env, dict) else ""


def select_derivation(derivations: Dict[str, Any], hostname: str) -> str:
    """Pick the system derivation of ``hostname`` out of a show-derivation map.

    Derivations named ``nixos-system-<hostname>-*`` are preferred. Remaining
    ties are broken by taking the smallest derivation path.
    """
    if not derivations:
        raise ValueError("no derivation in output")
    prefix = f"nixos-system-{hostname}-"
    named = [
        drv for drv, info in derivations.items() if _derivation_name(info).startswith(prefix)
    ]
    candidates = named or list(derivations)
    if len(candidates) > 1:
        logger.warning(
            "Several derivations match, selecting the smallest path",
            hostname=hostname,
            candidates=sorted(candidates),
        )
    return min(candidates)


class Evaluator:
    """Evaluates the host configuration of a flake."""

    def __init__(self, runner: CommandRunner, machine_id_option: str = "services.nixdeploy.machineId"):
        self.runner = runner
        self.machine_id_option = machine_id_option

    def resolve_expected_identity(self, reference: ConfigurationReference) -> Optional[str]:
        """Return the machine id declared by the configuration, or None if unset."""
        args = nix_command("eval", reference.attribute(f"config.{self.machine_id_option}"), "--json")
        value = _parse_json(self.runner.run(args).stdout, args)
        if value is None:
            logger.debug("Expected machine id is not set", option=self.machine_id_option)
            return None
        if not isinstance(value, str):
            raise ToolInvocationError(
                f"Option '{self.machine_id_option}' must be a string or null, got {type(value).__name__}",
                args,
            )
        logger.debug("Expected machine id is set", option=self.machine_id_option, machine_id=value)
        return value

    def resolve_artifact(self, reference: ConfigurationReference) -> BuildArtifact:
        """Resolve the derivation and output path of the host's toplevel."""
        args = nix_command("show-derivation", reference.attribute(TOPLEVEL_ATTRIBUTE), "-L")
        derivations = _parse_json(self.runner.run(args).stdout, args)
        if not isinstance(derivations, dict):
            raise ToolInvocationError(f"Unexpected output of '{' '.join(args)}': not an object", args)
        try:
            drv_path = select_derivation(derivations, reference.hostname)
            output_path = derivations[drv_path]["outputs"]["out"]["path"]
        except (ValueError, KeyError, TypeError) as e:
            raise ToolInvocationError(
                f"Can not find the output path in the output of '{' '.join(args)}': {e}", args
            ) from e
        if not isinstance(output_path, str) or not output_path:
            raise ToolInvocationError(f"Invalid output path in the output of '{' '.join(args)}'", args)

        logger.info("Derivation resolved", drv_path=drv_path, output_path=output_path)
        return BuildArtifact(drv_path=drv_path, output_path=output_path)

    def list_hosts(self, flake_url: str) -> List[str]:
        """Names of the flake's nixosConfigurations, sorted."""
        args = nix_command("flake", "show", "--json", flake_url)
        output = _parse_json(self.runner.run(args).stdout, args)
        configurations = output.get("nixosConfigurations", {}) if isinstance(output, dict) else None
        if not isinstance(configurations, dict):
            raise ToolInvocationError(
                f"Unexpected output of '{' '.join(args)}': nixosConfigurations is not an object", args
            )
        return sorted(configurations)
