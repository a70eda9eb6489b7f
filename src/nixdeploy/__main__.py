"""CLI entrypoints (nixdeploy serve, deploy, build, list)."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import structlog

from nixdeploy.core.exceptions import ConfigurationError, NixDeployError
from nixdeploy.core.models import ConfigurationReference, OperationKind

logger = structlog.get_logger()


def _parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=Path, help="YAML configuration file")
    common.add_argument("--flake-url", help="URL of the flake")
    common.add_argument("--hostname", help="Name of the configuration to deploy")
    common.add_argument("--state-dir", help="Directory holding gcroots")
    common.add_argument(
        "--operation",
        choices=[op.value for op in OperationKind],
        help="switch-to-configuration argument",
    )
    common.add_argument("--dry-run", action="store_true", default=None, help="Do not change the machine")
    common.add_argument("--log-format", choices=["json", "console"], help="Log renderer")

    parser = argparse.ArgumentParser(prog="nixdeploy", description="Continuous deployment agent for NixOS")
    sub = parser.add_subparsers(dest="cmd")
    sub.add_parser("serve", parents=[common], help="Run the webhook server and scheduler")
    sub.add_parser("deploy", parents=[common], help="Deploy once and exit")
    sub.add_parser("build", parents=[common], help="Build one configuration, or all without --hostname")
    sub.add_parser("list", parents=[common], help="List the configurations of the flake")
    return parser


def _build(manager, settings, hostname_given: bool) -> int:
    if hostname_given:
        hosts = [settings.hostname]
    else:
        try:
            hosts = manager.evaluator.list_hosts(settings.flake_url)
        except NixDeployError as e:
            logger.error("Failed to list the configurations", error=str(e))
            return 1
    failures = 0
    for host in hosts:
        logger.info("Building the NixOS configuration", hostname=host)
        try:
            artifact = manager.evaluator.resolve_artifact(
                ConfigurationReference(flake_url=settings.flake_url, hostname=host)
            )
            manager.builder.build(artifact)
        except NixDeployError as e:
            failures += 1
            logger.error("Failed to build the configuration", hostname=host, error=str(e))
    return 1 if failures else 0


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    cmd = args.cmd or "serve"

    from nixdeploy.core.config import load_settings
    from nixdeploy.utils.logging import bind_deployment_context, setup_logging

    try:
        settings = load_settings(
            getattr(args, "config", None),
            flake_url=getattr(args, "flake_url", None),
            hostname=getattr(args, "hostname", None),
            state_dir=getattr(args, "state_dir", None),
            operation=getattr(args, "operation", None),
            dry_run=getattr(args, "dry_run", None),
            log_format=getattr(args, "log_format", None),
        )
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    if cmd == "serve":
        from nixdeploy.main import run
        run(settings)
        return 0

    setup_logging(settings.log_level, settings.log_format)

    from nixdeploy.deploy.manager import DeploymentManager
    manager = DeploymentManager(settings)

    if cmd == "list":
        try:
            for host in manager.evaluator.list_hosts(settings.flake_url):
                print(host)
        except NixDeployError as e:
            logger.error("Failed to list the configurations", error=str(e))
            return 1
        return 0

    if cmd == "build":
        return _build(manager, settings, hostname_given=getattr(args, "hostname", None) is not None)

    bind_deployment_context(hostname=settings.hostname)
    result = manager.gate.run_now()
    if result is None or not result.succeeded:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
