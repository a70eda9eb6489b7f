"""Nix tooling: command runner, flake evaluation and builds."""

from .builder import Builder
from .evaluator import Evaluator
from .runner import CommandResult, CommandRunner, SubprocessCommandRunner, nix_command

__all__ = [
    "Builder",
    "Evaluator",
    "CommandResult",
    "CommandRunner",
    "SubprocessCommandRunner",
    "nix_command",
]
