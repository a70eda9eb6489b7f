"""External command execution.

Every component that talks to nix, systemd or the activation script receives
a ``CommandRunner``. The production implementation wraps ``subprocess``;
tests substitute a scripted double.
"""

import subprocess
import threading
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

import structlog

from nixdeploy.core.exceptions import ToolInvocationError

logger = structlog.get_logger()

NIX_EXPERIMENTAL_ARGS = [
    "--extra-experimental-features", "nix-command",
    "--extra-experimental-features", "flakes",
]


def nix_command(*args: str) -> List[str]:
    """Build a ``nix`` command line with flakes enabled."""
    return ["nix", *NIX_EXPERIMENTAL_ARGS, *args]


@dataclass
class CommandResult:
    args: List[str]
    returncode: int
    stdout: str
    stderr: str = ""


class CommandRunner(Protocol):
    def run(self, args: Sequence[str], *, stream: bool = False) -> CommandResult:
        """Run ``args`` to completion.

        With ``stream`` the combined output is forwarded line by line to the
        log while the command runs, and returned in ``stdout``.

        Raises:
            ToolInvocationError: on non-zero exit, start failure or timeout
        """
        ...


class SubprocessCommandRunner:
    """Runs commands with ``subprocess``, optionally enforcing a timeout.

    On timeout the child is killed (SIGKILL) and the call fails. Without a
    timeout a hung command blocks the caller indefinitely.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def run(self, args: Sequence[str], *, stream: bool = False) -> CommandResult:
        args = list(args)
        cmd_str = " ".join(args)
        logger.info("Running command", command=cmd_str)
        if stream:
            return self._run_streamed(args, cmd_str)

        try:
            proc = subprocess.run(
                args,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ToolInvocationError(
                f"Command '{cmd_str}' killed after {self.timeout}s timeout", args
            ) from e
        except OSError as e:
            raise ToolInvocationError(f"Command '{cmd_str}' fails with {e}", args, os_error=e) from e

        for line in proc.stderr.splitlines():
            if line.strip():
                logger.debug("Command stderr", command=args[0], log=line)

        if proc.returncode != 0:
            raise ToolInvocationError(
                f"Command '{cmd_str}' fails with exit status {proc.returncode}",
                args,
                returncode=proc.returncode,
            )
        return CommandResult(args=args, returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)

    def _run_streamed(self, args: List[str], cmd_str: str) -> CommandResult:
        try:
            process = subprocess.Popen(
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            raise ToolInvocationError(f"Command '{cmd_str}' fails with {e}", args, os_error=e) from e

        expired = threading.Event()
        timer = None
        if self.timeout is not None:
            timer = threading.Timer(self.timeout, self._kill, args=(process, expired))
            timer.daemon = True
            timer.start()

        lines = []
        try:
            for line in process.stdout:
                line = line.rstrip()
                lines.append(line)
                if line:
                    logger.info("Command output", command=args[0], pid=process.pid, log=line)
            returncode = process.wait()
        finally:
            if timer is not None:
                timer.cancel()
            process.stdout.close()

        if expired.is_set():
            raise ToolInvocationError(f"Command '{cmd_str}' killed after {self.timeout}s timeout", args)
        if returncode != 0:
            raise ToolInvocationError(
                f"Command '{cmd_str}' fails with exit status {returncode}",
                args,
                returncode=returncode,
            )
        return CommandResult(args=args, returncode=returncode, stdout="\n".join(lines))

    @staticmethod
    def _kill(process: subprocess.Popen, expired: threading.Event) -> None:
        if process.poll() is None:
            expired.set()
            logger.warning("Command timed out, killing", pid=process.pid)
            process.kill()
