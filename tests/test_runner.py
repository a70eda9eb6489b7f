"""Tests for the subprocess command runner."""

import pytest

from nixdeploy.core.exceptions import ToolInvocationError
from nixdeploy.nix.runner import SubprocessCommandRunner, nix_command


def test_nix_command_enables_flakes():
    args = nix_command("eval", "foo", "--json")
    assert args[0] == "nix"
    assert args[1:5] == ["--extra-experimental-features", "nix-command", "--extra-experimental-features", "flakes"]
    assert args[5:] == ["eval", "foo", "--json"]


def test_captures_stdout():
    result = SubprocessCommandRunner().run(["sh", "-c", "echo hello; echo oops >&2"])
    assert result.returncode == 0
    assert result.stdout == "hello\n"
    assert result.stderr == "oops\n"


def test_nonzero_exit_carries_command_line():
    with pytest.raises(ToolInvocationError) as exc_info:
        SubprocessCommandRunner().run(["sh", "-c", "exit 3"])
    err = exc_info.value
    assert err.returncode == 3
    assert err.command_line == "sh -c exit 3"
    assert "sh -c exit 3" in str(err)


def test_missing_executable_carries_os_error():
    with pytest.raises(ToolInvocationError) as exc_info:
        SubprocessCommandRunner().run(["/nonexistent/nixdeploy-tool"])
    assert isinstance(exc_info.value.os_error, OSError)
    assert exc_info.value.returncode is None


def test_streamed_output_is_returned():
    result = SubprocessCommandRunner().run(["sh", "-c", "echo one; echo two >&2"], stream=True)
    assert result.stdout.splitlines() == ["one", "two"]


def test_streamed_failure():
    with pytest.raises(ToolInvocationError) as exc_info:
        SubprocessCommandRunner().run(["sh", "-c", "echo building; exit 1"], stream=True)
    assert exc_info.value.returncode == 1


def test_timeout_kills_captured_command():
    with pytest.raises(ToolInvocationError, match="timeout"):
        SubprocessCommandRunner(timeout=0.2).run(["sleep", "5"])


def test_timeout_kills_streamed_command():
    with pytest.raises(ToolInvocationError, match="timeout"):
        SubprocessCommandRunner(timeout=0.2).run(["sleep", "5"], stream=True)
