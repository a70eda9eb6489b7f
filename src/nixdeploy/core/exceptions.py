"""Custom exceptions for nixdeploy."""

from typing import Optional, Sequence


class NixDeployError(Exception):
    """Base exception for all agent errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ToolInvocationError(NixDeployError):
    """An external command failed, could not start, or produced unparsable output."""

    def __init__(
        self,
        message: str,
        command: Sequence[str],
        returncode: Optional[int] = None,
        os_error: Optional[OSError] = None,
    ):
        super().__init__(message, code="tool_invocation")
        self.command = list(command)
        self.returncode = returncode
        self.os_error = os_error

    @property
    def command_line(self) -> str:
        return " ".join(self.command)


class IdentityMismatch(NixDeployError):
    """The machine id declared by the configuration differs from the local one."""

    def __init__(self, expected: str, actual: str):
        super().__init__(
            f"Skip deployment because the expected machine id '{expected}' "
            f"is not equal to the actual machine id '{actual}'",
            code="identity_mismatch",
        )
        self.expected = expected
        self.actual = actual


class IdentityReadError(NixDeployError):
    """The local machine id could not be read."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Can not read file '{path}': {reason}", code="identity_read")
        self.path = path


class FilesystemError(NixDeployError):
    """State directory or GC root manipulation failed."""

    def __init__(self, message: str, path: str):
        super().__init__(message, code="filesystem")
        self.path = path


class ConfigurationError(NixDeployError):
    """Configuration error."""
    pass
