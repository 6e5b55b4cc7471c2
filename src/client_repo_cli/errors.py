"""Exceptions raised by the provisioning modules.

The CLI layer is the only place these are turned into panels and exit codes.
"""

from typing import Optional


class ProvisionError(Exception):
    """Base class for failures that stop the provisioning sequence."""

    def __init__(self, message: str, recovery: Optional[list[str]] = None):
        super().__init__(message)
        self.recovery = recovery or []


class InvalidDomainError(ProvisionError):
    pass


class GhCommandError(ProvisionError):
    """A `gh` or `git` invocation exited non-zero."""

    def __init__(self, cmd: list[str], returncode: int, stderr: str = "", recovery: Optional[list[str]] = None):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr or ""
        super().__init__(f"{' '.join(cmd)} exited with {returncode}: {first_line(stderr)}", recovery)


class NoInstallerError(ProvisionError):
    """No supported package manager was found for a missing tool."""


class RemoteTimeoutError(ProvisionError):
    """Remote state did not converge within the allotted attempts."""


def first_line(text: Optional[str]) -> str:
    text = (text or "").strip()
    if not text:
        return "no error output"
    return text.splitlines()[0]


class UserAborted(ProvisionError):
    """The user declined to continue; not a failure."""


class WorkflowFailedError(ProvisionError):
    """A workflow run completed without success."""
