"""Exception hierarchy for PR Runner.

Errors raised before a build attempt (checkout, project lookup, scheme
listing) end the whole invocation.  ``BuildFailedError`` is the only error
that feeds the retry/reselect/abort loop, and ``ArtifactNotFoundError`` is
downgraded to a warning by the build runner because the compile itself
succeeded.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pr_runner.xcode.models import BuildErrorReport


class PrRunnerError(Exception):
    """Base class for every error the CLI reports to the operator."""

    def __init__(self, message: str, command: str = "", stderr: str = ""):
        self.command = command
        self.stderr = stderr
        super().__init__(message)


class SettingsError(PrRunnerError):
    """Raised when the settings file cannot be written."""


class CheckoutError(PrRunnerError):
    """Raised when cloning a branch or verifying the checkout fails."""


class NoProjectsError(PrRunnerError):
    """Raised when a checkout contains no buildable project descriptor."""


class NoSchemesError(PrRunnerError):
    """Raised when a project lists zero buildable schemes."""


class ArtifactNotFoundError(PrRunnerError):
    """Raised when the compiled app bundle is missing after a build."""


class BuildFailedError(PrRunnerError):
    """Raised when the toolchain exits non-zero while compiling."""

    def __init__(
        self,
        message: str,
        report: "BuildErrorReport | None" = None,
        exit_code: int = -1,
        stdout: str = "",
        stderr: str = "",
    ):
        self.report = report
        self.exit_code = exit_code
        self.stdout = stdout
        super().__init__(message, stderr=stderr)


class ToolchainError(PrRunnerError):
    """Base class for failures talking to the build toolchain."""


class ToolchainInvocationError(ToolchainError):
    """Raised when a toolchain process cannot be started at all."""


class ToolchainCommandError(ToolchainError):
    """Raised when an auxiliary toolchain command exits non-zero."""


class HostingClientError(PrRunnerError):
    """Raised on network, auth, or HTTP failures against the hosting API."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
