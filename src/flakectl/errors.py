"""Error taxonomy shared by the provisioning pipeline and the CLI."""
from __future__ import annotations

from .exit_codes import ExitCode


class FlakectlError(RuntimeError):
    """Base class for fatal flakectl failures.

    Each subclass carries the exit code the CLI terminates with when the
    error escapes the pipeline.
    """

    exit_code: ExitCode = ExitCode.PROVIDER


class UsageError(FlakectlError):
    """Raised for unrecognised command line arguments."""

    exit_code = ExitCode.USAGE


class PreconditionError(FlakectlError):
    """Raised when the host cannot run a rootless engine (root user, missing tools)."""

    exit_code = ExitCode.ENVIRONMENT


class ProvisionError(FlakectlError):
    """Raised when the redirected directory layout cannot be created."""

    exit_code = ExitCode.ENVIRONMENT


class ConfigMismatchError(FlakectlError):
    """Raised when the engine does not report the redirected data root."""

    exit_code = ExitCode.ENVIRONMENT

    def __init__(self, message: str, *, data_root: str | None = None) -> None:
        super().__init__(message)
        self.data_root = data_root


class InstallError(FlakectlError):
    """Raised when the rootless install procedure fails."""


class ReadinessTimeoutError(FlakectlError, TimeoutError):
    """Raised when a readiness poll exhausts its attempts."""

    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class MissingInputError(FlakectlError):
    """Raised when the image build specification is absent."""

    exit_code = ExitCode.VALIDATION


class DockerError(FlakectlError):
    """Raised when a docker query that must succeed fails."""


class BuildError(FlakectlError):
    """Raised when the image build fails."""


class LaunchError(FlakectlError):
    """Raised when handing the process over to the interactive session fails."""


__all__ = [
    "BuildError",
    "ConfigMismatchError",
    "DockerError",
    "FlakectlError",
    "InstallError",
    "LaunchError",
    "MissingInputError",
    "PreconditionError",
    "ProvisionError",
    "ReadinessTimeoutError",
    "UsageError",
]
