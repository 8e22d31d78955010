"""Systemd provider for the per-user engine service unit."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..commands import CommandResult, CommandRunner
from ..errors import FlakectlError
from ..templates import TemplateEngine

LOGGER = logging.getLogger(__name__)

UNIT_TEMPLATE = "systemd/docker.service.j2"


class SystemdError(FlakectlError):
    """Raised when systemd operations fail."""


class ServiceState(str, Enum):
    """Lifecycle of the managed user service as reported by systemd."""

    ABSENT = "absent"
    DISABLED = "disabled"
    STOPPED = "stopped"
    ENABLED = "enabled"
    RUNNING = "running"


@dataclass(slots=True)
class SystemdProvider:
    """Render and manage the engine's ``systemctl --user`` service unit."""

    templates: TemplateEngine
    runner: CommandRunner
    unit_dir: Path
    service_name: str = "docker"
    systemctl_bin: str = "systemctl"

    def unit_name(self) -> str:
        """Return the systemd unit name."""
        return f"{self.service_name}.service"

    def unit_path(self) -> Path:
        """Return the full path for the unit file."""
        return self.unit_dir / self.unit_name()

    def render_unit(self, context: Mapping[str, object]) -> bool:
        """Render the unit file from *context*, overwriting any previous copy."""
        return self.templates.render_to_path(UNIT_TEMPLATE, self.unit_path(), context, mode=0o644)

    def is_active(self) -> bool:
        """Return ``True`` when the service is currently running."""
        return self._systemctl("is-active", "--quiet", self.service_name, check=False).ok

    def is_enabled(self) -> bool:
        """Return ``True`` when the service starts with the user session."""
        return self._systemctl("is-enabled", "--quiet", self.service_name, check=False).ok

    def enabled_state(self) -> str | None:
        """Return the raw ``is-enabled`` state, or ``None`` when systemd does not know it."""
        result = self._systemctl("is-enabled", self.service_name, check=False)
        state = result.stdout.strip()
        return state or None

    def state(self) -> ServiceState:
        """Derive the :class:`ServiceState` from systemd and the unit file."""
        if self.is_active():
            return ServiceState.RUNNING
        enabled = self.enabled_state()
        if enabled == "enabled":
            return ServiceState.ENABLED
        if enabled == "disabled":
            return ServiceState.DISABLED
        if enabled in (None, "not-found") and not self.unit_path().exists():
            return ServiceState.ABSENT
        return ServiceState.STOPPED

    def reload(self) -> CommandResult:
        """Reload the user manager so unit file changes take effect."""
        return self._systemctl("daemon-reload")

    def enable(self) -> CommandResult:
        """Enable the unit."""
        return self._systemctl("enable", self.service_name)

    def start(self) -> CommandResult:
        """Start the unit."""
        return self._systemctl("start", self.service_name)

    def stop(self) -> bool:
        """Stop the unit; failures are logged and reported as ``False``."""
        return self._best_effort("stop")

    def disable(self) -> bool:
        """Disable the unit; failures are logged and reported as ``False``."""
        return self._best_effort("disable")

    def remove_unit(self) -> bool:
        """Remove the unit file. Returns ``False`` when it was already absent."""
        try:
            self.unit_path().unlink()
        except FileNotFoundError:
            return False
        return True

    # ------------------------------------------------------------------
    def _best_effort(self, command: str) -> bool:
        result = self._systemctl(command, self.service_name, check=False)
        if not result.ok:
            LOGGER.debug(
                "%s --user %s %s ignored (exit %s): %s",
                self.systemctl_bin,
                command,
                self.service_name,
                result.returncode,
                result.message(),
            )
        return result.ok

    def _systemctl(self, command: str, *args: str, check: bool = True) -> CommandResult:
        result = self.runner.run([self.systemctl_bin, "--user", command, *args])
        if check and not result.ok:
            raise SystemdError(
                f"{self.systemctl_bin} --user {command} failed "
                f"(exit {result.returncode}): {result.message()}"
            )
        return result


__all__ = ["ServiceState", "SystemdError", "SystemdProvider"]
