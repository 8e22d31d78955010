"""Bring the engine to "rootless, running, storing data under goinfre".

:class:`RootlessRuntimeEnsurer` reconciles whatever state earlier runs left
behind (engine not installed, installed with default storage, service
stopped or half-configured) into a running user service whose data root sits
under the redirect root. Every step is safe to repeat:

* the storage check short-circuits when the daemon already uses the redirect
  root;
* the rootless install only runs while the service is not yet enabled;
* the unit file is a pure function of the configuration and is rewritten on
  every pass;
* ``daemon-reload``/``enable``/``start`` are idempotent in systemd.
"""
from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..errors import ConfigMismatchError, DockerError, InstallError, PreconditionError
from ..polling import poll_until

if TYPE_CHECKING:
    from ..commands import CommandRunner
    from ..config import AppConfig
    from ..logging import StatusLogger
    from ..providers.docker import DockerProvider
    from ..providers.systemd import SystemdProvider

LOGGER = logging.getLogger(__name__)

UNIT_SEARCH_PATH = (
    "/usr/bin:/sbin:/usr/sbin:/usr/local/sbin:/usr/local/bin:/bin:/usr/games:"
    "/usr/local/games:/snap/bin"
)
RESTART_SEC = 2
START_LIMIT_BURST = 3
START_LIMIT_INTERVAL = "60s"


def unit_context(config: AppConfig) -> dict[str, object]:
    """Return the template context for the engine unit file."""
    return {
        "search_path": UNIT_SEARCH_PATH,
        "redirect_root": str(config.redirect_root),
        "temp_dir": str(config.temp_dir),
        "exec_start": config.binaries.dockerd_rootless,
        "restart_sec": RESTART_SEC,
        "start_limit_burst": START_LIMIT_BURST,
        "start_limit_interval": START_LIMIT_INTERVAL,
    }


@dataclass(slots=True)
class StorageLocationVerifier:
    """Check that the daemon reports a data root containing the redirect marker."""

    docker: DockerProvider
    marker: str
    logger: StatusLogger

    def matches(self) -> bool:
        """Quietly report whether the data root is already redirected."""
        try:
            return self.marker in self.docker.data_root()
        except DockerError as exc:
            LOGGER.debug("data root query failed: %s", exc)
            return False

    def verify(self) -> str:
        """Return the data root, or raise :class:`ConfigMismatchError`."""
        self.logger.info(f"Verifying Docker is using {self.marker} storage...")
        try:
            data_root = self.docker.data_root()
        except DockerError as exc:
            raise ConfigMismatchError(f"Failed to get Docker system info: {exc}") from exc
        if self.marker not in data_root:
            raise ConfigMismatchError(
                f"Docker is not using {self.marker} storage: {data_root or '<empty>'}",
                data_root=data_root,
            )
        self.logger.success(f"Docker root directory: {data_root}")
        return data_root


@dataclass(slots=True)
class RootlessRuntimeEnsurer:
    """Reconcile the rootless engine service onto the redirected storage."""

    config: AppConfig
    systemd: SystemdProvider
    docker: DockerProvider
    runner: CommandRunner
    verifier: StorageLocationVerifier
    logger: StatusLogger
    geteuid: Callable[[], int] = os.geteuid
    sleep: Callable[[float], None] = time.sleep

    def ensure(self) -> bool:
        """Converge the engine; return ``False`` when nothing had to change."""
        self.logger.info("Ensuring rootless Docker is configured...")
        if self.verifier.matches():
            self.logger.success(f"Docker is already using {self.config.redirect_marker} storage")
            return False

        setup_tool = self._check_preconditions()

        if self.systemd.is_active():
            self.logger.info("Stopping running Docker service before reconfiguring...")
            self.systemd.stop()

        if not self.systemd.is_enabled():
            self._install(setup_tool)
            # The setup tool starts the daemon on default storage; ``start`` below
            # would then be a no-op.
            if self.systemd.is_active():
                self.systemd.stop()

        self.logger.info(
            f"Configuring Docker service for {self.config.redirect_marker} storage..."
        )
        self.systemd.render_unit(unit_context(self.config))
        self.systemd.reload()
        self.systemd.enable()
        self.systemd.start()

        self._wait_until_ready()
        self.logger.success("Rootless Docker configured successfully")
        return True

    # ------------------------------------------------------------------
    def _check_preconditions(self) -> str:
        if self.geteuid() == 0:
            raise PreconditionError("This command must not be run as root")
        if not self.docker.available():
            raise PreconditionError("Docker is not installed")
        setup_tool = self.runner.which(self.config.binaries.rootless_setup)
        if setup_tool is None:
            raise PreconditionError(f"{self.config.binaries.rootless_setup} not found")
        return setup_tool

    def _install(self, setup_tool: str) -> None:
        self.logger.info("Installing rootless Docker...")
        result = self.runner.run([setup_tool, "install"])
        if not result.ok:
            raise InstallError(
                f"Failed to install rootless Docker (exit {result.returncode}): "
                f"{result.message()}"
            )

    def _wait_until_ready(self) -> int:
        readiness = self.config.readiness
        self.logger.info("Waiting for Docker to become ready...")
        return poll_until(
            self.docker.is_ready,
            attempts=readiness.attempts,
            interval=readiness.interval,
            sleep=self.sleep,
            description="Docker readiness",
        )


__all__ = [
    "RootlessRuntimeEnsurer",
    "StorageLocationVerifier",
    "unit_context",
]
