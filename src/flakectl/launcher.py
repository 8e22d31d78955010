"""Build the flake image and hand the process over to an interactive session."""
from __future__ import annotations

import logging
import os
import shlex
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .config import AppConfig
from .errors import BuildError, LaunchError, MissingInputError
from .logging import StatusLogger
from .providers.docker import DockerProvider

LOGGER = logging.getLogger(__name__)


class SessionLauncher(Protocol):
    """Replace the current process with *argv*."""

    def launch(self, argv: Sequence[str], env: Mapping[str, str]) -> None: ...


class ExecLauncher:
    """Production launcher backed by :func:`os.execvpe`; returns only on failure."""

    def launch(self, argv: Sequence[str], env: Mapping[str, str]) -> None:
        LOGGER.debug("execvpe: %s", shlex.join(argv))
        try:
            os.execvpe(argv[0], list(argv), dict(env))
        except OSError as exc:
            raise LaunchError(f"Failed to exec {argv[0]}: {exc.strerror or exc}") from exc


@dataclass(slots=True)
class ImageBuilderLauncher:
    """Build the configured image, then enter it with the working directory mounted."""

    config: AppConfig
    docker: DockerProvider
    logger: StatusLogger
    launcher: SessionLauncher = field(default_factory=ExecLauncher)
    cwd: Callable[[], Path] = Path.cwd

    def dockerfile_path(self) -> Path:
        """Return the build specification path, resolved against the working directory."""
        return self.cwd() / self.config.dockerfile

    def build_context(self) -> Path:
        """Return the build context, resolved against the working directory."""
        return self.cwd() / self.config.build_context

    def build(self) -> None:
        """Build the image; the engine's layer cache makes repeats cheap."""
        dockerfile = self.dockerfile_path()
        if not dockerfile.is_file():
            raise MissingInputError(f"Dockerfile not found at {dockerfile}")
        self.logger.info(f"Building Docker image from {dockerfile}...")
        result = self.docker.build(
            self.config.image_name,
            context=self.build_context(),
            dockerfile=dockerfile,
        )
        if not result.ok:
            raise BuildError(f"Failed to build Docker image (exit {result.returncode})")
        self.logger.success("Docker image built successfully")

    def session_argv(self) -> list[str]:
        """Return the argv of the interactive session."""
        return self.docker.run_command(
            self.config.image_name,
            workdir=self.cwd(),
            mount=self.config.workspace_mount,
            shell=self.config.shell,
        )

    def enter(self) -> None:
        """Hand off to the session. Reaching the end of this method is an error."""
        self.logger.info("Entering Nix flake environment...")
        self.logger.success("Entering Nix container with flake support!")
        self.launcher.launch(self.session_argv(), self.docker.environment.as_env())
        raise LaunchError("Failed to enter container")

    def build_and_enter(self, before_launch: Callable[[], None] | None = None) -> None:
        """Build the image and enter it; *before_launch* runs right before the handoff."""
        self.logger.info("Building and entering Nix container...")
        self.build()
        if before_launch is not None:
            before_launch()
        self.enter()


__all__ = ["ExecLauncher", "ImageBuilderLauncher", "SessionLauncher"]
