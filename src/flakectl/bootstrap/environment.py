"""Redirect variables that point the engine at the goinfre layout."""
from __future__ import annotations

import os
from collections.abc import Callable, Mapping, MutableMapping
from dataclasses import dataclass, field
from pathlib import Path

from ..config import AppConfig
from ..logging import StatusLogger


def socket_uri(uid: int) -> str:
    """Return the rootless engine socket address for *uid*."""
    return f"unix:///run/user/{uid}/docker.sock"


@dataclass(slots=True, frozen=True)
class EngineEnvironment:
    """The three variables every engine invocation must see."""

    docker_host: str
    tmpdir: Path
    xdg_data_home: Path

    def variables(self) -> dict[str, str]:
        """Return the variables as an environment mapping."""
        return {
            "DOCKER_HOST": self.docker_host,
            "TMPDIR": str(self.tmpdir),
            "XDG_DATA_HOME": str(self.xdg_data_home),
        }

    def as_env(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Return a copy of *base* (default: the process environment) with the redirects applied."""
        env = dict(os.environ if base is None else base)
        env.update(self.variables())
        return env


@dataclass(slots=True)
class EnvironmentConfigurator:
    """Compute the redirect variables and export them for child processes."""

    config: AppConfig
    logger: StatusLogger | None = None
    environ: MutableMapping[str, str] = field(default_factory=lambda: os.environ)
    getuid: Callable[[], int] = os.getuid

    def compute(self) -> EngineEnvironment:
        """Return the redirect variables without touching any environment."""
        return EngineEnvironment(
            docker_host=socket_uri(self.getuid()),
            tmpdir=self.config.temp_dir,
            xdg_data_home=self.config.redirect_root,
        )

    def apply(self) -> EngineEnvironment:
        """Export the redirect variables into :attr:`environ` and return them."""
        if self.logger is not None:
            self.logger.info("Setting up Docker environment...")
        engine_env = self.compute()
        self.environ.update(engine_env.variables())
        if self.logger is not None:
            self.logger.success("Docker environment variables set")
        return engine_env


__all__ = ["EngineEnvironment", "EnvironmentConfigurator", "socket_uri"]
