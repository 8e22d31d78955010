"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path

import pytest

from flakectl.cli import RuntimeContext, build_runtime
from flakectl.commands import CommandResult
from flakectl.config import AppConfig, load_config

DEFAULT_DATA_ROOT = "/home/student/.local/share/docker"
FAKE_BIN = "/usr/bin"


class FakeHost:
    """Scripted ``CommandRunner`` that simulates systemctl, docker and the setup tool.

    State transitions follow the real tools closely enough for the
    provisioning and cleanup flows: ``start`` brings the daemon up on the
    redirected data root only when the managed unit file exists, the setup
    tool enables and starts the service on default storage, and every docker
    command that needs the daemon fails while it is stopped.
    """

    def __init__(self, config: AppConfig) -> None:
        """Initialise a host with nothing installed in the user session."""
        self.config = config
        self.docker_installed = True
        self.setuptool_installed = True
        self.active = False
        self.enabled = False
        self.unit_state: str | None = None
        self.data_root = DEFAULT_DATA_ROOT
        self.ready_after = 1
        self.version_calls = 0
        self.install_rc = 0
        self.build_rc = 0
        self.images: dict[str, str] = {}
        self.failures: dict[str, int] = {}
        self.calls: list[tuple[str, ...]] = []
        self.envs: list[Mapping[str, str] | None] = []

    # -- CommandRunner --------------------------------------------------
    def run(
        self,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        capture_output: bool = True,
    ) -> CommandResult:
        """Dispatch *args* to the simulated tool."""
        command = tuple(args)
        self.calls.append(command)
        self.envs.append(env)
        tool = Path(command[0]).name
        if tool == "systemctl":
            return self._systemctl(command)
        if tool == "docker":
            if not self.docker_installed:
                return CommandResult(command, 127, "", "docker: not found")
            return self._docker(command)
        if tool == "dockerd-rootless-setuptool.sh":
            return self._setuptool(command)
        return CommandResult(command, 127, "", f"{tool}: not found")

    def which(self, name: str) -> str | None:
        """Resolve the simulated binaries."""
        if name == "docker" and not self.docker_installed:
            return None
        if name == "dockerd-rootless-setuptool.sh" and not self.setuptool_installed:
            return None
        if name in {"docker", "systemctl", "dockerd-rootless-setuptool.sh"}:
            return f"{FAKE_BIN}/{name}"
        return None

    # -- helpers for assertions ------------------------------------------
    def count(self, *prefix: str) -> int:
        """Return how many calls started with the tool basename and *prefix*."""
        total = 0
        for call in self.calls:
            normalized = (Path(call[0]).name, *call[1:])
            if normalized[: len(prefix)] == prefix:
                total += 1
        return total

    def provisioned(self) -> None:
        """Jump to the state a completed provisioning run leaves behind."""
        self.active = True
        self.enabled = True
        self.data_root = str(self.config.data_dir)

    # -- simulated tools --------------------------------------------------
    def _systemctl(self, command: tuple[str, ...]) -> CommandResult:
        verb = command[2]
        failure = self.failures.get(f"systemctl {verb}")
        if failure is not None:
            return CommandResult(command, failure, "", f"{verb} failed")
        if verb == "is-active":
            return CommandResult(command, 0 if self.active else 3, "", "")
        if verb == "is-enabled":
            quiet = "--quiet" in command
            if self.unit_state is not None and not self.enabled:
                return CommandResult(command, 1, "" if quiet else f"{self.unit_state}\n", "")
            if self.enabled:
                return CommandResult(command, 0, "" if quiet else "enabled\n", "")
            if self.config.unit_file.exists():
                return CommandResult(command, 1, "" if quiet else "disabled\n", "")
            return CommandResult(command, 1, "", "Failed to get unit file state")
        if verb == "daemon-reload":
            return CommandResult(command, 0)
        if verb == "enable":
            self.enabled = True
            return CommandResult(command, 0)
        if verb == "disable":
            self.enabled = False
            return CommandResult(command, 0)
        if verb == "start":
            if not self.active:
                self.active = True
                self.version_calls = 0
                if self.config.unit_file.exists():
                    self.data_root = str(self.config.data_dir)
            return CommandResult(command, 0)
        if verb == "stop":
            self.active = False
            return CommandResult(command, 0)
        return CommandResult(command, 1, "", f"unknown verb {verb}")

    def _docker(self, command: tuple[str, ...]) -> CommandResult:
        args = command[1:]
        if not self.active:
            return CommandResult(command, 1, "", "Cannot connect to the Docker daemon")
        if args[:2] == ("system", "info"):
            return CommandResult(command, 0, f"{self.data_root}\n")
        if args[0] == "version":
            self.version_calls += 1
            return CommandResult(command, 0 if self.version_calls >= self.ready_after else 1)
        if args[0] == "build":
            if self.build_rc == 0:
                self.images[args[2]] = "1.21GB"
            return CommandResult(command, self.build_rc)
        if args[:2] == ("images", "-q"):
            return CommandResult(command, 0, "3f2a1c9d8e7b\n" if args[2] in self.images else "")
        if args[0] == "images":
            size = self.images.get(args[1])
            return CommandResult(command, 0, f"{size}\n" if size else "")
        if args[0] == "rmi":
            if self.images.pop(args[1], None) is None:
                return CommandResult(command, 1, "", "No such image")
            return CommandResult(command, 0)
        if args[:2] == ("system", "prune"):
            self.images.clear()
            return CommandResult(command, 0, "Total reclaimed space: 0B\n")
        return CommandResult(command, 1, "", f"unknown docker command {args}")

    def _setuptool(self, command: tuple[str, ...]) -> CommandResult:
        if command[1:] != ("install",):
            return CommandResult(command, 2, "", "usage")
        if self.install_rc != 0:
            return CommandResult(command, self.install_rc, "", "Missing system requirements")
        self.enabled = True
        self.active = True
        self.data_root = DEFAULT_DATA_ROOT
        self.version_calls = 0
        return CommandResult(command, 0)


class SessionStarted(Exception):
    """Raised by :class:`RecordingLauncher` in place of a process replacement."""


class RecordingLauncher:
    """``SessionLauncher`` that records the handoff instead of exec'ing."""

    def __init__(self, *, returns: bool = False) -> None:
        """Record launches; return to the caller only when *returns* is set."""
        self.returns = returns
        self.launches: list[tuple[list[str], dict[str, str]]] = []

    def launch(self, argv: Sequence[str], env: Mapping[str, str]) -> None:
        """Record *argv* and *env*."""
        self.launches.append((list(argv), dict(env)))
        if not self.returns:
            raise SessionStarted(argv[0])


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """Return an empty home directory."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def config(home: Path) -> AppConfig:
    """Return a configuration rooted in the temporary home directory."""
    return load_config(env={"HOME": str(home)}, overrides={"readiness": {"interval": 0}})


@pytest.fixture
def host(config: AppConfig) -> FakeHost:
    """Return a fresh simulated host."""
    return FakeHost(config)


@pytest.fixture
def launcher() -> RecordingLauncher:
    """Return a launcher that stands in for ``os.execvpe``."""
    return RecordingLauncher()


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """Return a project directory holding a Dockerfile."""
    path = tmp_path / "project"
    path.mkdir()
    (path / "Dockerfile").write_text("FROM nixos/nix\n", encoding="utf-8")
    return path


@pytest.fixture
def sleeps() -> list[float]:
    """Collect the intervals slept by readiness polling."""
    return []


@pytest.fixture
def runtime(
    config: AppConfig,
    host: FakeHost,
    launcher: RecordingLauncher,
    workdir: Path,
    sleeps: list[float],
) -> RuntimeContext:
    """Return a runtime wired to the simulated host."""
    return build_runtime(
        config,
        runner=host,
        launcher=launcher,
        environ={},
        getuid=lambda: 1000,
        geteuid=lambda: 1000,
        sleep=sleeps.append,
        cwd=lambda: workdir,
    )
