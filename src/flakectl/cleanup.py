"""Best-effort removal of every side effect a provisioning run leaves behind.

Cleanup never aborts: each step runs through :class:`BestEffortExecutor`,
which records a ``(step, outcome, detail)`` triple whatever happens. A resource
that is already gone counts as success, so the whole sequence can be repeated
any number of times, including on a machine that was never provisioned.
"""
from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .config import AppConfig
from .errors import FlakectlError
from .logging import StatusLogger
from .providers.docker import DockerProvider
from .providers.systemd import SystemdProvider

LOGGER = logging.getLogger(__name__)

DIR_MODE = 0o755
FILE_MODE = 0o644


class StepOutcome(str, Enum):
    """Result of one cleanup step."""

    REMOVED = "removed"
    ABSENT = "absent"
    DONE = "done"
    WARNING = "warning"
    SKIPPED = "skipped"

    @property
    def is_warning(self) -> bool:
        """Return ``True`` when the step left something behind."""
        return self is StepOutcome.WARNING


StepFn = Callable[[], tuple[StepOutcome, str]]


@dataclass(slots=True, frozen=True)
class StepRecord:
    """Outcome of a single named step."""

    name: str
    outcome: StepOutcome
    detail: str


@dataclass(slots=True, frozen=True)
class CleanupReport:
    """Ordered outcome list of a cleanup run. Cleanup as a whole always succeeds."""

    steps: tuple[StepRecord, ...]

    @property
    def warnings(self) -> list[StepRecord]:
        """Return the steps that left residue behind."""
        return [step for step in self.steps if step.outcome.is_warning]

    def outcome(self, name: str) -> StepOutcome:
        """Return the outcome recorded for step *name*."""
        for step in self.steps:
            if step.name == name:
                return step.outcome
        raise KeyError(name)


@dataclass(slots=True)
class BestEffortExecutor:
    """Run steps, log their outcome and never let a failure escape."""

    logger: StatusLogger
    records: list[StepRecord] = field(default_factory=list)

    def run(self, name: str, step: StepFn) -> StepRecord:
        """Execute *step* and record its outcome under *name*."""
        try:
            outcome, detail = step()
        except (FlakectlError, OSError) as exc:
            LOGGER.debug("cleanup step %s failed", name, exc_info=True)
            outcome, detail = StepOutcome.WARNING, f"{name} failed: {exc}"
        record = StepRecord(name=name, outcome=outcome, detail=detail)
        self.records.append(record)
        self._log(record)
        return record

    def report(self) -> CleanupReport:
        """Return everything recorded so far."""
        return CleanupReport(steps=tuple(self.records))

    def _log(self, record: StepRecord) -> None:
        if record.outcome is StepOutcome.WARNING:
            self.logger.warning(record.detail)
        elif record.outcome is StepOutcome.SKIPPED:
            self.logger.info(record.detail)
        else:
            self.logger.success(record.detail)


def normalize_permissions(root: Path) -> None:
    """Make everything below *root* owner-writable so it can be deleted.

    Directories become 0755 and files 0644. Symlinks are left alone and
    individual failures are ignored. A symlinked *root* is not followed.
    """
    if root.is_symlink():
        return
    _chmod_quietly(root, DIR_MODE)
    for current, dirnames, filenames in os.walk(root):
        base = Path(current)
        for name in dirnames:
            path = base / name
            if not path.is_symlink():
                _chmod_quietly(path, DIR_MODE)
        for name in filenames:
            path = base / name
            if not path.is_symlink():
                _chmod_quietly(path, FILE_MODE)


def _chmod_quietly(path: Path, mode: int) -> None:
    try:
        path.chmod(mode)
    except OSError as exc:
        LOGGER.debug("chmod %o %s ignored: %s", mode, path, exc)


@dataclass(slots=True)
class CleanupOrchestrator:
    """Undo the service, image and directory side effects of provisioning."""

    config: AppConfig
    systemd: SystemdProvider
    docker: DockerProvider
    logger: StatusLogger

    def cleanup_all(self) -> CleanupReport:
        """Run every cleanup step in order and return the outcome list."""
        executor = BestEffortExecutor(self.logger)
        self.logger.info("Performing complete cleanup of all side effects...")

        self.logger.info("Cleaning up Docker service...")
        executor.run("service-stop", self._stop_service)
        executor.run("service-disable", self._disable_service)
        executor.run("unit-file", self._remove_unit_file)
        executor.run("daemon-reload", self._reload)

        self.logger.info("Cleaning up Docker data...")
        executor.run("image", self._remove_image)
        executor.run("prune", self._prune)
        executor.run("data-dir", self._remove_data_dir)
        executor.run("temp-dir", self._remove_temp_dir)

        self.logger.info("Cleaning up goinfre directories...")
        executor.run("redirect-root", self._remove_redirect_root)

        report = executor.report()
        if report.warnings:
            self.logger.warning(
                f"Cleanup finished with {len(report.warnings)} warning(s); "
                "remaining files are listed above"
            )
        else:
            self.logger.success("Complete cleanup finished!")
            self.logger.info("All side effects have been removed from the system.")
        return report

    # -- service --------------------------------------------------------
    def _stop_service(self) -> tuple[StepOutcome, str]:
        if not self.systemd.is_active():
            return StepOutcome.ABSENT, "Docker service already stopped"
        self.logger.info("Stopping Docker service...")
        if self.systemd.stop():
            return StepOutcome.DONE, "Docker service stopped"
        return StepOutcome.WARNING, "Docker service could not be stopped"

    def _disable_service(self) -> tuple[StepOutcome, str]:
        if not self.systemd.is_enabled():
            return StepOutcome.ABSENT, "Docker service already disabled"
        self.logger.info("Disabling Docker service...")
        if self.systemd.disable():
            return StepOutcome.DONE, "Docker service disabled"
        return StepOutcome.WARNING, "Docker service could not be disabled"

    def _remove_unit_file(self) -> tuple[StepOutcome, str]:
        unit = self.systemd.unit_path()
        if self.systemd.remove_unit():
            return StepOutcome.REMOVED, f"Removed Docker service file: {unit}"
        return StepOutcome.ABSENT, f"Docker service file already absent: {unit}"

    def _reload(self) -> tuple[StepOutcome, str]:
        self.systemd.reload()
        return StepOutcome.DONE, "systemd user manager reloaded"

    # -- engine ---------------------------------------------------------
    def _remove_image(self) -> tuple[StepOutcome, str]:
        name = self.config.image_name
        if not self.docker.available():
            return StepOutcome.SKIPPED, "Docker is not installed, skipping image removal"
        if not self.docker.image_exists(name):
            return StepOutcome.ABSENT, f"Docker image already absent: {name}"
        self.logger.info(f"Removing Docker image: {name}")
        result = self.docker.remove_image(name)
        if not result.ok:
            return StepOutcome.WARNING, f"Could not remove Docker image {name}: {result.message()}"
        return StepOutcome.REMOVED, f"Removed Docker image: {name}"

    def _prune(self) -> tuple[StepOutcome, str]:
        if not self.docker.available():
            return StepOutcome.SKIPPED, "Docker is not installed, skipping prune"
        if not self.docker.is_ready():
            return StepOutcome.SKIPPED, "Docker daemon not reachable, skipping prune"
        self.logger.info("Cleaning up unused Docker resources...")
        result = self.docker.prune()
        if not result.ok:
            return StepOutcome.WARNING, f"docker system prune failed: {result.message()}"
        return StepOutcome.DONE, "Unused Docker resources pruned"

    # -- directories ----------------------------------------------------
    def _unlink_symlink(self, path: Path, label: str) -> tuple[StepOutcome, str]:
        self.logger.info(f"Removing {label} symlink: {path}")
        path.unlink()
        return StepOutcome.REMOVED, f"Removed {label} symlink: {path}"

    def _remove_data_dir(self) -> tuple[StepOutcome, str]:
        path = self.config.data_dir
        if path.is_symlink():
            return self._unlink_symlink(path, "Docker data directory")
        if not path.exists():
            return StepOutcome.ABSENT, f"Docker data directory already absent: {path}"
        self.logger.info(f"Removing Docker data directory: {path}")
        self.logger.info("Fixing permissions for Docker data cleanup...")
        normalize_permissions(path)
        try:
            shutil.rmtree(path)
        except OSError as exc:
            LOGGER.debug("rmtree %s failed: %s", path, exc)
            self.logger.warning("Some files could not be removed due to permissions")
            self.logger.info("Attempting to remove what we can...")
            self._remove_subdirectories(path)
        if path.exists():
            return StepOutcome.WARNING, f"Docker data directory only partially removed: {path}"
        return StepOutcome.REMOVED, f"Removed Docker data directory: {path}"

    def _remove_subdirectories(self, path: Path) -> None:
        for child in sorted(path.iterdir()):
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child, ignore_errors=True)
        try:
            path.rmdir()
        except OSError as exc:
            LOGGER.debug("rmdir %s failed: %s", path, exc)

    def _remove_temp_dir(self) -> tuple[StepOutcome, str]:
        path = self.config.temp_dir
        if path.is_symlink():
            return self._unlink_symlink(path, "Docker temp directory")
        if not path.exists():
            return StepOutcome.ABSENT, f"Docker temp directory already absent: {path}"
        self.logger.info(f"Removing Docker temp directory: {path}")
        shutil.rmtree(path, ignore_errors=True)
        if path.exists():
            return StepOutcome.WARNING, f"Docker temp directory only partially removed: {path}"
        return StepOutcome.REMOVED, f"Removed Docker temp directory: {path}"

    def _remove_redirect_root(self) -> tuple[StepOutcome, str]:
        path = self.config.redirect_root
        if not path.exists():
            return StepOutcome.ABSENT, f"Goinfre directory already absent: {path}"
        remaining = sorted(path.iterdir())
        if remaining:
            self.logger.info("Remaining contents:")
            for entry in remaining:
                suffix = "/" if entry.is_dir() and not entry.is_symlink() else ""
                self.logger.plain(f"  {entry.name}{suffix}")
            return StepOutcome.WARNING, f"Goinfre directory not empty, keeping: {path}"
        path.rmdir()
        return StepOutcome.REMOVED, f"Removed empty goinfre directory: {path}"


__all__ = [
    "BestEffortExecutor",
    "CleanupOrchestrator",
    "CleanupReport",
    "StepOutcome",
    "StepRecord",
    "normalize_permissions",
]
