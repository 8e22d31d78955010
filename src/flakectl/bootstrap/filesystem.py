"""Directory planning helpers and the goinfre directory provisioner."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from ..config import AppConfig
from ..errors import ProvisionError
from ..logging import StatusLogger

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class DirectorySpec:
    """Desired state of one directory."""

    path: Path
    mode: int | None = None


@dataclass(slots=True)
class DirectoryAction:
    """Single change required to satisfy a :class:`DirectorySpec`."""

    kind: Literal["mkdir", "chmod"]
    path: Path
    mode: int | None = None


@dataclass(slots=True)
class DirectoryPlan:
    """Ordered actions plus paths that cannot be satisfied."""

    actions: list[DirectoryAction] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def plan_directories(specs: Iterable[DirectorySpec]) -> DirectoryPlan:
    """Return the actions needed to make every spec hold on disk."""
    plan = DirectoryPlan()
    for spec in specs:
        path = spec.path
        if path.exists() and not path.is_dir():
            plan.warnings.append(f"{path} exists but is not a directory.")
            continue
        if not path.exists():
            plan.actions.append(DirectoryAction(kind="mkdir", path=path, mode=spec.mode))
            continue
        if spec.mode is not None:
            current = path.stat().st_mode & 0o777
            if current != spec.mode:
                plan.actions.append(DirectoryAction(kind="chmod", path=path, mode=spec.mode))
    return plan


def apply_directory_plan(plan: DirectoryPlan) -> None:
    """Apply *plan*; ``OSError`` propagates to the caller."""
    for action in plan.actions:
        if action.kind == "mkdir":
            action.path.mkdir(parents=True, exist_ok=True)
            LOGGER.debug("created %s", action.path)
            if action.mode is not None:
                action.path.chmod(action.mode)
        elif action.kind == "chmod" and action.mode is not None:
            action.path.chmod(action.mode)
            LOGGER.debug("chmod %o %s", action.mode, action.path)


@dataclass(slots=True)
class DirectoryProvisioner:
    """Create the redirected data/temp directories and the systemd user directory."""

    config: AppConfig
    logger: StatusLogger

    def specs(self) -> list[DirectorySpec]:
        """Return the directories every provisioning run requires."""
        return [
            DirectorySpec(path=self.config.data_dir),
            DirectorySpec(path=self.config.temp_dir),
            DirectorySpec(path=self.config.systemd_user_dir),
        ]

    def ensure(self) -> DirectoryPlan:
        """Create missing directories; existing ones are left untouched."""
        self.logger.info("Ensuring goinfre directories exist...")
        try:
            plan = plan_directories(self.specs())
            if plan.warnings:
                raise ProvisionError(" ".join(plan.warnings))
            apply_directory_plan(plan)
        except OSError as exc:
            target = exc.filename or "directory"
            raise ProvisionError(f"Failed to create {target}: {exc.strerror or exc}") from exc
        self.logger.success("Goinfre directories ready")
        return plan


__all__ = [
    "DirectoryAction",
    "DirectoryPlan",
    "DirectoryProvisioner",
    "DirectorySpec",
    "apply_directory_plan",
    "plan_directories",
]
