"""Read-only inventory of the side effects flakectl manages."""
from __future__ import annotations

import math
import os
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from .config import AppConfig
from .providers.docker import DockerProvider
from .providers.systemd import SystemdProvider

SideEffectCategory = Literal["unit", "data_dir", "temp_dir", "image"]

PRESENT_MARK = "✓"
ABSENT_MARK = "✗"
SIZE_UNITS = ("K", "M", "G", "T", "P")


def directory_size(root: Path) -> int:
    """Return the apparent size of *root* and everything below it, in bytes.

    Symlinks are counted but not followed; entries that vanish or cannot be
    read while walking are skipped.
    """
    total = 0
    try:
        total += root.lstat().st_size
    except OSError:
        return 0
    for current, dirnames, filenames in os.walk(root):
        base = Path(current)
        for name in [*dirnames, *filenames]:
            try:
                total += (base / name).lstat().st_size
            except OSError:
                continue
    return total


def format_size(size: int) -> str:
    """Format *size* bytes like ``du -h`` does (``512B``, ``4.0K``, ``13M``)."""
    if size < 1024:
        return f"{size}B"
    value = float(size)
    unit = SIZE_UNITS[0]
    for unit in SIZE_UNITS:
        value /= 1024
        if value < 1024:
            break
    if value < 10:
        return f"{math.ceil(value * 10) / 10:.1f}{unit}"
    return f"{math.ceil(value)}{unit}"


@dataclass(slots=True, frozen=True)
class SideEffectEntry:
    """Presence and detail of one managed resource."""

    category: SideEffectCategory
    label: str
    present: bool
    location: str
    detail: str | None = None

    def render(self) -> list[str]:
        """Return the report lines for this entry."""
        if self.category == "unit":
            if not self.present:
                return [f"{ABSENT_MARK} {self.label}: not found"]
            return [f"{PRESENT_MARK} {self.label}: {self.location}", f"  Status: {self.detail}"]
        if self.category == "image":
            if not self.present:
                return [f"{ABSENT_MARK} {self.label}: {self.location} not found"]
            return [f"{PRESENT_MARK} {self.label}: {self.location} ({self.detail})"]
        if not self.present:
            return [f"{ABSENT_MARK} {self.label}: not found"]
        return [f"{PRESENT_MARK} {self.label}: {self.location} ({self.detail})"]


@dataclass(slots=True, frozen=True)
class SideEffectReport:
    """Snapshot of every managed side effect."""

    entries: Sequence[SideEffectEntry]

    def entry(self, category: SideEffectCategory) -> SideEffectEntry | None:
        """Return the entry for *category*, if it was inspected."""
        for entry in self.entries:
            if entry.category == category:
                return entry
        return None

    def render(self) -> str:
        """Return the human-readable report; identical state yields identical text."""
        lines: list[str] = []
        for entry in self.entries:
            lines.extend(entry.render())
        return "\n".join(lines)


@dataclass(slots=True)
class SideEffectReporter:
    """Inspect the unit file, the redirected directories and the image."""

    config: AppConfig
    systemd: SystemdProvider
    docker: DockerProvider

    def report(self) -> SideEffectReport:
        """Collect the current state without changing anything."""
        entries = [
            self._unit_entry(),
            self._directory_entry("data_dir", "Docker data directory", self.config.data_dir),
            self._directory_entry("temp_dir", "Docker temp directory", self.config.temp_dir),
        ]
        if self.docker.available():
            entries.append(self._image_entry())
        return SideEffectReport(entries=tuple(entries))

    def _unit_entry(self) -> SideEffectEntry:
        unit = self.systemd.unit_path()
        if not unit.is_file():
            return SideEffectEntry("unit", "Docker systemd service", False, str(unit))
        status = "enabled" if self.systemd.is_enabled() else "disabled"
        return SideEffectEntry("unit", "Docker systemd service", True, str(unit), status)

    @staticmethod
    def _directory_entry(
        category: SideEffectCategory, label: str, path: Path
    ) -> SideEffectEntry:
        if not path.is_dir():
            return SideEffectEntry(category, label, False, str(path))
        return SideEffectEntry(category, label, True, str(path), format_size(directory_size(path)))

    def _image_entry(self) -> SideEffectEntry:
        name = self.config.image_name
        if not self.docker.image_exists(name):
            return SideEffectEntry("image", "Docker image", False, name)
        size = self.docker.image_size(name) or "unknown size"
        return SideEffectEntry("image", "Docker image", True, name, size)


__all__ = [
    "SideEffectEntry",
    "SideEffectReport",
    "SideEffectReporter",
    "directory_size",
    "format_size",
]
