"""Provider interfaces for flakectl."""
from __future__ import annotations

from .docker import DockerError, DockerProvider
from .systemd import ServiceState, SystemdError, SystemdProvider

__all__ = [
    "DockerError",
    "DockerProvider",
    "ServiceState",
    "SystemdError",
    "SystemdProvider",
]
