"""Provisioning steps that bring the host to a usable rootless engine."""
from __future__ import annotations

from .environment import EngineEnvironment, EnvironmentConfigurator, socket_uri
from .filesystem import (
    DirectoryAction,
    DirectoryPlan,
    DirectoryProvisioner,
    DirectorySpec,
    apply_directory_plan,
    plan_directories,
)
from .rootless import RootlessRuntimeEnsurer, StorageLocationVerifier, unit_context

__all__ = [
    # filesystem helpers
    "DirectoryAction",
    "DirectoryPlan",
    "DirectoryProvisioner",
    "DirectorySpec",
    "apply_directory_plan",
    "plan_directories",
    # environment helpers
    "EngineEnvironment",
    "EnvironmentConfigurator",
    "socket_uri",
    # engine reconciliation
    "RootlessRuntimeEnsurer",
    "StorageLocationVerifier",
    "unit_context",
]
