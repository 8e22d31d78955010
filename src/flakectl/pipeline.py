"""The default provisioning pipeline and its state machine."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from .bootstrap import (
    DirectoryProvisioner,
    EnvironmentConfigurator,
    RootlessRuntimeEnsurer,
    StorageLocationVerifier,
)
from .launcher import ImageBuilderLauncher
from .logging import StatusLogger

LOGGER = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Progress of a pipeline run."""

    IDLE = "idle"
    PROVISIONED = "provisioned"
    LAUNCHING = "launching"


@dataclass(slots=True)
class ProvisioningPipeline:
    """Run the provisioning steps in their fixed order, then enter the session.

    Every step is a precondition for the next one; the first fatal error
    propagates and leaves the pipeline in the last state it reached.
    """

    directories: DirectoryProvisioner
    environment: EnvironmentConfigurator
    runtime: RootlessRuntimeEnsurer
    verifier: StorageLocationVerifier
    builder: ImageBuilderLauncher
    logger: StatusLogger
    state: PipelineState = PipelineState.IDLE
    history: list[PipelineState] = field(default_factory=list)

    def provision(self) -> None:
        """Bring the host to the PROVISIONED state."""
        self.directories.ensure()
        self.environment.apply()
        self.runtime.ensure()
        self.verifier.verify()
        self._transition(PipelineState.PROVISIONED)

    def run(self) -> None:
        """Provision, build and hand over to the interactive session."""
        self.logger.info("Entering Nix flake environment in one shot...")
        self.provision()
        self.builder.build_and_enter(
            before_launch=lambda: self._transition(PipelineState.LAUNCHING)
        )

    def _transition(self, state: PipelineState) -> None:
        LOGGER.debug("pipeline %s -> %s", self.state.value, state.value)
        self.history.append(state)
        self.state = state


__all__ = ["PipelineState", "ProvisioningPipeline"]
