"""Deployment state tracking for the TiKV bootstrap.

A deployment moves forward through the bootstrap phases; any phase may
fail, and a failed deployment stays failed. Nothing is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class DeploymentState(Enum):
    """Bootstrap phases, in order."""

    EXTRACTED = "extracted"  # Topology derived from the cluster spec
    VALIDATED = "validated"  # Node counts and fields checked
    PROVISIONED = "provisioned"  # Binaries, directories, configs in place
    STARTED = "started"  # Server processes launched
    CONVERGED = "converged"  # PD quorum formed, TiKV nodes healthy
    VERIFIED = "verified"  # Final health pass succeeded
    FAILED = "failed"


_ORDER = [
    DeploymentState.EXTRACTED,
    DeploymentState.VALIDATED,
    DeploymentState.PROVISIONED,
    DeploymentState.STARTED,
    DeploymentState.CONVERGED,
    DeploymentState.VERIFIED,
]


@dataclass
class StateTransition:
    state: DeploymentState
    at: datetime
    detail: str = ""


@dataclass
class DeploymentTracker:
    """Records the phases one deployment has passed through."""

    cluster_name: str
    history: list[StateTransition] = field(default_factory=list)
    error: str | None = None

    @property
    def state(self) -> DeploymentState | None:
        return self.history[-1].state if self.history else None

    @property
    def failed(self) -> bool:
        return self.state == DeploymentState.FAILED

    @property
    def completed(self) -> bool:
        return self.state == DeploymentState.VERIFIED

    def advance(self, state: DeploymentState, detail: str = "") -> None:
        """Move to a later phase.

        Raises:
            ValueError: If the deployment already failed or the phase is not
                after the current one
        """
        if state == DeploymentState.FAILED:
            self.fail(detail)
            return
        if self.failed:
            raise ValueError(f"deployment of {self.cluster_name} already failed")
        current = self.state
        if current is not None and _ORDER.index(state) <= _ORDER.index(current):
            raise ValueError(f"cannot move from {current.value} to {state.value}")
        self.history.append(StateTransition(state, datetime.now(timezone.utc), detail))

    def fail(self, error: str) -> None:
        if self.failed:
            return
        self.error = error
        self.history.append(
            StateTransition(DeploymentState.FAILED, datetime.now(timezone.utc), error)
        )

    def states(self) -> list[DeploymentState]:
        return [t.state for t in self.history]
