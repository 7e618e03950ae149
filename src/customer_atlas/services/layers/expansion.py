"""State machine for a pending cluster expansion."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ExpansionState(str, Enum):
    IDLE = "idle"
    CLUSTER_CLICKED = "cluster_clicked"
    LEAVES_RESOLVED = "leaves_resolved"
    DISPLAYED = "displayed"


VALID_TRANSITIONS: dict[ExpansionState, frozenset[ExpansionState]] = {
    ExpansionState.IDLE: frozenset({ExpansionState.CLUSTER_CLICKED}),
    ExpansionState.CLUSTER_CLICKED: frozenset({ExpansionState.LEAVES_RESOLVED, ExpansionState.IDLE}),
    ExpansionState.LEAVES_RESOLVED: frozenset({ExpansionState.DISPLAYED, ExpansionState.IDLE}),
    # a new click on a displayed list starts over
    ExpansionState.DISPLAYED: frozenset({ExpansionState.IDLE, ExpansionState.CLUSTER_CLICKED}),
}


class InvalidTransitionError(RuntimeError):
    pass


class ClusterExpansion:
    """Tracks one cluster click through ``Idle -> ClusterClicked -> LeavesResolved -> Displayed``.

    Failing to resolve leaves returns the machine to ``Idle`` and logs the
    error instead of raising.
    """

    def __init__(self) -> None:
        self.state = ExpansionState.IDLE
        self.cluster_id: Optional[int] = None
        self.leaves: list[dict] = []
        self.last_error: Optional[Exception] = None

    def _move(self, target: ExpansionState) -> None:
        if target not in VALID_TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"Cannot move cluster expansion from {self.state.value} to {target.value}.")
        self.state = target

    def click(self, cluster_id: int) -> None:
        if self.state is ExpansionState.CLUSTER_CLICKED or self.state is ExpansionState.LEAVES_RESOLVED:
            logger.debug(f"Abandoning expansion of cluster {self.cluster_id} for cluster {cluster_id}")
            self.state = ExpansionState.IDLE
        self._move(ExpansionState.CLUSTER_CLICKED)
        self.cluster_id = cluster_id
        self.leaves = []
        self.last_error = None

    def resolve(self, leaves: list[dict]) -> None:
        self._move(ExpansionState.LEAVES_RESOLVED)
        self.leaves = list(leaves)

    def fail(self, error: Exception) -> None:
        logger.error(f"Error getting cluster leaves for cluster {self.cluster_id}: {error}")
        self._move(ExpansionState.IDLE)
        self.last_error = error
        self.cluster_id = None
        self.leaves = []

    def display(self) -> list[dict]:
        self._move(ExpansionState.DISPLAYED)
        return list(self.leaves)

    def reset(self) -> None:
        self.state = ExpansionState.IDLE
        self.cluster_id = None
        self.leaves = []
