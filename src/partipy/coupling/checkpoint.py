"""Checkpointing of solver state for implicit coupling.

In an implicit coupling scheme, a time window is repeated until the peer reports
convergence. Each repetition must start from the solver state at the beginning of the
window, which is saved in a :class:`CheckpointState` and handed back on rollback.

The :class:`CheckpointController` is a small state machine::

    IDLE --save--> WINDOW_OPEN --advance--> AWAITING_DECISION
                        ^                      |        |
                        +-------restore--------+        +--commit--> IDLE

Any other sequence raises a
:class:`~partipy.coupling.errors.ProtocolViolation`. The number of repetitions of a
window is not bounded here; that is a matter of the peer's configuration.

"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

import numpy as np

import partipy as pa
from partipy.coupling.actions import Action
from partipy.coupling.errors import (
    InvalidCheckpointSequence,
    NoCheckpointSaved,
    ProtocolViolation,
)

if TYPE_CHECKING:
    from partipy.coupling.protocol import CouplingPeer, PartitionedSolver

__all__ = ["CheckpointState", "CheckpointStatus", "CheckpointController"]

module_sections = ["checkpoint"]
logger = logging.getLogger(__name__)


def _clone(solution: Any) -> Any:
    """Independent copy of a solution, arrays are copied without going through
    deepcopy."""
    if isinstance(solution, np.ndarray):
        return solution.copy()
    return copy.deepcopy(solution)


@dataclass(frozen=True)
class CheckpointState:
    """Solver state at the start of a coupling window.

    The solution is cloned on capture and again on each restore, so that neither the
    solver nor repeated rollbacks can alter the saved state.

    """

    solution: Any
    """Clone of the snapshot returned by the solver's ``current_state``."""

    time: Optional[float] = None
    """Local simulation time at the start of the window. None if the time is not
    managed by the controller."""

    time_index: Optional[int] = None
    """Local time index at the start of the window."""

    @classmethod
    def capture(
        cls,
        solver: PartitionedSolver,
        time_manager: Optional[pa.TimeManager] = None,
    ) -> CheckpointState:
        """Take a checkpoint of a solver and, if given, of its time manager."""
        solution = _clone(solver.current_state())
        if time_manager is None:
            return cls(solution=solution)
        return cls(
            solution=solution,
            time=time_manager.time,
            time_index=time_manager.time_index,
        )

    def apply(
        self,
        solver: PartitionedSolver,
        time_manager: Optional[pa.TimeManager] = None,
    ) -> None:
        """Put the saved state back into a solver and its time manager."""
        solver.restore_state(_clone(self.solution))
        if time_manager is not None and self.time is not None:
            time_manager.reset_time(self.time, self.time_index)


class CheckpointStatus(Enum):
    IDLE = "idle"
    """No window is open, no checkpoint is held."""

    WINDOW_OPEN = "window_open"
    """A checkpoint is held and the solver iterates within the window."""

    AWAITING_DECISION = "awaiting_decision"
    """The peer advanced; the window is either repeated or committed next."""

    def __str__(self):
        return self.value


class CheckpointController:
    """Drives saving and restoring of solver state on behalf of the peer.

    The controller exclusively owns the checkpoint between :meth:`save` and the
    matching :meth:`commit`.

    Parameters:
        peer: The coupling peer, queried for the checkpoint actions.
        solver: The local solver, see
            :class:`~partipy.coupling.protocol.PartitionedSolver`.
        time_manager: Local time of the solver. If given, time and time index are
            part of the checkpoint.

    """

    def __init__(
        self,
        peer: CouplingPeer,
        solver: PartitionedSolver,
        time_manager: Optional[pa.TimeManager] = None,
    ) -> None:
        self._peer = peer
        self.solver = solver
        self.time_manager = time_manager

        self.status = CheckpointStatus.IDLE
        """Current state of the save/restore protocol."""

        self._checkpoint: Optional[CheckpointState] = None

        self.iteration = 0
        """Sub-iteration of the current window, starting at 1 when the window opens."""
        self.num_saves = 0
        self.num_restores = 0
        self.num_commits = 0

    @property
    def has_checkpoint(self) -> bool:
        return self._checkpoint is not None

    def requires_write(self) -> bool:
        """Whether the peer asks for a checkpoint to be saved."""
        return self._peer.is_action_required(Action.WRITE_CHECKPOINT)

    def requires_read(self) -> bool:
        """Whether the peer asks to roll back to the checkpoint."""
        return self._peer.is_action_required(Action.READ_CHECKPOINT)

    @pa.time_logger(sections=module_sections)
    def save(self) -> None:
        """Save the solver state at the start of a window.

        Raises:
            InvalidCheckpointSequence: If a window is already open.
            ProtocolViolation: If the previous window awaits a commit.

        """
        if self.status == CheckpointStatus.WINDOW_OPEN:
            raise InvalidCheckpointSequence(
                "A checkpoint is already held for the open window."
            )
        if self.status == CheckpointStatus.AWAITING_DECISION and not (
            self.requires_read()
        ):
            raise ProtocolViolation(
                "The window converged and must be committed before saving."
            )

        self._checkpoint = CheckpointState.capture(self.solver, self.time_manager)
        if self.requires_write():
            self._peer.mark_action_fulfilled(Action.WRITE_CHECKPOINT)

        self.status = CheckpointStatus.WINDOW_OPEN
        self.iteration = 1
        self.num_saves += 1
        logger.debug(f"Saved checkpoint at time {self._checkpoint.time}.")

    def await_decision(self, window_ended: bool = True) -> None:
        """Register that the peer advanced within the open window.

        Without an open window (explicit coupling), nothing happens. If the solver
        subcycles, the peer advances several times within a window; the window stays
        open until the advance that reaches its end.

        Parameters:
            window_ended: Whether the advance reached the end of the window, or the
                peer asks for a rollback.

        Raises:
            ProtocolViolation: If the previous decision was not acted upon.

        """
        if self.status == CheckpointStatus.WINDOW_OPEN:
            if window_ended:
                self.status = CheckpointStatus.AWAITING_DECISION
        elif self.status == CheckpointStatus.AWAITING_DECISION:
            raise ProtocolViolation(
                "Advanced twice without restoring or committing the window."
            )

    @pa.time_logger(sections=module_sections)
    def restore(self) -> None:
        """Roll the solver back to the start of the window for another iteration.

        Raises:
            NoCheckpointSaved: If no checkpoint is held.
            ProtocolViolation: If the peer has not advanced since the window opened,
                or if it did not ask for a rollback.

        """
        if self._checkpoint is None:
            raise NoCheckpointSaved("No checkpoint has been saved to restore from.")
        if self.status != CheckpointStatus.AWAITING_DECISION:
            raise ProtocolViolation("Cannot restore before the peer has advanced.")
        if not self.requires_read():
            raise ProtocolViolation("The peer did not request a checkpoint read.")

        self._checkpoint.apply(self.solver, self.time_manager)
        self._peer.mark_action_fulfilled(Action.READ_CHECKPOINT)

        self.status = CheckpointStatus.WINDOW_OPEN
        self.iteration += 1
        self.num_restores += 1
        logger.debug(
            f"Restored checkpoint at time {self._checkpoint.time}, "
            f"iteration {self.iteration} of the window."
        )

    def commit(self) -> None:
        """Accept the converged window and discard the checkpoint.

        Raises:
            ProtocolViolation: If the peer has not advanced since the window opened,
                or if it asks for a rollback.

        """
        if self.status != CheckpointStatus.AWAITING_DECISION:
            raise ProtocolViolation("Cannot commit before the peer has advanced.")
        if self.requires_read():
            raise ProtocolViolation(
                "The window did not converge, the checkpoint must be restored."
            )

        logger.debug(f"Window converged after {self.iteration} iterations.")
        self._checkpoint = None
        self.status = CheckpointStatus.IDLE
        self.num_commits += 1

    def __repr__(self) -> str:
        return (
            f"Checkpoint controller in state {self.status}, "
            f"{self.num_saves} saves, {self.num_restores} restores, "
            f"{self.num_commits} commits"
        )
