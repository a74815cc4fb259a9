"""Contains the protocols of the two collaborators of a coupling session: The coupling
peer, which mediates the exchange with the partner participant, and the local solver,
whose state is checkpointed.

Neither is implemented in this package beyond the adapter
:class:`~partipy.coupling.precice_peer.PreciceParticipant`, the reference solver
:class:`~partipy.applications.heat_conduction.HeatConductionSolver` and the test
doubles in :mod:`partipy.applications.test_utils.peers`. The protocols serve as type
hints and as documentation of the calls the session makes.

"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import numpy as np

from partipy.coupling.actions import Action
from partipy.models.convergence_check import ConvergenceStatus


@runtime_checkable
class CouplingPeer(Protocol):
    """The external coupling service, seen from one participant.

    Every call blocks until the peer has answered. Timeouts are the responsibility
    of the peer.

    """

    def configure(
        self, participant_name: str, config_source: str, rank: int, size: int
    ) -> None:
        """Announce the participant and hand over the coupling configuration."""

    def get_dimensions(self) -> int:
        """Geometric dimension of the coupling configuration."""

    def define_mesh(self, mesh_name: str, coordinates: np.ndarray) -> np.ndarray:
        """Define the vertices of an interface mesh.

        Parameters:
            mesh_name: Name of the mesh in the coupling configuration.
            coordinates: ``shape=(num_vertices, nd)``

                Coordinates of the vertices.

        Returns:
            Peer vertex ids, in the order of ``coordinates``.

        """

    def write_block_scalar_data(
        self,
        data_name: str,
        mesh_name: str,
        vertex_ids: np.ndarray,
        values: np.ndarray,
    ) -> None:
        """Write values of a scalar quantity on the given vertices."""

    def read_block_scalar_data(
        self, data_name: str, mesh_name: str, vertex_ids: np.ndarray
    ) -> np.ndarray:
        """Read values of a scalar quantity on the given vertices."""

    def initialize(self) -> float:
        """Complete the handshake with the partner. Returns the first window size.

        A non-positive return value signals that the peer rejected the participant.

        """

    def initialize_data(self) -> None:
        """Exchange initial data, after :attr:`Action.WRITE_INITIAL_DATA`."""

    def advance(self, dt: float) -> float:
        """Exchange data and decide on the window. Returns the suggested step size."""

    def is_action_required(self, action: Action) -> bool:
        """Whether the peer requires the given action from the participant."""

    def mark_action_fulfilled(self, action: Action) -> None:
        """Report that a required action was performed."""

    def is_coupling_ongoing(self) -> bool:
        """Whether the coupled simulation continues."""

    def is_time_window_complete(self) -> bool:
        """Whether the last advance reached the end of the current window.

        False while the participant subcycles within a window.

        """

    def finalize(self) -> None:
        """Close the connection to the partner participant."""


@runtime_checkable
class PartitionedSolver(Protocol):
    """A single-physics solver participating in a partitioned simulation.

    The state snapshot is opaque to the coupling adapter, but it must be a value:
    Mutating the solver after :meth:`current_state` must not alter the snapshot.

    """

    def apply_initial_solution(self) -> None:
        """Set the initial solution of an instationary problem."""

    def current_state(self) -> Any:
        """Return a snapshot of the solution, decoupled from the solver."""

    def restore_state(self, state: Any) -> None:
        """Reset the solution to a snapshot obtained by :meth:`current_state`."""

    def solve(self, dt: float) -> ConvergenceStatus:
        """Solve for the next time level using step size ``dt``."""

    def advance_time_step(self) -> None:
        """Make the current solution the previous time level."""
