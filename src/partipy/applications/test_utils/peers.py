"""In-process doubles of the coupling peer and of a participating solver.

The doubles implement :class:`~partipy.coupling.protocol.CouplingPeer` and
:class:`~partipy.coupling.protocol.PartitionedSolver` without any partner process, and
record the calls they receive, so that tests can check the order of the protocol.

"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Optional, Sequence

import numpy as np

from partipy.coupling.actions import Action
from partipy.models.convergence_check import ConvergenceStatus


class EchoPeer:
    """Peer which hands back the data written to it.

    Data written under one name is read back under the same name, or under the name
    given in ``echo``, e.g. ``{"Heat-Flux": "Temperature"}`` lets a participant read
    its own temperature as heat flux. Data that was never written reads as zeros.

    Parameters:
        dimensions: Geometric dimension reported to the participant.
        window_size: Window size returned by ``initialize`` and ``advance``.
        num_windows: Number of windows after which the coupling ends. None for no end.
        echo: Map from read names to the written names they echo.

    """

    def __init__(
        self,
        dimensions: int = 2,
        window_size: float = 1.0,
        num_windows: Optional[int] = None,
        echo: Optional[dict[str, str]] = None,
    ) -> None:
        self.dimensions = dimensions
        self.window_size = window_size
        self.num_windows = num_windows
        self.echo = echo or {}

        self.participant: Optional[str] = None
        self.meshes: dict[str, np.ndarray] = {}
        self.data: dict[tuple[str, str], np.ndarray] = {}
        """Written values by (mesh name, data name), indexed by vertex id."""
        self.calls: list[str] = []
        self.num_advances = 0
        self.finalized = False

    def configure(
        self, participant_name: str, config_source: str, rank: int, size: int
    ) -> None:
        self.calls.append("configure")
        self.participant = participant_name

    def get_dimensions(self) -> int:
        return self.dimensions

    def define_mesh(self, mesh_name: str, coordinates: np.ndarray) -> np.ndarray:
        self.calls.append("define_mesh")
        self.meshes[mesh_name] = np.asarray(coordinates)
        # Ids differ from positions, so that tests notice a missing translation.
        return 100 + np.arange(coordinates.shape[0])

    def write_block_scalar_data(
        self,
        data_name: str,
        mesh_name: str,
        vertex_ids: np.ndarray,
        values: np.ndarray,
    ) -> None:
        self.calls.append(f"write {data_name}")
        stored = self.data.setdefault(
            (mesh_name, data_name), np.zeros(self.meshes[mesh_name].shape[0])
        )
        stored[np.asarray(vertex_ids) - 100] = values

    def read_block_scalar_data(
        self, data_name: str, mesh_name: str, vertex_ids: np.ndarray
    ) -> np.ndarray:
        self.calls.append(f"read {data_name}")
        key = (mesh_name, self.echo.get(data_name, data_name))
        stored = self.data.get(key, np.zeros(self.meshes[mesh_name].shape[0]))
        return stored[np.asarray(vertex_ids) - 100].copy()

    def initialize(self) -> float:
        self.calls.append("initialize")
        return self.window_size

    def initialize_data(self) -> None:
        self.calls.append("initialize_data")

    def advance(self, dt: float) -> float:
        self.calls.append("advance")
        self.num_advances += 1
        return self.window_size

    def is_action_required(self, action: Action) -> bool:
        return False

    def mark_action_fulfilled(self, action: Action) -> None:
        self.calls.append(f"fulfilled {action}")

    def is_coupling_ongoing(self) -> bool:
        if self.finalized:
            return False
        return self.num_windows is None or self.num_advances < self.num_windows

    def is_time_window_complete(self) -> bool:
        return True

    def finalize(self) -> None:
        self.calls.append("finalize")
        self.finalized = True


class ScriptedPeer(EchoPeer):
    """Peer with an implicit coupling scheme driven by a script.

    The peer requires a checkpoint at the start of every window. Each advance ends the
    window, unless the participant subcycles, and consumes one entry of
    ``convergence``: A False entry rejects the window, i.e. requires a checkpoint read.
    Once the script is exhausted, every window converges.

    Parameters:
        convergence: Convergence decision for each advance that ends a window.
        suggested_dts: Step sizes returned by ``initialize`` and by consecutive calls
            to ``advance``. The last entry is repeated. Defaults to the remainder of
            the current window.
        window_size: Size of the coupling windows. A participant advancing by less
            subcycles; the window ends once the advanced steps add up to the size.
        num_windows: Number of converged windows after which the coupling ends.
        initial_data: Whether the peer requires initial data.
        **kwargs: Passed to :class:`EchoPeer`.

    """

    def __init__(
        self,
        convergence: Sequence[bool] = (),
        suggested_dts: Sequence[float] = (),
        window_size: float = 1.0,
        num_windows: Optional[int] = None,
        initial_data: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(window_size=window_size, num_windows=num_windows, **kwargs)
        self.convergence = list(convergence)
        self.suggested_dts = list(suggested_dts)

        self.required: dict[Action, bool] = defaultdict(bool)
        self.required[Action.WRITE_CHECKPOINT] = True
        self.required[Action.WRITE_INITIAL_DATA] = initial_data

        self.num_converged_windows = 0
        self.num_rejected_windows = 0
        self.advanced_dts: list[float] = []
        self._window_time = 0.0
        self._window_complete = False

    def initialize(self) -> float:
        self.calls.append("initialize")
        return self.suggested_dts[0] if self.suggested_dts else self.window_size

    def advance(self, dt: float) -> float:
        self.calls.append("advance")
        self.num_advances += 1
        self.advanced_dts.append(dt)

        self._window_time += dt
        self._window_complete = bool(
            self._window_time > self.window_size
            or np.isclose(self._window_time, self.window_size)
        )
        if self._window_complete:
            self._window_time = 0.0
            converged = self.convergence.pop(0) if self.convergence else True
            if converged:
                self.num_converged_windows += 1
                self.required[Action.WRITE_CHECKPOINT] = True
            else:
                self.num_rejected_windows += 1
                self.required[Action.READ_CHECKPOINT] = True

        if not self.suggested_dts:
            # Remainder of the window, as a peer with fixed windows would suggest.
            return self.window_size - self._window_time
        index = min(self.num_advances, len(self.suggested_dts) - 1)
        return self.suggested_dts[index]

    def is_action_required(self, action: Action) -> bool:
        return self.required[action]

    def mark_action_fulfilled(self, action: Action) -> None:
        self.calls.append(f"fulfilled {action}")
        self.required[action] = False

    def is_coupling_ongoing(self) -> bool:
        if self.finalized:
            return False
        return (
            self.num_windows is None or self.num_converged_windows < self.num_windows
        )

    def is_time_window_complete(self) -> bool:
        return self._window_complete


class ArraySolver:
    """Solver double whose state is an array, incremented by each solve.

    Parameters:
        size: Size of the state array.
        status: Convergence status returned by every solve.

    """

    def __init__(
        self, size: int = 3, status: ConvergenceStatus = ConvergenceStatus.CONVERGED
    ) -> None:
        self.state = np.zeros(size)
        self.status = status
        self.calls: list[str] = []
        self.solved_dts: list[float] = []

    def apply_initial_solution(self) -> None:
        self.calls.append("apply_initial_solution")
        self.state[:] = 0.0

    def current_state(self) -> np.ndarray:
        self.calls.append("current_state")
        return self.state

    def restore_state(self, state: np.ndarray) -> None:
        self.calls.append("restore_state")
        self.state = state

    def solve(self, dt: float) -> ConvergenceStatus:
        self.calls.append("solve")
        self.solved_dts.append(dt)
        self.state += dt
        return self.status

    def advance_time_step(self) -> None:
        self.calls.append("advance_time_step")
