"""Adapter from the peer protocol of a coupling session onto preCICE.

The adapter targets the version 2 python bindings of preCICE (``pip install
pyprecice``), which identify meshes and data by integer ids and signal checkpointing
through actions. The bindings are an optional dependency; they are imported when a
participant is configured.

"""

from __future__ import annotations

import logging
from typing import Any, Optional

import numpy as np

from partipy.coupling.actions import Action
from partipy.coupling.errors import ProtocolViolation, UnknownMesh

__all__ = ["PreciceParticipant"]

logger = logging.getLogger(__name__)


class PreciceParticipant:
    """Coupling peer backed by a preCICE solver interface.

    Example:
        peer = pa.PreciceParticipant()
        session = pa.CouplingSession(peer, solver)
        session.announce("SolidEnergy", "precice-config.xml")

    """

    def __init__(self) -> None:
        self._precice: Any = None
        self._interface: Any = None
        self._mesh_ids: dict[str, int] = {}
        self._data_ids: dict[tuple[str, str], int] = {}

    @property
    def interface(self) -> Any:
        """The preCICE solver interface.

        Raises:
            ProtocolViolation: If the participant is not configured.

        """
        if self._interface is None:
            raise ProtocolViolation("The preCICE participant is not configured.")
        return self._interface

    def configure(
        self, participant_name: str, config_source: str, rank: int, size: int
    ) -> None:
        import precice

        self._precice = precice
        self._interface = precice.Interface(participant_name, config_source, rank, size)
        logger.info(f"Created preCICE interface for {participant_name}.")

    def get_dimensions(self) -> int:
        return self.interface.get_dimensions()

    def define_mesh(self, mesh_name: str, coordinates: np.ndarray) -> np.ndarray:
        mesh_id = self.interface.get_mesh_id(mesh_name)
        self._mesh_ids[mesh_name] = mesh_id
        return np.asarray(self.interface.set_mesh_vertices(mesh_id, coordinates))

    def write_block_scalar_data(
        self,
        data_name: str,
        mesh_name: str,
        vertex_ids: np.ndarray,
        values: np.ndarray,
    ) -> None:
        self.interface.write_block_scalar_data(
            self._data_id(data_name, mesh_name), vertex_ids, values
        )

    def read_block_scalar_data(
        self, data_name: str, mesh_name: str, vertex_ids: np.ndarray
    ) -> np.ndarray:
        return np.asarray(
            self.interface.read_block_scalar_data(
                self._data_id(data_name, mesh_name), vertex_ids
            )
        )

    def initialize(self) -> float:
        return self.interface.initialize()

    def initialize_data(self) -> None:
        self.interface.initialize_data()

    def advance(self, dt: float) -> float:
        return self.interface.advance(dt)

    def is_action_required(self, action: Action) -> bool:
        return self.interface.is_action_required(self._action_constant(action))

    def mark_action_fulfilled(self, action: Action) -> None:
        self.interface.mark_action_fulfilled(self._action_constant(action))

    def is_coupling_ongoing(self) -> bool:
        return self.interface.is_coupling_ongoing()

    def is_time_window_complete(self) -> bool:
        return self.interface.is_time_window_complete()

    def finalize(self) -> None:
        self.interface.finalize()

    def _data_id(self, data_name: str, mesh_name: str) -> int:
        key = (mesh_name, data_name)
        data_id: Optional[int] = self._data_ids.get(key)
        if data_id is None:
            if mesh_name not in self._mesh_ids:
                raise UnknownMesh(f"Mesh {mesh_name} is not defined at preCICE.")
            data_id = self.interface.get_data_id(data_name, self._mesh_ids[mesh_name])
            self._data_ids[key] = data_id
        return data_id

    def _action_constant(self, action: Action) -> str:
        if action == Action.WRITE_CHECKPOINT:
            return self._precice.action_write_iteration_checkpoint()
        elif action == Action.READ_CHECKPOINT:
            return self._precice.action_read_iteration_checkpoint()
        elif action == Action.WRITE_INITIAL_DATA:
            return self._precice.action_write_initial_data()
        raise ValueError(f"Unknown coupling action {action}.")
