"""Buffers for scalar quantities exchanged on an interface mesh."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Hashable, Iterable

import numpy as np

import partipy as pa
from partipy.coupling.errors import ProtocolViolation
from partipy.coupling.vertex_index_mapper import InterfaceMesh, VertexIndexMapper

if TYPE_CHECKING:
    from partipy.coupling.protocol import CouplingPeer

__all__ = ["FieldBuffer"]

module_sections = ["data"]
logger = logging.getLogger(__name__)


class FieldBuffer:
    """Values of one scalar quantity on the vertices of an interface mesh.

    The values are stored in the vertex order of the mesh, which is the order the peer
    understands. Access by local entity id is translated through the
    :class:`~partipy.coupling.vertex_index_mapper.VertexIndexMapper`, hence unmapped
    entities are rejected before any data can reach the peer.

    Buffers are refilled completely by each exchange. No guarantee is given for values
    that were not written since the previous exchange.

    Parameters:
        name: Name of the quantity, e.g. ``pa.TEMPERATURE``.
        mesh: Interface mesh the quantity lives on.
        mapper: Mapper holding the id pairing of ``mesh``.
        direction: ``pa.WRITE`` for data sent to the peer, ``pa.READ`` for data
            received from the peer.

    """

    def __init__(
        self,
        name: str,
        mesh: InterfaceMesh,
        mapper: VertexIndexMapper,
        direction: str = pa.WRITE,
    ) -> None:
        if direction not in (pa.WRITE, pa.READ):
            raise ValueError(f"Unknown direction {direction} of field {name}.")
        self.name = name
        """Name of the quantity."""
        self.mesh = mesh
        """Interface mesh owning the values."""
        self.direction = direction
        """Whether the buffer is written to or read from the peer."""
        self._mapper = mapper
        self._values = np.zeros(mesh.num_vertices)

    @property
    def size(self) -> int:
        """Number of values, equal to the number of vertices of the mesh."""
        return self._values.size

    def write_on_entity(self, local_id: Hashable, value: float) -> None:
        """Store a value at the vertex of a local entity.

        Raises:
            UnknownEntity: If the entity is not coupled on the mesh of the buffer.

        """
        self._values[self._mapper.position(local_id, self.mesh.name)] = value

    def read_on_entity(self, local_id: Hashable) -> float:
        """Value at the vertex of a local entity.

        Raises:
            UnknownEntity: If the entity is not coupled on the mesh of the buffer.

        """
        return float(self._values[self._mapper.position(local_id, self.mesh.name)])

    def write_on_entities(
        self, local_ids: Iterable[Hashable], values: Iterable[float]
    ) -> None:
        """Store values at the vertices of several local entities.

        All entities are translated before any value is stored, so that an unknown
        entity leaves the buffer untouched.

        """
        ids = list(local_ids)
        vals = np.asarray(list(values), dtype=float)
        if vals.size != len(ids):
            raise ValueError(f"Got {vals.size} values for {len(ids)} entities.")
        positions = [self._mapper.position(i, self.mesh.name) for i in ids]
        self._values[positions] = vals

    def read_on_entities(self, local_ids: Iterable[Hashable]) -> np.ndarray:
        """Values at the vertices of several local entities."""
        positions = [self._mapper.position(i, self.mesh.name) for i in local_ids]
        return self._values[positions].copy()

    def get_raw(self) -> np.ndarray:
        """Copy of all values, in vertex order of the mesh."""
        return self._values.copy()

    def set_raw(self, values: np.ndarray) -> None:
        """Replace all values, given in vertex order of the mesh.

        Raises:
            ValueError: If the number of values differs from the number of vertices.

        """
        values = np.asarray(values, dtype=float).ravel()
        if values.size != self.size:
            raise ValueError(
                f"Field {self.name} on mesh {self.mesh.name} holds {self.size} "
                f"values, got {values.size}."
            )
        self._values[:] = values

    def fill(self, value: float) -> None:
        self._values[:] = value

    @pa.time_logger(sections=module_sections)
    def push(self, peer: CouplingPeer) -> None:
        """Send all values to the peer."""
        peer.write_block_scalar_data(
            self.name, self.mesh.name, self.mesh.vertex_ids, self.get_raw()
        )
        logger.debug(f"Wrote {self.name} on {self.mesh.name}.")

    @pa.time_logger(sections=module_sections)
    def pull(self, peer: CouplingPeer) -> None:
        """Receive all values from the peer.

        Raises:
            ProtocolViolation: If the peer does not return one value per vertex.

        """
        values = np.asarray(
            peer.read_block_scalar_data(
                self.name, self.mesh.name, self.mesh.vertex_ids
            ),
            dtype=float,
        ).ravel()
        if values.size != self.size:
            raise ProtocolViolation(
                f"Peer returned {values.size} values of {self.name} for "
                f"{self.size} vertices of mesh {self.mesh.name}."
            )
        self._values[:] = values
        logger.debug(f"Read {self.name} on {self.mesh.name}.")

    def __repr__(self) -> str:
        return (
            f"FieldBuffer '{self.name}' ({self.direction}) on mesh "
            f"{self.mesh.name} with {self.size} values"
        )
