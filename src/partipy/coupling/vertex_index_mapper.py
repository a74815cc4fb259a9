"""Interface meshes and the mapping between local entities and peer vertices.

A participating solver identifies the coupled part of its boundary by local entity ids,
e.g. the indices of sub-control-volume faces on the interface. The peer knows these
points only as vertices with ids it assigns itself when the mesh is defined. The
:class:`VertexIndexMapper` keeps both numberings and translates between them.

"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Hashable, Iterable, Optional

import numpy as np

import partipy as pa
from partipy.coupling.errors import (
    DuplicateMesh,
    ProtocolViolation,
    UnknownEntity,
    UnknownMesh,
    UnknownVertex,
)

if TYPE_CHECKING:
    from partipy.coupling.protocol import CouplingPeer

__all__ = ["InterfaceMesh", "VertexIndexMapper"]

module_sections = ["mesh"]
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InterfaceMesh:
    """A named set of coupling vertices, immutable after registration."""

    name: str
    """Name of the mesh, as known to the peer."""

    coordinates: np.ndarray
    """``shape=(num_vertices, nd)``

    Vertex coordinates, in the order in which they were handed to the peer.

    """

    vertex_ids: np.ndarray
    """``shape=(num_vertices,)``

    Ids the peer assigned to the vertices, in the order of :attr:`coordinates`.

    """

    def __post_init__(self) -> None:
        coordinates = np.array(self.coordinates, dtype=float)
        vertex_ids = np.array(self.vertex_ids, dtype=int)
        if coordinates.ndim != 2 or coordinates.shape[0] != vertex_ids.size:
            raise ValueError(
                f"Mesh {self.name}: Expected one row of coordinates per vertex id."
            )
        coordinates.setflags(write=False)
        vertex_ids.setflags(write=False)
        # Frozen dataclass, bypass the generated __setattr__.
        object.__setattr__(self, "coordinates", coordinates)
        object.__setattr__(self, "vertex_ids", vertex_ids)

    @property
    def nd(self) -> int:
        """Geometric dimension of the vertex coordinates."""
        return self.coordinates.shape[1]

    @property
    def num_vertices(self) -> int:
        """Number of coupling vertices."""
        return self.vertex_ids.size

    def __repr__(self) -> str:
        return (
            f"InterfaceMesh '{self.name}' with {self.num_vertices} vertices "
            f"in {self.nd} dimensions"
        )


class VertexIndexMapper:
    """Bijection between local entity ids and peer vertex ids, per interface mesh.

    Parameters:
        peer: The coupling peer that assigns the vertex ids.

    """

    def __init__(self, peer: CouplingPeer) -> None:
        self._peer = peer

        self._meshes: dict[str, InterfaceMesh] = {}
        """Registered meshes, by name."""

        self._to_peer: dict[str, dict[Hashable, int]] = {}
        """Per mesh, map from local entity id to peer vertex id."""

        self._to_local: dict[str, dict[int, Hashable]] = {}
        """Per mesh, map from peer vertex id to local entity id."""

        self._positions: dict[str, dict[int, int]] = {}
        """Per mesh, position of a peer vertex id in the ordered vertex sequence."""

    @pa.time_logger(sections=module_sections)
    def register_vertices(
        self,
        mesh_name: str,
        coordinates: pa.CoordinateArray,
        local_ids: Iterable[Hashable],
        nd: Optional[int] = None,
    ) -> np.ndarray:
        """Define an interface mesh at the peer and record the id pairing.

        Parameters:
            mesh_name: Name of the mesh. Each name can be registered once.
            coordinates: Coordinates of the coupling vertices, one row per vertex.
                A flat sequence of ``num_vertices * nd`` values is accepted if ``nd``
                is given.
            local_ids: Local entity ids, in the order of ``coordinates``.
            nd: Geometric dimension. Only needed for flat coordinate sequences.

        Raises:
            DuplicateMesh: If ``mesh_name`` is already registered.
            ValueError: If the coordinates are malformed, if their number differs
                from the number of local ids, or if local ids are repeated.
            ProtocolViolation: If the peer does not return one unique vertex id per
                coordinate.

        Returns:
            The vertex ids produced by the peer, in the order of ``coordinates``.

        """
        if mesh_name in self._meshes:
            raise DuplicateMesh(f"Interface mesh {mesh_name} is already registered.")

        points = self._as_points(coordinates, nd)
        ids = self._as_id_list(local_ids)
        if len(ids) != points.shape[0]:
            raise ValueError(
                f"Mesh {mesh_name}: Got {points.shape[0]} coordinates but "
                f"{len(ids)} local ids."
            )
        if len(set(ids)) != len(ids):
            raise ValueError(f"Mesh {mesh_name}: Local entity ids must be unique.")

        vertex_ids = np.asarray(self._peer.define_mesh(mesh_name, points), dtype=int)
        if vertex_ids.size != len(ids):
            raise ProtocolViolation(
                f"Peer returned {vertex_ids.size} vertex ids for {len(ids)} "
                f"vertices on mesh {mesh_name}."
            )
        if np.unique(vertex_ids).size != vertex_ids.size:
            raise ProtocolViolation(
                f"Peer returned repeated vertex ids for mesh {mesh_name}."
            )

        mesh = InterfaceMesh(name=mesh_name, coordinates=points, vertex_ids=vertex_ids)
        peer_ids = vertex_ids.tolist()
        self._meshes[mesh_name] = mesh
        self._to_peer[mesh_name] = dict(zip(ids, peer_ids))
        self._to_local[mesh_name] = dict(zip(peer_ids, ids))
        self._positions[mesh_name] = {vid: i for i, vid in enumerate(peer_ids)}

        logger.info(f"Registered {mesh}.")
        return mesh.vertex_ids

    def to_peer_id(self, local_id: Hashable, mesh_name: Optional[str] = None) -> int:
        """Translate a local entity id to the peer vertex id.

        Raises:
            UnknownEntity: If the entity is not coupled on the mesh.
            UnknownMesh: If the mesh cannot be resolved, see :meth:`mesh`.

        """
        name = self.mesh(mesh_name).name
        try:
            return self._to_peer[name][local_id]
        except KeyError:
            raise UnknownEntity(
                f"Local entity {local_id} is not coupled on mesh {name}."
            ) from None

    def to_local_id(self, peer_id: int, mesh_name: Optional[str] = None) -> Hashable:
        """Translate a peer vertex id to the local entity id.

        Raises:
            UnknownVertex: If the peer did not assign the id on the mesh.
            UnknownMesh: If the mesh cannot be resolved, see :meth:`mesh`.

        """
        name = self.mesh(mesh_name).name
        try:
            vertex_id = int(peer_id)
        except (TypeError, ValueError, OverflowError):
            vertex_id = None
        # Non-integral ids are not truncated to a neighboring vertex.
        if vertex_id is None or vertex_id != peer_id:
            raise UnknownVertex(f"Vertex id {peer_id} is not an integer.")
        try:
            return self._to_local[name][vertex_id]
        except KeyError:
            raise UnknownVertex(
                f"Vertex {peer_id} was not assigned on mesh {name}."
            ) from None

    def peer_ids(
        self, local_ids: Iterable[Hashable], mesh_name: Optional[str] = None
    ) -> np.ndarray:
        """Vectorized version of :meth:`to_peer_id`."""
        return np.array(
            [self.to_peer_id(i, mesh_name) for i in self._as_id_list(local_ids)],
            dtype=int,
        )

    def position(self, local_id: Hashable, mesh_name: Optional[str] = None) -> int:
        """Position of the vertex of a local entity in the ordered vertex sequence.

        The translation goes through the peer vertex id.

        """
        name = self.mesh(mesh_name).name
        return self._positions[name][self.to_peer_id(local_id, name)]

    def is_coupled(self, local_id: Hashable, mesh_name: Optional[str] = None) -> bool:
        """Whether a local entity is coupled.

        The query never raises. Without ``mesh_name``, all registered meshes are
        searched.

        """
        try:
            if mesh_name is None:
                return any(local_id in m for m in self._to_peer.values())
            return local_id in self._to_peer.get(mesh_name, {})
        except TypeError:
            # Unhashable ids cannot be coupled.
            return False

    def mesh(self, mesh_name: Optional[str] = None) -> InterfaceMesh:
        """Get a registered interface mesh.

        Parameters:
            mesh_name: Name of the mesh. May be omitted if exactly one mesh is
                registered.

        Raises:
            UnknownMesh: If no mesh of that name is registered, or if the name is
                omitted and the number of registered meshes is not one.

        """
        if mesh_name is None:
            if len(self._meshes) == 1:
                return next(iter(self._meshes.values()))
            elif len(self._meshes) == 0:
                raise UnknownMesh("No interface mesh is registered.")
            raise UnknownMesh(
                f"Mesh name required, registered meshes are {self.mesh_names}."
            )
        try:
            return self._meshes[mesh_name]
        except KeyError:
            raise UnknownMesh(
                f"Interface mesh {mesh_name} is not registered."
            ) from None

    @property
    def mesh_names(self) -> list[str]:
        """Names of the registered meshes, in order of registration."""
        return list(self._meshes)

    def local_ids(self, mesh_name: Optional[str] = None) -> list[Hashable]:
        """Local entity ids of a mesh, in vertex order."""
        name = self.mesh(mesh_name).name
        return list(self._to_peer[name])

    def num_vertices(self, mesh_name: Optional[str] = None) -> int:
        return self.mesh(mesh_name).num_vertices

    def __contains__(self, mesh_name: str) -> bool:
        return mesh_name in self._meshes

    def __repr__(self) -> str:
        s = f"Vertex index mapper with {len(self._meshes)} interface meshes"
        for mesh in self._meshes.values():
            s += f"\n  {mesh}"
        return s

    @staticmethod
    def _as_points(coordinates: pa.CoordinateArray, nd: Optional[int]) -> np.ndarray:
        points = np.asarray(coordinates, dtype=float)
        if points.ndim == 1:
            if nd is None:
                raise ValueError("Flat coordinate sequences require the dimension nd.")
            if points.size % nd != 0:
                raise ValueError(
                    f"Length {points.size} of coordinates is not a multiple of {nd}."
                )
            points = points.reshape((-1, nd))
        elif points.ndim != 2:
            raise ValueError("Expected coordinates with one row per vertex.")
        elif nd is not None and points.shape[1] != nd:
            raise ValueError(f"Expected coordinates in {nd} dimensions.")
        return points

    @staticmethod
    def _as_id_list(local_ids: Iterable[Hashable]) -> list[Hashable]:
        if isinstance(local_ids, np.ndarray):
            return local_ids.tolist()
        return list(local_ids)
