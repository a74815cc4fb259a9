"""The coupling session, the single object a participating solver talks to.

A session owns the interface meshes of the participant, the field buffers exchanged on
them, the checkpoint controller and the time window negotiator. The intended sequence
of calls is

    session = pa.CouplingSession(peer, solver, params)
    session.announce("SolidEnergy", "precice-config.xml", rank, size)
    session.register_mesh("SolidEnergyMesh", coordinates, face_ids)
    dt = session.initialize()
    while session.is_coupling_ongoing():
        if session.checkpoint.requires_write():
            session.checkpoint.save()
        # use incoming data, solve, fill outgoing data
        dt, converged = session.exchange_and_advance(dt)
        if not converged:
            session.checkpoint.restore()
        elif session.checkpoint.status == CheckpointStatus.AWAITING_DECISION:
            # End of the window, not a step within it.
            session.checkpoint.commit()
    session.finalize()

:func:`~partipy.models.run_models.run_coupled_model` implements this loop.

Instead of a process-wide instance, the session is an ordinary object owned by the
driver. Several sessions can coexist, e.g. under test, but each must be used from a
single control flow: All calls block until the peer answers and none is thread safe.

"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Hashable, Iterable, Optional

import numpy as np

import partipy as pa
from partipy.coupling.actions import Action
from partipy.coupling.checkpoint import CheckpointController, CheckpointStatus
from partipy.coupling.errors import (
    DimensionMismatch,
    HandshakeFailed,
    NotAnnounced,
    ProtocolViolation,
    UnknownField,
)
from partipy.coupling.field_buffer import FieldBuffer
from partipy.coupling.time_window import TimeWindowNegotiator
from partipy.coupling.vertex_index_mapper import InterfaceMesh, VertexIndexMapper

if TYPE_CHECKING:
    from partipy.coupling.protocol import CouplingPeer, PartitionedSolver

__all__ = ["SessionState", "CouplingSession"]

module_sections = ["coupling"]
logger = logging.getLogger(__name__)


class SessionState(Enum):
    CREATED = "created"
    ANNOUNCED = "announced"
    INITIALIZED = "initialized"
    FINALIZED = "finalized"

    def __str__(self):
        return self.value


class CouplingSession:
    """Coupling adapter of one participant in a partitioned simulation.

    Parameters:
        peer: The coupling peer, see :class:`~partipy.coupling.protocol.CouplingPeer`.
        solver: The local solver, see
            :class:`~partipy.coupling.protocol.PartitionedSolver`.
        params: Parameters of the session. Recognized keys are

            - ``"time_manager"``: :class:`~partipy.numerics.time_step_control.
              TimeManager` of the solver. If given, its time is part of the
              checkpoints and its time step is the default initial proposal.
            - ``"meshes"``: Dictionary from mesh names to dictionaries with the keys
              ``"write_data"`` and ``"read_data"``, listing the quantity names
              exchanged on the mesh. See :mod:`partipy.utils.read_config`.
            - ``"stability_bound"``: Largest step the solver can take.
            - ``"dimension"``: Geometric dimension of the solver's grid. Compared
              with the peer's dimension at :meth:`initialize`.

    """

    def __init__(
        self,
        peer: CouplingPeer,
        solver: PartitionedSolver,
        params: Optional[dict] = None,
    ) -> None:
        if params is None:
            params = {}

        default_params: dict = {
            "time_manager": None,
            "meshes": {},
            "stability_bound": None,
            "dimension": None,
        }
        default_params.update(params)
        self.params = default_params
        """Dictionary of parameters."""

        self.peer = peer
        """The coupling peer."""
        self.solver = solver
        """The local solver."""
        self.time_manager: Optional[pa.TimeManager] = self.params["time_manager"]
        """Local time of the solver, if managed."""

        self.state = SessionState.CREATED
        """Stage of the session lifecycle."""
        self.participant_name: Optional[str] = None
        self.config_source: Optional[str] = None
        self.rank = 0
        self.size = 1

        self.mapper = VertexIndexMapper(peer)
        """Mapping between local entities and peer vertices of all meshes."""
        self.checkpoint = CheckpointController(peer, solver, self.time_manager)
        """Save/restore protocol of the solver state."""
        self.negotiator = TimeWindowNegotiator(peer, self.params["stability_bound"])
        """Step size negotiation with the peer."""

        self._fields: dict[tuple[str, str], FieldBuffer] = {}
        """Field buffers by (mesh name, data name), in order of registration."""

    # Lifecycle

    @pa.time_logger(sections=module_sections)
    def announce(
        self,
        participant_name: str,
        config_source: str = pa.DEFAULT_CONFIG_SOURCE,
        rank: int = 0,
        size: int = 1,
    ) -> None:
        """Announce the participant to the peer. Must be the first call.

        Parameters:
            participant_name: Name of the participant in the coupling configuration.
            config_source: Configuration of the peer, e.g. a path to a preCICE xml
                file.
            rank: Rank of this process among the processes of the participant.
            size: Number of processes of the participant.

        Raises:
            ProtocolViolation: If the participant was already announced.
            ValueError: If ``rank`` is not in ``range(size)``.

        """
        if self.state != SessionState.CREATED:
            raise ProtocolViolation(
                f"Participant {self.participant_name} is already announced."
            )
        if not 0 <= rank < size:
            raise ValueError(f"Rank {rank} is not valid for {size} processes.")

        self.peer.configure(participant_name, config_source, rank, size)
        self.participant_name = participant_name
        self.config_source = config_source
        self.rank = rank
        self.size = size
        self.state = SessionState.ANNOUNCED
        logger.info(
            f"Announced participant {participant_name} (rank {rank} of {size}) "
            f"with configuration {config_source}."
        )

    @pa.time_logger(sections=module_sections)
    def register_mesh(
        self,
        mesh_name: str,
        coordinates: pa.CoordinateArray,
        local_ids: Iterable[Hashable],
        write_data: Optional[Iterable[str]] = None,
        read_data: Optional[Iterable[str]] = None,
        nd: Optional[int] = None,
    ) -> InterfaceMesh:
        """Register an interface mesh and create the field buffers living on it.

        Parameters:
            mesh_name: Name of the mesh in the coupling configuration.
            coordinates: Coordinates of the coupling vertices, see
                :meth:`~partipy.coupling.vertex_index_mapper.VertexIndexMapper.
                register_vertices`.
            local_ids: Local entity ids, in the order of ``coordinates``.
            write_data: Names of the quantities sent to the peer. Defaults to the
                entry ``"write_data"`` of the mesh in ``params["meshes"]``.
            read_data: Names of the quantities received from the peer. Defaults to
                the entry ``"read_data"`` of the mesh in ``params["meshes"]``.
            nd: Geometric dimension, only needed for flat coordinate sequences.

        Raises:
            NotAnnounced: If called before :meth:`announce`.
            ProtocolViolation: If called after :meth:`initialize`.
            DuplicateMesh: If the mesh is already registered.
            ValueError: If a quantity is listed more than once, also across
                ``write_data`` and ``read_data``. The mesh is not registered then.

        Returns:
            The registered mesh.

        """
        self._require_announced()
        if self.state != SessionState.ANNOUNCED:
            raise ProtocolViolation("Meshes must be registered before initialize().")

        mesh_params = self.params["meshes"].get(mesh_name, {})
        if write_data is None:
            write_data = mesh_params.get("write_data", [])
        if read_data is None:
            read_data = mesh_params.get("read_data", [])
        write_data, read_data = list(write_data), list(read_data)
        # Validate all field names before the mesh reaches the mapper and the peer.
        names = write_data + read_data
        repeated = sorted({name for name in names if names.count(name) > 1})
        if repeated:
            raise ValueError(
                f"Fields {repeated} are given more than once on mesh {mesh_name}."
            )

        self.mapper.register_vertices(mesh_name, coordinates, local_ids, nd=nd)
        mesh = self.mapper.mesh(mesh_name)

        for name in write_data:
            self.add_field(name, mesh_name, pa.WRITE)
        for name in read_data:
            self.add_field(name, mesh_name, pa.READ)
        return mesh

    def add_field(
        self, data_name: str, mesh_name: Optional[str] = None, direction: str = pa.WRITE
    ) -> FieldBuffer:
        """Create a field buffer for a quantity on a registered mesh.

        Raises:
            UnknownMesh: If the mesh is not registered.
            ValueError: If the quantity already has a buffer on the mesh.

        """
        mesh = self.mapper.mesh(mesh_name)
        key = (mesh.name, data_name)
        if key in self._fields:
            raise ValueError(f"Field {data_name} already exists on mesh {mesh.name}.")
        field = FieldBuffer(data_name, mesh, self.mapper, direction)
        self._fields[key] = field
        logger.debug(f"Created {field}.")
        return field

    @pa.time_logger(sections=module_sections)
    def initialize(self, local_dt: Optional[float] = None) -> float:
        """Complete the handshake with the peer and exchange initial data.

        Parameters:
            local_dt: The participant's proposal for the first step. Defaults to the
                time step of the time manager, or to the peer's window if there is no
                time manager.

        Raises:
            NotAnnounced: If called before :meth:`announce`.
            ProtocolViolation: If called twice.
            DimensionMismatch: If the dimension of a mesh, or the dimension given in
                ``params``, differs from the peer's.
            HandshakeFailed: If the peer rejects the participant.

        Returns:
            The accepted size of the first step.

        """
        self._require_announced()
        if self.state == SessionState.INITIALIZED:
            raise ProtocolViolation("The session is already initialized.")

        peer_nd = int(self.peer.get_dimensions())
        local_nd = {self.mapper.mesh(name).nd for name in self.mapper.mesh_names}
        if self.params["dimension"] is not None:
            local_nd.add(int(self.params["dimension"]))
        if any(nd != peer_nd for nd in local_nd):
            raise DimensionMismatch(
                f"Participant {self.participant_name} works in {sorted(local_nd)} "
                f"dimensions, the peer in {peer_nd}."
            )

        peer_dt = self.peer.initialize()
        if peer_dt is None or not peer_dt > 0:
            raise HandshakeFailed(
                f"The peer rejected participant {self.participant_name} "
                f"(window size {peer_dt})."
            )

        if self.peer.is_action_required(Action.WRITE_INITIAL_DATA):
            for field in self.write_fields:
                field.push(self.peer)
            self.peer.mark_action_fulfilled(Action.WRITE_INITIAL_DATA)
            logger.debug("Wrote initial data.")
        self.peer.initialize_data()
        for field in self.read_fields:
            field.pull(self.peer)

        if local_dt is None and self.time_manager is not None:
            local_dt = self.time_manager.dt
        elif local_dt is None:
            local_dt = peer_dt
        dt = self.negotiator.initial(local_dt, peer_dt)

        self.state = SessionState.INITIALIZED
        logger.info(f"Initialized coupling of participant {self.participant_name}.")
        return dt

    def is_coupling_ongoing(self) -> bool:
        """Whether the coupled simulation continues.

        False unless the session is initialized and the peer reports an ongoing run.

        """
        if self.state != SessionState.INITIALIZED:
            return False
        return bool(self.peer.is_coupling_ongoing())

    @pa.time_logger(sections=module_sections)
    def exchange_and_advance(self, proposed_dt: float) -> tuple[float, bool]:
        """Send the outgoing data, advance the peer and receive the incoming data.

        Parameters:
            proposed_dt: The step the participant has computed.

        Raises:
            ProtocolViolation: If the session is not initialized, or if the previous
                window decision has not been acted upon.
            InvalidStepSize: If the peer reports the end of the run or a failure.

        Returns:
            The accepted size of the next step, and whether the window converged. If
            it did not, the checkpoint must be restored before the next iteration.

        """
        self._require_initialized()
        if self.checkpoint.status == CheckpointStatus.AWAITING_DECISION:
            raise ProtocolViolation(
                "The previous window must be restored or committed first."
            )

        for field in self.write_fields:
            field.push(self.peer)
        dt = self.negotiator.accept(proposed_dt)
        self.checkpoint.await_decision(
            self.checkpoint.requires_read() or self.peer.is_time_window_complete()
        )
        for field in self.read_fields:
            field.pull(self.peer)

        converged = not self.checkpoint.requires_read()
        logger.debug(
            f"Advanced by {proposed_dt:.3e}, next step {dt:.3e}, "
            + ("converged." if converged else "not converged.")
        )
        return dt, converged

    @pa.time_logger(sections=module_sections)
    def finalize(self) -> None:
        """Close the coupling. Repeated calls have no effect.

        The peer is finalized if the participant was announced, so that a driver can
        finalize after a failure during setup.

        """
        if self.state == SessionState.FINALIZED:
            logger.debug("Session is already finalized.")
            return
        if self.state != SessionState.CREATED:
            self.peer.finalize()
        self.state = SessionState.FINALIZED
        logger.info(f"Finalized coupling of participant {self.participant_name}.")

    # Data access

    def field(self, data_name: str, mesh_name: Optional[str] = None) -> FieldBuffer:
        """Get the buffer of a quantity.

        Parameters:
            data_name: Name of the quantity.
            mesh_name: Name of the mesh. May be omitted if exactly one mesh is
                registered.

        Raises:
            UnknownMesh: If the mesh cannot be resolved.
            UnknownField: If the quantity has no buffer on the mesh.

        """
        mesh = self.mapper.mesh(mesh_name)
        try:
            return self._fields[(mesh.name, data_name)]
        except KeyError:
            raise UnknownField(
                f"No field {data_name} on mesh {mesh.name}."
            ) from None

    @property
    def fields(self) -> list[FieldBuffer]:
        return list(self._fields.values())

    @property
    def write_fields(self) -> list[FieldBuffer]:
        """Buffers sent to the peer."""
        return [f for f in self._fields.values() if f.direction == pa.WRITE]

    @property
    def read_fields(self) -> list[FieldBuffer]:
        """Buffers received from the peer."""
        return [f for f in self._fields.values() if f.direction == pa.READ]

    def write_on_entity(
        self,
        data_name: str,
        local_id: Hashable,
        value: float,
        mesh_name: Optional[str] = None,
    ) -> None:
        self.field(data_name, mesh_name).write_on_entity(local_id, value)

    def read_on_entity(
        self, data_name: str, local_id: Hashable, mesh_name: Optional[str] = None
    ) -> float:
        return self.field(data_name, mesh_name).read_on_entity(local_id)

    def write_data(self, data_name: str, mesh_name: Optional[str] = None) -> None:
        """Send a single quantity to the peer, outside of :meth:`exchange_and_advance`.

        Raises:
            ProtocolViolation: If the session is not initialized, or if the quantity is
                received rather than sent.

        """
        self._require_initialized()
        field = self.field(data_name, mesh_name)
        if field.direction != pa.WRITE:
            raise ProtocolViolation(f"Field {data_name} is read from the peer.")
        field.push(self.peer)

    def read_data(self, data_name: str, mesh_name: Optional[str] = None) -> np.ndarray:
        """Receive a single quantity from the peer. Returns a copy of the values."""
        self._require_initialized()
        field = self.field(data_name, mesh_name)
        if field.direction != pa.READ:
            raise ProtocolViolation(f"Field {data_name} is written to the peer.")
        field.pull(self.peer)
        return field.get_raw()

    def is_coupled_entity(
        self, local_id: Hashable, mesh_name: Optional[str] = None
    ) -> bool:
        return self.mapper.is_coupled(local_id, mesh_name)

    # Helpers

    def _require_announced(self) -> None:
        if self.state == SessionState.CREATED:
            raise NotAnnounced("The participant must be announced first.")
        if self.state == SessionState.FINALIZED:
            raise ProtocolViolation("The session is finalized.")

    def _require_initialized(self) -> None:
        self._require_announced()
        if self.state != SessionState.INITIALIZED:
            raise ProtocolViolation("The session must be initialized first.")

    def __repr__(self) -> str:
        s = f"Coupling session of participant {self.participant_name} ({self.state})"
        s += f", rank {self.rank} of {self.size}\n"
        for name in self.mapper.mesh_names:
            s += f"{self.mapper.mesh(name)}\n"
            for field in self._fields.values():
                if field.mesh.name == name:
                    s += f"  {field}\n"
        s += f"{self.checkpoint}"
        return s
