"""Tests of the coupling session: lifecycle, data exchange and the window protocol.

The session is tested against the in-process peers of
:mod:`partipy.applications.test_utils.peers`, which record the calls they receive.
"""

import numpy as np
import pytest

import partipy as pa
from partipy.applications.test_utils.peers import ArraySolver, EchoPeer, ScriptedPeer
from partipy.coupling.checkpoint import CheckpointStatus

COORDS = np.array([[0.0, 1.0], [0.5, 1.0], [1.0, 1.0]])
FACES = [4, 9, 14]


def _session(peer=None, **params) -> pa.CouplingSession:
    peer = peer if peer is not None else ScriptedPeer()
    return pa.CouplingSession(peer, ArraySolver(), params)


def _ready_session(peer=None, **params) -> pa.CouplingSession:
    """Announced session with one mesh, writing temperature and reading heat flux."""
    session = _session(peer, **params)
    session.announce("SolidEnergy")
    session.register_mesh(
        "SolidEnergyMesh",
        COORDS,
        FACES,
        write_data=[pa.TEMPERATURE],
        read_data=[pa.HEAT_FLUX],
    )
    return session


class TestLifecycle:
    def test_announce(self):
        peer = ScriptedPeer()
        session = _session(peer)
        session.announce("SolidEnergy", "config.xml", rank=1, size=2)
        assert session.state == pa.SessionState.ANNOUNCED
        assert peer.participant == "SolidEnergy"
        assert (session.rank, session.size) == (1, 2)
        assert session.config_source == "config.xml"

    def test_announce_twice(self):
        session = _session()
        session.announce("SolidEnergy")
        with pytest.raises(pa.ProtocolViolation) as excinfo:
            session.announce("SolidEnergy")
        assert "already announced" in str(excinfo.value)

    @pytest.mark.parametrize("rank, size", [(-1, 1), (1, 1), (0, 0)])
    def test_invalid_rank(self, rank, size):
        with pytest.raises(ValueError):
            _session().announce("SolidEnergy", rank=rank, size=size)

    @pytest.mark.parametrize(
        "call",
        [
            lambda s: s.register_mesh("Mesh", COORDS, FACES),
            lambda s: s.initialize(),
            lambda s: s.exchange_and_advance(1.0),
        ],
    )
    def test_calls_before_announce(self, call):
        with pytest.raises(pa.NotAnnounced):
            call(_session())

    def test_register_after_initialize(self):
        session = _ready_session()
        session.initialize()
        with pytest.raises(pa.ProtocolViolation) as excinfo:
            session.register_mesh("OtherMesh", COORDS, FACES)
        assert "before initialize()" in str(excinfo.value)

    def test_initialize_twice(self):
        session = _ready_session()
        session.initialize()
        with pytest.raises(pa.ProtocolViolation):
            session.initialize()

    def test_exchange_before_initialize(self):
        session = _ready_session()
        with pytest.raises(pa.ProtocolViolation) as excinfo:
            session.exchange_and_advance(1.0)
        assert "must be initialized first" in str(excinfo.value)

    def test_is_coupling_ongoing_is_false_before_initialize(self):
        session = _ready_session()
        assert not session.is_coupling_ongoing()
        session.initialize()
        assert session.is_coupling_ongoing()

    def test_finalize_is_idempotent(self):
        peer = ScriptedPeer()
        session = _ready_session(peer)
        session.initialize()
        session.finalize()
        session.finalize()
        assert peer.calls.count("finalize") == 1
        assert session.state == pa.SessionState.FINALIZED
        assert not session.is_coupling_ongoing()

    def test_finalize_after_failed_setup(self):
        peer = ScriptedPeer()
        session = _ready_session(peer)
        session.finalize()
        assert peer.calls.count("finalize") == 1

    def test_finalize_before_announce(self):
        peer = ScriptedPeer()
        session = _session(peer)
        session.finalize()
        assert "finalize" not in peer.calls

    def test_calls_after_finalize(self):
        session = _ready_session()
        session.initialize()
        session.finalize()
        with pytest.raises(pa.ProtocolViolation) as excinfo:
            session.exchange_and_advance(1.0)
        assert "finalized" in str(excinfo.value)


class TestInitialize:
    def test_returns_first_step(self):
        session = _ready_session(ScriptedPeer(window_size=0.5))
        assert session.initialize(local_dt=0.1) == 0.5
        assert session.state == pa.SessionState.INITIALIZED

    def test_default_proposal_from_time_manager(self):
        time_manager = pa.TimeManager(schedule=[0, 10], dt_init=2.0)
        session = _ready_session(
            ScriptedPeer(window_size=1.0), time_manager=time_manager
        )
        # The peer constrains the first step.
        assert session.initialize() == 1.0

    @pytest.mark.parametrize("window_size", [0.0, -1.0])
    def test_handshake_rejected(self, window_size):
        session = _ready_session(ScriptedPeer(window_size=window_size))
        with pytest.raises(pa.HandshakeFailed):
            session.initialize()
        assert session.state == pa.SessionState.ANNOUNCED

    def test_dimension_mismatch_of_mesh(self):
        session = _ready_session(ScriptedPeer(dimensions=3))
        with pytest.raises(pa.DimensionMismatch) as excinfo:
            session.initialize()
        assert "works in [2] dimensions, the peer in 3" in str(excinfo.value)

    def test_dimension_mismatch_of_solver(self):
        session = _ready_session(ScriptedPeer(), dimension=3)
        with pytest.raises(pa.DimensionMismatch):
            session.initialize()

    def test_initial_data(self):
        peer = ScriptedPeer(initial_data=True)
        session = _ready_session(peer)
        session.field(pa.TEMPERATURE).set_raw([1.0, 2.0, 3.0])
        session.initialize()

        assert peer.calls.index("write Temperature") < peer.calls.index(
            "fulfilled write-initial-data"
        )
        assert peer.calls.index("fulfilled write-initial-data") < peer.calls.index(
            "initialize_data"
        )
        assert peer.calls.index("initialize_data") < peer.calls.index("read Heat-Flux")
        np.testing.assert_array_equal(
            peer.data[("SolidEnergyMesh", pa.TEMPERATURE)], [1.0, 2.0, 3.0]
        )

    def test_no_initial_data_written_unless_required(self):
        peer = ScriptedPeer()
        session = _ready_session(peer)
        session.initialize()
        assert "write Temperature" not in peer.calls
        assert "initialize_data" in peer.calls


class TestFields:
    def test_fields_from_params(self):
        meshes = {"Mesh": {"write_data": [pa.PRESSURE], "read_data": [pa.VELOCITY]}}
        session = _session(meshes=meshes)
        session.announce("Darcy")
        session.register_mesh("Mesh", COORDS, FACES)
        assert [f.name for f in session.write_fields] == [pa.PRESSURE]
        assert [f.name for f in session.read_fields] == [pa.VELOCITY]
        assert len(session.fields) == 2

    def test_unknown_field(self):
        session = _ready_session()
        with pytest.raises(pa.UnknownField) as excinfo:
            session.field(pa.PRESSURE)
        assert "No field Pressure on mesh SolidEnergyMesh." == str(excinfo.value)

    def test_duplicate_field(self):
        session = _ready_session()
        with pytest.raises(ValueError):
            session.add_field(pa.TEMPERATURE, "SolidEnergyMesh", pa.READ)

    def test_repeated_field_names_leave_no_mesh(self):
        peer = ScriptedPeer()
        session = _session(peer)
        session.announce("SolidEnergy")
        with pytest.raises(ValueError) as excinfo:
            session.register_mesh(
                "SolidEnergyMesh",
                COORDS,
                FACES,
                write_data=[pa.TEMPERATURE],
                read_data=[pa.TEMPERATURE],
            )
        assert "given more than once" in str(excinfo.value)
        assert session.mapper.mesh_names == []
        assert session.fields == []
        assert "define_mesh" not in peer.calls

        # A corrected registration succeeds.
        session.register_mesh(
            "SolidEnergyMesh",
            COORDS,
            FACES,
            write_data=[pa.TEMPERATURE],
            read_data=[pa.HEAT_FLUX],
        )
        assert len(session.fields) == 2

    @pytest.mark.parametrize("write_data", [["T", "T"], ["T", "Q", "T"]])
    def test_repeated_written_field(self, write_data):
        session = _session()
        session.announce("SolidEnergy")
        with pytest.raises(ValueError):
            session.register_mesh("Mesh", COORDS, FACES, write_data=write_data)
        assert session.mapper.mesh_names == []

    def test_entity_access(self):
        session = _ready_session()
        session.write_on_entity(pa.TEMPERATURE, 9, 4.0)
        assert session.read_on_entity(pa.TEMPERATURE, 9) == 4.0
        assert session.is_coupled_entity(14)
        assert not session.is_coupled_entity(15)
        with pytest.raises(pa.UnknownEntity):
            session.write_on_entity(pa.TEMPERATURE, 15, 4.0)

    def test_selective_exchange(self):
        peer = EchoPeer(echo={pa.HEAT_FLUX: pa.TEMPERATURE})
        session = _ready_session(peer)
        session.initialize()
        session.field(pa.TEMPERATURE).set_raw([1.0, 2.0, 3.0])
        session.write_data(pa.TEMPERATURE)
        np.testing.assert_array_equal(
            session.read_data(pa.HEAT_FLUX), [1.0, 2.0, 3.0]
        )
        with pytest.raises(pa.ProtocolViolation):
            session.write_data(pa.HEAT_FLUX)
        with pytest.raises(pa.ProtocolViolation):
            session.read_data(pa.TEMPERATURE)

    def test_repr(self):
        session = _ready_session()
        s = repr(session)
        assert "participant SolidEnergy (announced), rank 0 of 1" in s
        assert "FieldBuffer 'Heat-Flux' (read)" in s
        assert "Checkpoint controller in state idle" in s


class TestExchangeAndAdvance:
    def test_data_round_trip_through_echo(self):
        peer = EchoPeer(echo={pa.HEAT_FLUX: pa.TEMPERATURE})
        session = _ready_session(peer)
        session.initialize()
        session.write_on_entity(pa.TEMPERATURE, 9, 5.0)

        dt, converged = session.exchange_and_advance(1.0)
        assert (dt, converged) == (1.0, True)
        assert session.read_on_entity(pa.HEAT_FLUX, 9) == 5.0
        assert session.read_on_entity(pa.HEAT_FLUX, 4) == 0.0

    def test_order_of_exchange(self):
        peer = EchoPeer()
        session = _ready_session(peer)
        session.initialize()
        peer.calls.clear()
        session.exchange_and_advance(1.0)
        assert peer.calls == ["write Temperature", "advance", "read Heat-Flux"]

    def test_rejected_window(self):
        peer = ScriptedPeer(convergence=[False, True])
        session = _ready_session(peer)
        dt = session.initialize()

        session.checkpoint.save()
        dt, converged = session.exchange_and_advance(dt)
        assert not converged
        assert session.checkpoint.status == CheckpointStatus.AWAITING_DECISION

        # The decision must be acted upon before the next advance.
        with pytest.raises(pa.ProtocolViolation):
            session.exchange_and_advance(dt)

        session.checkpoint.restore()
        dt, converged = session.exchange_and_advance(dt)
        assert converged
        session.checkpoint.commit()
        assert session.checkpoint.requires_write()

    def test_subcycling_keeps_window_open(self):
        peer = ScriptedPeer(window_size=1.0)
        session = _ready_session(peer, stability_bound=0.5)
        session.initialize()
        session.checkpoint.save()

        dt, converged = session.exchange_and_advance(0.5)
        assert (dt, converged) == (0.5, True)
        assert session.checkpoint.status == CheckpointStatus.WINDOW_OPEN

        session.exchange_and_advance(dt)
        assert session.checkpoint.status == CheckpointStatus.AWAITING_DECISION
        session.checkpoint.commit()

    def test_loop_with_subcycling_and_rejected_windows(self):
        peer = ScriptedPeer(convergence=[True, False], window_size=1.0, num_windows=2)
        session = _ready_session(peer, stability_bound=0.5)
        dt = session.initialize()
        while session.is_coupling_ongoing():
            if session.checkpoint.requires_write():
                session.checkpoint.save()
            dt, converged = session.exchange_and_advance(dt)
            if not converged:
                session.checkpoint.restore()
            elif session.checkpoint.status == CheckpointStatus.AWAITING_DECISION:
                session.checkpoint.commit()
        session.finalize()

        assert session.checkpoint.num_commits == 2
        assert session.checkpoint.num_restores == 1
        # The first step fills the first window, then two steps per iteration.
        np.testing.assert_allclose(peer.advanced_dts, [1.0, 0.5, 0.5, 0.5, 0.5])

    def test_peer_ends_run(self):
        session = _ready_session(ScriptedPeer(suggested_dts=[1.0, 0.0]))
        session.initialize()
        with pytest.raises(pa.InvalidStepSize):
            session.exchange_and_advance(1.0)
