"""Tests of interface meshes and of the mapping between local entities and peer
vertices.

The mapper is tested against the echo peer, which assigns vertex ids starting at 100,
so that positions and vertex ids never coincide.
"""

import numpy as np
import pytest

import partipy as pa
from partipy.applications.test_utils.peers import EchoPeer


@pytest.fixture
def mapper() -> pa.VertexIndexMapper:
    return pa.VertexIndexMapper(EchoPeer())


def _coordinates(num_points: int, nd: int = 2) -> np.ndarray:
    coords = np.zeros((num_points, nd))
    coords[:, 0] = np.arange(num_points)
    return coords


class TestInterfaceMesh:
    def test_arrays_are_read_only_copies(self):
        coords = _coordinates(3)
        ids = np.array([5, 6, 7])
        mesh = pa.InterfaceMesh("Mesh", coords, ids)

        coords[0, 0] = 42
        ids[0] = 42
        assert mesh.coordinates[0, 0] == 0
        assert mesh.vertex_ids[0] == 5
        with pytest.raises(ValueError):
            mesh.coordinates[0, 0] = 1.0
        with pytest.raises(ValueError):
            mesh.vertex_ids[0] = 1

    def test_properties(self):
        mesh = pa.InterfaceMesh("Mesh", _coordinates(4, nd=3), np.arange(4))
        assert mesh.nd == 3
        assert mesh.num_vertices == 4
        assert "4 vertices in 3 dimensions" in repr(mesh)

    def test_shape_mismatch(self):
        with pytest.raises(ValueError) as excinfo:
            pa.InterfaceMesh("Mesh", _coordinates(3), np.arange(2))
        assert "one row of coordinates per vertex id" in str(excinfo.value)


class TestRegistration:
    def test_register_returns_peer_ids(self, mapper):
        vertex_ids = mapper.register_vertices("Mesh", _coordinates(3), [10, 11, 12])
        np.testing.assert_array_equal(vertex_ids, [100, 101, 102])
        assert mapper.mesh_names == ["Mesh"]
        assert "Mesh" in mapper
        assert mapper.num_vertices("Mesh") == 3
        assert mapper.local_ids("Mesh") == [10, 11, 12]

    def test_flat_coordinates(self, mapper):
        mapper.register_vertices("Mesh", [0.0, 1.0, 2.0, 3.0], ["a", "b"], nd=2)
        np.testing.assert_array_equal(
            mapper.mesh("Mesh").coordinates, [[0.0, 1.0], [2.0, 3.0]]
        )

    def test_flat_coordinates_require_dimension(self, mapper):
        with pytest.raises(ValueError) as excinfo:
            mapper.register_vertices("Mesh", [0.0, 1.0, 2.0, 3.0], ["a", "b"])
        assert "require the dimension" in str(excinfo.value)

    def test_flat_coordinates_of_wrong_length(self, mapper):
        with pytest.raises(ValueError) as excinfo:
            mapper.register_vertices("Mesh", [0.0, 1.0, 2.0], ["a", "b"], nd=2)
        assert "not a multiple of 2" in str(excinfo.value)

    def test_duplicate_mesh(self, mapper):
        mapper.register_vertices("Mesh", _coordinates(2), [0, 1])
        with pytest.raises(pa.DuplicateMesh):
            mapper.register_vertices("Mesh", _coordinates(2), [2, 3])
        # The first registration is intact.
        assert mapper.to_peer_id(0, "Mesh") == 100

    def test_length_mismatch(self, mapper):
        with pytest.raises(ValueError) as excinfo:
            mapper.register_vertices("Mesh", _coordinates(3), [0, 1])
        assert "3 coordinates but 2 local ids" in str(excinfo.value)
        assert "Mesh" not in mapper

    def test_repeated_local_ids(self, mapper):
        with pytest.raises(ValueError) as excinfo:
            mapper.register_vertices("Mesh", _coordinates(3), [0, 1, 0])
        assert "must be unique" in str(excinfo.value)

    @pytest.mark.parametrize(
        "peer_ids, msg",
        [([100, 101], "returned 2 vertex ids"), ([7, 7, 8], "repeated vertex ids")],
    )
    def test_invalid_peer_answer(self, peer_ids, msg):
        peer = EchoPeer()
        peer.define_mesh = lambda mesh_name, coordinates: np.array(peer_ids)
        mapper = pa.VertexIndexMapper(peer)
        with pytest.raises(pa.ProtocolViolation) as excinfo:
            mapper.register_vertices("Mesh", _coordinates(3), [0, 1, 2])
        assert msg in str(excinfo.value)


class TestTranslation:
    @pytest.fixture
    def registered(self, mapper) -> pa.VertexIndexMapper:
        mapper.register_vertices("Mesh", _coordinates(3), [7, 3, 5])
        return mapper

    def test_bijection(self, registered):
        for local_id in [7, 3, 5]:
            peer_id = registered.to_peer_id(local_id)
            assert registered.to_local_id(peer_id) == local_id
        for peer_id in [100, 101, 102]:
            assert registered.to_peer_id(registered.to_local_id(peer_id)) == peer_id

    def test_order_of_registration_is_kept(self, registered):
        assert registered.to_peer_id(7) == 100
        assert registered.to_peer_id(3) == 101
        assert registered.position(5) == 2
        np.testing.assert_array_equal(registered.peer_ids([5, 7]), [102, 100])

    def test_unknown_entity(self, registered):
        with pytest.raises(pa.UnknownEntity) as excinfo:
            registered.to_peer_id(4)
        assert "Local entity 4 is not coupled on mesh Mesh." == str(excinfo.value)
        # The mapping errors can be caught as KeyError.
        with pytest.raises(KeyError):
            registered.to_peer_id(4)

    def test_unknown_vertex(self, registered):
        with pytest.raises(pa.UnknownVertex):
            registered.to_local_id(103)

    @pytest.mark.parametrize("peer_id", [100.7, np.nan, np.inf, "100", None])
    def test_non_integral_vertex_id(self, registered, peer_id):
        # Neighboring vertices must not be hit by truncation.
        with pytest.raises(pa.UnknownVertex):
            registered.to_local_id(peer_id)

    def test_integral_vertex_id_of_other_type(self, registered):
        assert registered.to_local_id(np.int64(101)) == 3
        assert registered.to_local_id(102.0) == 5

    def test_unknown_mesh(self, registered):
        with pytest.raises(pa.UnknownMesh):
            registered.to_peer_id(7, "OtherMesh")

    def test_is_coupled_is_total(self, registered):
        assert registered.is_coupled(7)
        assert not registered.is_coupled(4)
        assert registered.is_coupled(7, "Mesh")
        assert not registered.is_coupled(7, "OtherMesh")
        # Unhashable ids are not coupled.
        assert not registered.is_coupled([7])
        assert not registered.is_coupled([7], "Mesh")


class TestSeveralMeshes:
    def test_mesh_name_is_required(self, mapper):
        mapper.register_vertices("Top", _coordinates(2), [0, 1])
        mapper.register_vertices("Bottom", _coordinates(2), [0, 1])

        with pytest.raises(pa.UnknownMesh) as excinfo:
            mapper.to_peer_id(0)
        assert "Mesh name required" in str(excinfo.value)
        assert mapper.to_peer_id(1, "Top") == 101
        assert mapper.to_peer_id(1, "Bottom") == 101
        assert mapper.is_coupled(1)

    def test_no_mesh(self, mapper):
        with pytest.raises(pa.UnknownMesh) as excinfo:
            mapper.mesh()
        assert "No interface mesh is registered." == str(excinfo.value)
        assert not mapper.is_coupled(0)

    def test_repr(self, mapper):
        mapper.register_vertices("Top", _coordinates(2), [0, 1])
        assert "1 interface meshes" in repr(mapper)
        assert "InterfaceMesh 'Top'" in repr(mapper)
