"""
Unit tests for AssemblyObject construction and instantiation.
"""

import numpy as np
import pytest
import trimesh

from assembler.core.assembly_object import AssemblyObject, offset_mesh_inward
from assembler.core.catalog import Catalog
from assembler.core.frames import Frame
from assembler.core.handle import Occupancy
from assembler.errors import InputError
from assembler_policies import AssemblagePolicy


class TestAssemblyObjectValidation:
    """Tests for input validation at construction."""

    def test_none_mesh_raises(self, handles_factory):
        """A collision mesh is required."""
        with pytest.raises(InputError):
            AssemblyObject("A", None, Frame.world_xy(), (1, 0, 0), handles_factory())

    def test_open_mesh_raises(self, handles_factory):
        """Non-watertight meshes are rejected."""
        box = trimesh.creation.box()
        open_mesh = trimesh.Trimesh(vertices=box.vertices, faces=box.faces[:-2], process=False)

        with pytest.raises(InputError):
            AssemblyObject("A", open_mesh, Frame.world_xy(), (1, 0, 0), handles_factory())

    def test_zero_direction_raises(self, handles_factory):
        """The direction vector must be non-zero."""
        with pytest.raises(InputError):
            AssemblyObject("A", trimesh.creation.box(), Frame.world_xy(), (0, 0, 0), handles_factory())

    def test_empty_handles_raise(self):
        """An object needs at least one handle."""
        with pytest.raises(InputError):
            AssemblyObject("A", trimesh.creation.box(), Frame.world_xy(), (1, 0, 0), [])

    def test_inverted_mesh_is_flipped(self, handles_factory):
        """Inward-facing solids are stored with outward normals."""
        box = trimesh.creation.box()
        box.invert()
        obj = AssemblyObject("A", box, Frame.world_xy(), (1, 0, 0), handles_factory())

        assert obj.collision_mesh.volume > 0

    def test_prototype_is_unplaced(self, cube):
        """New objects have no index and NaN values."""
        assert cube.aind == -1
        assert not cube.is_placed
        assert np.isnan(cube.receiver_value)
        assert np.isnan(cube.sender_value)


class TestOffsetMesh:
    """Tests for the inward offset used by interference tests."""

    def test_offset_shrinks_bounds(self):
        """The offset mesh lies strictly inside the source mesh."""
        box = trimesh.creation.box(extents=(1, 1, 1))
        shrunk = offset_mesh_inward(box, 0.01)

        assert np.all(shrunk.bounds[0] > box.bounds[0])
        assert np.all(shrunk.bounds[1] < box.bounds[1])
        assert len(shrunk.faces) == len(box.faces), "topology is kept"

    def test_default_offset_follows_policy(self, cube):
        """Without an explicit offset, objects use the default policy offset."""
        moved = np.linalg.norm(cube.collision_mesh.vertices[0] - cube.offset_mesh.vertices[0])

        assert moved == pytest.approx(AssemblagePolicy().offset_distance)

    def test_catalog_offset_replaces_default(self, cube):
        """A catalog offset rebuilds the interference mesh."""
        typed = Catalog([cube], offset_distance=0.01)[0]
        moved = np.linalg.norm(typed.collision_mesh.vertices[0] - typed.offset_mesh.vertices[0])

        assert moved == pytest.approx(0.01)


class TestInstantiate:
    """Tests for copy-and-transform placement."""

    def test_instantiate_moves_copy_only(self, cube, place):
        """The placed copy moves; the prototype does not."""
        obj = place(cube, 0, x=2.0)

        assert np.allclose(obj.origin, [2, 0, 0])
        assert np.allclose(obj.collision_mesh.centroid, [2, 0, 0])
        assert np.allclose(obj.handles[0].sender.origin, [2.5, 0, 0])
        assert np.allclose(cube.origin, [0, 0, 0]), "prototype must not move"
        assert np.allclose(cube.handles[0].sender.origin, [0.5, 0, 0])

    def test_instantiate_resets_placement_state(self, cube):
        """Copies are always unplaced candidates."""
        placed = cube.instantiate(np.eye(4))
        placed.aind = 4
        placed.occluded_neighbours.append([1, 2])
        again = placed.instantiate(np.eye(4))

        assert again.aind == -1
        assert again.occluded_neighbours == []

    def test_instantiate_rotates_direction(self, cube):
        """The direction vector follows the rotation."""
        m = np.eye(4)
        m[:3, :3] = [[0, -1, 0], [1, 0, 0], [0, 0, 1]]
        obj = cube.instantiate(m)

        assert np.allclose(obj.direction, [0, 1, 0])

    def test_free_handles(self, cube):
        """Free handles are listed until they change state."""
        obj = cube.instantiate(np.eye(4))
        obj.handles[1].connect(3, 0)
        obj.handles[2].occlude(4)

        assert obj.free_handle_indices() == [0, 3]
        assert obj.has_free_handles()
        obj.handles[0].occupancy = Occupancy.CONNECTED
        obj.handles[3].occupancy = Occupancy.CONNECTED
        assert not obj.has_free_handles()

    def test_dict_round_trip(self, cube, place):
        """Objects survive to_dict/from_dict with geometry and state."""
        obj = place(cube, 3, y=1.0)
        obj.handles[0].connect(1, 2)
        obj.iweight = 2
        obj.sender_value = 0.25
        again = AssemblyObject.from_dict(obj.to_dict())

        assert again.aind == 3
        assert again.iweight == 2
        assert again.sender_value == 0.25
        assert np.isnan(again.receiver_value)
        assert again.handles[0].occupancy == Occupancy.CONNECTED
        assert np.allclose(again.collision_mesh.vertices, obj.collision_mesh.vertices)
        assert np.allclose(again.offset_mesh.vertices, obj.offset_mesh.vertices)
