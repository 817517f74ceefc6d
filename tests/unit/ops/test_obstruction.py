"""
Unit tests for accidental connections and handle occlusion after a commit.
"""

import numpy as np

from assembler.core.handle import Occupancy
from assembler.ops.occlusion import connect_handles, obstruction_check, ray_hits_mesh

TOL = 1e-3
RAY_OFFSET = 5 * TOL
RAY_LENGTH = 1.5


class TestConnectHandles:
    """Tests for two-way handle linking."""

    def test_links_both_sides_and_averages_weights(self, cube, place):
        """Both handles point at each other and share the mean weight."""
        a = place(cube, 0)
        b = place(cube, 1, x=1.0)
        a.handles[0].weight = 2.0
        b.handles[1].weight = 4.0

        connect_handles(a, 0, b, 1)

        assert a.handles[0].occupancy == Occupancy.CONNECTED
        assert (a.handles[0].neighbour_object, a.handles[0].neighbour_handle) == (1, 1)
        assert (b.handles[1].neighbour_object, b.handles[1].neighbour_handle) == (0, 0)
        assert a.handles[0].weight == 3.0
        assert b.handles[1].weight == 3.0


class TestRayHitsMesh:
    """Tests for the bounded occlusion ray."""

    def test_hit_within_length(self, cube, place):
        """A face within reach is hit."""
        target = place(cube, 0, x=2.0)

        assert ray_hits_mesh(target, np.array([0.5, 0, 0]), np.array([1.0, 0, 0]), 1.5)

    def test_hit_beyond_length_is_ignored(self, cube, place):
        """A face farther than the ray length is not hit."""
        target = place(cube, 0, x=3.0)

        assert not ray_hits_mesh(target, np.array([0.5, 0, 0]), np.array([1.0, 0, 0]), 1.5)

    def test_hit_behind_origin_is_ignored(self, cube, place):
        """Only the forward half-line counts."""
        target = place(cube, 0, x=-2.0)

        assert not ray_hits_mesh(target, np.array([0.5, 0, 0]), np.array([1.0, 0, 0]), 1.5)


class TestObstructionCheck:
    """Tests for the post-commit obstruction pass."""

    def test_coincident_senders_connect(self, cube, place):
        """Face-to-face neighbours link their facing handles."""
        old = place(cube, 0)
        new = place(cube, 1, x=1.0)

        result = obstruction_check(new, [old], TOL, RAY_OFFSET, RAY_LENGTH)

        assert result.connections == [(1, 1, 0, 0)]
        assert result.occlusions == []
        assert old.handles[0].neighbour_object == 1
        assert new.handles[1].neighbour_object == 0

    def test_one_cell_gap_occludes_both_ways(self, cube, place):
        """Handles facing each other across an empty cell are both occluded."""
        old = place(cube, 0)
        new = place(cube, 1, x=2.0)

        result = obstruction_check(new, [old], TOL, RAY_OFFSET, RAY_LENGTH)

        assert result.connections == []
        assert sorted(result.occlusions) == [(0, 0, 1), (1, 1, 0)]
        assert old.handles[0].occupancy == Occupancy.OCCLUDED
        assert old.handles[0].neighbour_object == 1
        assert new.handles[1].occupancy == Occupancy.OCCLUDED
        assert new.occluded_neighbours == [[0, 0]]
        assert old.occluded_neighbours == [[1, 1]]

    def test_diagonal_neighbour_changes_nothing(self, cube, place):
        """A diagonal neighbour neither touches nor blocks any handle."""
        old = place(cube, 0)
        new = place(cube, 1, x=1.0, y=1.0)

        result = obstruction_check(new, [old], TOL, RAY_OFFSET, RAY_LENGTH)

        assert not result.changed
        assert old.free_handle_indices() == [0, 1, 2, 3]

    def test_non_free_handles_are_skipped(self, cube, place):
        """Connected handles are not re-evaluated."""
        old = place(cube, 0)
        old.handles[0].connect(7, 2)
        new = place(cube, 1, x=1.0)

        result = obstruction_check(new, [old], TOL, RAY_OFFSET, RAY_LENGTH)

        assert result.connections == []
        assert old.handles[0].neighbour_object == 7
        assert new.handles[1].occupancy == Occupancy.OCCLUDED, "blocked by the face it touches"

    def test_result_to_dict(self, cube, place):
        """Results serialize as lists."""
        result = obstruction_check(place(cube, 1, x=1.0), [place(cube, 0)], TOL, RAY_OFFSET, RAY_LENGTH)

        assert result.to_dict() == {"connections": [[1, 1, 0, 0]], "occlusions": []}
