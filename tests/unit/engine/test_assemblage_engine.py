"""
Unit tests for the Assemblage state machine.
"""

import numpy as np
import pytest

from assembler.core.field import Field
from assembler.core.frames import Frame
from assembler.core.handle import Occupancy
from assembler.engine.assemblage import Assemblage, EngineState
from assembler.errors import ConfigurationError, RuleParseError
from assembler.exogenous.environment import ExogenousSettings
from assembler_policies import AssemblagePolicy, HeuristicsPolicy

START = [("A", Frame.world_xy())]


def _enumerated(**kwargs):
    return HeuristicsPolicy(rule_source="enumerate", self_object=True, self_handle=False, **kwargs)


def _build(proto, max_objects=10, heuristics=None, exogenous=None, start=START, **policy_kwargs):
    policy = AssemblagePolicy(max_objects=max_objects, seed=11, **policy_kwargs)
    return Assemblage([proto], start, policy, heuristics or _enumerated(), exogenous)


class TestConstruction:
    """Tests for validation at construction time."""

    def test_invalid_policy_raises(self, cube_a):
        """Policy messages become a ConfigurationError."""
        with pytest.raises(ConfigurationError, match="max_objects"):
            _build(cube_a, max_objects=0)

    def test_field_mode_without_field_raises(self, cube_a):
        """Field-dependent heuristics need a field up front."""
        with pytest.raises(ConfigurationError):
            _build(cube_a, heuristics=_enumerated(sender_mode=1))

    def test_vector_mode_without_vectors_raises(self, cube_a):
        """A field without vectors cannot drive vector modes."""
        field = Field([[0, 0, 0], [1, 0, 0]])
        field.populate_scalars([0.0, 1.0])

        with pytest.raises(ConfigurationError, match="vectors"):
            _build(cube_a, heuristics=_enumerated(sender_mode=3),
                   exogenous=ExogenousSettings(sampling_field=field, mode=0))

    def test_unknown_rule_raises(self, cube_a):
        """Rules naming unknown prototypes fail before any placement."""
        with pytest.raises(RuleParseError):
            _build(cube_a, heuristics=HeuristicsPolicy(heuristics_sets=["B|0=0<A|1%1"]))

    def test_start_type_out_of_range(self, cube_a):
        """Start placements must reference the catalog."""
        with pytest.raises(ConfigurationError):
            _build(cube_a, start=[(3, Frame.world_xy())])

    def test_start_frame_forms(self, cube_a):
        """Start frames may be frames, matrices or (origin, x, y) triples."""
        m = np.eye(4)
        m[:3, 3] = (0, 4, 0)
        start = [
            ("A", Frame.world_xy()),
            (0, m),
            ("A", [(4, 0, 0), (1, 0, 0), (0, 1, 0)]),
        ]
        assemblage = _build(cube_a, start=start)

        assert np.allclose([o.origin for o in assemblage.objects], [[0, 0, 0], [0, 4, 0], [4, 0, 0]])
        assert assemblage.rule_strings == ["", "", ""]
        assert assemblage.receiver_indices == [-1, -1, -1]

    def test_start_count_reaching_limit_completes(self, cube_a):
        """Placing max_objects start objects completes immediately."""
        assemblage = _build(cube_a, max_objects=1)

        assert assemblage.state == EngineState.COMPLETE
        report = assemblage.update()
        assert report.state == EngineState.COMPLETE
        assert assemblage.steps == 0, "terminal update must be a no-op"
        assert len(assemblage) == 1


class TestCandidates:
    """Tests for candidate generation and filtering."""

    def test_one_candidate_per_fitting_rule(self, cube_a):
        """Every rule with a free receiver handle yields a candidate, in rule order."""
        assemblage = _build(cube_a)
        receiver = assemblage.objects[0]
        candidates = assemblage.generate_candidates(receiver)

        assert len(candidates) == 12
        assert [c.rule for c in candidates] == assemblage.rules.rules_for(0, 0)
        assert all(c.factor == pytest.approx(3.0) for c in candidates), "rule + object + handle weight"

    def test_candidates_sit_on_adjacent_cells(self, cube_a):
        """Each candidate touches the receiver face its rule names."""
        assemblage = _build(cube_a)
        for c in assemblage.generate_candidates(assemblage.objects[0]):
            assert np.linalg.norm(c.obj.origin) == pytest.approx(1.0)
            assert assemblage.is_candidate_valid(c.obj)

    def test_connected_handles_are_skipped(self, cube_a):
        """Rules on connected receiver handles are not instantiated."""
        assemblage = _build(cube_a)
        assemblage.objects[0].handles[0].connect(9, 1)

        assert len(assemblage.generate_candidates(assemblage.objects[0])) == 9

    def test_overlapping_candidate_is_invalid(self, cube_a, place):
        """Candidates overlapping placed objects are rejected."""
        assemblage = _build(cube_a)

        assert not assemblage.is_candidate_valid(place(assemblage.objects[0], -1, x=0.4))


class TestUpdate:
    """Tests for a single placement cycle."""

    def test_step_report(self, cube_a):
        """A successful step reports the placed object and its rule."""
        assemblage = _build(cube_a)
        report = assemblage.update()

        assert report.state == EngineState.IDLE
        assert report.placed_aind == 1
        assert report.receiver_aind == 0
        assert report.rule == assemblage.rule_strings[1]
        assert report.candidates_tried == 12
        assert report.candidates_valid == 12
        assert report.to_dict()["state"] == "idle"

    def test_commit_links_rule_handles(self, cube_a):
        """The rule's receiver and sender handles point at each other."""
        assemblage = _build(cube_a)
        assemblage.update()
        new = assemblage.objects[1]
        receiver = assemblage.objects[assemblage.receiver_indices[1]]
        rule = [r for r in assemblage.rules.rules_in_set(0) if r.to_string() == assemblage.rule_strings[1]][0]

        assert receiver.handles[rule.receiver_handle].neighbour_object == 1
        assert new.handles[rule.sender_handle].neighbour_object == 0
        assert new.handles[rule.sender_handle].neighbour_handle == rule.receiver_handle
        assert not np.isnan(new.sender_value)

    def test_no_rules_for_type_exhausts(self, cube_a, cube_factory):
        """A receiver type without rules is marked unreachable, then the run is exhausted."""
        policy = AssemblagePolicy(max_objects=5)
        heuristics = HeuristicsPolicy(heuristics_sets=["A|0=0<A|1%1"])
        assemblage = Assemblage([cube_a, cube_factory("B")], [("B", Frame.world_xy())], policy, heuristics)

        report = assemblage.update()

        assert report.state == EngineState.EXHAUSTED
        assert report.unreachable_marked == 1
        assert assemblage.unreachable == [0]

    def test_complete_at_max_objects(self, cube_a):
        """The engine completes exactly at max_objects."""
        assemblage = _build(cube_a, max_objects=3)
        assemblage.run()

        assert assemblage.state == EngineState.COMPLETE
        assert len(assemblage) == 3

    def test_field_mode_reads_set_from_iweights(self, cube_a):
        """In field mode the receiver's iweight selects its heuristics set."""
        field = Field.from_box([[-3, -3, -1], [3, 3, 1]], counts=(6, 6, 2))
        field.populate_iweights([1])
        heuristics = HeuristicsPolicy(heuristics_sets=["A|2=0<A|3%1", "A|0=0<A|1%1"], mode="field")
        assemblage = _build(cube_a, heuristics=heuristics,
                            exogenous=ExogenousSettings(sampling_field=field, mode=0))

        assert assemblage.objects[0].iweight == 1
        report = assemblage.update()

        assert report.rule == "A|0=0<A|1%1"
        assert np.allclose(assemblage.objects[1].origin, [1, 0, 0])


class TestReceiverValues:
    """Tests for the receiver values stored on placed objects."""

    def test_start_object_value_is_zero(self, cube_a):
        """Start objects carry a receiver value of zero."""
        assemblage = _build(cube_a)
        assert assemblage.objects[0].receiver_value == 0.0

    def test_scalar_run_leaves_no_nan(self, cube_a):
        """Every placed object, the last one included, carries a receiver value."""
        field = Field.from_box([[-4, -4, -1], [4, 4, 1]], counts=(8, 8, 2))
        field.populate_scalars(field.points[:, 0])
        heuristics = _enumerated(receiver_mode=1, sender_mode=1)
        assemblage = _build(cube_a, max_objects=6, heuristics=heuristics,
                            exogenous=ExogenousSettings(sampling_field=field, mode=0))
        assemblage.run()

        values = [o.receiver_value for o in assemblage.objects]
        assert len(values) == 6
        assert not np.any(np.isnan(values)), f"Placed objects without a receiver value: {values}"
        last = assemblage.objects[-1]
        expected = abs(0.5 - field.closest_scalar(last.origin))
        assert last.receiver_value == pytest.approx(expected), "Value should be computed at commit"

    def test_density_values_track_connections(self, cube_a):
        """In density mode stored values equal the weight connected to each object."""
        heuristics = _enumerated(receiver_mode=3)
        assemblage = _build(cube_a, max_objects=5, heuristics=heuristics)
        assemblage.run()

        for obj in assemblage.objects[1:]:
            connected = sum(
                assemblage.objects[h.neighbour_object].weight
                for h in obj.handles if h.occupancy == Occupancy.CONNECTED
            )
            assert obj.receiver_value == pytest.approx(connected), f"Stale density on object {obj.aind}"


class TestMaintenance:
    """Tests for reporting and occupancy rebuilds."""

    def test_summary(self, cube_a):
        """The summary carries requested and effective policy."""
        assemblage = _build(cube_a, max_objects=4)
        report = assemblage.run()

        assert report.operation == "assemblage"
        assert report.metadata["placed"] == 4
        assert report.metadata["state"] == "complete"
        assert report.requested_policy["assemblage"]["cell_size"] is None
        assert report.effective_policy["assemblage"]["cell_size"] == pytest.approx(np.sqrt(3.0))
        assert report.warnings == []

    def test_reset_restores_wrongly_unreachable(self, cube_a):
        """A receiver marked unreachable by hand becomes available again."""
        assemblage = _build(cube_a)
        assemblage.mark_unreachable(0)
        assert assemblage.update().state == EngineState.EXHAUSTED

        report = assemblage.reset_occupancy_status()

        assert assemblage.available == [0]
        assert assemblage.unreachable == []
        assert assemblage.state == EngineState.IDLE
        assert report.metadata["previously_unreachable"] == 1

    def test_reset_fills_sandbox_lists(self, cube_a):
        """Sandbox lists hold the objects inside the scaled box."""
        exogenous = ExogenousSettings.from_meshes(sandbox_bounds=[[-0.5, -0.5, -0.5], [0.5, 0.5, 0.5]],
                                                  sandbox_scale=1.0)
        assemblage = _build(cube_a, exogenous=exogenous)
        assemblage.run(max_steps=2)
        assemblage.reset_occupancy_status()

        assert assemblage.sandbox_available == [0]
        assert assemblage.sandbox_unreachable == []

    def test_repr(self, cube_a):
        assert "placed=1" in repr(_build(cube_a))
