"""
Unit tests for the run policies and OperationReport.
"""

import json

from assembler_policies import (
    AssemblagePolicy,
    ExogenousPolicy,
    HeuristicsPolicy,
    OperationReport,
    validate_policy,
)


class TestAssemblagePolicy:
    """Tests for AssemblagePolicy validation and serialization."""

    def test_defaults(self):
        """Default tolerances and the derived offset."""
        policy = AssemblagePolicy(max_objects=10)

        assert policy.validate() == []
        assert policy.tolerance == 1e-3
        assert policy.obstruction_ray_length == 1.5
        assert abs(policy.offset_distance - 2.5e-3) < 1e-12

    def test_missing_max_objects(self):
        """max_objects has no default value."""
        errors = AssemblagePolicy(max_objects=None).validate()

        assert errors == ["Required field is None: max_objects"]

    def test_invalid_values_are_listed(self):
        """Every invalid field is reported."""
        policy = AssemblagePolicy(max_objects=0, seed="x", tolerance=-1.0, cell_size=0.0)
        errors = policy.validate()

        assert len(errors) == 4, f"expected 4 errors, got {errors}"
        assert any("max_objects" in e for e in errors)
        assert any("seed" in e for e in errors)

    def test_from_dict_ignores_unknown_keys(self):
        """Unknown keys in stored policies are dropped."""
        policy = AssemblagePolicy.from_dict({"max_objects": 5, "seed": 2, "legacy_option": True})

        assert policy.max_objects == 5
        assert policy.seed == 2
        assert AssemblagePolicy.from_dict(policy.to_dict()) == policy


class TestHeuristicsPolicy:
    """Tests for HeuristicsPolicy validation."""

    def test_strings_source_needs_sets(self):
        """The strings source requires at least one set."""
        errors = HeuristicsPolicy().validate()

        assert any("heuristics set" in e for e in errors)

    def test_enumerate_source_needs_nothing(self):
        assert HeuristicsPolicy(rule_source="enumerate").validate() == []

    def test_mode_ranges(self):
        """Receiver and sender modes are range checked."""
        errors = HeuristicsPolicy(heuristics_sets=["x"], receiver_mode=7, sender_mode=-1).validate()

        assert len(errors) == 2

    def test_field_dependence(self):
        """Scalar and vector modes depend on a field."""
        assert HeuristicsPolicy(sender_mode=4).is_field_dependent
        assert not HeuristicsPolicy(receiver_mode=3, sender_mode=8).is_field_dependent


class TestExogenousPolicy:
    """Tests for ExogenousPolicy validation."""

    def test_invalid_mode_and_scale(self):
        errors = ExogenousPolicy(environment_mode=3, sandbox_scale=0.0).validate()

        assert len(errors) == 2

    def test_round_trip(self):
        policy = ExogenousPolicy(environment_mode=2, has_container=True)

        assert ExogenousPolicy.from_dict(policy.to_dict()) == policy


class TestOperationReport:
    """Tests for the run report container."""

    def test_errors_mark_failure(self):
        """Adding an error flips success."""
        report = OperationReport(operation="assemblage")
        report.add_warning("careful")
        report.add_error("broken")

        assert not report.success
        assert report.warnings == ["careful"]

    def test_merge(self):
        """Merging carries messages and failure."""
        report = OperationReport()
        other = OperationReport()
        other.add_error("bad")
        report.merge(other)

        assert report.errors == ["bad"]
        assert not report.success

    def test_to_json(self):
        """Reports serialize to JSON."""
        report = OperationReport(operation="assemblage", metadata={"placed": 3})

        assert json.loads(report.to_json())["metadata"] == {"placed": 3}

    def test_validate_policy_required_fields(self):
        """Missing attributes and None values are both reported."""
        errors = validate_policy(AssemblagePolicy(max_objects=None), ["max_objects", "nonexistent"])

        assert errors == ["Required field is None: max_objects", "Missing required field: nonexistent"]
