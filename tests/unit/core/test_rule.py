"""
Unit tests for rule string parsing and formatting.
"""

import pytest

from assembler.core.rule import (
    format_angle,
    parse_compatibility_string,
    parse_rule_string,
    split_heuristics_set,
)
from assembler.errors import ConfigurationError, RuleParseError


class TestParseRuleString:
    """Tests for the rule grammar."""

    def test_parse_fields(self):
        """All fields of a rule string are read."""
        tokens = parse_rule_string("Brick|0=90<Slab|2%3")

        assert tokens.receiver_name == "Brick"
        assert tokens.receiver_handle == 0
        assert tokens.angle == 90.0
        assert tokens.angle_text == "90"
        assert tokens.sender_name == "Slab"
        assert tokens.sender_handle == 2
        assert tokens.weight == 3

    def test_fractional_and_negative_angles(self):
        """Angles may be fractional or negative."""
        assert parse_rule_string("A|1=-22.5<A|0%1").angle == -22.5
        assert parse_rule_string("A|1=0.1<A|0%1").angle_text == "0.1"

    @pytest.mark.parametrize("text", [
        "",
        "A|0=0<A|0",
        "A|0<A|0%1",
        "A0=0<A|0%1",
        "A|x=0<A|0%1",
        "A|0=0<A|0%w",
        "A|0=0>A|0%1",
    ])
    def test_malformed_rules_raise(self, text):
        """Malformed strings raise RuleParseError carrying the text."""
        with pytest.raises(RuleParseError) as exc:
            parse_rule_string(text)

        assert exc.value.text == text

    def test_parse_error_is_configuration_error(self):
        """RuleParseError belongs to the configuration error family."""
        with pytest.raises(ConfigurationError):
            parse_rule_string("nonsense")


class TestFormatting:
    """Tests for angle formatting and set splitting."""

    def test_format_angle(self):
        """Integral angles print as integers, others as the shortest float repr."""
        assert format_angle(90.0) == "90"
        assert format_angle(-180) == "-180"
        assert format_angle(22.5) == "22.5"
        assert format_angle(0.1) == "0.1"

    def test_split_heuristics_set(self):
        """Sets split on commas and ignore blanks."""
        assert split_heuristics_set("A|0=0<A|1%1, A|1=0<A|0%1,") == ["A|0=0<A|1%1", "A|1=0<A|0%1"]

    def test_compatibility_string(self):
        """Compatibility pairs read as (receiver type, sender type)."""
        assert parse_compatibility_string("0<1") == (0, 1)
        assert parse_compatibility_string(" 2 < 2 ") == (2, 2)
        with pytest.raises(RuleParseError):
            parse_compatibility_string("0>1")
