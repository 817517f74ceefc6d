"""
Heuristics settings: rule sets and selection modes of a run.

Mode integers form closed enumerations and are validated here, at
configuration time; an invalid value is a ConfigurationError, never clamped.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import List

from assembler_policies import HeuristicsPolicy

from ..core.catalog import Catalog, RuleIndex, RuleSource, compile_rule_index
from ..errors import ConfigurationError


class HeuristicsMode(str, Enum):
    """How the active heuristics set is chosen."""
    MANUAL = "manual"
    FIELD = "field"


class ReceiverMode(IntEnum):
    """Receiver selection modes."""
    RANDOM = 0
    SCALAR_NEAREST = 1
    SCALAR_INTERPOLATED = 2
    DENSITY = 3


class SenderMode(IntEnum):
    """Sender (rule/candidate) selection modes."""
    RANDOM = 0
    SCALAR_NEAREST = 1
    SCALAR_INTERPOLATED = 2
    VECTOR_NEAREST = 3
    VECTOR_INTERPOLATED = 4
    VECTOR_BIDIRECTIONAL_NEAREST = 5
    VECTOR_BIDIRECTIONAL_INTERPOLATED = 6
    BOX_VOLUME = 7
    BOX_DIAGONAL = 8
    WEIGHTED_RANDOM = 9


FIELD_RECEIVER_MODES = (ReceiverMode.SCALAR_NEAREST, ReceiverMode.SCALAR_INTERPOLATED)
FIELD_SENDER_MODES = (
    SenderMode.SCALAR_NEAREST,
    SenderMode.SCALAR_INTERPOLATED,
    SenderMode.VECTOR_NEAREST,
    SenderMode.VECTOR_INTERPOLATED,
    SenderMode.VECTOR_BIDIRECTIONAL_NEAREST,
    SenderMode.VECTOR_BIDIRECTIONAL_INTERPOLATED,
)


def _enum_value(enum_cls, value, what: str):
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid {what}: {value!r}")
    try:
        return enum_cls(value)
    except ValueError:
        allowed = [m.value for m in enum_cls]
        raise ConfigurationError(f"Invalid {what}: {value!r} (allowed: {allowed})") from None


@dataclass
class HeuristicsSettings:
    """
    Validated heuristics configuration.

    Use from_policy() to build it from a HeuristicsPolicy.
    """
    heuristics_sets: List[str] = field(default_factory=list)
    current_set: int = 0
    mode: HeuristicsMode = HeuristicsMode.MANUAL
    receiver_mode: ReceiverMode = ReceiverMode.RANDOM
    sender_mode: SenderMode = SenderMode.RANDOM
    rule_source: RuleSource = RuleSource.STRINGS
    self_object: bool = True
    self_handle: bool = False
    cross_type: bool = False
    compatibility_table: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.mode = _enum_value(HeuristicsMode, self.mode, "heuristics mode")
        self.receiver_mode = _enum_value(ReceiverMode, self.receiver_mode, "receiver mode")
        self.sender_mode = _enum_value(SenderMode, self.sender_mode, "sender mode")
        self.rule_source = _enum_value(RuleSource, self.rule_source, "rule source")

    @classmethod
    def from_policy(cls, policy: HeuristicsPolicy) -> "HeuristicsSettings":
        """
        Validate a policy and convert it.

        Raises
        ------
        ConfigurationError
            If the policy reports any validation error
        """
        errors = policy.validate()
        if errors:
            raise ConfigurationError("; ".join(errors))
        return cls(
            heuristics_sets=list(policy.heuristics_sets),
            current_set=policy.current_set,
            mode=policy.mode,
            receiver_mode=policy.receiver_mode,
            sender_mode=policy.sender_mode,
            rule_source=policy.rule_source,
            self_object=policy.self_object,
            self_handle=policy.self_handle,
            cross_type=policy.cross_type,
            compatibility_table=list(policy.compatibility_table),
        )

    @property
    def is_field_dependent(self) -> bool:
        return (
            self.mode == HeuristicsMode.FIELD
            or self.receiver_mode in FIELD_RECEIVER_MODES
            or self.sender_mode in FIELD_SENDER_MODES
        )

    def compile(self, catalog: Catalog) -> RuleIndex:
        """Compile the configured rule source against a catalog."""
        index = compile_rule_index(
            catalog,
            self.rule_source,
            heuristics_sets=self.heuristics_sets,
            self_object=self.self_object,
            self_handle=self.self_handle,
            cross_type=self.cross_type,
            compatibility_table=self.compatibility_table,
        )
        if self.mode == HeuristicsMode.MANUAL and self.current_set >= index.set_count:
            raise ConfigurationError(
                f"current_set {self.current_set} out of range for {index.set_count} heuristics set(s)"
            )
        return index
