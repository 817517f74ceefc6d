"""
Run policies for the assembler engine.

These dataclasses replace any document-wide toggle state: every value that
influences a run is carried explicitly into the engine constructor.

All policies are JSON-serializable via to_dict()/from_dict(). Validation
returns a list of messages; the engine turns a non-empty list into a
ConfigurationError before any state is built.

UNIT CONVENTIONS
----------------
Lengths are in model units (whatever the prototype meshes use).
Angles in rule strings are in degrees.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from .base import validate_policy


RECEIVER_MODES = (0, 1, 2, 3)
SENDER_MODES = tuple(range(10))
ENVIRONMENT_MODES = (0, 1, 2)
HEURISTICS_MODES = ("manual", "field")
RULE_SOURCES = ("strings", "enumerate", "compatibility_table")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class AssemblagePolicy:
    """
    Policy for the aggregation loop and its geometric tolerances.

    JSON Schema:
    {
        "max_objects": int,
        "seed": int | null,
        "tolerance": float,
        "check_world_z_lock": bool,
        "collision_radius_multiplier": float,
        "cell_size": float | null,
        "obstruction_ray_length": float,
        "offset_multiplier": float,
        "max_steps": int | null
    }

    max_objects is the placed-count ceiling (start objects included) at
    which the engine reports COMPLETE. It has no default on purpose and
    must be supplied by the caller.
    """
    max_objects: int
    seed: Optional[int] = None
    tolerance: float = 1e-3
    check_world_z_lock: bool = False
    collision_radius_multiplier: float = 1.0
    cell_size: Optional[float] = None
    obstruction_ray_length: float = 1.5
    offset_multiplier: float = 2.5
    max_steps: Optional[int] = None

    @property
    def offset_distance(self) -> float:
        """Inward offset applied to collision meshes for interference tests."""
        return self.tolerance * self.offset_multiplier

    def validate(self) -> List[str]:
        errors = validate_policy(self, ["max_objects"])
        if self.max_objects is not None and (not _is_int(self.max_objects) or self.max_objects < 1):
            errors.append(f"max_objects must be a positive integer, got {self.max_objects!r}")
        if self.seed is not None and not _is_int(self.seed):
            errors.append(f"seed must be an integer or None, got {self.seed!r}")
        if self.tolerance <= 0:
            errors.append(f"tolerance must be positive, got {self.tolerance}")
        if self.collision_radius_multiplier <= 0:
            errors.append(
                f"collision_radius_multiplier must be positive, got {self.collision_radius_multiplier}"
            )
        if self.cell_size is not None and self.cell_size <= 0:
            errors.append(f"cell_size must be positive, got {self.cell_size}")
        if self.obstruction_ray_length <= 0:
            errors.append(f"obstruction_ray_length must be positive, got {self.obstruction_ray_length}")
        if self.offset_multiplier <= 0:
            errors.append(f"offset_multiplier must be positive, got {self.offset_multiplier}")
        if self.max_steps is not None and (not _is_int(self.max_steps) or self.max_steps < 1):
            errors.append(f"max_steps must be a positive integer or None, got {self.max_steps!r}")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_objects": self.max_objects,
            "seed": self.seed,
            "tolerance": self.tolerance,
            "check_world_z_lock": self.check_world_z_lock,
            "collision_radius_multiplier": self.collision_radius_multiplier,
            "cell_size": self.cell_size,
            "obstruction_ray_length": self.obstruction_ray_length,
            "offset_multiplier": self.offset_multiplier,
            "max_steps": self.max_steps,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "AssemblagePolicy":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass
class HeuristicsPolicy:
    """
    Policy for rule sets and selection heuristics.

    JSON Schema:
    {
        "heuristics_sets": [str, ...],
        "current_set": int,
        "mode": "manual" | "field",
        "receiver_mode": int (0-3),
        "sender_mode": int (0-9),
        "rule_source": "strings" | "enumerate" | "compatibility_table",
        "self_object": bool,
        "self_handle": bool,
        "cross_type": bool,
        "compatibility_table": [str, ...]
    }

    Rule sources:
    - "strings": heuristics_sets holds comma-separated rule strings
    - "enumerate": one set is enumerated from the catalog using the
      self_object/self_handle/cross_type flags
    - "compatibility_table": one set is enumerated from handle-type pairs
      "r<s"; only self_object applies

    In "field" mode the active set is read per receiver from the Field
    iweights instead of current_set.
    """
    heuristics_sets: List[str] = field(default_factory=list)
    current_set: int = 0
    mode: Literal["manual", "field"] = "manual"
    receiver_mode: int = 0
    sender_mode: int = 0
    rule_source: Literal["strings", "enumerate", "compatibility_table"] = "strings"
    self_object: bool = True
    self_handle: bool = False
    cross_type: bool = False
    compatibility_table: List[str] = field(default_factory=list)

    @property
    def is_field_dependent(self) -> bool:
        """True when any configured heuristic samples a Field."""
        return (
            self.mode == "field"
            or self.receiver_mode in (1, 2)
            or self.sender_mode in (1, 2, 3, 4, 5, 6)
        )

    def validate(self) -> List[str]:
        errors = []
        if self.receiver_mode not in RECEIVER_MODES or not _is_int(self.receiver_mode):
            errors.append(f"receiver_mode must be one of {RECEIVER_MODES}, got {self.receiver_mode!r}")
        if self.sender_mode not in SENDER_MODES or not _is_int(self.sender_mode):
            errors.append(f"sender_mode must be one of {SENDER_MODES}, got {self.sender_mode!r}")
        if self.mode not in HEURISTICS_MODES:
            errors.append(f"mode must be one of {HEURISTICS_MODES}, got {self.mode!r}")
        if self.rule_source not in RULE_SOURCES:
            errors.append(f"rule_source must be one of {RULE_SOURCES}, got {self.rule_source!r}")
        if self.rule_source == "strings" and not self.heuristics_sets:
            errors.append("rule_source 'strings' requires at least one heuristics set")
        if self.rule_source == "compatibility_table" and not self.compatibility_table:
            errors.append("rule_source 'compatibility_table' requires a non-empty table")
        if not _is_int(self.current_set) or self.current_set < 0:
            errors.append(f"current_set must be a non-negative integer, got {self.current_set!r}")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "heuristics_sets": list(self.heuristics_sets),
            "current_set": self.current_set,
            "mode": self.mode,
            "receiver_mode": self.receiver_mode,
            "sender_mode": self.sender_mode,
            "rule_source": self.rule_source,
            "self_object": self.self_object,
            "self_handle": self.self_handle,
            "cross_type": self.cross_type,
            "compatibility_table": list(self.compatibility_table),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "HeuristicsPolicy":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass
class ExogenousPolicy:
    """
    Policy for environment interaction.

    JSON Schema:
    {
        "environment_mode": int (0 ignore, 1 collision, 2 inclusion),
        "has_container": bool,
        "field_threshold": float,
        "sandbox_scale": float
    }

    field_threshold is the scalar target used by field-driven receiver and
    sender heuristics (values are normalized to [0, 1] on population).
    """
    environment_mode: int = 1
    has_container: bool = False
    field_threshold: float = 0.5
    sandbox_scale: float = 1.2

    def validate(self) -> List[str]:
        errors = []
        if self.environment_mode not in ENVIRONMENT_MODES or not _is_int(self.environment_mode):
            errors.append(
                f"environment_mode must be one of {ENVIRONMENT_MODES}, got {self.environment_mode!r}"
            )
        if self.sandbox_scale <= 0:
            errors.append(f"sandbox_scale must be positive, got {self.sandbox_scale}")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "environment_mode": self.environment_mode,
            "has_container": self.has_container,
            "field_threshold": self.field_threshold,
            "sandbox_scale": self.sandbox_scale,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ExogenousPolicy":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})
