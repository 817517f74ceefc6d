"""
Core data model: frames, handles, rules, assembly objects, catalog and field.

For full API access, import from specific submodules:
    - assembler.core.frames: Frame and rigid transforms
    - assembler.core.handle: Handle and occupancy states
    - assembler.core.rule: Rule strings
    - assembler.core.catalog: Catalog and rule compiler
    - assembler.core.field: Field sampler
"""

from .frames import Frame, as_frame, as_vector, plane_to_plane, is_world_z_aligned, WORLD_Z
from .handle import Handle, Occupancy
from .rule import Rule, parse_rule_string, parse_compatibility_string, split_heuristics_set, write_rules
from .assembly_object import AssemblyObject, offset_mesh_inward
from .catalog import (
    Catalog,
    RuleIndex,
    RuleSource,
    compile_rule,
    compile_heuristics_set,
    compile_rule_index,
    enumerate_rules,
    enumerate_rules_from_table,
)
from .field import Field, FieldTensor

__all__ = [
    "Frame",
    "as_frame",
    "as_vector",
    "plane_to_plane",
    "is_world_z_aligned",
    "WORLD_Z",
    "Handle",
    "Occupancy",
    "Rule",
    "parse_rule_string",
    "parse_compatibility_string",
    "split_heuristics_set",
    "write_rules",
    "AssemblyObject",
    "offset_mesh_inward",
    "Catalog",
    "RuleIndex",
    "RuleSource",
    "compile_rule",
    "compile_heuristics_set",
    "compile_rule_index",
    "enumerate_rules",
    "enumerate_rules_from_table",
    "Field",
    "FieldTensor",
]
