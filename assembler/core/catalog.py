"""
Catalog of prototypes and the rule compiler.

The Catalog assigns every prototype a stable type index (first-occurrence
order of names) and owns the immutable templates that placements are copied
from. The compiler turns one of three rule sources into a RuleIndex:

- STRINGS: explicit heuristics sets of rule strings
- ENUMERATE: every legal receiver/sender/handle/rotation combination,
  filtered by the self_object / self_handle / cross_type flags
- COMPATIBILITY_TABLE: handle-type pairs "r<s"; only self_object applies

The source is always chosen explicitly; it is never inferred from which
inputs happen to be non-empty.
"""

from collections import defaultdict
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
import logging
import numpy as np

from ..errors import ConfigurationError, RuleParseError
from .assembly_object import AssemblyObject, offset_mesh_inward
from .rule import (
    Rule,
    format_angle,
    parse_compatibility_string,
    parse_rule_string,
    split_heuristics_set,
)

logger = logging.getLogger(__name__)


class RuleSource(str, Enum):
    """Where compiled rules come from."""
    STRINGS = "strings"
    ENUMERATE = "enumerate"
    COMPATIBILITY_TABLE = "compatibility_table"


class Catalog:
    """
    Ordered, read-only collection of prototype AssemblyObjects.

    Parameters
    ----------
    prototypes : sequence of AssemblyObject
        Prototypes in catalog order
    offset_distance : float, optional
        If given, interference (offset) meshes are rebuilt with this inward
        offset so that they match the run tolerance

    Raises
    ------
    ConfigurationError
        If the list is empty or a name occurs twice
    """

    def __init__(self, prototypes: Sequence[AssemblyObject], offset_distance: Optional[float] = None):
        if not prototypes:
            raise ConfigurationError("Catalog needs at least one prototype")

        self._prototypes: List[AssemblyObject] = []
        self._types: Dict[str, int] = {}

        for proto in prototypes:
            if proto.name in self._types:
                raise ConfigurationError(f"Duplicate prototype name in catalog: {proto.name!r}")
            type_index = len(self._prototypes)
            typed = proto.with_type(type_index)
            if offset_distance is not None:
                typed.offset_mesh = offset_mesh_inward(typed.collision_mesh, offset_distance)
            self._types[proto.name] = type_index
            self._prototypes.append(typed)

    def __len__(self) -> int:
        return len(self._prototypes)

    def __iter__(self):
        return iter(self._prototypes)

    def __getitem__(self, type_index: int) -> AssemblyObject:
        return self._prototypes[type_index]

    @property
    def name_to_type(self) -> Dict[str, int]:
        return dict(self._types)

    @property
    def names(self) -> List[str]:
        return [p.name for p in self._prototypes]

    def type_of(self, name: str) -> int:
        """
        Type index of a prototype name.

        Raises
        ------
        RuleParseError
            If the name is not in the catalog
        """
        try:
            return self._types[name]
        except KeyError:
            raise RuleParseError("Unknown prototype name", name) from None

    def prototype(self, name: str) -> AssemblyObject:
        return self._prototypes[self.type_of(name)]

    def max_diagonal(self) -> float:
        """Largest bounding-box diagonal among the prototypes."""
        return max(float(np.linalg.norm(p.bounds[1] - p.bounds[0])) for p in self._prototypes)


def compile_rule(text: str, catalog: Catalog) -> Rule:
    """
    Parse a rule string and resolve it against the catalog.

    Raises
    ------
    RuleParseError
        On malformed syntax, unknown names, out-of-range handle indices or a
        rotation angle the receiver handle does not allow
    """
    tokens = parse_rule_string(text)

    receiver_type = catalog.type_of(tokens.receiver_name)
    sender_type = catalog.type_of(tokens.sender_name)
    receiver = catalog[receiver_type]
    sender = catalog[sender_type]

    if tokens.receiver_handle >= len(receiver.handles):
        raise RuleParseError(
            f"Receiver handle {tokens.receiver_handle} out of range for {receiver.name}", text
        )
    if tokens.sender_handle >= len(sender.handles):
        raise RuleParseError(
            f"Sender handle {tokens.sender_handle} out of range for {sender.name}", text
        )

    handle = receiver.handles[tokens.receiver_handle]
    if not handle.has_rotation(tokens.angle):
        raise RuleParseError(
            f"Rotation {tokens.angle_text} not allowed on {receiver.name} handle {tokens.receiver_handle}",
            text,
        )

    return Rule(
        receiver_name=tokens.receiver_name,
        receiver_type=receiver_type,
        receiver_handle=tokens.receiver_handle,
        receiver_rotation=handle.rotation_index(tokens.angle),
        rotation_angle=tokens.angle,
        sender_name=tokens.sender_name,
        sender_type=sender_type,
        sender_handle=tokens.sender_handle,
        weight=tokens.weight,
        angle_text=tokens.angle_text,
    )


def compile_heuristics_set(text: str, catalog: Catalog) -> List[Rule]:
    """Compile every rule of a comma-separated heuristics set."""
    return [compile_rule(token, catalog) for token in split_heuristics_set(text)]


def _make_rule(catalog: Catalog, r_type: int, r_handle: int, r_rot: int, s_type: int, s_handle: int) -> Rule:
    receiver = catalog[r_type]
    angle = receiver.handles[r_handle].rotations[r_rot]
    return Rule(
        receiver_name=receiver.name,
        receiver_type=r_type,
        receiver_handle=r_handle,
        receiver_rotation=r_rot,
        rotation_angle=angle,
        sender_name=catalog[s_type].name,
        sender_type=s_type,
        sender_handle=s_handle,
        weight=1,
        angle_text=format_angle(angle),
    )


def enumerate_rules(
    catalog: Catalog,
    self_object: bool = True,
    self_handle: bool = False,
    cross_type: bool = False,
) -> List[Rule]:
    """
    Enumerate every legal receiver/sender/handle/rotation combination.

    Complexity is O(objects^2 x handles^2 x rotations); this runs once per
    catalog.

    Parameters
    ----------
    catalog : Catalog
        Prototype catalog
    self_object : bool
        Allow an object type to attach to its own type
    self_handle : bool
        Allow a handle to attach to the same handle index of the same type
    cross_type : bool
        Allow handles of different types to attach

    Returns
    -------
    List[Rule]
        Rules in (receiver, receiver handle, sender, sender handle, rotation) order
    """
    rules = []
    for r_type, receiver in enumerate(catalog):
        for r_handle, rh in enumerate(receiver.handles):
            for s_type, sender in enumerate(catalog):
                if r_type == s_type and not self_object:
                    continue
                for s_handle, sh in enumerate(sender.handles):
                    if r_type == s_type and r_handle == s_handle and not self_handle:
                        continue
                    if rh.type != sh.type and not cross_type:
                        continue
                    for r_rot in range(len(rh.rotations)):
                        rules.append(_make_rule(catalog, r_type, r_handle, r_rot, s_type, s_handle))
    return rules


def parse_compatibility_table(table: Iterable[str]) -> Dict[int, Set[int]]:
    """Map receiver handle type -> set of accepted sender handle types."""
    compat: Dict[int, Set[int]] = defaultdict(set)
    for line in table:
        if not line.strip():
            continue
        r_type, s_type = parse_compatibility_string(line)
        compat[r_type].add(s_type)
    return dict(compat)


def enumerate_rules_from_table(
    catalog: Catalog,
    table: Iterable[str],
    self_object: bool = True,
) -> List[Rule]:
    """
    Enumerate rules allowed by a handle-type compatibility table.

    Only listed (receiver type, sender type) pairs produce rules; equal
    handle types are not implicitly compatible.
    """
    compat = parse_compatibility_table(table)
    rules = []
    for r_type, receiver in enumerate(catalog):
        for r_handle, rh in enumerate(receiver.handles):
            accepted = compat.get(rh.type)
            if not accepted:
                continue
            for s_type, sender in enumerate(catalog):
                if r_type == s_type and not self_object:
                    continue
                for s_handle, sh in enumerate(sender.handles):
                    if sh.type not in accepted:
                        continue
                    for r_rot in range(len(rh.rotations)):
                        rules.append(_make_rule(catalog, r_type, r_handle, r_rot, s_type, s_handle))
    return rules


class RuleIndex:
    """
    Compiled rules addressed by (heuristics set index, receiver type).

    Rules keep their compile order inside each key, which is also the
    tie-break order used by sender selection.
    """

    def __init__(self, sets: Sequence[Sequence[Rule]]):
        self._sets: List[List[Rule]] = [list(s) for s in sets]
        self._paths: Dict[Tuple[int, int], List[Rule]] = defaultdict(list)
        for set_index, rules in enumerate(self._sets):
            for rule in rules:
                self._paths[(set_index, rule.receiver_type)].append(rule)
        self._paths = dict(self._paths)

    @property
    def set_count(self) -> int:
        return len(self._sets)

    def has_path(self, set_index: int, receiver_type: int) -> bool:
        return (set_index, receiver_type) in self._paths

    def rules_for(self, set_index: int, receiver_type: int) -> List[Rule]:
        return self._paths.get((set_index, receiver_type), [])

    def rules_in_set(self, set_index: int) -> List[Rule]:
        return list(self._sets[set_index])

    def to_strings(self) -> List[str]:
        """Heuristics sets as comma-separated rule strings."""
        return [",".join(r.to_string() for r in rules) for rules in self._sets]

    def __len__(self) -> int:
        return sum(len(s) for s in self._sets)


def compile_rule_index(
    catalog: Catalog,
    source: RuleSource,
    heuristics_sets: Optional[Sequence[str]] = None,
    self_object: bool = True,
    self_handle: bool = False,
    cross_type: bool = False,
    compatibility_table: Optional[Sequence[str]] = None,
) -> RuleIndex:
    """
    Compile a RuleIndex from an explicitly chosen rule source.

    Raises
    ------
    ConfigurationError
        If the chosen source has no input, or any rule fails to compile
    """
    source = RuleSource(source)

    if source == RuleSource.STRINGS:
        if not heuristics_sets:
            raise ConfigurationError("Rule source 'strings' needs at least one heuristics set")
        sets = [compile_heuristics_set(text, catalog) for text in heuristics_sets]
    elif source == RuleSource.ENUMERATE:
        sets = [enumerate_rules(catalog, self_object, self_handle, cross_type)]
    else:
        if not compatibility_table:
            raise ConfigurationError("Rule source 'compatibility_table' needs a non-empty table")
        sets = [enumerate_rules_from_table(catalog, compatibility_table, self_object)]

    index = RuleIndex(sets)
    logger.debug(f"Compiled {len(index)} rules in {index.set_count} set(s) from {source.value}")
    return index
