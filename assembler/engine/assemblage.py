"""
Assemblage: the rule-driven aggregation engine.

One call to ``update()`` performs one full placement cycle:

1. SELECT_RECEIVER - pick an available placed object (free handle, not unreachable)
2. GENERATE_CANDIDATES - instantiate every rule of the active set whose
   receiver handle is free on that object
3. FILTER_CANDIDATES - world-Z lock, environment, field bounds, collision
4. SELECT_SENDER - score the survivors and pick one
5. COMMIT - assign the index, link handles, index the geometry, update
   occlusion and availability

A receiver whose candidates are all rejected is marked unreachable and the
cycle restarts at step 1 within the same call. When no receiver is left
the engine is EXHAUSTED; when the placed count reaches max_objects it is
COMPLETE. Both are terminal states and are reported, never raised.

KEY INVARIANTS
--------------
1. COMMIT is the only state that mutates topology
2. Object indices (aind) are unique, sequential and never reused
3. Committed geometry never moves
4. All randomness comes from one numpy Generator seeded by the policy
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import logging
import numpy as np

from assembler_policies import (
    AssemblagePolicy,
    HeuristicsPolicy,
    OperationReport,
)

from ..core.assembly_object import AssemblyObject
from ..core.catalog import Catalog, RuleIndex
from ..core.handle import Occupancy
from ..core.frames import as_frame, plane_to_plane
from ..core.rule import Rule
from ..errors import ConfigurationError, InputError
from ..exogenous.environment import EnvironmentMode, ExogenousSettings
from ..heuristics.selection import (
    compute_receiver_value,
    compute_sender_value,
    select_receiver,
    select_sender,
    uses_candidate_factors,
)
from ..heuristics.settings import (
    FIELD_RECEIVER_MODES,
    FIELD_SENDER_MODES,
    HeuristicsMode,
    HeuristicsSettings,
    ReceiverMode,
    SenderMode,
)
from ..ops.collision import CollisionEngine
from ..ops.occlusion import connect_handles, obstruction_check

logger = logging.getLogger(__name__)

# occlusion rays start this many tolerances behind the handle plane
RAY_OFFSET_TOLERANCES = 5.0

StartPlacement = Tuple[Union[str, int], Any]


class EngineState(str, Enum):
    """States of the aggregation state machine."""
    IDLE = "idle"
    SELECT_RECEIVER = "select_receiver"
    GENERATE_CANDIDATES = "generate_candidates"
    FILTER_CANDIDATES = "filter_candidates"
    SELECT_SENDER = "select_sender"
    COMMIT = "commit"
    EXHAUSTED = "exhausted"
    COMPLETE = "complete"

    @property
    def is_terminal(self) -> bool:
        return self in (EngineState.EXHAUSTED, EngineState.COMPLETE)


@dataclass
class Candidate:
    """A transformed sender proposed for one rule on one receiver."""
    rule: Rule
    obj: AssemblyObject
    factor: float


@dataclass
class StepReport:
    """Report from a single update() call."""
    state: EngineState
    placed_aind: Optional[int] = None
    receiver_aind: Optional[int] = None
    rule: str = ""
    candidates_tried: int = 0
    candidates_valid: int = 0
    unreachable_marked: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "placed_aind": self.placed_aind,
            "receiver_aind": self.receiver_aind,
            "rule": self.rule,
            "candidates_tried": self.candidates_tried,
            "candidates_valid": self.candidates_valid,
            "unreachable_marked": self.unreachable_marked,
        }


def _heuristics_settings(heuristics: Union[HeuristicsPolicy, HeuristicsSettings]) -> HeuristicsSettings:
    if isinstance(heuristics, HeuristicsSettings):
        return heuristics
    return HeuristicsSettings.from_policy(heuristics)


class Assemblage:
    """
    Discrete aggregation of catalog prototypes driven by compiled rules.

    Parameters
    ----------
    catalog : Catalog or sequence of AssemblyObject
        Prototypes; a plain sequence is wrapped in a Catalog whose offset
        meshes match the policy tolerance
    start : sequence of (name or type index, frame)
        Start placements; each prototype's reference frame is moved onto the
        given frame (Frame, 4x4 matrix or (origin, x, y) triple)
    policy : AssemblagePolicy
        Loop limits, seed and geometric tolerances
    heuristics : HeuristicsPolicy or HeuristicsSettings
        Rule source and selection modes
    exogenous : ExogenousSettings, optional
        Environment meshes, field and sandbox (none by default)

    Attributes
    ----------
    objects : list of AssemblyObject
        Placed objects in commit order (list index == aind)
    rule_strings : list of str
        Rule used to place each object ("" for start objects)
    receiver_indices : list of int
        Receiver aind of each object (-1 for start objects)
    available : list of int
        Objects that can still act as receivers
    unreachable : list of int
        Objects with free handles but no admissible candidate
    state : EngineState
        Current state of the state machine

    Raises
    ------
    ConfigurationError
        On invalid policies, rule sets or a field-dependent mode without
        the field data it needs
    """

    def __init__(
        self,
        catalog: Union[Catalog, Sequence[AssemblyObject]],
        start: Sequence[StartPlacement],
        policy: AssemblagePolicy,
        heuristics: Union[HeuristicsPolicy, HeuristicsSettings],
        exogenous: Optional[ExogenousSettings] = None,
    ):
        errors = policy.validate()
        if errors:
            raise ConfigurationError("; ".join(errors))

        self.policy = policy
        self.settings = _heuristics_settings(heuristics)
        self.exogenous = exogenous if exogenous is not None else ExogenousSettings(mode=EnvironmentMode.IGNORE)
        self.field = self.exogenous.sampling_field
        self._check_field_requirements()

        if isinstance(catalog, Catalog):
            self.catalog = catalog
        else:
            self.catalog = Catalog(catalog, offset_distance=policy.offset_distance)
        self.rules: RuleIndex = self.settings.compile(self.catalog)

        self.rng = np.random.default_rng(policy.seed)
        self.cell_size = policy.cell_size or self.catalog.max_diagonal() * policy.collision_radius_multiplier
        self.collision = CollisionEngine(self.cell_size)

        self.objects: List[AssemblyObject] = []
        self.rule_strings: List[str] = []
        self.receiver_indices: List[int] = []
        self.available: List[int] = []
        self.unreachable: List[int] = []
        self.sandbox_available: List[int] = []
        self.sandbox_unreachable: List[int] = []
        self.state = EngineState.IDLE
        self.steps = 0

        for type_or_name, frame in start:
            self.place_start_object(type_or_name, frame)

        logger.info(
            f"Assemblage started: {len(self.catalog)} prototype(s), {len(self.rules)} rule(s), "
            f"{len(self.objects)} start object(s), max_objects={policy.max_objects}"
        )
        self._check_complete()

    # configuration

    def _check_field_requirements(self) -> None:
        s = self.settings
        if not s.is_field_dependent:
            return
        if self.field is None:
            raise ConfigurationError(
                f"Heuristics (mode={s.mode.value}, receiver_mode={int(s.receiver_mode)}, "
                f"sender_mode={int(s.sender_mode)}) need a Field"
            )
        scalar_modes = (SenderMode.SCALAR_NEAREST, SenderMode.SCALAR_INTERPOLATED)
        needs_scalars = s.receiver_mode in FIELD_RECEIVER_MODES or s.sender_mode in scalar_modes
        needs_vectors = s.sender_mode in FIELD_SENDER_MODES and s.sender_mode not in scalar_modes
        if needs_scalars and self.field.scalars is None:
            raise ConfigurationError("Scalar-field heuristics need a Field with scalars")
        if needs_vectors and self.field.vectors is None:
            raise ConfigurationError("Vector-field heuristics need a Field with vectors")
        if s.mode == HeuristicsMode.FIELD and self.field.iweights is None:
            raise ConfigurationError("Field heuristics mode needs a Field with iweights")

    @property
    def field_active(self) -> bool:
        return self.field is not None and self.settings.is_field_dependent

    def _resolve_type(self, type_or_name: Union[str, int]) -> int:
        if isinstance(type_or_name, str):
            return self.catalog.type_of(type_or_name)
        type_index = int(type_or_name)
        if not 0 <= type_index < len(self.catalog):
            raise ConfigurationError(f"Start type {type_index} out of range for {len(self.catalog)} prototype(s)")
        return type_index

    def heuristics_set_index(self, obj: AssemblyObject) -> int:
        """Active heuristics set for a receiver (its iweight in field mode)."""
        if self.settings.mode == HeuristicsMode.FIELD:
            return int(obj.iweight)
        return self.settings.current_set

    # placement

    def place_start_object(self, type_or_name: Union[str, int], frame: Any) -> AssemblyObject:
        """
        Place a prototype with its reference frame on a given frame.

        Start objects bypass candidate validation; their rule string is ""
        and their receiver index is -1.
        """
        proto = self.catalog[self._resolve_type(type_or_name)]
        obj = proto.instantiate(plane_to_plane(proto.reference_frame, as_frame(frame)))
        if self.settings.mode == HeuristicsMode.FIELD and self.field is not None:
            obj.iweight = int(self.field.closest_iweights(obj.origin)[0])
        obj.receiver_value = 0.0
        self._register(obj, "", -1, [])
        return obj

    def generate_candidates(self, receiver: AssemblyObject) -> List[Candidate]:
        """
        Instantiate every rule of the active set that fits a free handle.

        Candidates keep rule compile order. A rule whose transform cannot
        be built is skipped with a warning.
        """
        rules = self.rules.rules_for(self.heuristics_set_index(receiver), receiver.type)
        free = set(receiver.free_handle_indices())
        candidates = []
        for rule in rules:
            if rule.receiver_handle not in free:
                continue
            proto = self.catalog[rule.sender_type]
            sender_handle = proto.handles[rule.sender_handle]
            target = receiver.handles[rule.receiver_handle].receivers[rule.receiver_rotation]
            try:
                obj = proto.instantiate(plane_to_plane(sender_handle.sender, target))
            except (np.linalg.LinAlgError, ValueError, InputError) as e:
                logger.warning(f"Skipping candidate {rule} on object {receiver.aind}: {e}")
                continue
            factor = rule.weight + proto.weight + sender_handle.weight
            candidates.append(Candidate(rule=rule, obj=obj, factor=factor))
        return candidates

    def is_candidate_valid(self, obj: AssemblyObject) -> bool:
        """
        True if a candidate may be committed.

        Checks, in order: world-Z lock, environment, field bounds (when a
        field drives the heuristics) and collision with placed objects.
        """
        if self.policy.check_world_z_lock and obj.world_z_lock:
            if not obj.is_world_z_aligned(self.policy.tolerance):
                return False
        if self.exogenous.clashes(obj):
            return False
        if self.field_active and self.field.is_point_outside(obj.origin):
            return False
        return not self.collision.collides(obj)

    def _register(self, obj: AssemblyObject, rule_string: str, receiver_aind: int,
                  touched: List[AssemblyObject]) -> None:
        obj.aind = len(self.objects)
        self.objects.append(obj)
        self.rule_strings.append(rule_string)
        self.receiver_indices.append(receiver_aind)
        self.collision.add(obj)

        neighbours = [
            self.objects[i]
            for i in self.collision.neighbours(obj, padding=self.policy.obstruction_ray_length)
        ]
        obstruction_check(
            obj,
            neighbours,
            tolerance=self.policy.tolerance,
            ray_offset=RAY_OFFSET_TOLERANCES * self.policy.tolerance,
            ray_length=self.policy.obstruction_ray_length,
        )

        if obj.has_free_handles():
            self.available.append(obj.aind)
        # the receiver and neighbours may have lost their last free handle
        for other in neighbours + touched:
            if not other.has_free_handles():
                self._discard(other.aind)

    def _discard(self, aind: int) -> None:
        if aind in self.available:
            self.available.remove(aind)
        if aind in self.unreachable:
            self.unreachable.remove(aind)

    def commit(self, receiver: AssemblyObject, candidate: Candidate) -> AssemblyObject:
        """
        Place a candidate on a receiver.

        Links the rule's handles as Connected (averaging their weights),
        records the rule string and receiver, indexes the object,
        recomputes occlusion around it and stores its receiver value.
        """
        obj = candidate.obj
        if self.settings.mode == HeuristicsMode.FIELD:
            obj.iweight = int(self.field.closest_iweights(obj.origin)[0])

        rule = candidate.rule
        obj.aind = len(self.objects)
        connect_handles(receiver, rule.receiver_handle, obj, rule.sender_handle)
        self._register(obj, rule.to_string(), receiver.aind, [receiver])
        obj.receiver_value = self._receiver_value(obj)
        if self.settings.receiver_mode == ReceiverMode.DENSITY:
            # density of every object the new one connected to has grown
            for h in obj.handles:
                if h.occupancy == Occupancy.CONNECTED:
                    other = self.objects[h.neighbour_object]
                    other.receiver_value = self._receiver_value(other)
        return obj

    def mark_unreachable(self, aind: int) -> None:
        if aind in self.available:
            self.available.remove(aind)
        if aind not in self.unreachable:
            self.unreachable.append(aind)
        logger.debug(f"Object {aind} marked unreachable")

    # state machine

    def _check_complete(self) -> bool:
        if len(self.objects) >= self.policy.max_objects:
            if self.state != EngineState.COMPLETE:
                self.state = EngineState.COMPLETE
                logger.info(f"Assemblage complete: {len(self.objects)} object(s) placed")
            return True
        return False

    def _select_receiver(self) -> Optional[AssemblyObject]:
        if not self.available:
            return None
        mode = self.settings.receiver_mode
        candidates = [self.objects[i] for i in self.available]
        if mode == ReceiverMode.RANDOM:
            values = np.zeros(len(candidates))
        else:
            placed = dict(enumerate(self.objects))
            values = np.array([
                compute_receiver_value(mode, obj, placed, self.field, self.exogenous.field_threshold)
                for obj in candidates
            ])
        index = select_receiver(mode, values, self.rng)
        return candidates[index]

    def _receiver_value(self, obj: AssemblyObject) -> float:
        mode = self.settings.receiver_mode
        placed = dict(enumerate(self.objects))
        return float(compute_receiver_value(mode, obj, placed, self.field, self.exogenous.field_threshold))

    def _select_sender(self, receiver: AssemblyObject, valid: List[Candidate]) -> Tuple[Candidate, float]:
        mode = self.settings.sender_mode
        values = np.array([
            compute_sender_value(
                mode, c.obj, receiver, c.rule.weight, self.field, self.exogenous.field_threshold
            )
            for c in valid
        ])
        if uses_candidate_factors(mode):
            values = values + np.array([c.factor for c in valid])
        index = select_sender(mode, values, self.rng)
        return valid[index], float(values[index])

    def update(self) -> StepReport:
        """
        Run one placement cycle.

        Returns
        -------
        StepReport
            What happened; state is EXHAUSTED or COMPLETE when the engine
            stopped. Calling update() in a terminal state is a no-op.
        """
        report = StepReport(state=self.state)
        if self.state.is_terminal or self._check_complete():
            report.state = self.state
            return report

        self.steps += 1
        while True:
            self.state = EngineState.SELECT_RECEIVER
            receiver = self._select_receiver()
            if receiver is None:
                self.state = EngineState.EXHAUSTED
                logger.info(
                    f"Assemblage exhausted: {len(self.objects)} object(s) placed, "
                    f"{len(self.unreachable)} unreachable"
                )
                report.state = self.state
                return report
            report.receiver_aind = receiver.aind

            if self.field_active and self.field.is_point_outside(receiver.origin):
                self.mark_unreachable(receiver.aind)
                report.unreachable_marked += 1
                continue

            self.state = EngineState.GENERATE_CANDIDATES
            candidates = self.generate_candidates(receiver)
            report.candidates_tried += len(candidates)

            self.state = EngineState.FILTER_CANDIDATES
            valid = [c for c in candidates if self.is_candidate_valid(c.obj)]
            report.candidates_valid += len(valid)
            logger.debug(
                f"Step {self.steps}: receiver {receiver.aind}, "
                f"{len(candidates)} candidate(s), {len(valid)} valid"
            )
            if not valid:
                self.mark_unreachable(receiver.aind)
                report.unreachable_marked += 1
                continue

            self.state = EngineState.SELECT_SENDER
            chosen, value = self._select_sender(receiver, valid)
            chosen.obj.sender_value = value

            self.state = EngineState.COMMIT
            obj = self.commit(receiver, chosen)
            report.placed_aind = obj.aind
            report.rule = self.rule_strings[obj.aind]

            self.state = EngineState.IDLE
            self._check_complete()
            report.state = self.state
            return report

    def run(self, max_steps: Optional[int] = None) -> OperationReport:
        """
        Call update() until a terminal state or a step limit.

        Parameters
        ----------
        max_steps : int, optional
            Step limit for this call; defaults to policy.max_steps, and to
            no limit when both are None

        Returns
        -------
        OperationReport
            The run summary
        """
        limit = max_steps if max_steps is not None else self.policy.max_steps
        done = 0
        while not self.state.is_terminal and (limit is None or done < limit):
            self.update()
            done += 1
        return self.summary()

    # maintenance

    def _has_admissible_candidate(self, obj: AssemblyObject) -> bool:
        return any(self.is_candidate_valid(c.obj) for c in self.generate_candidates(obj))

    def is_unreachable(self, obj: AssemblyObject) -> bool:
        """
        True if an object cannot receive anything in the current state.

        That is the case when it clashes with the environment, lies outside
        an active field, has no rule path for its type, or no free handle
        yields a valid candidate.
        """
        if self.exogenous.clashes(obj):
            return True
        if self.field_active and self.field.is_point_outside(obj.origin):
            return True
        if not self.rules.has_path(self.heuristics_set_index(obj), obj.type):
            return True
        return not self._has_admissible_candidate(obj)

    def reset_occupancy_status(self) -> OperationReport:
        """
        Rebuild the available/unreachable partition from scratch.

        Every object with a free handle is made available again, then
        re-marked unreachable if is_unreachable() holds. Also refreshes the
        sandbox lists. A terminal EXHAUSTED state returns to IDLE when a
        receiver became available.
        """
        previous = len(self.unreachable)
        self.unreachable = []
        self.available = [obj.aind for obj in self.objects if obj.has_free_handles()]
        for aind in list(self.available):
            if self.is_unreachable(self.objects[aind]):
                self.mark_unreachable(aind)

        sandbox = self.exogenous.sandbox
        if sandbox is not None:
            self.sandbox_available = [i for i in self.available if sandbox.contains(self.objects[i].origin)]
            self.sandbox_unreachable = [i for i in self.unreachable if sandbox.contains(self.objects[i].origin)]

        if self.state == EngineState.EXHAUSTED and self.available:
            self.state = EngineState.IDLE
        self._check_complete()

        report = OperationReport(operation="reset_occupancy_status")
        report.metadata = {
            "previously_unreachable": previous,
            "available": len(self.available),
            "unreachable": len(self.unreachable),
            "sandbox_available": len(self.sandbox_available),
            "sandbox_unreachable": len(self.sandbox_unreachable),
        }
        return report

    def summary(self) -> OperationReport:
        """Run summary with requested and effective configuration."""
        requested = {
            "assemblage": self.policy.to_dict(),
            "heuristics": {
                "mode": self.settings.mode.value,
                "receiver_mode": int(self.settings.receiver_mode),
                "sender_mode": int(self.settings.sender_mode),
                "rule_source": self.settings.rule_source.value,
                "current_set": self.settings.current_set,
            },
            "environment_mode": int(self.exogenous.mode),
        }
        effective = dict(requested)
        effective["assemblage"] = dict(requested["assemblage"], cell_size=self.cell_size)

        report = OperationReport(
            operation="assemblage",
            requested_policy=requested,
            effective_policy=effective,
        )
        report.metadata = {
            "state": self.state.value,
            "placed": len(self.objects),
            "available": len(self.available),
            "unreachable": len(self.unreachable),
            "steps": self.steps,
            "rules": len(self.rules),
            "heuristics_sets": self.rules.to_strings(),
        }
        if self.state == EngineState.EXHAUSTED:
            report.add_warning(
                f"Exhausted before max_objects ({len(self.objects)}/{self.policy.max_objects})"
            )
        return report

    # resume

    @classmethod
    def from_existing(
        cls,
        catalog: Union[Catalog, Sequence[AssemblyObject]],
        objects: Sequence[AssemblyObject],
        policy: AssemblagePolicy,
        heuristics: Union[HeuristicsPolicy, HeuristicsSettings],
        exogenous: Optional[ExogenousSettings] = None,
        rule_strings: Optional[Sequence[str]] = None,
        receiver_indices: Optional[Sequence[int]] = None,
        unreachable: Optional[Sequence[int]] = None,
    ) -> "Assemblage":
        """
        Restart an aggregation from previously placed objects.

        Objects keep their geometry and handle state exactly; occlusion is
        not recomputed. Their aind values must be 0..n-1 in order.

        Raises
        ------
        ConfigurationError
            If the indices are not sequential or a name is not in the catalog
        """
        assemblage = cls(catalog, [], policy, heuristics, exogenous)
        n = len(objects)
        rule_strings = list(rule_strings) if rule_strings is not None else [""] * n
        receiver_indices = list(receiver_indices) if receiver_indices is not None else [-1] * n
        if len(rule_strings) != n or len(receiver_indices) != n:
            raise ConfigurationError("rule_strings and receiver_indices must match the object count")

        for i, obj in enumerate(objects):
            if obj.aind != i:
                raise ConfigurationError(f"Object at position {i} has aind {obj.aind}; expected {i}")
            obj.type = assemblage.catalog.type_of(obj.name)
            assemblage.objects.append(obj)
            assemblage.rule_strings.append(rule_strings[i])
            assemblage.receiver_indices.append(int(receiver_indices[i]))
            assemblage.collision.add(obj)

        skipped = set(int(i) for i in unreachable) if unreachable is not None else set()
        assemblage.available = [o.aind for o in objects if o.has_free_handles() and o.aind not in skipped]
        assemblage.unreachable = [o.aind for o in objects if o.has_free_handles() and o.aind in skipped]
        assemblage.state = EngineState.IDLE
        assemblage._check_complete()
        logger.info(f"Assemblage resumed with {n} placed object(s)")
        return assemblage

    def __len__(self) -> int:
        return len(self.objects)

    def __repr__(self) -> str:
        return (
            f"Assemblage(placed={len(self.objects)}, available={len(self.available)}, "
            f"unreachable={len(self.unreachable)}, state={self.state.value})"
        )
