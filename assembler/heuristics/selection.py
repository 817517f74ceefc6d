"""
Receiver and sender selection strategies.

Every strategy is split in two steps: a value function that scores each
option, and a selector that turns the scores into one index. Deterministic
selectors take the first extremal value, so ties resolve to the lowest
index; stochastic selectors draw from the run's numpy Generator only.
"""

from typing import Dict, Optional, Sequence
import numpy as np

from ..core.assembly_object import AssemblyObject
from ..core.field import Field
from ..core.handle import Occupancy
from ..errors import ConfigurationError
from .settings import ReceiverMode, SenderMode


def select_min_index(values: np.ndarray) -> int:
    return int(np.argmin(values))


def select_max_index(values: np.ndarray) -> int:
    return int(np.argmax(values))


def select_random_index(values: np.ndarray, rng: np.random.Generator) -> int:
    return int(rng.integers(len(values)))


def weighted_random_choice(weights: Sequence[float], rng: np.random.Generator) -> int:
    """
    Index drawn with probability proportional to its weight.

    Negative weights count as zero; if every weight is zero the draw is
    uniform.
    """
    w = np.clip(np.asarray(weights, dtype=np.float64), 0.0, None)
    total = w.sum()
    if total <= 0:
        return int(rng.integers(len(w)))
    return int(rng.choice(len(w), p=w / total))


def _require_field(field: Optional[Field]) -> Field:
    if field is None:
        raise ConfigurationError("This selection mode needs a Field")
    return field


# receivers

def density_value(obj: AssemblyObject, placed: Dict[int, AssemblyObject]) -> float:
    """Sum of the weights of the objects connected to obj's handles."""
    total = 0.0
    for h in obj.handles:
        if h.occupancy == Occupancy.CONNECTED and h.neighbour_object in placed:
            total += placed[h.neighbour_object].weight
    return total


def compute_receiver_value(
    mode: ReceiverMode,
    obj: AssemblyObject,
    placed: Dict[int, AssemblyObject],
    field: Optional[Field] = None,
    threshold: float = 0.5,
) -> float:
    """
    Score one candidate receiver; lower is better for modes 1-3.
    """
    if mode == ReceiverMode.RANDOM:
        return 0.0
    if mode == ReceiverMode.SCALAR_NEAREST:
        return abs(threshold - _require_field(field).closest_scalar(obj.origin))
    if mode == ReceiverMode.SCALAR_INTERPOLATED:
        return abs(threshold - _require_field(field).interpolated_scalar(obj.origin))
    return density_value(obj, placed)


def select_receiver(mode: ReceiverMode, values: np.ndarray, rng: np.random.Generator) -> int:
    if mode == ReceiverMode.RANDOM:
        return select_random_index(values, rng)
    return select_min_index(values)


# senders

def _angle_between(a: np.ndarray, b: np.ndarray) -> float:
    nb = np.linalg.norm(b)
    if nb < 1e-12:
        return 0.5 * np.pi
    return float(np.arctan2(np.linalg.norm(np.cross(a, b)), np.dot(a, b)))


def _bidirectional_misalignment(a: np.ndarray, b: np.ndarray) -> float:
    nb = np.linalg.norm(b)
    if nb < 1e-12:
        return 1.0
    return 1.0 - abs(float(np.dot(a, b / nb)))


def compute_sender_value(
    mode: SenderMode,
    candidate: AssemblyObject,
    receiver: AssemblyObject,
    rule_weight: int,
    field: Optional[Field] = None,
    threshold: float = 0.5,
) -> float:
    """
    Score one valid candidate placement.

    For WEIGHTED_RANDOM the value is the rule weight (a probability mass);
    for every other mode lower is better.
    """
    p = candidate.origin
    if mode == SenderMode.RANDOM:
        return 0.0
    if mode == SenderMode.SCALAR_NEAREST:
        return abs(threshold - _require_field(field).closest_scalar(p))
    if mode == SenderMode.SCALAR_INTERPOLATED:
        return abs(threshold - _require_field(field).interpolated_scalar(p))
    if mode == SenderMode.VECTOR_NEAREST:
        return _angle_between(candidate.direction, _require_field(field).closest_vector(p))
    if mode == SenderMode.VECTOR_INTERPOLATED:
        return _angle_between(candidate.direction, _require_field(field).interpolated_vector(p))
    if mode == SenderMode.VECTOR_BIDIRECTIONAL_NEAREST:
        return _bidirectional_misalignment(candidate.direction, _require_field(field).closest_vector(p))
    if mode == SenderMode.VECTOR_BIDIRECTIONAL_INTERPOLATED:
        return _bidirectional_misalignment(candidate.direction, _require_field(field).interpolated_vector(p))

    if mode in (SenderMode.BOX_VOLUME, SenderMode.BOX_DIAGONAL):
        a, b = candidate.bounds, receiver.bounds
        size = np.maximum(a[1], b[1]) - np.minimum(a[0], b[0])
        if mode == SenderMode.BOX_VOLUME:
            return float(np.prod(size))
        return float(np.linalg.norm(size))

    return float(rule_weight)


def uses_candidate_factors(mode: SenderMode) -> bool:
    """Deterministic scoring modes add the candidate factor to the score."""
    return mode not in (SenderMode.RANDOM, SenderMode.WEIGHTED_RANDOM)


def select_sender(mode: SenderMode, values: np.ndarray, rng: np.random.Generator) -> int:
    if mode == SenderMode.RANDOM:
        return select_random_index(values, rng)
    if mode == SenderMode.WEIGHTED_RANDOM:
        return weighted_random_choice(values, rng)
    return select_min_index(values)
