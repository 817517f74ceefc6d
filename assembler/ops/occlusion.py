"""
Handle connection and occlusion updates after a commit.

When an object is committed, the free handles around it are re-evaluated
in both directions (new object vs. each neighbour):

1. two free handles whose sender origins coincide are linked as Connected
   (an "accidental" connection formed by the surrounding geometry)
2. otherwise a short ray is cast from the free handle along its normal; if
   it hits the other object's collision mesh, the handle becomes Occluded
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple
import logging
import numpy as np

from ..core.assembly_object import AssemblyObject
from ..core.handle import Occupancy

logger = logging.getLogger(__name__)


@dataclass
class ObstructionResult:
    """Connections and occlusions produced by one obstruction check."""
    connections: List[Tuple[int, int, int, int]] = field(default_factory=list)
    occlusions: List[Tuple[int, int, int]] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.connections or self.occlusions)

    def to_dict(self) -> dict:
        return {
            "connections": [list(c) for c in self.connections],
            "occlusions": [list(o) for o in self.occlusions],
        }


def connect_handles(a: AssemblyObject, handle_a: int, b: AssemblyObject, handle_b: int) -> None:
    """
    Link two handles as Connected in both directions.

    Both handles take the average of their weights.
    """
    ha, hb = a.handles[handle_a], b.handles[handle_b]
    ha.connect(b.aind, handle_b)
    hb.connect(a.aind, handle_a)
    weight = 0.5 * (ha.weight + hb.weight)
    ha.weight = weight
    hb.weight = weight


def ray_hits_mesh(obj: AssemblyObject, origin: np.ndarray, direction: np.ndarray, length: float) -> bool:
    """True if the segment origin + t * direction, t in [0, length], hits the object's mesh."""
    locations, index_ray, _ = obj.collision_mesh.ray.intersects_location(
        ray_origins=origin[None, :], ray_directions=direction[None, :]
    )
    if len(locations) == 0:
        return False
    t = (locations - origin) @ direction
    return bool(np.any((t >= 0.0) & (t <= length)))


def _handle_blocked(owner: AssemblyObject, handle_index: int, other: AssemblyObject,
                    ray_offset: float, ray_length: float) -> bool:
    sender = owner.handles[handle_index].sender
    z = sender.z_axis
    start = sender.origin - z * ray_offset
    return ray_hits_mesh(other, start, z, ray_length)


def obstruction_check(
    new_obj: AssemblyObject,
    neighbours: Iterable[AssemblyObject],
    tolerance: float,
    ray_offset: float,
    ray_length: float,
) -> ObstructionResult:
    """
    Connect or occlude free handles between a new object and its neighbours.

    Parameters
    ----------
    new_obj : AssemblyObject
        The object just committed (aind assigned)
    neighbours : iterable of AssemblyObject
        Committed objects near the new one
    tolerance : float
        Distance below which two sender origins are considered coincident
    ray_offset : float
        Ray start is pulled back this far behind the handle origin
    ray_length : float
        Length of the occlusion ray

    Returns
    -------
    ObstructionResult
        Connections as (aind_a, handle_a, aind_b, handle_b) and occlusions as
        (aind, handle, occluder_aind)
    """
    result = ObstructionResult()
    tol_sq = tolerance * tolerance

    for neigh in neighbours:
        if neigh.aind == new_obj.aind:
            continue

        for j, nh in enumerate(neigh.handles):
            if nh.occupancy != Occupancy.FREE:
                continue

            connected = False
            for k, h in enumerate(new_obj.handles):
                if h.occupancy != Occupancy.FREE:
                    continue
                d = nh.sender.origin - h.sender.origin
                if float(np.dot(d, d)) < tol_sq:
                    connect_handles(new_obj, k, neigh, j)
                    result.connections.append((new_obj.aind, k, neigh.aind, j))
                    connected = True
                    break
            if connected:
                continue

            if _handle_blocked(neigh, j, new_obj, ray_offset, ray_length):
                nh.occlude(new_obj.aind)
                new_obj.occluded_neighbours.append([neigh.aind, j])
                result.occlusions.append((neigh.aind, j, new_obj.aind))

        for k, h in enumerate(new_obj.handles):
            if h.occupancy != Occupancy.FREE:
                continue
            if _handle_blocked(new_obj, k, neigh, ray_offset, ray_length):
                h.occlude(neigh.aind)
                neigh.occluded_neighbours.append([new_obj.aind, k])
                result.occlusions.append((new_obj.aind, k, neigh.aind))

    if result.changed:
        logger.debug(
            f"Object {new_obj.aind}: {len(result.connections)} accidental connection(s), "
            f"{len(result.occlusions)} occlusion(s)"
        )
    return result
