"""
Collision engine for placed AssemblyObjects.

Broad phase: an AABBGridIndex over the bounding boxes of committed objects.
Narrow phase: an FCL-backed trimesh CollisionManager holding every committed
collision mesh, queried with the candidate's inward-offset mesh, plus a
two-way containment test that catches one solid fully nested in another.

Because the query side is offset inward, coplanar face contact between two
objects is not reported as a collision.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set
import logging
import numpy as np
import trimesh

from ..core.assembly_object import AssemblyObject
from ..spatial.grid_index import AABBGridIndex, boxes_overlap

logger = logging.getLogger(__name__)


class CollisionType(str, Enum):
    """Kinds of interference between two objects."""
    INTERSECTION = "intersection"
    CONTAINMENT = "containment"


@dataclass
class Collision:
    """A detected interference with one committed object."""
    other_aind: int
    type: CollisionType

    def to_dict(self) -> dict:
        return {"other_aind": self.other_aind, "type": self.type.value}


@dataclass
class CollisionResult:
    """Result of testing a candidate against the committed objects."""
    colliding: bool = False
    neighbours: List[int] = field(default_factory=list)
    collisions: List[Collision] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "colliding": self.colliding,
            "neighbours": list(self.neighbours),
            "collisions": [c.to_dict() for c in self.collisions],
        }


def first_vertex_inside(container: AssemblyObject, other: AssemblyObject) -> bool:
    """True if the first offset vertex of `other` lies inside `container`."""
    probe = np.asarray(other.offset_mesh.vertices[:1], dtype=np.float64)
    return bool(container.collision_mesh.contains(probe)[0])


def check_pair(a: AssemblyObject, b: AssemblyObject) -> Optional[CollisionType]:
    """
    Exact interference test between two objects.

    Returns
    -------
    CollisionType or None
        None when the objects do not interpenetrate
    """
    if not boxes_overlap(a.bounds, b.bounds):
        return None
    manager = trimesh.collision.CollisionManager()
    manager.add_object("a", a.collision_mesh)
    if manager.in_collision_single(b.offset_mesh):
        return CollisionType.INTERSECTION
    if first_vertex_inside(a, b) or first_vertex_inside(b, a):
        return CollisionType.CONTAINMENT
    return None


class CollisionEngine:
    """
    Incremental collision checker over the committed objects of a run.

    Parameters
    ----------
    cell_size : float
        Grid cell size of the broad-phase index
    """

    def __init__(self, cell_size: float):
        self.index = AABBGridIndex(cell_size)
        self.manager = trimesh.collision.CollisionManager()
        self._objects: Dict[int, AssemblyObject] = {}

    def add(self, obj: AssemblyObject) -> None:
        """Index a committed object (its aind must be assigned)."""
        if obj.aind < 0:
            raise ValueError("Only placed objects (aind >= 0) can be indexed")
        self._objects[obj.aind] = obj
        self.index.insert(obj.aind, obj.bounds)
        self.manager.add_object(str(obj.aind), obj.collision_mesh)

    def __len__(self) -> int:
        return len(self._objects)

    def neighbours(self, obj: AssemblyObject, padding: float = 0.0) -> List[int]:
        """Committed objects whose bounding boxes overlap the object's (padded) box."""
        return [aind for aind in self.index.query_overlapping(obj.bounds, padding) if aind != obj.aind]

    def check(self, candidate: AssemblyObject) -> CollisionResult:
        """
        Test a candidate against every committed object.

        The broad phase only prunes pairs whose boxes cannot touch; the narrow
        phase then runs against the full committed set.
        """
        result = CollisionResult(neighbours=self.neighbours(candidate))
        if not result.neighbours:
            return result

        hit, names = self.manager.in_collision_single(candidate.offset_mesh, return_names=True)
        if hit:
            for name in sorted(names, key=int):
                result.collisions.append(Collision(int(name), CollisionType.INTERSECTION))
            result.colliding = True
            return result

        for aind in result.neighbours:
            other = self._objects[aind]
            if first_vertex_inside(other, candidate) or first_vertex_inside(candidate, other):
                result.collisions.append(Collision(aind, CollisionType.CONTAINMENT))
                result.colliding = True
                break

        return result

    def collides(self, candidate: AssemblyObject) -> bool:
        return self.check(candidate).colliding
