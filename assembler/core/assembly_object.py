"""
AssemblyObject: the placeable geometric unit of an aggregation.

An AssemblyObject couples a closed collision solid with a reference frame,
a principal direction and an ordered list of Handles. Prototypes (catalog
entries) carry aind == -1; placed instances are produced by
``instantiate()``, which copies the prototype and applies a rigid transform
without touching the template.
"""

from typing import Any, Dict, List, Optional, Sequence
import logging
import numpy as np
import trimesh

from assembler_policies import AssemblagePolicy

from ..errors import InputError
from .frames import Frame, as_vector, is_world_z_aligned, unitize
from .handle import Handle, Occupancy

logger = logging.getLogger(__name__)


def offset_mesh_inward(mesh: trimesh.Trimesh, distance: float) -> trimesh.Trimesh:
    """
    Shrink a mesh by moving each vertex against its angle-weighted normal.

    The face topology is kept, so the first vertex of the offset mesh is the
    shrunk counterpart of the first vertex of the source mesh.

    Parameters
    ----------
    mesh : trimesh.Trimesh
        Closed, outward-oriented mesh
    distance : float
        Inward offset distance

    Returns
    -------
    trimesh.Trimesh
        New mesh with the same faces
    """
    normals = np.asarray(mesh.vertex_normals, dtype=np.float64)
    vertices = np.asarray(mesh.vertices, dtype=np.float64) - normals * distance
    return trimesh.Trimesh(vertices=vertices, faces=np.asarray(mesh.faces), process=False)


def _check_collision_mesh(mesh: Any) -> trimesh.Trimesh:
    if mesh is None:
        raise InputError("Collision mesh is required")
    if not isinstance(mesh, trimesh.Trimesh):
        raise InputError(f"Collision mesh must be a trimesh.Trimesh, got {type(mesh).__name__}")
    if len(mesh.faces) == 0 or len(mesh.vertices) == 0:
        raise InputError("Collision mesh is empty")
    if not mesh.is_watertight:
        raise InputError("Collision mesh must be closed (watertight)")

    mesh = mesh.copy()
    if mesh.volume < 0:
        # inward-facing solids are flipped so containment and offsets agree
        mesh.invert()
    return mesh


class AssemblyObject:
    """
    Geometric unit with a collision solid and typed connectors.

    Parameters
    ----------
    name : str
        Catalog name, unique within a catalog
    collision_mesh : trimesh.Trimesh
        Closed solid used for interference tests
    reference_frame : Frame
        Reference frame; its origin is the object's placement point
    direction : array-like
        Principal direction (non-zero)
    handles : sequence of Handle
        Ordered connectors (at least one)
    weight : float
        Object weight, used by packing and candidate factors
    world_z_lock : bool
        If True, placements must keep the reference normal on world +Z
    type : int
        Catalog type index (-1 until registered in a Catalog)
    offset_distance : float, optional
        Inward offset of the interference mesh; defaults to the offset of a
        default AssemblagePolicy. A Catalog built with an offset replaces it.
    """

    def __init__(
        self,
        name: str,
        collision_mesh: trimesh.Trimesh,
        reference_frame: Frame,
        direction: Any,
        handles: Sequence[Handle],
        weight: float = 1.0,
        world_z_lock: bool = False,
        type: int = -1,
        offset_distance: Optional[float] = None,
    ):
        if not name or not isinstance(name, str):
            raise InputError("AssemblyObject needs a non-empty name")
        if not isinstance(reference_frame, Frame):
            raise InputError("reference_frame must be a Frame")
        if not handles:
            raise InputError(f"AssemblyObject '{name}' has no handles")
        for h in handles:
            if not isinstance(h, Handle):
                raise InputError(f"AssemblyObject '{name}' handles must be Handle instances")

        self.name = name
        self.type = int(type)
        self.collision_mesh = _check_collision_mesh(collision_mesh)
        if offset_distance is None:
            offset_distance = AssemblagePolicy().offset_distance
        self.offset_mesh = offset_mesh_inward(self.collision_mesh, offset_distance)
        self.reference_frame = reference_frame
        self.direction = unitize(as_vector(direction, "direction"), "direction")
        self.handles: List[Handle] = [h.copy() for h in handles]
        self.weight = float(weight)
        self.idle_weight = float(weight)
        self.world_z_lock = bool(world_z_lock)

        # placement state
        self.aind = -1
        self.iweight = 0
        self.occluded_neighbours: List[List[int]] = []
        self.receiver_value = float("nan")
        self.sender_value = float("nan")

    @classmethod
    def _bare(cls) -> "AssemblyObject":
        return cls.__new__(cls)

    @property
    def origin(self) -> np.ndarray:
        return self.reference_frame.origin

    @property
    def bounds(self) -> np.ndarray:
        """Axis-aligned bounding box of the collision mesh, shape (2, 3)."""
        return np.asarray(self.collision_mesh.bounds, dtype=np.float64)

    @property
    def is_placed(self) -> bool:
        return self.aind >= 0

    def free_handle_indices(self) -> List[int]:
        return [i for i, h in enumerate(self.handles) if h.occupancy == Occupancy.FREE]

    def has_free_handles(self) -> bool:
        return any(h.occupancy == Occupancy.FREE for h in self.handles)

    def is_world_z_aligned(self, tol: float) -> bool:
        return is_world_z_aligned(self.reference_frame, tol)

    def instantiate(self, matrix: np.ndarray) -> "AssemblyObject":
        """
        Copy this object and move the copy by a rigid transform.

        Geometry, handles (with their connectivity state) and scalar attributes
        are copied; placement bookkeeping (aind, occlusion list, values) is
        reset, so the result is always an unplaced candidate.
        """
        m = np.asarray(matrix, dtype=np.float64)
        obj = AssemblyObject._bare()
        obj.name = self.name
        obj.type = self.type
        obj.collision_mesh = self.collision_mesh.copy()
        obj.collision_mesh.apply_transform(m)
        obj.offset_mesh = self.offset_mesh.copy()
        obj.offset_mesh.apply_transform(m)
        obj.reference_frame = self.reference_frame.transformed(m)
        obj.direction = m[:3, :3] @ self.direction
        obj.handles = [h.transformed(m) for h in self.handles]
        obj.weight = self.weight
        obj.idle_weight = self.idle_weight
        obj.world_z_lock = self.world_z_lock
        obj.aind = -1
        obj.iweight = self.iweight
        obj.occluded_neighbours = []
        obj.receiver_value = float("nan")
        obj.sender_value = float("nan")
        return obj

    def with_type(self, type_index: int) -> "AssemblyObject":
        """Untransformed copy carrying a catalog type index."""
        obj = self.instantiate(np.eye(4))
        obj.type = int(type_index)
        return obj

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "aind": self.aind,
            "vertices": np.asarray(self.collision_mesh.vertices).tolist(),
            "faces": np.asarray(self.collision_mesh.faces).tolist(),
            "offset_vertices": np.asarray(self.offset_mesh.vertices).tolist(),
            "reference_frame": self.reference_frame.to_dict(),
            "direction": self.direction.tolist(),
            "handles": [h.to_dict() for h in self.handles],
            "weight": self.weight,
            "idle_weight": self.idle_weight,
            "world_z_lock": self.world_z_lock,
            "iweight": self.iweight,
            "occluded_neighbours": [list(pair) for pair in self.occluded_neighbours],
            "receiver_value": None if np.isnan(self.receiver_value) else self.receiver_value,
            "sender_value": None if np.isnan(self.sender_value) else self.sender_value,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "AssemblyObject":
        obj = cls._bare()
        faces = np.asarray(d["faces"], dtype=np.int64)
        obj.name = d["name"]
        obj.type = int(d.get("type", -1))
        obj.collision_mesh = trimesh.Trimesh(
            vertices=np.asarray(d["vertices"], dtype=np.float64), faces=faces, process=False
        )
        obj.offset_mesh = trimesh.Trimesh(
            vertices=np.asarray(d["offset_vertices"], dtype=np.float64), faces=faces, process=False
        )
        obj.reference_frame = Frame.from_dict(d["reference_frame"])
        obj.direction = np.asarray(d["direction"], dtype=np.float64)
        obj.handles = [Handle.from_dict(h) for h in d["handles"]]
        obj.weight = float(d.get("weight", 1.0))
        obj.idle_weight = float(d.get("idle_weight", obj.weight))
        obj.world_z_lock = bool(d.get("world_z_lock", False))
        obj.aind = int(d.get("aind", -1))
        obj.iweight = int(d.get("iweight", 0))
        obj.occluded_neighbours = [list(map(int, pair)) for pair in d.get("occluded_neighbours", [])]
        rv, sv = d.get("receiver_value"), d.get("sender_value")
        obj.receiver_value = float("nan") if rv is None else float(rv)
        obj.sender_value = float("nan") if sv is None else float(sv)
        return obj

    def __repr__(self) -> str:
        return (
            f"AssemblyObject(name={self.name!r}, type={self.type}, aind={self.aind}, "
            f"handles={len(self.handles)})"
        )
