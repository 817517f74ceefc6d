"""
Exogenous constraints: environment meshes, interaction mode and sandbox.

Environment meshes gate candidate acceptance independently of inter-object
collision. Each mesh has a role:

- CONTAINER: the aggregation must stay inside it (at most one)
- SOLID: an obstacle (outward normals, positive volume)
- VOID: a region the aggregation must keep its origins out of (inward
  normals, negative signed volume)

Interaction modes:

- IGNORE (0): no environment test
- COLLISION (1): container and solids are hard obstacles
- INCLUSION (2): only the object's origin is tested against the container
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, List, Optional, Sequence
import logging
import numpy as np
import trimesh

from assembler_policies import ExogenousPolicy

from ..core.assembly_object import AssemblyObject
from ..core.field import Field
from ..errors import ConfigurationError, InputError

logger = logging.getLogger(__name__)


class EnvironmentRole(str, Enum):
    """Role of an environment mesh."""
    CONTAINER = "container"
    SOLID = "solid"
    VOID = "void"


class EnvironmentMode(IntEnum):
    """How candidates interact with the environment."""
    IGNORE = 0
    COLLISION = 1
    INCLUSION = 2


class EnvironmentMesh:
    """
    Environment mesh with a role and cached collision/containment queries.

    Parameters
    ----------
    mesh : trimesh.Trimesh
        Closed mesh
    role : EnvironmentRole, optional
        If omitted, the role is VOID for negative signed volume, else SOLID
    """

    def __init__(self, mesh: trimesh.Trimesh, role: Optional[EnvironmentRole] = None):
        if not isinstance(mesh, trimesh.Trimesh) or len(mesh.faces) == 0:
            raise InputError("Environment mesh must be a non-empty trimesh.Trimesh")
        if not mesh.is_watertight:
            raise InputError("Environment mesh must be closed (watertight)")
        if role is None:
            role = EnvironmentRole.VOID if mesh.volume < 0 else EnvironmentRole.SOLID
        self.role = EnvironmentRole(role)

        # containment is orientation independent; keep outward winding for FCL
        self.mesh = mesh.copy()
        if self.mesh.volume < 0:
            self.mesh.invert()

        self._manager = trimesh.collision.CollisionManager()
        self._manager.add_object("environment", self.mesh)

    def contains(self, point: Any) -> bool:
        p = np.asarray(point, dtype=np.float64).reshape(1, 3)
        return bool(self.mesh.contains(p)[0])

    def is_point_invalid(self, point: Any) -> bool:
        """Inside is invalid for solids/voids; outside is invalid for the container."""
        inside = self.contains(point)
        if self.role == EnvironmentRole.CONTAINER:
            return not inside
        return inside

    def collides(self, mesh: trimesh.Trimesh) -> bool:
        return bool(self._manager.in_collision_single(mesh))


def classify_environment_meshes(meshes: Sequence[trimesh.Trimesh], has_container: bool) -> List[EnvironmentMesh]:
    """
    Assign roles to raw environment meshes.

    When has_container is set, the first mesh is the container; every other
    mesh is a void if its signed volume is negative, a solid otherwise.
    """
    envs = []
    for i, mesh in enumerate(meshes):
        if i == 0 and has_container:
            envs.append(EnvironmentMesh(mesh, EnvironmentRole.CONTAINER))
        else:
            envs.append(EnvironmentMesh(mesh))
    return envs


@dataclass
class Sandbox:
    """
    Axis-aligned box, scaled about its centre, used to tag objects of interest.
    """
    bounds: np.ndarray
    scale: float = 1.2

    def __post_init__(self):
        b = np.asarray(self.bounds, dtype=np.float64).reshape(2, 3)
        if np.any(b[1] <= b[0]):
            raise ConfigurationError("Sandbox box must have positive size")
        centre = 0.5 * (b[0] + b[1])
        half = 0.5 * (b[1] - b[0]) * self.scale
        self.bounds = np.stack([centre - half, centre + half])

    def contains(self, point: Any) -> bool:
        p = np.asarray(point, dtype=np.float64)
        return bool(np.all(p >= self.bounds[0]) and np.all(p <= self.bounds[1]))


@dataclass
class ExogenousSettings:
    """
    Environment configuration of a run.

    Parameters
    ----------
    environment_meshes : list of EnvironmentMesh
        Classified environment meshes
    mode : EnvironmentMode
        Interaction mode; forced to IGNORE when there are no meshes
    sampling_field : Field, optional
        Field used by field-driven heuristics
    field_threshold : float
        Scalar target for field-driven heuristics
    sandbox : Sandbox, optional
        Region of interest
    """
    environment_meshes: List[EnvironmentMesh] = field(default_factory=list)
    mode: EnvironmentMode = EnvironmentMode.COLLISION
    sampling_field: Optional[Field] = None
    field_threshold: float = 0.5
    sandbox: Optional[Sandbox] = None

    def __post_init__(self):
        self.mode = EnvironmentMode(self.mode)
        containers = [e for e in self.environment_meshes if e.role == EnvironmentRole.CONTAINER]
        if len(containers) > 1:
            raise ConfigurationError("At most one container mesh is allowed")
        if not self.environment_meshes and self.mode != EnvironmentMode.IGNORE:
            logger.debug(f"No environment meshes; mode {self.mode.name} -> IGNORE")
            self.mode = EnvironmentMode.IGNORE

    @classmethod
    def from_meshes(
        cls,
        meshes: Sequence[trimesh.Trimesh] = (),
        mode: int = EnvironmentMode.COLLISION,
        has_container: bool = False,
        sampling_field: Optional[Field] = None,
        field_threshold: float = 0.5,
        sandbox_bounds: Optional[Any] = None,
        sandbox_scale: float = 1.2,
    ) -> "ExogenousSettings":
        """Build settings from raw meshes, classifying them by orientation."""
        sandbox = Sandbox(np.asarray(sandbox_bounds), sandbox_scale) if sandbox_bounds is not None else None
        return cls(
            environment_meshes=classify_environment_meshes(meshes, has_container),
            mode=EnvironmentMode(mode),
            sampling_field=sampling_field,
            field_threshold=field_threshold,
            sandbox=sandbox,
        )

    @classmethod
    def from_policy(
        cls,
        policy: ExogenousPolicy,
        meshes: Sequence[trimesh.Trimesh] = (),
        sampling_field: Optional[Field] = None,
        sandbox_bounds: Optional[Any] = None,
    ) -> "ExogenousSettings":
        """
        Build settings from an ExogenousPolicy.

        Raises
        ------
        ConfigurationError
            If the policy reports any validation error
        """
        errors = policy.validate()
        if errors:
            raise ConfigurationError("; ".join(errors))
        return cls.from_meshes(
            meshes,
            mode=policy.environment_mode,
            has_container=policy.has_container,
            sampling_field=sampling_field,
            field_threshold=policy.field_threshold,
            sandbox_bounds=sandbox_bounds,
            sandbox_scale=policy.sandbox_scale,
        )

    @property
    def has_container(self) -> bool:
        return any(e.role == EnvironmentRole.CONTAINER for e in self.environment_meshes)

    def clashes(self, obj: AssemblyObject) -> bool:
        """
        True if the object is incompatible with the environment.

        COLLISION: voids test the origin; solids and the container also test
        mesh collision. INCLUSION: the container only tests the origin.
        """
        if self.mode == EnvironmentMode.IGNORE:
            return False

        origin = obj.origin
        for env in self.environment_meshes:
            if env.role == EnvironmentRole.VOID:
                if env.is_point_invalid(origin):
                    return True
            elif env.role == EnvironmentRole.SOLID:
                if env.collides(obj.collision_mesh) or env.is_point_invalid(origin):
                    return True
            else:
                if self.mode == EnvironmentMode.COLLISION and env.collides(obj.collision_mesh):
                    return True
                if env.is_point_invalid(origin):
                    return True
        return False
