"""Environment meshes, interaction modes and sandbox."""

from .environment import (
    EnvironmentMesh,
    EnvironmentMode,
    EnvironmentRole,
    ExogenousSettings,
    Sandbox,
    classify_environment_meshes,
)

__all__ = [
    "EnvironmentMesh",
    "EnvironmentMode",
    "EnvironmentRole",
    "ExogenousSettings",
    "Sandbox",
    "classify_environment_meshes",
]
