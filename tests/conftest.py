"""
Shared fixtures: a unit-cube prototype with four lateral handles and a box
container.

Cube handles sit on the +X, -X, +Y and -Y faces. Every handle frame has its
y axis on world +Z and its normal pointing out of the face, so any rule
between two of them keeps the cube upright and places the sender on the
neighbouring grid cell.
"""

import numpy as np
import pytest
import trimesh

from assembler.core.assembly_object import AssemblyObject
from assembler.core.frames import Frame
from assembler.core.handle import Handle

LATERAL_FACES = [
    ((0.5, 0.0, 0.0), (0.0, 1.0, 0.0)),
    ((-0.5, 0.0, 0.0), (0.0, -1.0, 0.0)),
    ((0.0, 0.5, 0.0), (-1.0, 0.0, 0.0)),
    ((0.0, -0.5, 0.0), (1.0, 0.0, 0.0)),
]


def make_cube_handles(rotations=(0.0,), handle_type=0):
    return [
        Handle(Frame.from_axes(origin, x_axis, (0.0, 0.0, 1.0)), type=handle_type, rotations=list(rotations))
        for origin, x_axis in LATERAL_FACES
    ]


def make_cube(name="cube", handles=None, weight=1.0, world_z_lock=False, size=1.0):
    mesh = trimesh.creation.box(extents=(size, size, size))
    return AssemblyObject(
        name,
        mesh,
        Frame.world_xy(),
        (1.0, 0.0, 0.0),
        handles if handles is not None else make_cube_handles(),
        weight=weight,
        world_z_lock=world_z_lock,
    )


def translation(x=0.0, y=0.0, z=0.0):
    m = np.eye(4)
    m[:3, 3] = (x, y, z)
    return m


def placed_copy(proto, aind, x=0.0, y=0.0, z=0.0):
    """Translated copy of a prototype with an assigned index."""
    obj = proto.instantiate(translation(x, y, z))
    obj.aind = aind
    return obj


@pytest.fixture
def cube():
    """Unit cube centred at the origin with four type-0 lateral handles."""
    return make_cube()


@pytest.fixture
def cube_a():
    """Unit cube prototype named 'A'."""
    return make_cube("A")


@pytest.fixture
def box_container():
    """Box container holding a 3x3 layer of unit-cube origins around (0, 0, 0)."""
    return trimesh.creation.box(extents=(3.5, 3.5, 2.0))


@pytest.fixture
def cube_factory():
    """Factory for cube prototypes: make_cube(name, handles, weight, world_z_lock, size)."""
    return make_cube


@pytest.fixture
def handles_factory():
    """Factory for the four lateral cube handles: make_cube_handles(rotations, handle_type)."""
    return make_cube_handles


@pytest.fixture
def place():
    """Factory for placed copies: place(proto, aind, x, y, z)."""
    return placed_copy
