"""
Oriented frames (planes) and rigid transforms.

A Frame is an origin plus an orthonormal, right-handed basis. Handles and
AssemblyObjects are positioned entirely through frames, and every placement
is the rigid motion that maps one frame onto another.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
import numpy as np

from ..errors import InputError

WORLD_Z = np.array([0.0, 0.0, 1.0])

_EPS = 1e-12


def as_vector(value: Any, name: str = "vector") -> np.ndarray:
    """
    Convert a 3-sequence or an object with x/y/z attributes to a float array.

    Raises
    ------
    InputError
        If the value cannot be read as a finite 3D vector
    """
    if hasattr(value, "x") and hasattr(value, "y") and hasattr(value, "z"):
        value = (value.x, value.y, value.z)
    try:
        arr = np.asarray(value, dtype=np.float64).reshape(-1)
    except (TypeError, ValueError):
        raise InputError(f"{name} must be a 3D vector, got {value!r}") from None
    if arr.shape != (3,) or not np.all(np.isfinite(arr)):
        raise InputError(f"{name} must be a finite 3D vector, got {value!r}")
    return arr


def unitize(vector: np.ndarray, name: str = "vector") -> np.ndarray:
    """
    Return a unit-length copy of a vector.

    Raises
    ------
    InputError
        If the vector has (near) zero length
    """
    v = np.asarray(vector, dtype=np.float64)
    norm = float(np.linalg.norm(v))
    if norm < _EPS or not np.isfinite(norm):
        raise InputError(f"{name} has zero length")
    return v / norm


@dataclass(frozen=True, eq=False)
class Frame:
    """
    Oriented plane with origin and orthonormal x/y axes.

    The z axis (normal) is always x cross y. Instances are immutable; every
    operation returns a new Frame.
    """
    origin: np.ndarray
    x_axis: np.ndarray
    y_axis: np.ndarray

    @classmethod
    def from_axes(cls, origin: Any, x_dir: Any, y_dir: Any) -> "Frame":
        """
        Build a frame from an origin and two (not necessarily orthogonal) directions.

        The y direction is made orthogonal to x (Gram-Schmidt), so x keeps its
        direction exactly.

        Raises
        ------
        InputError
            If either direction is zero or the two are parallel
        """
        o = as_vector(origin, "frame origin")
        x = unitize(as_vector(x_dir, "frame x axis"), "frame x axis")
        y = as_vector(y_dir, "frame y axis")
        y = y - np.dot(y, x) * x
        y = unitize(y, "frame y axis (parallel to x?)")
        return cls(origin=o, x_axis=x, y_axis=y)

    @classmethod
    def from_points(cls, x_point: Any, origin: Any, y_point: Any) -> "Frame":
        """
        Build a frame from an L-shaped polyline (x end, corner, y end).
        """
        o = np.asarray(origin, dtype=np.float64)
        return cls.from_axes(
            o,
            np.asarray(x_point, dtype=np.float64) - o,
            np.asarray(y_point, dtype=np.float64) - o,
        )

    @classmethod
    def from_matrix(cls, matrix: np.ndarray) -> "Frame":
        """Frame whose axes and origin are the columns of a 4x4 transform."""
        m = np.asarray(matrix, dtype=np.float64)
        return cls.from_axes(m[:3, 3], m[:3, 0], m[:3, 1])

    @classmethod
    def world_xy(cls, origin: Optional[Any] = None) -> "Frame":
        o = np.zeros(3) if origin is None else origin
        return cls.from_axes(o, (1.0, 0.0, 0.0), (0.0, 1.0, 0.0))

    @property
    def z_axis(self) -> np.ndarray:
        return np.cross(self.x_axis, self.y_axis)

    def to_matrix(self) -> np.ndarray:
        """4x4 homogeneous matrix mapping world XY onto this frame."""
        m = np.eye(4)
        m[:3, 0] = self.x_axis
        m[:3, 1] = self.y_axis
        m[:3, 2] = self.z_axis
        m[:3, 3] = self.origin
        return m

    def transformed(self, matrix: np.ndarray) -> "Frame":
        """Apply a rigid 4x4 transform and return the moved frame."""
        m = np.asarray(matrix, dtype=np.float64)
        rot = m[:3, :3]
        origin = rot @ self.origin + m[:3, 3]
        return Frame.from_axes(origin, rot @ self.x_axis, rot @ self.y_axis)

    def rotated_about_z(self, angle: float) -> "Frame":
        """Rotate the frame about its own normal by angle (radians)."""
        c, s = np.cos(angle), np.sin(angle)
        x = c * self.x_axis + s * self.y_axis
        y = -s * self.x_axis + c * self.y_axis
        return Frame.from_axes(self.origin, x, y)

    def flipped_about_y(self) -> "Frame":
        """Rotate the frame by pi about its own y axis (x and z reverse)."""
        return Frame.from_axes(self.origin, -self.x_axis, self.y_axis)

    def is_close(self, other: "Frame", tol: float = 1e-6) -> bool:
        return (
            np.allclose(self.origin, other.origin, atol=tol)
            and np.allclose(self.x_axis, other.x_axis, atol=tol)
            and np.allclose(self.y_axis, other.y_axis, atol=tol)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "origin": self.origin.tolist(),
            "x_axis": self.x_axis.tolist(),
            "y_axis": self.y_axis.tolist(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Frame":
        return cls.from_axes(d["origin"], d["x_axis"], d["y_axis"])


def plane_to_plane(source: Frame, target: Frame) -> np.ndarray:
    """
    Rigid transform that maps the source frame exactly onto the target frame.

    Parameters
    ----------
    source : Frame
        Frame in its current position
    target : Frame
        Frame the source must coincide with after the motion

    Returns
    -------
    np.ndarray
        4x4 homogeneous matrix
    """
    src = source.to_matrix()
    inv = np.eye(4)
    inv[:3, :3] = src[:3, :3].T
    inv[:3, 3] = -src[:3, :3].T @ src[:3, 3]
    return target.to_matrix() @ inv


def is_world_z_aligned(frame: Frame, tol: float) -> bool:
    """True when the frame normal points along world +Z within tolerance."""
    return 1.0 - float(np.dot(frame.z_axis, WORLD_Z)) <= tol


def as_frame(value: Any) -> Frame:
    """
    Convert a Frame, a 4x4 matrix or an (origin, x, y) triple to a Frame.

    Raises
    ------
    InputError
        If the value cannot be read as a frame
    """
    if isinstance(value, Frame):
        return value
    arr = np.asarray(value, dtype=np.float64)
    if arr.shape == (4, 4):
        return Frame.from_matrix(arr)
    if arr.shape == (3, 3):
        return Frame.from_axes(arr[0], arr[1], arr[2])
    raise InputError(f"Cannot read a frame from value of shape {arr.shape}")
