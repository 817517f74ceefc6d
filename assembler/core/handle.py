"""
Handles: typed, oriented connectors of an AssemblyObject.

A Handle owns one sender frame and one receiver frame per allowed rotation.
Receivers are derived from the sender once, at construction: each one is the
sender rotated about its own normal by the rotation angle and then turned
half a revolution about its own y axis, so that it faces the sender of the
object that will attach to it.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Sequence
import numpy as np

from ..errors import InputError
from .frames import Frame


class Occupancy(IntEnum):
    """Connectivity state of a Handle."""
    OCCLUDED = -1
    FREE = 0
    CONNECTED = 1


def _angle_key(angle: float) -> float:
    # rotation angles are looked up by value; normalize -0.0 and float noise
    return round(float(angle), 9) + 0.0


@dataclass(eq=False)
class Handle:
    """
    Directional connector with sender/receiver frames and connectivity state.

    Parameters
    ----------
    sender : Frame
        Sender frame; its normal points away from the owning object
    type : int
        Handle type used by rule compilation
    rotations : sequence of float
        Allowed relative rotations in degrees (one receiver per entry)
    weight : float
        Handle weight; reset to idle_weight when the handle is freed
    """
    sender: Frame
    type: int
    rotations: List[float]
    weight: float = 1.0
    idle_weight: Optional[float] = None
    occupancy: Occupancy = Occupancy.FREE
    neighbour_object: int = -1
    neighbour_handle: int = -1
    receivers: List[Frame] = field(init=False, repr=False)
    r_dictionary: Dict[float, int] = field(init=False, repr=False)

    def __post_init__(self):
        if not isinstance(self.sender, Frame):
            raise InputError(f"Handle sender must be a Frame, got {type(self.sender).__name__}")
        if len(self.rotations) == 0:
            raise InputError("Handle needs at least one rotation")

        self.rotations = [float(r) for r in self.rotations]
        if self.idle_weight is None:
            self.idle_weight = self.weight
        self.occupancy = Occupancy(self.occupancy)

        self.receivers = []
        self.r_dictionary = {}
        for i, angle in enumerate(self.rotations):
            key = _angle_key(angle)
            if key in self.r_dictionary:
                raise InputError(f"Duplicate handle rotation {angle}")
            receiver = self.sender.rotated_about_z(np.radians(angle)).flipped_about_y()
            self.receivers.append(receiver)
            self.r_dictionary[key] = i

    @classmethod
    def from_polyline(
        cls,
        polyline: Sequence[Any],
        type: int,
        rotations: Sequence[float],
        weight: float = 1.0,
    ) -> "Handle":
        """
        Build a handle from an L-shaped 3-point polyline.

        The corner point is the origin, the first leg gives the x axis and the
        last leg the y axis.
        """
        if len(polyline) != 3:
            raise InputError(f"Handle polyline needs exactly 3 points, got {len(polyline)}")
        sender = Frame.from_points(polyline[0], polyline[1], polyline[2])
        return cls(sender=sender, type=int(type), rotations=list(rotations), weight=weight)

    @property
    def is_free(self) -> bool:
        return self.occupancy == Occupancy.FREE

    def rotation_index(self, angle: float) -> int:
        """
        Receiver index for a rotation angle in degrees.

        Raises
        ------
        KeyError
            If the angle is not one of the handle rotations
        """
        return self.r_dictionary[_angle_key(angle)]

    def has_rotation(self, angle: float) -> bool:
        return _angle_key(angle) in self.r_dictionary

    def connect(self, neighbour_object: int, neighbour_handle: int) -> None:
        self.occupancy = Occupancy.CONNECTED
        self.neighbour_object = neighbour_object
        self.neighbour_handle = neighbour_handle

    def occlude(self, neighbour_object: int) -> None:
        self.occupancy = Occupancy.OCCLUDED
        self.neighbour_object = neighbour_object
        self.neighbour_handle = -1

    def release(self) -> None:
        """Return the handle to the Free state with its idle weight."""
        self.occupancy = Occupancy.FREE
        self.neighbour_object = -1
        self.neighbour_handle = -1
        self.weight = self.idle_weight

    def transformed(self, matrix: np.ndarray) -> "Handle":
        """Copy of the handle (state included) moved by a rigid transform."""
        moved = Handle(
            sender=self.sender.transformed(matrix),
            type=self.type,
            rotations=list(self.rotations),
            weight=self.weight,
            idle_weight=self.idle_weight,
            occupancy=self.occupancy,
            neighbour_object=self.neighbour_object,
            neighbour_handle=self.neighbour_handle,
        )
        return moved

    def copy(self) -> "Handle":
        return self.transformed(np.eye(4))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sender": self.sender.to_dict(),
            "type": self.type,
            "rotations": list(self.rotations),
            "weight": self.weight,
            "idle_weight": self.idle_weight,
            "occupancy": int(self.occupancy),
            "neighbour_object": self.neighbour_object,
            "neighbour_handle": self.neighbour_handle,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Handle":
        return cls(
            sender=Frame.from_dict(d["sender"]),
            type=int(d["type"]),
            rotations=list(d["rotations"]),
            weight=float(d.get("weight", 1.0)),
            idle_weight=d.get("idle_weight"),
            occupancy=Occupancy(int(d.get("occupancy", 0))),
            neighbour_object=int(d.get("neighbour_object", -1)),
            neighbour_handle=int(d.get("neighbour_handle", -1)),
        )
