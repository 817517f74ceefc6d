"""
Operations on placed objects.

    - assembler.ops.collision: Broad and narrow phase interference tests
    - assembler.ops.occlusion: Accidental connections and handle occlusion
"""

from .collision import CollisionEngine, CollisionResult, CollisionType, Collision, check_pair
from .occlusion import ObstructionResult, connect_handles, obstruction_check

__all__ = [
    "CollisionEngine",
    "CollisionResult",
    "CollisionType",
    "Collision",
    "check_pair",
    "ObstructionResult",
    "connect_handles",
    "obstruction_check",
]
