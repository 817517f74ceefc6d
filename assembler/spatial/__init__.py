"""Spatial indexing for broad-phase queries."""

from .grid_index import AABBGridIndex, boxes_overlap, union_box

__all__ = [
    "AABBGridIndex",
    "boxes_overlap",
    "union_box",
]
