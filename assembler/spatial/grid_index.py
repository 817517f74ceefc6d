"""
Uniform grid-based spatial index over axis-aligned bounding boxes.

Placed objects are indexed by the grid cells their bounding box overlaps,
which makes the broad phase of collision and occlusion queries
near-constant time per candidate. Queries are conservative: every object
whose box overlaps the query box is returned, plus possibly a few that only
share a cell.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple
import numpy as np

Cell = Tuple[int, int, int]


def boxes_overlap(a: np.ndarray, b: np.ndarray, tol: float = 0.0) -> bool:
    """
    True when two axis-aligned boxes overlap (touching counts as overlap).

    Parameters
    ----------
    a, b : np.ndarray
        Boxes as (2, 3) arrays of [min, max] corners
    tol : float
        Padding added to both boxes
    """
    return bool(np.all(a[0] - tol <= b[1]) and np.all(b[0] - tol <= a[1]))


def union_box(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.stack([np.minimum(a[0], b[0]), np.maximum(a[1], b[1])])


class AABBGridIndex:
    """
    Dynamic spatial index for incremental insertion of object bounding boxes.

    Objects are inserted once, when they are committed, and never move. The
    index stores each box by integer id (the object's assemblage index).
    """

    def __init__(self, cell_size: float = 1.0):
        """
        Initialize the index.

        Parameters
        ----------
        cell_size : float
            Size of grid cells. Roughly the size of a typical prototype works
            well: each box then spans a handful of cells.
        """
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        self.cell_size = cell_size
        self.inv_cell_size = 1.0 / cell_size
        self.grid: Dict[Cell, Set[int]] = defaultdict(set)

        self._boxes: Dict[int, np.ndarray] = {}
        self._cells: Dict[int, Set[Cell]] = {}

    def clear(self) -> None:
        """Clear all indexed boxes."""
        self.grid.clear()
        self._boxes.clear()
        self._cells.clear()

    def _get_cell_coords(self, point: np.ndarray) -> Cell:
        """Convert world coordinates to grid cell coordinates."""
        return (
            int(np.floor(point[0] * self.inv_cell_size)),
            int(np.floor(point[1] * self.inv_cell_size)),
            int(np.floor(point[2] * self.inv_cell_size)),
        )

    def _get_cells_for_box(self, box: np.ndarray, padding: float = 0.0) -> Set[Cell]:
        """All grid cells overlapped by a (padded) box."""
        lo = self._get_cell_coords(box[0] - padding)
        hi = self._get_cell_coords(box[1] + padding)
        cells: Set[Cell] = set()
        for ci in range(lo[0], hi[0] + 1):
            for cj in range(lo[1], hi[1] + 1):
                for ck in range(lo[2], hi[2] + 1):
                    cells.add((ci, cj, ck))
        return cells

    def insert(self, object_id: int, box: np.ndarray) -> None:
        """
        Insert an object's bounding box.

        Parameters
        ----------
        object_id : int
            Unique identifier (assemblage index)
        box : np.ndarray
            (2, 3) array of [min, max] corners
        """
        box = np.asarray(box, dtype=np.float64).reshape(2, 3)
        if object_id in self._boxes:
            self.remove(object_id)

        cells = self._get_cells_for_box(box)
        self._boxes[object_id] = box
        self._cells[object_id] = cells
        for cell in cells:
            self.grid[cell].add(object_id)

    def remove(self, object_id: int) -> None:
        for cell in self._cells.pop(object_id, set()):
            bucket = self.grid.get(cell)
            if bucket is not None:
                bucket.discard(object_id)
                if not bucket:
                    del self.grid[cell]
        self._boxes.pop(object_id, None)

    def query_candidates(self, box: np.ndarray, padding: float = 0.0) -> Set[int]:
        """
        Broad-phase query: ids sharing at least one cell with the padded box.
        """
        box = np.asarray(box, dtype=np.float64).reshape(2, 3)
        candidates: Set[int] = set()
        for cell in self._get_cells_for_box(box, padding):
            if cell in self.grid:
                candidates.update(self.grid[cell])
        return candidates

    def query_overlapping(self, box: np.ndarray, padding: float = 0.0) -> List[int]:
        """
        Ids whose boxes overlap the padded query box, sorted ascending.
        """
        box = np.asarray(box, dtype=np.float64).reshape(2, 3)
        hits = [
            oid for oid in self.query_candidates(box, padding)
            if boxes_overlap(self._boxes[oid], box, padding)
        ]
        return sorted(hits)

    def query_radius(self, point: np.ndarray, radius: float) -> List[int]:
        """Ids whose boxes overlap the cube of half-size radius around a point."""
        p = np.asarray(point, dtype=np.float64)
        return self.query_overlapping(np.stack([p - radius, p + radius]))

    @property
    def object_count(self) -> int:
        """Return the number of indexed boxes."""
        return len(self._boxes)

    def get_box(self, object_id: int) -> Optional[np.ndarray]:
        return self._boxes.get(object_id)

    def ids(self) -> Iterable[int]:
        return self._boxes.keys()
