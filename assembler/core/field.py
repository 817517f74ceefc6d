"""
Field: spatial samples of scalars, vectors and integer weights.

A Field is an auxiliary point set used to bias selection heuristics. Each
sample point carries a tensor (scalars, vectors, iweights), a list of
topological neighbours and one transmission coefficient per neighbour
(inverse distance, normalized to sum 1 per point, unless given).

Two construction modes are supported:

- dense grid from an axis-aligned box (Field.from_box)
- sparse point cloud with explicit or inferred topology (Field(...))

Lookups (closest / interpolated) are read-only. The stigmergy methods are
the only mutating operations after population.
"""

from typing import Any, List, NamedTuple, Optional, Sequence, Tuple
import logging
import numpy as np
from scipy.spatial import cKDTree

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

SAFE_SCALE_MULTIPLIER = 1.2
SPARSE_RADIUS_MULTIPLIER = 1.5


class FieldTensor(NamedTuple):
    """Values stored at one sample point."""
    scalars: Optional[np.ndarray]
    vectors: Optional[np.ndarray]
    iweights: Optional[np.ndarray]


def normalize_ranges(values: np.ndarray) -> np.ndarray:
    """
    Normalize each column to [0, 1]; constant columns map to 0.5.

    Parameters
    ----------
    values : np.ndarray
        Array of shape (n_points, n_values)

    Returns
    -------
    np.ndarray
        Normalized copy
    """
    values = np.asarray(values, dtype=np.float64)
    v_min = values.min(axis=0)
    v_max = values.max(axis=0)
    span = v_max - v_min
    out = np.full_like(values, 0.5)
    varying = span > 0
    out[:, varying] = (values[:, varying] - v_min[varying]) / span[varying]
    return out


def inverse_distance_coefficients(points: np.ndarray, topology: Sequence[np.ndarray]) -> List[np.ndarray]:
    """Inverse-distance transmission coefficients, normalized per point."""
    coefficients = []
    for i, neighbours in enumerate(topology):
        neighbours = np.asarray(neighbours, dtype=np.int64)
        if len(neighbours) == 0:
            coefficients.append(np.zeros(0))
            continue
        d = np.linalg.norm(points[neighbours] - points[i], axis=1)
        inv = 1.0 / np.maximum(d, 1e-12)
        coefficients.append(inv / inv.sum())
    return coefficients


def _grid_topology(nx: int, ny: int, nz: int) -> List[np.ndarray]:
    # point index = (i * ny + j) * nz + k, matching the generation order
    topology = []
    offsets = [
        (di, dj, dk)
        for di in (-1, 0, 1) for dj in (-1, 0, 1) for dk in (-1, 0, 1)
        if (di, dj, dk) != (0, 0, 0)
    ]
    for i in range(nx):
        for j in range(ny):
            for k in range(nz):
                neighbours = []
                for di, dj, dk in offsets:
                    a, b, c = i + di, j + dj, k + dk
                    if 0 <= a < nx and 0 <= b < ny and 0 <= c < nz:
                        neighbours.append((a * ny + b) * nz + c)
                topology.append(np.asarray(neighbours, dtype=np.int64))
    return topology


def _as_branches(values: Any, item_shape: Tuple[int, ...], dtype) -> np.ndarray:
    """Coerce input to an array of branches, shape (n_branches, n_items, *item_shape)."""
    arr = np.asarray(values, dtype=dtype)
    base = len(item_shape)
    if arr.ndim == base:
        arr = arr.reshape((1, 1) + item_shape)
    elif arr.ndim == base + 1:
        arr = arr.reshape((arr.shape[0], 1) + item_shape)
    elif arr.ndim != base + 2:
        raise ValueError(f"Cannot read field values with shape {arr.shape}")
    if item_shape and arr.shape[2:] != item_shape:
        raise ValueError(f"Field values must have trailing shape {item_shape}, got {arr.shape}")
    return arr


class Field:
    """
    Sparse or dense field of sample points.

    Parameters
    ----------
    points : array-like
        Sample points, shape (n, 3)
    topology : sequence of sequences of int, optional
        Neighbour indices per point. If omitted, neighbours are the points
        within the search radius.
    coefficients : sequence of sequences of float, optional
        Transmission coefficient per neighbour. If omitted, normalized
        inverse distances are used.
    """

    def __init__(
        self,
        points: Any,
        topology: Optional[Sequence[Sequence[int]]] = None,
        coefficients: Optional[Sequence[Sequence[float]]] = None,
    ):
        self.points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if len(self.points) == 0:
            raise ConfigurationError("Field needs at least one point")
        self.tree = cKDTree(self.points)
        self.shape: Optional[Tuple[int, int, int]] = None

        if topology is not None:
            if len(topology) != len(self.points):
                raise ConfigurationError(
                    f"Field topology has {len(topology)} entries for {len(self.points)} points"
                )
            self.topology = [np.asarray(t, dtype=np.int64) for t in topology]
            radius = 0.0
            for i, neighbours in enumerate(self.topology):
                if len(neighbours):
                    d = np.linalg.norm(self.points[neighbours] - self.points[i], axis=1)
                    radius = max(radius, float(d.max()))
            self.search_radius = radius * SAFE_SCALE_MULTIPLIER
            self.max_dist_square = radius * radius
        else:
            if len(self.points) > 1:
                d, _ = self.tree.query(self.points, k=2)
                radius = float(d[:, 1].min())
            else:
                radius = 0.0
            self.search_radius = radius * SPARSE_RADIUS_MULTIPLIER
            self.max_dist_square = radius * radius
            self.topology = [
                np.asarray(sorted(j for j in self.tree.query_ball_point(p, self.search_radius) if j != i),
                           dtype=np.int64)
                for i, p in enumerate(self.points)
            ]

        if coefficients is not None:
            if len(coefficients) != len(self.points):
                raise ConfigurationError("Field coefficients must match the number of points")
            self.coefficients = [np.asarray(c, dtype=np.float64) for c in coefficients]
        else:
            self.coefficients = inverse_distance_coefficients(self.points, self.topology)

        self.scalars: Optional[np.ndarray] = None
        self.vectors: Optional[np.ndarray] = None
        self.iweights: Optional[np.ndarray] = None
        self.stigmergy: Optional[np.ndarray] = None

    @classmethod
    def from_box(
        cls,
        bounds: Any,
        n: Optional[int] = None,
        counts: Optional[Tuple[int, int, int]] = None,
        resolution: Optional[Tuple[float, float, float]] = None,
    ) -> "Field":
        """
        Dense grid field with one sample at the centre of each cell.

        Exactly one sizing argument must be given:

        - n: number of cells along the largest box dimension, the other
          axes use the same cell size
        - counts: (nx, ny, nz) cells per axis
        - resolution: (rx, ry, rz) target cell size per axis

        Parameters
        ----------
        bounds : array-like
            Axis-aligned box as [[xmin, ymin, zmin], [xmax, ymax, zmax]]

        Raises
        ------
        ConfigurationError
            On missing/ambiguous sizing, zero or negative counts or resolution,
            or a degenerate box
        """
        b = np.asarray(bounds, dtype=np.float64).reshape(2, 3)
        size = b[1] - b[0]
        if np.any(size <= 0):
            raise ConfigurationError(f"Field box must have positive size, got {size.tolist()}")

        given = [arg is not None for arg in (n, counts, resolution)]
        if sum(given) != 1:
            raise ConfigurationError("Give exactly one of n, counts or resolution for a grid field")

        if n is not None:
            if int(n) <= 0:
                raise ConfigurationError(f"Field n must be positive, got {n}")
            res = float(size.max()) / int(n)
            shape = tuple(max(1, int(round(s / res))) for s in size)
        elif counts is not None:
            if len(counts) != 3 or any(int(c) <= 0 for c in counts):
                raise ConfigurationError(f"Field counts must be three positive integers, got {counts}")
            shape = tuple(int(c) for c in counts)
        else:
            if len(resolution) != 3 or any(float(r) <= 0 for r in resolution):
                raise ConfigurationError(f"Field resolution must be three positive values, got {resolution}")
            shape = tuple(max(1, int(round(s / float(r)))) for s, r in zip(size, resolution))

        nx, ny, nz = shape
        step = size / np.asarray(shape, dtype=np.float64)
        ii, jj, kk = np.meshgrid(np.arange(nx), np.arange(ny), np.arange(nz), indexing="ij")
        idx = np.stack([ii.ravel(), jj.ravel(), kk.ravel()], axis=1).astype(np.float64)
        points = b[0] + (idx + 0.5) * step

        topology = _grid_topology(nx, ny, nz)
        field = cls(points, topology=topology)
        field.shape = (nx, ny, nz)

        if len(points) == 1:
            field.search_radius = float(np.linalg.norm(size)) * 0.5 * SAFE_SCALE_MULTIPLIER
        else:
            field.search_radius = float(step[np.asarray(shape) > 1].max()) * SAFE_SCALE_MULTIPLIER
        field.max_dist_square = field.search_radius ** 2
        return field

    def __len__(self) -> int:
        return len(self.points)

    # population

    def _broadcast(self, branches: np.ndarray, what: str) -> Optional[np.ndarray]:
        n_branches = branches.shape[0]
        if n_branches == 1:
            return np.repeat(branches, len(self.points), axis=0)
        if n_branches == len(self.points):
            return branches
        logger.warning(
            f"Field {what} rejected: {n_branches} branches for {len(self.points)} points"
        )
        return None

    def populate_scalars(self, values: Any) -> bool:
        """
        Assign scalar values (one branch for all points, or one per point).

        Values are normalized per column to [0, 1].

        Returns
        -------
        bool
            False (and the field is left unchanged) on a branch-count mismatch
        """
        branches = _as_branches(values, (), np.float64)
        data = self._broadcast(branches, "scalars")
        if data is None:
            return False
        self.scalars = normalize_ranges(data)
        return True

    def populate_vectors(self, values: Any) -> bool:
        """Assign vector values (one branch for all points, or one per point)."""
        branches = _as_branches(values, (3,), np.float64)
        data = self._broadcast(branches, "vectors")
        if data is None:
            return False
        self.vectors = data
        return True

    def populate_iweights(self, values: Any) -> bool:
        """Assign integer weights (one branch for all points, or one per point)."""
        branches = _as_branches(values, (), np.int64)
        data = self._broadcast(branches, "iweights")
        if data is None:
            return False
        self.iweights = data
        return True

    def populate(self, scalars: Any, vectors: Any, iweights: Any) -> bool:
        return (
            self.populate_scalars(scalars)
            and self.populate_vectors(vectors)
            and self.populate_iweights(iweights)
        )

    def allocate_iweights_by_scalar(
        self,
        low: Sequence[int],
        high: Sequence[int],
        threshold: float,
        scalar_index: int = 0,
    ) -> bool:
        """
        Give each point the `low` weights if its scalar is below threshold, else `high`.
        """
        if self.scalars is None or scalar_index >= self.scalars.shape[1]:
            logger.warning("Field iweights allocation needs populated scalars")
            return False
        low = np.asarray(low, dtype=np.int64)
        high = np.asarray(high, dtype=np.int64)
        if low.shape != high.shape:
            raise ConfigurationError("Low and high iweights must have the same length")
        below = self.scalars[:, scalar_index] < threshold
        self.iweights = np.where(below[:, None], low[None, :], high[None, :])
        return True

    def tensor(self, index: int) -> FieldTensor:
        return FieldTensor(
            scalars=None if self.scalars is None else self.scalars[index],
            vectors=None if self.vectors is None else self.vectors[index],
            iweights=None if self.iweights is None else self.iweights[index],
        )

    # lookups

    def closest_index(self, point: Any) -> int:
        _, idx = self.tree.query(np.asarray(point, dtype=np.float64))
        return int(idx)

    def is_point_outside(self, point: Any) -> bool:
        """True when the nearest sample is farther than the field reach."""
        d, _ = self.tree.query(np.asarray(point, dtype=np.float64))
        return float(d) ** 2 > self.max_dist_square

    def _require(self, values: Optional[np.ndarray], what: str) -> np.ndarray:
        if values is None:
            raise ConfigurationError(f"Field has no {what}")
        return values

    def closest_scalars(self, point: Any) -> np.ndarray:
        return self._require(self.scalars, "scalars")[self.closest_index(point)]

    def closest_scalar(self, point: Any, index: int = 0) -> float:
        return float(self.closest_scalars(point)[index])

    def closest_vectors(self, point: Any) -> np.ndarray:
        return self._require(self.vectors, "vectors")[self.closest_index(point)]

    def closest_vector(self, point: Any, index: int = 0) -> np.ndarray:
        return self.closest_vectors(point)[index]

    def closest_iweights(self, point: Any) -> np.ndarray:
        return self._require(self.iweights, "iweights")[self.closest_index(point)]

    def _interpolation_weights(self, point: Any) -> Tuple[np.ndarray, np.ndarray]:
        p = np.asarray(point, dtype=np.float64)
        c = self.closest_index(p)
        neighbours = self.topology[c]
        indices = np.concatenate([[c], neighbours]).astype(np.int64)
        d = np.linalg.norm(self.points[indices] - p, axis=1)
        if d[0] < 1e-12:
            return indices[:1], np.ones(1)
        transmission = np.concatenate([[1.0], self.coefficients[c]]) if len(neighbours) else np.ones(1)
        w = transmission / d
        return indices, w / w.sum()

    def interpolated_scalar(self, point: Any, index: int = 0) -> float:
        """
        Inverse-distance average of the closest sample and its neighbours.

        Neighbour contributions are scaled by the closest sample's
        transmission coefficients.
        """
        scalars = self._require(self.scalars, "scalars")
        indices, w = self._interpolation_weights(point)
        return float(np.dot(w, scalars[indices, index]))

    def interpolated_vector(self, point: Any, index: int = 0) -> np.ndarray:
        """Interpolated vector, normalized (zero if the average cancels out)."""
        vectors = self._require(self.vectors, "vectors")
        indices, w = self._interpolation_weights(point)
        v = w @ vectors[indices, index]
        norm = np.linalg.norm(v)
        return v / norm if norm > 1e-12 else np.zeros(3)

    # stigmergy

    def init_stigmergy(self) -> None:
        self.stigmergy = np.zeros(len(self.points))

    def update_stigmergy(self, add_coeff: float, loss_coeff: float, evaporation: float) -> None:
        """
        One diffusion step of the stigmergy values over the topology.

        Every point gains its neighbours' values times the transmission
        coefficients and loses its own value in the same proportion; the
        result is scaled by the evaporation rate and capped at 1.
        """
        if self.stigmergy is None:
            self.init_stigmergy()
        current = self.stigmergy
        gained = np.zeros_like(current)
        lost = np.zeros_like(current)
        for i, neighbours in enumerate(self.topology):
            if len(neighbours) == 0:
                continue
            coeff = self.coefficients[i]
            gained[i] = np.dot(current[neighbours], coeff)
            lost[i] = current[i] * coeff.sum()
        updated = (current + gained * add_coeff - lost * loss_coeff) * evaporation
        self.stigmergy = np.minimum(updated, 1.0)

    def deposit(self, point: Any, amount: float) -> None:
        """Add to the stigmergy value of the sample closest to a point."""
        if self.stigmergy is None:
            self.init_stigmergy()
        i = self.closest_index(point)
        self.stigmergy[i] = min(1.0, self.stigmergy[i] + amount)

    def __repr__(self) -> str:
        return f"Field(points={len(self.points)}, shape={self.shape})"
