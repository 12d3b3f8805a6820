"""Approximate nearest neighbour search on a regular 2D or 3D grid."""

from __future__ import annotations

import enum
import logging
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from .bfnn import INVALID_ID, _as_cloud, bfnn_point

logger = logging.getLogger(__name__)


class NearbyType(enum.Enum):
    CENTER = "center"
    NEARBY4 = "nearby4"
    NEARBY8 = "nearby8"
    NEARBY6 = "nearby6"


_NEARBY_2D = {
    NearbyType.CENTER: [(0, 0)],
    NearbyType.NEARBY4: [(0, 0), (-1, 0), (1, 0), (0, 1), (0, -1)],
    NearbyType.NEARBY8: [(0, 0), (-1, 0), (1, 0), (0, 1), (0, -1), (-1, -1), (-1, 1), (1, -1), (1, 1)],
}

_NEARBY_3D = {
    NearbyType.CENTER: [(0, 0, 0)],
    NearbyType.NEARBY6: [(0, 0, 0), (-1, 0, 0), (1, 0, 0), (0, 1, 0), (0, -1, 0), (0, 0, -1), (0, 0, 1)],
}


class GridNN:
    """Buckets points into cells of size ``resolution`` and searches a cell
    and its neighbours.

    A 2D grid uses the x and y coordinates and supports CENTER, NEARBY4 and
    NEARBY8; a 3D grid supports CENTER and NEARBY6. Unsupported choices fall
    back to NEARBY4 and NEARBY6 respectively. Distances are always 3D.
    """

    def __init__(self, resolution: float = 0.1, nearby_type: NearbyType = NearbyType.NEARBY4, dim: int = 2):
        if dim not in (2, 3):
            raise ValueError(f"grid dimension must be 2 or 3, got {dim}")
        if resolution <= 0:
            raise ValueError("resolution must be positive")
        self.resolution = resolution
        self.inv_resolution = 1.0 / resolution
        self.dim = dim

        if dim == 2 and nearby_type is NearbyType.NEARBY6:
            logger.info("2D grid does not support nearby6, using nearby4 instead.")
            nearby_type = NearbyType.NEARBY4
        elif dim == 3 and nearby_type not in (NearbyType.NEARBY6, NearbyType.CENTER):
            logger.info("3D grid does not support nearby4/8, using nearby6 instead.")
            nearby_type = NearbyType.NEARBY6
        self.nearby_type = nearby_type

        table = _NEARBY_2D if dim == 2 else _NEARBY_3D
        self.nearby_grids = [np.array(d) for d in table[nearby_type]]
        self.grids: dict[tuple[int, ...], list[int]] = {}
        self.cloud = np.zeros((0, 3))

    def _pos_to_grid(self, pt: np.ndarray) -> np.ndarray:
        return np.trunc(pt[: self.dim] * self.inv_resolution).astype(int)

    def set_point_cloud(self, cloud) -> None:
        """Index the cloud into grid cells."""
        cloud = _as_cloud(cloud)
        self.grids = {}
        for idx, pt in enumerate(cloud):
            self.grids.setdefault(tuple(self._pos_to_grid(pt)), []).append(idx)
        self.cloud = cloud
        logger.info("grids: %d", len(self.grids))

    def get_closest_point(self, pt) -> tuple[np.ndarray, int] | None:
        """The closest point among the nearby cells and its index, or None if they are empty."""
        pt = np.asarray(pt, dtype=float).reshape(-1)
        if pt.shape != (3,):
            raise ValueError(f"expected a 3D point, got shape {pt.shape}")
        key = self._pos_to_grid(pt)
        candidates = [
            idx for delta in self.nearby_grids for idx in self.grids.get(tuple(key + delta), ())
        ]
        if not candidates:
            return None
        idx = candidates[bfnn_point(self.cloud[candidates], pt)]
        return self.cloud[idx].copy(), idx

    def _match(self, query: np.ndarray, idx: int) -> tuple[int, int] | None:
        found = self.get_closest_point(query[idx])
        return None if found is None else (found[1], idx)

    def get_closest_point_for_cloud(self, ref, query) -> list[tuple[int, int]]:
        """Matches ``(ref_index, query_index)`` for the query points that found a neighbour.

        ``ref`` is the cloud already indexed with :meth:`set_point_cloud`.
        """
        query = _as_cloud(query)
        return [m for m in (self._match(query, i) for i in range(len(query))) if m is not None]

    def get_closest_point_for_cloud_mt(self, ref, query) -> list[tuple[int, int]]:
        """One match per query point, searched over threads.

        Query points without a neighbour give ``(INVALID_ID, INVALID_ID)``.
        """
        query = _as_cloud(query)
        with ThreadPoolExecutor() as pool:
            results = pool.map(lambda i: self._match(query, i), range(len(query)))
            return [m if m is not None else (INVALID_ID, INVALID_ID) for m in results]