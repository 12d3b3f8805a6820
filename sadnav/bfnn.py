"""Brute-force nearest neighbour search over point clouds.

Clouds are arrays of shape (N, 3). Matches are ``(index_in_cloud1, index_in_cloud2)``
pairs.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import numpy as np

INVALID_ID = -1
"""Index used in a match when no neighbour was found."""

_CHUNK = 256


def _as_cloud(cloud) -> np.ndarray:
    arr = np.asarray(cloud, dtype=float)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise ValueError(f"expected a cloud of shape (N, 3), got {arr.shape}")
    return arr


def _squared_distances(cloud: np.ndarray, point) -> np.ndarray:
    p = np.asarray(point, dtype=float).reshape(-1)
    if p.shape != (3,):
        raise ValueError(f"expected a 3D point, got shape {np.shape(point)}")
    diff = cloud - p
    return np.einsum("ij,ij->i", diff, diff)


def bfnn_point(cloud, point) -> int:
    """Index of the point of ``cloud`` closest to ``point`` (first one on ties)."""
    cloud = _as_cloud(cloud)
    if len(cloud) == 0:
        raise ValueError("cannot search an empty cloud")
    return int(np.argmin(_squared_distances(cloud, point)))


def bfnn_point_k(cloud, point, k: int = 5) -> list[int]:
    """Indices of the ``k`` points of ``cloud`` closest to ``point``, nearest first."""
    cloud = _as_cloud(cloud)
    if k < 0 or k > len(cloud):
        raise ValueError(f"k must be between 0 and the cloud size {len(cloud)}, got {k}")
    order = np.argsort(_squared_distances(cloud, point), kind="stable")
    return [int(i) for i in order[:k]]


def _nearest_in_chunk(cloud1: np.ndarray, queries: np.ndarray) -> np.ndarray:
    diff = queries[:, None, :] - cloud1[None, :, :]
    return np.einsum("ijk,ijk->ij", diff, diff).argmin(axis=1)


def _chunks(n: int):
    return [(start, min(start + _CHUNK, n)) for start in range(0, n, _CHUNK)]


def _check_pair(cloud1, cloud2) -> tuple[np.ndarray, np.ndarray]:
    cloud1, cloud2 = _as_cloud(cloud1), _as_cloud(cloud2)
    if len(cloud1) == 0 and len(cloud2) > 0:
        raise ValueError("cannot search an empty cloud")
    return cloud1, cloud2


def bfnn_cloud(cloud1, cloud2) -> list[tuple[int, int]]:
    """For every point of ``cloud2``, its nearest neighbour in ``cloud1``."""
    cloud1, cloud2 = _check_pair(cloud1, cloud2)
    matches: list[tuple[int, int]] = []
    for start, end in _chunks(len(cloud2)):
        nearest = _nearest_in_chunk(cloud1, cloud2[start:end])
        matches.extend((int(n), start + j) for j, n in enumerate(nearest))
    return matches


def bfnn_cloud_mt(cloud1, cloud2) -> list[tuple[int, int]]:
    """Same as :func:`bfnn_cloud`, with the query points split over threads."""
    cloud1, cloud2 = _check_pair(cloud1, cloud2)
    ranges = _chunks(len(cloud2))
    with ThreadPoolExecutor() as pool:
        results = pool.map(lambda r: _nearest_in_chunk(cloud1, cloud2[r[0] : r[1]]), ranges)
        return [(int(n), start + j) for (start, _), nearest in zip(ranges, results) for j, n in enumerate(nearest)]


def bfnn_cloud_mt_k(cloud1, cloud2, k: int = 5) -> list[tuple[int, int]]:
    """For every point of ``cloud2``, its ``k`` nearest neighbours in ``cloud1``.

    The result holds ``k`` consecutive matches per query point, nearest first.
    """
    cloud1, cloud2 = _as_cloud(cloud1), _as_cloud(cloud2)
    if k < 0 or (k > len(cloud1) and len(cloud2) > 0):
        raise ValueError(f"k must be between 0 and the cloud size {len(cloud1)}, got {k}")

    def neighbours(idx: int) -> list[tuple[int, int]]:
        return [(n, idx) for n in bfnn_point_k(cloud1, cloud2[idx], k)]

    with ThreadPoolExecutor() as pool:
        return [m for group in pool.map(neighbours, range(len(cloud2))) for m in group]