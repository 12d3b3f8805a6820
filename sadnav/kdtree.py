"""K-d tree for k-nearest-neighbour search over 3D point clouds."""

from __future__ import annotations

import heapq
import itertools
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np

from .bfnn import INVALID_ID, _as_cloud

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class KdTreeNode:
    """A node of the tree; a leaf holds one point index."""

    id: int = -1
    point_idx: int = 0
    axis_index: int = 0
    split_thresh: float = 0.0
    left: KdTreeNode | None = None
    right: KdTreeNode | None = None

    @property
    def is_leaf(self) -> bool:
        return self.left is None and self.right is None


def _as_point(pt) -> np.ndarray:
    p = np.asarray(pt, dtype=float).reshape(-1)
    if p.shape != (3,):
        raise ValueError(f"expected a 3D point, got shape {np.shape(pt)}")
    return p


class KdTree:
    """Splits points at the mean of the axis with the largest variance.

    Sets of identical points end up in a single leaf, so ``size`` counts
    leaves, not input points. Approximate search is on by default with
    ``alpha = 0.1``: a far side is only searched when its squared plane
    distance is below ``alpha`` times the current k-th squared distance.
    """

    def __init__(self) -> None:
        self.root: KdTreeNode | None = None
        self.cloud = np.zeros((0, 3))
        self.nodes: dict[int, KdTreeNode] = {}
        self._size = 0
        self._next_id = 0
        self.approximate = True
        self.alpha = 0.1

    @property
    def size(self) -> int:
        """Number of leaves holding a point."""
        return self._size

    def __len__(self) -> int:
        return self._size

    def set_enable_ann(self, use_ann: bool = True, alpha: float = 0.1) -> None:
        self.approximate = use_ann
        self.alpha = alpha

    def clear(self) -> None:
        self.root = None
        self.nodes = {}
        self._size = 0
        self._next_id = 0

    def _new_node(self) -> KdTreeNode:
        node = KdTreeNode(id=self._next_id)
        self._next_id += 1
        self.nodes[node.id] = node
        return node

    def build_tree(self, cloud) -> bool:
        """Build the tree over ``cloud``; returns False if the cloud is empty."""
        cloud = _as_cloud(cloud)
        if len(cloud) == 0:
            return False
        self.clear()
        self.cloud = cloud.copy()

        stack: list[tuple[KdTreeNode | None, str | None, np.ndarray]] = [(None, None, np.arange(len(cloud)))]
        while stack:
            parent, side, idx = stack.pop()
            node = self._new_node()
            if parent is None:
                self.root = node
            else:
                setattr(parent, side, node)

            split = None if len(idx) == 1 else self._split(node, idx)
            if split is None:
                self._size += 1
                node.point_idx = int(idx[0])
                continue
            left, right = split
            stack.append((node, "right", right))
            stack.append((node, "left", left))
        return True

    def _split(self, node: KdTreeNode, idx: np.ndarray) -> tuple[np.ndarray, np.ndarray] | None:
        pts = self.cloud[idx]
        var = pts.var(axis=0)
        mean = pts.mean(axis=0)
        axis = int(np.argmax(var))
        node.axis_index = axis
        node.split_thresh = float(mean[axis])
        mask = pts[:, axis] < node.split_thresh
        left, right = idx[mask], idx[~mask]
        if len(left) == 0 or len(right) == 0:
            return None
        return left, right

    def _need_expand(self, pt: np.ndarray, node: KdTreeNode, heap: list, k: int) -> bool:
        if len(heap) < k:
            return True
        d = pt[node.axis_index] - node.split_thresh
        limit = -heap[0][0]
        if self.approximate:
            limit *= self.alpha
        return d * d < limit

    def _knn(self, pt: np.ndarray, k: int) -> list[int]:
        heap: list[tuple[float, int, int]] = []
        if self.root is None or k == 0:
            return []
        counter = itertools.count()
        stack: list[tuple[KdTreeNode, KdTreeNode | None]] = [(self.root, None)]
        while stack:
            node, gate = stack.pop()
            if gate is not None and not self._need_expand(pt, gate, heap, k):
                continue
            if node.is_leaf:
                diff = pt - self.cloud[node.point_idx]
                d2 = float(diff @ diff)
                if len(heap) < k:
                    heapq.heappush(heap, (-d2, next(counter), node.point_idx))
                elif d2 < -heap[0][0]:
                    heapq.heapreplace(heap, (-d2, next(counter), node.point_idx))
                continue
            if pt[node.axis_index] < node.split_thresh:
                this_side, that_side = node.left, node.right
            else:
                this_side, that_side = node.right, node.left
            stack.append((that_side, node))
            stack.append((this_side, None))
        return [idx for _, _, idx in sorted((-nd, c, i) for nd, c, i in heap)]

    def _check_k(self, k: int) -> None:
        if k < 0:
            raise ValueError(f"k must not be negative, got {k}")
        if k > self._size:
            raise ValueError(f"cannot set k larger than cloud size: {k}, {self._size}")

    def get_closest_point(self, pt, k: int = 5) -> list[int]:
        """Indices of the ``k`` nearest points to ``pt``, nearest first."""
        self._check_k(k)
        return self._knn(_as_point(pt), k)

    def get_closest_point_mt(self, cloud, k: int = 5) -> list[tuple[int, int]]:
        """``k`` matches ``(tree_index, query_index)`` per query point, searched over threads.

        Slots with no neighbour hold ``INVALID_ID`` as tree index.
        """
        cloud = _as_cloud(cloud)
        self._check_k(k)

        def search(idx: int) -> list[tuple[int, int]]:
            found = self._knn(cloud[idx], k)
            return [(found[i] if i < len(found) else INVALID_ID, idx) for i in range(k)]

        with ThreadPoolExecutor() as pool:
            return [m for group in pool.map(search, range(len(cloud))) for m in group]

    def describe(self) -> list[str]:
        """One line per node, ordered by node id."""
        lines = []
        for node_id in sorted(self.nodes):
            node = self.nodes[node_id]
            if node.is_leaf:
                lines.append(f"leaf node: {node.id}, idx: {node.point_idx}")
            else:
                lines.append(f"node: {node.id}, axis: {node.axis_index}, th: {node.split_thresh:g}")
        for line in lines:
            logger.info(line)
        return lines