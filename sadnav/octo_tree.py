"""Octree for k-nearest-neighbour search over 3D point clouds."""

from __future__ import annotations

import heapq
import itertools
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import numpy as np

from .bfnn import INVALID_ID, _as_cloud
from .kdtree import _as_point


@dataclass
class Box3D:
    """Axis-aligned box given by its bounds on each axis."""

    min_x: float = 0.0
    max_x: float = 0.0
    min_y: float = 0.0
    max_y: float = 0.0
    min_z: float = 0.0
    max_z: float = 0.0

    @property
    def lower(self) -> np.ndarray:
        return np.array([self.min_x, self.min_y, self.min_z])

    @property
    def upper(self) -> np.ndarray:
        return np.array([self.max_x, self.max_y, self.max_z])

    def inside(self, pt) -> bool:
        """Whether ``pt`` lies in the box, bounds included."""
        p = _as_point(pt)
        return bool(np.all(p >= self.lower) and np.all(p <= self.upper))

    def distance(self, pt) -> float:
        """Largest distance by which ``pt`` lies outside the box along any axis; 0 inside."""
        p = _as_point(pt)
        return float(max(0.0, np.max(np.maximum(self.lower - p, p - self.upper))))

    def _inside_many(self, pts: np.ndarray) -> np.ndarray:
        return np.all((pts >= self.lower) & (pts <= self.upper), axis=1)

    def _octants(self) -> list[Box3D]:
        lo, hi = self.lower, self.upper
        c = 0.5 * (lo + hi)
        boxes = []
        for i in range(8):
            bounds = []
            for axis in range(3):
                if (i >> axis) & 1:
                    bounds.extend((c[axis], hi[axis]))
                else:
                    bounds.extend((lo[axis], c[axis]))
            boxes.append(Box3D(*(float(b) for b in bounds)))
        return boxes


@dataclass(eq=False)
class OctoTreeNode:
    """A node of the tree; a leaf with ``point_idx == -1`` holds no point."""

    id: int = -1
    point_idx: int = -1
    box: Box3D = field(default_factory=Box3D)
    children: list[OctoTreeNode] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return not self.children


class OctoTree:
    """Recursively splits the bounding box into eight octants until each holds one point.

    Identical points share a single leaf. Exact search by default; with
    approximation, an octant is searched only when its squared distance is
    below ``alpha`` times the current k-th squared distance.
    """

    def __init__(self) -> None:
        self.root: OctoTreeNode | None = None
        self.cloud = np.zeros((0, 3))
        self.nodes: dict[int, OctoTreeNode] = {}
        self._size = 0
        self._next_id = 0
        self.approximate = False
        self.alpha = 1.0

    @property
    def size(self) -> int:
        """Number of leaves holding a point."""
        return self._size

    def __len__(self) -> int:
        return self._size

    def set_approximate(self, use_ann: bool = True, alpha: float = 0.1) -> None:
        self.approximate = use_ann
        self.alpha = alpha

    def clear(self) -> None:
        self.root = None
        self.nodes = {}
        self._size = 0
        self._next_id = 0

    def _new_node(self, box: Box3D) -> OctoTreeNode:
        node = OctoTreeNode(id=self._next_id, box=box)
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

        lo, hi = cloud.min(axis=0), cloud.max(axis=0)
        self.root = self._new_node(Box3D(lo[0], hi[0], lo[1], hi[1], lo[2], hi[2]))

        stack = [(self.root, np.arange(len(cloud)))]
        while stack:
            node, idx = stack.pop()
            if len(idx) == 0:
                continue
            if len(idx) == 1:
                self._size += 1
                node.point_idx = int(idx[0])
                continue
            split = self._expand(node, idx)
            if split is None:
                self._size += 1
                node.point_idx = int(idx[0])
                continue
            for child, child_idx in reversed(list(zip(node.children, split))):
                stack.append((child, child_idx))
        return True

    def _expand(self, node: OctoTreeNode, idx: np.ndarray) -> list[np.ndarray] | None:
        pts = self.cloud[idx]
        if np.all(pts == pts[0]):
            return None
        boxes = node.box._octants()
        assigned = np.full(len(idx), -1)
        for i, box in enumerate(boxes):
            mask = (assigned == -1) & box._inside_many(pts)
            assigned[mask] = i
        groups = [idx[assigned == i] for i in range(8)]
        for box, group in zip(boxes, groups):
            if len(group) == len(idx) and box == node.box:
                return None
        node.children = [self._new_node(box) for box in boxes]
        return groups

    def _need_expand(self, pt: np.ndarray, node: OctoTreeNode, heap: list, k: int) -> bool:
        if len(heap) < k:
            return True
        d = node.box.distance(pt)
        limit = -heap[0][0]
        if self.approximate:
            limit *= self.alpha
        return d * d < limit

    def _knn(self, pt: np.ndarray, k: int) -> list[int]:
        heap: list[tuple[float, int, int]] = []
        if self.root is None or k == 0:
            return []
        counter = itertools.count()
        stack: list[tuple[OctoTreeNode, bool]] = [(self.root, False)]
        while stack:
            node, gated = stack.pop()
            if gated and not self._need_expand(pt, node, heap, k):
                continue
            if node.is_leaf:
                if node.point_idx != -1:
                    diff = pt - self.cloud[node.point_idx]
                    d2 = float(diff @ diff)
                    if len(heap) < k:
                        heapq.heappush(heap, (-d2, next(counter), node.point_idx))
                    elif d2 < -heap[0][0]:
                        heapq.heapreplace(heap, (-d2, next(counter), node.point_idx))
                continue

            first = next((i for i, c in enumerate(node.children) if c.box.inside(pt)), None)
            if first is None:
                first = min(range(8), key=lambda i: node.children[i].box.distance(pt))
            for i in reversed(range(8)):
                if i != first:
                    stack.append((node.children[i], True))
            stack.append((node.children[first], False))
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