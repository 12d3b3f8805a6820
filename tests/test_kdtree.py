import numpy as np
import pytest

from sadnav.bfnn import bfnn_cloud_mt_k, bfnn_point_k
from sadnav.kdtree import KdTree

SQUARE = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [1.0, 1.0, 0.0]])


def _random_clouds(seed=3, n=300, m=40):
    rng = np.random.default_rng(seed)
    return rng.uniform(-5, 5, size=(n, 3)), rng.uniform(-5, 5, size=(m, 3))


def test_basics_four_points():
    tree = KdTree()
    assert tree.build_tree(SQUARE) is True
    assert tree.size == 4
    lines = tree.describe()
    assert len(lines) == 7
    assert lines[0] == "node: 0, axis: 0, th: 0.5"
    assert lines[1] == "node: 1, axis: 1, th: 0.5"
    assert lines[2] == "leaf node: 2, idx: 0"
    assert sum(line.startswith("leaf") for line in lines) == 4


def test_build_empty_returns_false():
    tree = KdTree()
    assert tree.build_tree(np.zeros((0, 3))) is False
    assert tree.size == 0


def test_closest_points_sorted_nearest_first():
    tree = KdTree()
    tree.build_tree(SQUARE)
    tree.set_enable_ann(False)
    assert tree.get_closest_point((0.1, 0.2, 0.0), 2) == [0, 2]
    assert tree.get_closest_point((0.1, 0.2, 0.0), 4) == [0, 2, 1, 3]


@pytest.mark.parametrize("use_ann", [False, True])
def test_knn_matches_brute_force(use_ann):
    first, second = _random_clouds()
    tree = KdTree()
    tree.build_tree(first)
    tree.set_enable_ann(use_ann, 1.0)
    assert len(tree) == len(first)
    for q in second:
        assert tree.get_closest_point(q, 5) == bfnn_point_k(first, q, 5)


def test_mt_matches_brute_force_cloud():
    first, second = _random_clouds(seed=11)
    tree = KdTree()
    tree.build_tree(first)
    tree.set_enable_ann(True, 1.0)
    matches = tree.get_closest_point_mt(second, 5)
    assert len(matches) == 5 * len(second)
    assert matches == bfnn_cloud_mt_k(first, second, 5)


def test_approximate_search_returns_k_distinct_neighbours():
    first, second = _random_clouds(seed=5)
    tree = KdTree()
    tree.build_tree(first)
    tree.set_enable_ann(True, 0.1)
    for q in second:
        found = tree.get_closest_point(q, 5)
        assert len(set(found)) == 5
        best = np.sum((first[bfnn_point_k(first, q, 1)[0]] - q) ** 2)
        assert np.sum((first[found[0]] - q) ** 2) >= best


def test_k_larger_than_size_raises():
    tree = KdTree()
    tree.build_tree(SQUARE)
    with pytest.raises(ValueError):
        tree.get_closest_point((0.0, 0.0, 0.0), 5)
    with pytest.raises(ValueError):
        tree.get_closest_point_mt(SQUARE, 5)


def test_identical_points_share_one_leaf():
    tree = KdTree()
    tree.build_tree(np.ones((3, 3)))
    assert tree.size == 1
    assert tree.get_closest_point((0.0, 0.0, 0.0), 1) == [0]


def test_clear_empties_tree():
    tree = KdTree()
    tree.build_tree(SQUARE)
    tree.clear()
    assert tree.size == 0
    assert tree.describe() == []