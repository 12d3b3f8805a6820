import math

import numpy as np
import pytest

from sadnav.lie import (
    SE3,
    hat,
    quaternion_to_rotation,
    right_jacobian,
    right_jacobian_inv,
    rot_z,
    rotation_to_quaternion,
    so3_exp,
    so3_log,
    vee,
)

VECTORS = [
    [0.1, -0.2, 0.3],
    [1.0, 0.5, -2.0],
    [0.0, 0.0, math.pi / 2],
    [1e-10, 2e-10, -1e-10],
]


@pytest.mark.parametrize("v", VECTORS)
def test_hat_vee_round_trip(v):
    assert np.allclose(vee(hat(v)), v)
    assert np.allclose(hat(v), -hat(v).T)


def test_hat_is_cross_product():
    a = np.array([0.3, -1.2, 2.0])
    b = np.array([1.5, 0.2, -0.7])
    assert np.allclose(hat(a) @ b, np.cross(a, b))


@pytest.mark.parametrize("v", VECTORS)
def test_exp_log_round_trip(v):
    r = so3_exp(v)
    assert np.allclose(r @ r.T, np.eye(3))
    assert np.isclose(np.linalg.det(r), 1.0)
    assert np.allclose(so3_log(r), v, atol=1e-12)


def test_rot_z_matches_exp():
    angle = 0.7
    assert np.allclose(rot_z(angle), so3_exp([0.0, 0.0, angle]))
    assert np.allclose(rot_z(math.pi / 2) @ [1.0, 0.0, 0.0], [0.0, 1.0, 0.0])


def test_identity_quaternion():
    assert np.allclose(rotation_to_quaternion(np.eye(3)), [1.0, 0.0, 0.0, 0.0])


@pytest.mark.parametrize("v", VECTORS + [[math.pi - 1e-3, 0.0, 0.0], [0.0, 3.0, 0.0]])
def test_quaternion_round_trip(v):
    r = so3_exp(v)
    q = rotation_to_quaternion(r)
    assert np.isclose(np.linalg.norm(q), 1.0)
    assert q[0] >= 0
    assert np.allclose(quaternion_to_rotation(q), r)


def test_quaternion_is_normalised():
    assert np.allclose(quaternion_to_rotation([2.0, 0.0, 0.0, 0.0]), np.eye(3))


def test_zero_quaternion_rejected():
    with pytest.raises(ValueError):
        quaternion_to_rotation([0.0, 0.0, 0.0, 0.0])


@pytest.mark.parametrize("v", VECTORS)
def test_right_jacobian_inverse(v):
    assert np.allclose(right_jacobian(v) @ right_jacobian_inv(v), np.eye(3), atol=1e-9)


def test_right_jacobian_first_order():
    phi = np.array([0.4, -0.3, 0.8])
    delta = np.array([1e-6, -2e-6, 1.5e-6])
    lhs = so3_exp(phi + delta)
    rhs = so3_exp(phi) @ so3_exp(right_jacobian(phi) @ delta)
    assert np.allclose(lhs, rhs, atol=1e-10)


def test_se3_inverse_and_compose():
    t = SE3(so3_exp([0.2, 0.1, -0.4]), [1.0, 2.0, 3.0])
    ident = t @ t.inverse()
    assert np.allclose(ident.matrix(), np.eye(4))


def test_se3_matrix_round_trip():
    t = SE3(so3_exp([0.5, -0.2, 1.1]), [-3.0, 0.5, 7.0])
    back = SE3.from_matrix(t.matrix())
    assert np.allclose(back.rotation, t.rotation)
    assert np.allclose(back.translation, t.translation)


def test_se3_transform_points():
    t = SE3(rot_z(0.3), [1.0, -1.0, 0.5])
    pts = np.array([[0.0, 0.0, 0.0], [1.0, 2.0, 3.0]])
    out = t.transform(pts)
    assert np.allclose(out[1], t.transform(pts[1]))
    assert np.allclose(out[0], t.translation)
    assert np.allclose(t.inverse().transform(out), pts)


def test_se3_bad_shapes():
    with pytest.raises(ValueError):
        SE3.from_matrix(np.eye(3))
    with pytest.raises(ValueError):
        SE3(np.eye(2))
    with pytest.raises(ValueError):
        SE3().transform([1.0, 2.0])