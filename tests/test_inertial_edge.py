import numpy as np
import pytest

from sadnav.inertial_edge import EdgeInertial
from sadnav.lie import SE3, so3_exp
from sadnav.preintegration import IMUPreintegration, PreintegrationOptions
from sadnav.state import IMU, NavState

GRAV = np.array([0.0, 0.0, -9.8])


def _preinteg():
    options = PreintegrationOptions(init_bg=np.array([0.01, -0.02, 0.005]), init_ba=np.array([0.1, 0.05, -0.02]))
    pre = IMUPreintegration(options)
    for i in range(1, 11):
        gyro = np.array([0.2, -0.1, 0.5]) + 0.01 * i
        acce = np.array([0.3, 0.1, 9.8]) - 0.02 * i
        pre.integrate(IMU(0.01 * i, gyro, acce), 0.01)
    return pre


def _variables():
    pose1 = SE3(so3_exp([0.1, -0.2, 0.3]), [1.0, 2.0, 3.0])
    v1 = np.array([0.5, -0.3, 0.1])
    bg1 = np.array([0.015, -0.018, 0.002])
    ba1 = np.array([0.12, 0.04, -0.01])
    pose2 = SE3(so3_exp([0.12, -0.15, 0.35]), [1.01, 1.98, 3.02])
    v2 = np.array([0.52, -0.28, 0.05])
    return [pose1, v1, bg1, ba1, pose2, v2]


def _perturb(variables, index, k, eps):
    out = list(variables)
    var = out[index]
    delta = np.zeros(3)
    if isinstance(var, SE3):
        delta[k % 3] = eps
        if k < 3:
            out[index] = SE3(var.rotation @ so3_exp(delta), var.translation.copy())
        else:
            out[index] = SE3(var.rotation.copy(), var.translation + delta)
    else:
        delta[k] = eps
        out[index] = var + delta
    return out


def test_error_vanishes_at_prediction():
    pre = _preinteg()
    start = NavState(0.0, so3_exp([0.1, 0.2, -0.3]), [1.0, -1.0, 0.5], [0.3, 0.2, 0.1], pre.bg, pre.ba)
    end = pre.predict(start, GRAV)
    edge = EdgeInertial(pre, GRAV)
    err = edge.compute_error(start.se3(), start.velocity, pre.bg, pre.ba, end.se3(), end.velocity)
    assert err.shape == (9,)
    np.testing.assert_allclose(err, np.zeros(9), atol=1e-9)


def test_jacobians_match_numeric_derivatives():
    pre = _preinteg()
    edge = EdgeInertial(pre, GRAV)
    variables = _variables()
    jacs = edge.jacobians(*variables)
    assert [j.shape for j in jacs] == [(9, 6), (9, 3), (9, 3), (9, 3), (9, 6), (9, 3)]
    eps = 1e-6
    for index, jac in enumerate(jacs):
        for k in range(jac.shape[1]):
            plus = edge.compute_error(*_perturb(variables, index, k, eps))
            minus = edge.compute_error(*_perturb(variables, index, k, -eps))
            numeric = (plus - minus) / (2 * eps)
            np.testing.assert_allclose(jac[:, k], numeric, atol=1e-5)


def test_hessian_is_symmetric_and_scales_with_weight():
    pre = _preinteg()
    variables = _variables()
    h1 = EdgeInertial(pre, GRAV).hessian(*variables)
    h2 = EdgeInertial(pre, GRAV, weight=2.0).hessian(*variables)
    assert h1.shape == (24, 24)
    np.testing.assert_allclose(h1, h1.T, rtol=1e-8, atol=1e-6)
    np.testing.assert_allclose(h2, 2.0 * h1, rtol=1e-9, atol=1e-6)
    assert np.min(np.linalg.eigvalsh(0.5 * (h1 + h1.T))) > -1e-6 * np.max(np.abs(h1))


def test_information_is_inverse_covariance():
    pre = _preinteg()
    edge = EdgeInertial(pre, GRAV, weight=3.0)
    np.testing.assert_allclose(edge.information @ pre.cov, 3.0 * np.eye(9), atol=1e-6)
    assert edge.dt == pytest.approx(pre.dt)


def test_singular_covariance_raises():
    with pytest.raises(ValueError):
        EdgeInertial(IMUPreintegration(), GRAV)