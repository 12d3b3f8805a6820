import math

import numpy as np
import pytest

from sadnav.integration import IMUIntegration
from sadnav.lie import so3_exp
from sadnav.preintegration import IMUPreintegration, PreintegrationOptions
from sadnav.state import IMU, NavState

GRAVITY = np.array([0.0, 0.0, -9.8])
SPAN = 0.01


def _compare_with_direct_integration(gyro, acce):
    start = NavState(0.0)
    pre_integ = IMUPreintegration()
    direct = IMUIntegration(GRAVITY, np.zeros(3), np.zeros(3))

    for i in range(1, 101):
        imu = IMU(SPAN * i, gyro, acce)
        pre_integ.integrate(imu, SPAN)
        this_status = pre_integ.predict(start, GRAVITY)
        direct.add_imu(imu)
        ref = direct.nav_state()

        np.testing.assert_allclose(this_status.position, ref.position, atol=1e-2)
        np.testing.assert_allclose(this_status.velocity, ref.velocity, atol=1e-2)
        np.testing.assert_allclose(this_status.rotation, ref.rotation, atol=1e-4)
    return pre_integ, start


def test_rotation_constant_angular_velocity():
    pre_integ, start = _compare_with_direct_integration(np.array([0.0, 0.0, math.pi]), -GRAVITY)
    end = pre_integ.predict(start)
    assert end.timestamp == pytest.approx(1.0)
    np.testing.assert_allclose(end.rotation, so3_exp([0.0, 0.0, math.pi]), atol=1e-6)


def test_acceleration_constant():
    pre_integ, start = _compare_with_direct_integration(np.zeros(3), np.array([0.1, 0.0, 0.0]) - GRAVITY)
    end = pre_integ.predict(start, GRAVITY)
    np.testing.assert_allclose(end.velocity, [0.1, 0.0, 0.0], atol=1e-9)
    np.testing.assert_allclose(end.position, [0.05, 0.0, 0.0], atol=1e-9)


def test_default_gravity_in_predict():
    pre_integ = IMUPreintegration()
    for i in range(1, 11):
        pre_integ.integrate(IMU(SPAN * i, (0, 0, 0), (0, 0, 0)), SPAN)
    end = pre_integ.predict(NavState(0.0))
    np.testing.assert_allclose(end.velocity, [0.0, 0.0, -9.81 * 0.1], atol=1e-12)


def test_accelerometer_bias_jacobians():
    pre_integ = IMUPreintegration()
    for i in range(1, 101):
        pre_integ.integrate(IMU(SPAN * i, (0, 0, 0), (0.1, 0.0, 9.8)), SPAN)
    np.testing.assert_allclose(pre_integ.dV_dba, -np.eye(3), atol=1e-12)
    np.testing.assert_allclose(pre_integ.dP_dba, -0.5 * np.eye(3), atol=1e-12)

    shift = np.array([0.1, 0.0, 0.0])
    dv = pre_integ.delta_velocity(np.zeros(3), shift)
    np.testing.assert_allclose(dv, pre_integ.dv - shift, atol=1e-12)
    dp = pre_integ.delta_position(np.zeros(3), shift)
    np.testing.assert_allclose(dp, pre_integ.dp - 0.5 * shift, atol=1e-12)


def test_deltas_at_integration_bias_are_raw_values():
    bg = np.array([0.01, -0.02, 0.005])
    ba = np.array([0.1, 0.0, -0.05])
    pre_integ = IMUPreintegration(PreintegrationOptions(init_bg=bg, init_ba=ba))
    for i in range(1, 21):
        pre_integ.integrate(IMU(SPAN * i, (0.1, 0.2, 0.3), (0.5, 0.1, 9.8)), SPAN)
    np.testing.assert_allclose(pre_integ.delta_rotation(bg), pre_integ.dR)
    np.testing.assert_allclose(pre_integ.delta_velocity(bg, ba), pre_integ.dv)
    np.testing.assert_allclose(pre_integ.delta_position(bg, ba), pre_integ.dp)


def test_gyro_bias_correction_approximates_reintegration():
    readings = [IMU(SPAN * i, (0.1, 0.2, 0.3), (0.5, 0.1, 9.8)) for i in range(1, 21)]
    base = IMUPreintegration()
    for imu in readings:
        base.integrate(imu, SPAN)

    new_bg = np.array([0.001, -0.001, 0.002])
    redone = IMUPreintegration(PreintegrationOptions(init_bg=new_bg))
    for imu in readings:
        redone.integrate(imu, SPAN)

    np.testing.assert_allclose(base.delta_rotation(new_bg), redone.dR, atol=1e-6)
    np.testing.assert_allclose(base.delta_velocity(new_bg, np.zeros(3)), redone.dv, atol=1e-5)
    np.testing.assert_allclose(base.delta_position(new_bg, np.zeros(3)), redone.dp, atol=1e-6)


def test_covariance_is_symmetric_and_grows():
    pre_integ = IMUPreintegration()
    diag_sums = []
    for i in range(1, 11):
        pre_integ.integrate(IMU(SPAN * i, (0.1, 0.0, 0.2), (0.3, 0.0, 9.8)), SPAN)
        diag_sums.append(float(np.diagonal(pre_integ.cov).sum()))
    np.testing.assert_allclose(pre_integ.cov, pre_integ.cov.T, atol=1e-15)
    assert all(b > a for a, b in zip(diag_sums, diag_sums[1:]))
    assert np.all(np.linalg.eigvalsh(pre_integ.cov) > -1e-15)
    assert pre_integ.dt == pytest.approx(0.1)


def test_predict_carries_biases():
    bg = np.array([0.01, 0.0, 0.0])
    ba = np.array([0.0, 0.02, 0.0])
    pre_integ = IMUPreintegration(PreintegrationOptions(init_bg=bg, init_ba=ba))
    pre_integ.integrate(IMU(0.01, (0, 0, 0), (0, 0, 9.8)), SPAN)
    state = pre_integ.predict(NavState(3.0), GRAVITY)
    np.testing.assert_allclose(state.bg, bg)
    np.testing.assert_allclose(state.ba, ba)
    assert state.timestamp == pytest.approx(3.01)