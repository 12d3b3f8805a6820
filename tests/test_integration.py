import math

import numpy as np

from sadnav.integration import IMUIntegration
from sadnav.lie import rot_z
from sadnav.state import IMU

GRAVITY = np.array([0.0, 0.0, -9.8])
DT = 0.01


def _feed(integ, steps, gyro, acce):
    for i in range(1, steps + 1):
        integ.add_imu(IMU(i * DT, gyro, acce))


def test_stationary_stays_put():
    integ = IMUIntegration(GRAVITY, np.zeros(3), np.zeros(3))
    _feed(integ, 100, np.zeros(3), -GRAVITY)
    state = integ.nav_state()
    assert np.allclose(state.position, 0.0)
    assert np.allclose(state.velocity, 0.0)
    assert np.allclose(state.rotation, np.eye(3))
    assert math.isclose(state.timestamp, 100 * DT)


def test_constant_acceleration():
    a = 0.5
    integ = IMUIntegration(GRAVITY, np.zeros(3), np.zeros(3))
    _feed(integ, 100, np.zeros(3), np.array([a, 0.0, 0.0]) - GRAVITY)
    t = 100 * DT
    assert np.isclose(integ.velocity[0], a * t)
    assert np.isclose(integ.position[0], 0.5 * a * t * t)
    assert np.allclose(integ.position[1:], 0.0)


def test_bias_is_removed():
    ba = np.array([0.3, -0.2, 0.0])
    bg = np.array([0.01, 0.02, -0.03])
    integ = IMUIntegration(GRAVITY, bg, ba)
    _feed(integ, 50, bg, ba - GRAVITY)
    assert np.allclose(integ.position, 0.0)
    assert np.allclose(integ.rotation, np.eye(3))


def test_constant_rotation():
    omega = math.pi / 2
    integ = IMUIntegration(GRAVITY, np.zeros(3), np.zeros(3))
    _feed(integ, 100, [0.0, 0.0, omega], -GRAVITY)
    assert np.allclose(integ.rotation, rot_z(omega * 100 * DT))


def test_large_gap_only_moves_clock():
    integ = IMUIntegration(GRAVITY, np.zeros(3), np.zeros(3))
    integ.add_imu(IMU(0.5, [0.0, 0.0, 1.0], [5.0, 0.0, 0.0]))
    state = integ.nav_state()
    assert state.timestamp == 0.5
    assert np.allclose(state.velocity, 0.0)
    assert np.allclose(state.rotation, np.eye(3))


def test_nav_state_is_a_copy():
    integ = IMUIntegration(GRAVITY, np.zeros(3), np.zeros(3))
    state = integ.nav_state()
    state.position[0] = 42.0
    assert integ.position[0] == 0.0