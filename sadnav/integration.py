"""Dead reckoning by direct integration of IMU readings."""

from __future__ import annotations

import numpy as np

from .lie import so3_exp
from .state import IMU, NavState, _vec3

_MAX_IMU_DT = 0.1


class IMUIntegration:
    """Integrates IMU readings with known biases and gravity.

    Readings whose interval to the previous one is not within (0, 0.1) s only
    advance the clock.
    """

    def __init__(self, gravity=(0.0, 0.0, -9.8), init_bg=(0.0, 0.0, 0.0), init_ba=(0.0, 0.0, 0.0)):
        self.gravity = _vec3(gravity)
        self.bg = _vec3(init_bg)
        self.ba = _vec3(init_ba)
        self.rotation = np.eye(3)
        self.velocity = np.zeros(3)
        self.position = np.zeros(3)
        self.timestamp = 0.0

    def add_imu(self, imu: IMU) -> None:
        dt = imu.timestamp - self.timestamp
        if 0 < dt < _MAX_IMU_DT:
            acc_world = self.rotation @ (imu.acce - self.ba)
            self.position = (
                self.position
                + self.velocity * dt
                + 0.5 * self.gravity * dt * dt
                + 0.5 * acc_world * dt * dt
            )
            self.velocity = self.velocity + acc_world * dt + self.gravity * dt
            self.rotation = self.rotation @ so3_exp((imu.gyro - self.bg) * dt)
        self.timestamp = imu.timestamp

    def nav_state(self) -> NavState:
        return NavState(
            self.timestamp,
            self.rotation.copy(),
            self.position.copy(),
            self.velocity.copy(),
            self.bg.copy(),
            self.ba.copy(),
        )