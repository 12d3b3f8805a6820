"""IMU preintegration with first-order bias correction and noise propagation."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .lie import hat, right_jacobian, so3_exp
from .state import IMU, NavState, _vec3


@dataclass
class PreintegrationOptions:
    init_bg: np.ndarray = field(default_factory=lambda: np.zeros(3))
    init_ba: np.ndarray = field(default_factory=lambda: np.zeros(3))
    noise_gyro: float = 1e-2
    noise_acce: float = 1e-1


class IMUPreintegration:
    """Accumulates relative rotation, velocity and position between two frames.

    Also keeps the Jacobians of the preintegrated values with respect to the
    biases and the 9x9 covariance of the rotation, velocity and position errors.
    """

    def __init__(self, options: PreintegrationOptions | None = None):
        options = options if options is not None else PreintegrationOptions()
        self.dt = 0.0
        self.cov = np.zeros((9, 9))
        ng2 = options.noise_gyro ** 2
        na2 = options.noise_acce ** 2
        self.noise_gyro_acce = np.diag([ng2, ng2, ng2, na2, na2, na2])

        self.bg = _vec3(options.init_bg)
        self.ba = _vec3(options.init_ba)

        self.dR = np.eye(3)
        self.dv = np.zeros(3)
        self.dp = np.zeros(3)

        self.dR_dbg = np.zeros((3, 3))
        self.dV_dbg = np.zeros((3, 3))
        self.dV_dba = np.zeros((3, 3))
        self.dP_dbg = np.zeros((3, 3))
        self.dP_dba = np.zeros((3, 3))

    def integrate(self, imu: IMU, dt: float) -> None:
        """Add one IMU reading held for ``dt`` seconds."""
        gyr = imu.gyro - self.bg
        acc = imu.acce - self.ba

        self.dp = self.dp + self.dv * dt + 0.5 * self.dR @ acc * dt * dt
        self.dv = self.dv + self.dR @ acc * dt

        A = np.eye(9)
        B = np.zeros((9, 6))

        acc_hat = hat(acc)
        dt2 = dt * dt

        A[3:6, 0:3] = -self.dR * dt @ acc_hat
        A[6:9, 0:3] = -0.5 * self.dR @ acc_hat * dt2
        A[6:9, 3:6] = dt * np.eye(3)

        B[3:6, 3:6] = self.dR * dt
        B[6:9, 3:6] = 0.5 * self.dR * dt2

        self.dP_dba = self.dP_dba + self.dV_dba * dt - 0.5 * self.dR * dt2
        self.dP_dbg = self.dP_dbg + self.dV_dbg * dt - 0.5 * self.dR * dt2 @ acc_hat @ self.dR_dbg
        self.dV_dba = self.dV_dba - self.dR * dt
        self.dV_dbg = self.dV_dbg - self.dR * dt @ acc_hat @ self.dR_dbg

        omega = gyr * dt
        right_j = right_jacobian(omega)
        delta_r = so3_exp(omega)
        self.dR = self.dR @ delta_r

        A[0:3, 0:3] = delta_r.T
        B[0:3, 0:3] = right_j * dt

        self.cov = A @ self.cov @ A.T + B @ self.noise_gyro_acce @ B.T

        self.dR_dbg = delta_r.T @ self.dR_dbg - right_j * dt

        self.dt += dt

    def predict(self, start: NavState, grav=(0.0, 0.0, -9.81)) -> NavState:
        """Predict the state reached from ``start`` after the integrated interval."""
        grav = _vec3(grav)
        rj = start.rotation @ self.dR
        vj = start.rotation @ self.dv + start.velocity + grav * self.dt
        pj = start.rotation @ self.dp + start.position + start.velocity * self.dt + 0.5 * grav * self.dt * self.dt
        return NavState(start.timestamp + self.dt, rj, pj, vj, self.bg.copy(), self.ba.copy())

    def delta_rotation(self, bg) -> np.ndarray:
        """Relative rotation corrected to the gyro bias ``bg``."""
        return self.dR @ so3_exp(self.dR_dbg @ (_vec3(bg) - self.bg))

    def delta_velocity(self, bg, ba) -> np.ndarray:
        """Relative velocity corrected to the biases ``bg`` and ``ba``."""
        return self.dv + self.dV_dbg @ (_vec3(bg) - self.bg) + self.dV_dba @ (_vec3(ba) - self.ba)

    def delta_position(self, bg, ba) -> np.ndarray:
        """Relative position corrected to the biases ``bg`` and ``ba``."""
        return self.dp + self.dP_dbg @ (_vec3(bg) - self.bg) + self.dP_dba @ (_vec3(ba) - self.ba)