"""Error-state Kalman filter over position, velocity, rotation, biases and gravity.

The error state has 18 dimensions in the order p, v, theta, bg, ba, g.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from .lie import SE3, hat, so3_exp, so3_log
from .state import GNSS, IMU, NavState, Odom, _vec3

logger = logging.getLogger(__name__)

_P = slice(0, 3)
_V = slice(3, 6)
_THETA = slice(6, 9)
_BG = slice(9, 12)
_BA = slice(12, 15)
_G = slice(15, 18)


@dataclass
class ESKFOptions:
    """Noise and sensor parameters of the filter.

    IMU noise terms are discrete-time standard deviations and are used as the
    diagonal of the process noise directly.
    """

    imu_dt: float = 0.01
    gyro_var: float = 1e-5
    acce_var: float = 1e-2
    bias_gyro_var: float = 1e-6
    bias_acce_var: float = 1e-4

    odom_var: float = 0.5
    odom_span: float = 0.1
    wheel_radius: float = 0.155
    circle_pulse: float = 1024.0

    gnss_pos_noise: float = 0.1
    gnss_height_noise: float = 0.1
    gnss_ang_noise: float = math.radians(1.0)

    update_bias_gyro: bool = True
    update_bias_acce: bool = True


class ESKF:
    """Error-state Kalman filter driven by IMU prediction and pose, GNSS or wheel observations."""

    def __init__(self, options: ESKFOptions | None = None):
        self.options = options if options is not None else ESKFOptions()
        self.current_time = 0.0

        self.p = np.zeros(3)
        self.v = np.zeros(3)
        self.R = np.eye(3)
        self.bg = np.zeros(3)
        self.ba = np.zeros(3)
        self.g = np.array([0.0, 0.0, -9.8])

        self.dx = np.zeros(18)
        self.cov = np.eye(18)

        self.Q = np.zeros((18, 18))
        self.odom_noise = np.zeros((3, 3))
        self.gnss_noise = np.zeros((6, 6))

        self._first_gnss = True
        self._build_noise(self.options)

    def set_initial_conditions(self, options: ESKFOptions, init_bg, init_ba, gravity=(0.0, 0.0, -9.8)) -> None:
        """Set the options, initial biases and gravity, and reset the covariance."""
        self._build_noise(options)
        self.options = options
        self.bg = _vec3(init_bg)
        self.ba = _vec3(init_ba)
        self.g = _vec3(gravity)
        self.cov = np.eye(18) * 1e-4

    def _build_noise(self, options: ESKFOptions) -> None:
        ev = options.acce_var
        et = options.gyro_var
        eg = options.bias_gyro_var
        ea = options.bias_acce_var
        self.Q = np.diag([0, 0, 0, ev, ev, ev, et, et, et, eg, eg, eg, ea, ea, ea, 0, 0, 0]).astype(float)

        # The odometry noise is taken from the options currently held by the filter.
        o2 = self.options.odom_var * self.options.odom_var
        self.odom_noise = np.diag([o2, o2, o2])

        gp2 = options.gnss_pos_noise ** 2
        gh2 = options.gnss_height_noise ** 2
        ga2 = options.gnss_ang_noise ** 2
        self.gnss_noise = np.diag([gp2, gp2, gh2, ga2, ga2, ga2])

    def predict(self, imu: IMU) -> bool:
        """Propagate the state with one IMU reading.

        Returns False, and only advances the clock, when the interval since
        the last update is negative or longer than five IMU periods.
        """
        dt = imu.timestamp - self.current_time
        if dt > 5 * self.options.imu_dt or dt < 0:
            logger.info("skip this imu because dt = %s", dt)
            self.current_time = imu.timestamp
            return False

        acc = imu.acce - self.ba
        gyr = imu.gyro - self.bg
        acc_world = self.R @ acc

        new_p = self.p + self.v * dt + 0.5 * acc_world * dt * dt + 0.5 * self.g * dt * dt
        new_v = self.v + acc_world * dt + self.g * dt
        new_R = self.R @ so3_exp(gyr * dt)

        self.R = new_R
        self.v = new_v
        self.p = new_p

        F = np.eye(18)
        F[_P, _V] = np.eye(3) * dt
        F[_V, _THETA] = -self.R @ hat(acc) * dt
        F[_V, _BA] = -self.R * dt
        F[_V, _G] = np.eye(3) * dt
        F[_THETA, _THETA] = so3_exp(-gyr * dt)
        F[_THETA, _BG] = -np.eye(3) * dt

        self.dx = F @ self.dx
        self.cov = F @ self.cov @ F.T + self.Q
        self.current_time = imu.timestamp
        return True

    def observe_wheel_speed(self, odom: Odom) -> bool:
        """Correct the velocity with the forward speed measured by the wheels."""
        H = np.zeros((3, 18))
        H[:, _V] = np.eye(3)

        K = self.cov @ H.T @ np.linalg.inv(H @ self.cov @ H.T + self.odom_noise)

        o = self.options
        velo_l = o.wheel_radius * odom.left_pulse / o.circle_pulse * 2 * math.pi / o.odom_span
        velo_r = o.wheel_radius * odom.right_pulse / o.circle_pulse * 2 * math.pi / o.odom_span
        average_vel = 0.5 * (velo_l + velo_r)

        vel_world = self.R @ np.array([average_vel, 0.0, 0.0])

        self.dx = K @ (vel_world - self.v)
        self.cov = (np.eye(18) - K @ H) @ self.cov
        self._update_and_reset()
        return True

    def observe_gps(self, gnss: GNSS) -> bool:
        """Correct with a GNSS pose; the first reading only sets the pose.

        Raises ValueError if a later reading has no valid heading.
        """
        if self._first_gnss:
            self.R = gnss.utm_pose.rotation.copy()
            self.p = gnss.utm_pose.translation.copy()
            self._first_gnss = False
            self.current_time = gnss.unix_time
            return True

        if not gnss.heading_valid:
            raise ValueError("GNSS observation requires a valid heading")

        self.observe_se3(gnss.utm_pose, self.options.gnss_pos_noise, self.options.gnss_ang_noise)
        self.current_time = gnss.unix_time
        return True

    def observe_se3(self, pose: SE3, trans_noise: float = 0.1, ang_noise: float = math.radians(1.0)) -> bool:
        """Correct position and rotation with an observed pose."""
        H = np.zeros((6, 18))
        H[0:3, _P] = np.eye(3)
        H[3:6, _THETA] = np.eye(3)

        V = np.diag([trans_noise, trans_noise, trans_noise, ang_noise, ang_noise, ang_noise])
        K = self.cov @ H.T @ np.linalg.inv(H @ self.cov @ H.T + V)

        innov = np.zeros(6)
        innov[0:3] = pose.translation - self.p
        innov[3:6] = so3_log(self.R.T @ pose.rotation)

        self.dx = K @ innov
        self.cov = (np.eye(18) - K @ H) @ self.cov
        self._update_and_reset()
        return True

    def _update_and_reset(self) -> None:
        self.p = self.p + self.dx[_P]
        self.v = self.v + self.dx[_V]
        self.R = self.R @ so3_exp(self.dx[_THETA])

        if self.options.update_bias_gyro:
            self.bg = self.bg + self.dx[_BG]
        if self.options.update_bias_acce:
            self.ba = self.ba + self.dx[_BA]

        self.g = self.g + self.dx[_G]

        self._project_cov()
        self.dx = np.zeros(18)

    def _project_cov(self) -> None:
        J = np.eye(18)
        J[_THETA, _THETA] = np.eye(3) - 0.5 * hat(self.dx[_THETA])
        self.cov = J @ self.cov @ J.T

    def nominal_state(self) -> NavState:
        return NavState(
            self.current_time,
            self.R.copy(),
            self.p.copy(),
            self.v.copy(),
            self.bg.copy(),
            self.ba.copy(),
        )

    def nominal_se3(self) -> SE3:
        return SE3(self.R.copy(), self.p.copy())

    def set_x(self, x: NavState, grav) -> None:
        """Replace the nominal state and gravity."""
        self.current_time = x.timestamp
        self.R = x.rotation.copy()
        self.p = x.position.copy()
        self.v = x.velocity.copy()
        self.bg = x.bg.copy()
        self.ba = x.ba.copy()
        self.g = _vec3(grav)

    def set_cov(self, cov) -> None:
        cov = np.array(cov, dtype=float)
        if cov.shape != (18, 18):
            raise ValueError(f"covariance must be 18x18, got shape {cov.shape}")
        self.cov = cov

    def gravity(self) -> np.ndarray:
        return self.g.copy()