"""Preintegration residual between two navigation frames, with its Jacobians.

The residual has 9 rows ordered as rotation, velocity, position. Its variables
are the first frame's pose (rotation, position), velocity, gyro bias and
accelerometer bias, and the second frame's pose and velocity. Rotations are
perturbed on the right and positions additively.
"""

from __future__ import annotations

import numpy as np

from .lie import SE3, hat, right_jacobian, right_jacobian_inv, so3_log
from .preintegration import IMUPreintegration
from .state import _vec3


class EdgeInertial:
    """Connects the pose, velocity and biases of one frame with the pose and
    velocity of the next through an IMU preintegration.

    The information matrix is the inverse of the preintegration covariance
    scaled by ``weight``.
    """

    def __init__(self, preinteg: IMUPreintegration, gravity, weight: float = 1.0):
        self.preint = preinteg
        self.dt = preinteg.dt
        self.grav = _vec3(gravity)
        try:
            self.information = np.linalg.inv(preinteg.cov) * weight
        except np.linalg.LinAlgError as exc:
            raise ValueError("preintegration covariance is singular; integrate some IMU readings first") from exc

    def compute_error(self, pose1: SE3, v1, bg1, ba1, pose2: SE3, v2) -> np.ndarray:
        """The 9-dimensional residual (rotation, velocity, position)."""
        v1, bg, ba, v2 = _vec3(v1), _vec3(bg1), _vec3(ba1), _vec3(v2)
        dt = self.dt
        d_r = self.preint.delta_rotation(bg)
        dv = self.preint.delta_velocity(bg, ba)
        dp = self.preint.delta_position(bg, ba)

        r1t = pose1.rotation.T
        er = so3_log(d_r.T @ r1t @ pose2.rotation)
        ev = r1t @ (v2 - v1 - self.grav * dt) - dv
        ep = r1t @ (pose2.translation - pose1.translation - v1 * dt - self.grav * dt * dt / 2) - dp
        return np.concatenate((er, ev, ep))

    def jacobians(self, pose1: SE3, v1, bg1, ba1, pose2: SE3, v2) -> tuple[np.ndarray, ...]:
        """Jacobians of the residual with respect to each of the six variables.

        Shapes are 9x6, 9x3, 9x3, 9x3, 9x6 and 9x3, in the order of the arguments.
        """
        vi, bg, vj = _vec3(v1), _vec3(bg1), _vec3(v2)
        _vec3(ba1)
        dt = self.dt
        grav = self.grav
        preint = self.preint
        dbg = bg - preint.bg

        r1 = pose1.rotation
        r1t = r1.T
        r2 = pose2.rotation
        pi = pose1.translation
        pj = pose2.translation

        d_r = preint.delta_rotation(bg)
        e_r = d_r.T @ r1t @ r2
        er = so3_log(e_r)
        inv_jr = right_jacobian_inv(er)

        j_pose1 = np.zeros((9, 6))
        j_pose1[0:3, 0:3] = -inv_jr @ (r2.T @ r1)
        j_pose1[3:6, 0:3] = hat(r1t @ (vj - vi - grav * dt))
        j_pose1[6:9, 0:3] = hat(r1t @ (pj - pi - vi * dt - 0.5 * grav * dt * dt))
        j_pose1[6:9, 3:6] = -r1t

        j_v1 = np.zeros((9, 3))
        j_v1[3:6] = -r1t
        j_v1[6:9] = -r1t * dt

        j_bg1 = np.zeros((9, 3))
        j_bg1[0:3] = -inv_jr @ e_r.T @ right_jacobian(preint.dR_dbg @ dbg) @ preint.dR_dbg
        j_bg1[3:6] = -preint.dV_dbg
        j_bg1[6:9] = -preint.dP_dbg

        j_ba1 = np.zeros((9, 3))
        j_ba1[3:6] = -preint.dV_dba
        j_ba1[6:9] = -preint.dP_dba

        j_pose2 = np.zeros((9, 6))
        j_pose2[0:3, 0:3] = inv_jr
        j_pose2[6:9, 3:6] = r1t

        j_v2 = np.zeros((9, 3))
        j_v2[3:6] = r1t

        return j_pose1, j_v1, j_bg1, j_ba1, j_pose2, j_v2

    def hessian(self, pose1: SE3, v1, bg1, ba1, pose2: SE3, v2) -> np.ndarray:
        """The 24x24 Gauss-Newton Hessian ``J^T * information * J``."""
        j = np.hstack(self.jacobians(pose1, v1, bg1, ba1, pose2, v2))
        return j.T @ self.information @ j