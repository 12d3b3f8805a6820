"""Rotation and rigid-body helpers on SO(3) and SE(3).

Rotations are plain 3x3 numpy arrays, quaternions are ``(w, x, y, z)`` arrays.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

_SMALL_ANGLE = 1e-8
_JACOBIAN_SMALL_ANGLE = 1e-5


def _vec3(value) -> np.ndarray:
    arr = np.array(value, dtype=float).reshape(-1)
    if arr.shape != (3,):
        raise ValueError(f"expected a 3-vector, got shape {np.shape(value)}")
    return arr


def hat(v) -> np.ndarray:
    """Return the skew-symmetric matrix of a 3-vector."""
    x, y, z = _vec3(v)
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


def vee(m) -> np.ndarray:
    """Return the 3-vector of a skew-symmetric matrix."""
    m = np.asarray(m, dtype=float)
    if m.shape != (3, 3):
        raise ValueError(f"expected a 3x3 matrix, got shape {m.shape}")
    return np.array([m[2, 1], m[0, 2], m[1, 0]])


def quaternion_to_rotation(q) -> np.ndarray:
    """Convert a ``(w, x, y, z)`` quaternion to a rotation matrix; it is normalised first."""
    q = np.array(q, dtype=float).reshape(-1)
    if q.shape != (4,):
        raise ValueError(f"expected a quaternion of 4 values, got shape {q.shape}")
    norm = np.linalg.norm(q)
    if norm < 1e-12:
        raise ValueError("cannot build a rotation from a zero quaternion")
    w, x, y, z = q / norm
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)],
            [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)],
            [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)],
        ]
    )


def rotation_to_quaternion(rotation) -> np.ndarray:
    """Convert a rotation matrix to a unit ``(w, x, y, z)`` quaternion with ``w >= 0``."""
    m = np.asarray(rotation, dtype=float)
    if m.shape != (3, 3):
        raise ValueError(f"expected a 3x3 matrix, got shape {m.shape}")
    diag_sum = m[0, 0] + m[1, 1] + m[2, 2]
    if diag_sum > 0:
        s = math.sqrt(diag_sum + 1.0) * 2
        q = [0.25 * s, (m[2, 1] - m[1, 2]) / s, (m[0, 2] - m[2, 0]) / s, (m[1, 0] - m[0, 1]) / s]
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = math.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2]) * 2
        q = [(m[2, 1] - m[1, 2]) / s, 0.25 * s, (m[0, 1] + m[1, 0]) / s, (m[0, 2] + m[2, 0]) / s]
    elif m[1, 1] > m[2, 2]:
        s = math.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2]) * 2
        q = [(m[0, 2] - m[2, 0]) / s, (m[0, 1] + m[1, 0]) / s, 0.25 * s, (m[1, 2] + m[2, 1]) / s]
    else:
        s = math.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1]) * 2
        q = [(m[1, 0] - m[0, 1]) / s, (m[0, 2] + m[2, 0]) / s, (m[1, 2] + m[2, 1]) / s, 0.25 * s]
    q = np.array(q)
    q /= np.linalg.norm(q)
    return -q if q[0] < 0 else q


def so3_exp(omega) -> np.ndarray:
    """Exponential map from a rotation vector to a rotation matrix."""
    omega = _vec3(omega)
    theta = float(np.linalg.norm(omega))
    half = 0.5 * theta
    if theta < _SMALL_ANGLE:
        theta2 = theta * theta
        imag_factor = 0.5 - theta2 / 48.0 + theta2 * theta2 / 3840.0
        real = 1.0 - theta2 / 8.0 + theta2 * theta2 / 384.0
    else:
        imag_factor = math.sin(half) / theta
        real = math.cos(half)
    return quaternion_to_rotation(np.concatenate(([real], imag_factor * omega)))


def so3_log(rotation) -> np.ndarray:
    """Logarithm map from a rotation matrix to a rotation vector."""
    w, x, y, z = rotation_to_quaternion(rotation)
    imag = np.array([x, y, z])
    n = float(np.linalg.norm(imag))
    if n < _SMALL_ANGLE:
        factor = 2.0 / w - 2.0 / 3.0 * n * n / (w ** 3)
    elif abs(w) < _SMALL_ANGLE:
        factor = math.pi / n if w >= 0 else -math.pi / n
    else:
        factor = 2.0 * math.atan(n / w) / n
    return factor * imag


def right_jacobian(omega) -> np.ndarray:
    """Right Jacobian of SO(3) at a rotation vector."""
    omega = _vec3(omega)
    theta = float(np.linalg.norm(omega))
    k = hat(omega)
    if theta < _JACOBIAN_SMALL_ANGLE:
        return np.eye(3) - 0.5 * k + k @ k / 6.0
    theta2 = theta * theta
    return (
        np.eye(3)
        - (1.0 - math.cos(theta)) / theta2 * k
        + (theta - math.sin(theta)) / (theta2 * theta) * (k @ k)
    )


def right_jacobian_inv(omega) -> np.ndarray:
    """Inverse of the right Jacobian of SO(3) at a rotation vector."""
    omega = _vec3(omega)
    theta = float(np.linalg.norm(omega))
    k = hat(omega)
    if theta < _JACOBIAN_SMALL_ANGLE:
        return np.eye(3) + 0.5 * k + k @ k / 12.0
    coeff = 1.0 / (theta * theta) - (1.0 + math.cos(theta)) / (2.0 * theta * math.sin(theta))
    return np.eye(3) + 0.5 * k + coeff * (k @ k)


def rot_z(angle: float) -> np.ndarray:
    """Rotation about the z axis by ``angle`` radians."""
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


@dataclass
class SE3:
    """A rigid-body transform made of a rotation matrix and a translation."""

    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        self.rotation = np.array(self.rotation, dtype=float)
        if self.rotation.shape != (3, 3):
            raise ValueError(f"rotation must be 3x3, got shape {self.rotation.shape}")
        self.translation = _vec3(self.translation)

    def inverse(self) -> SE3:
        rt = self.rotation.T
        return SE3(rt, -rt @ self.translation)

    def matrix(self) -> np.ndarray:
        m = np.eye(4)
        m[:3, :3] = self.rotation
        m[:3, 3] = self.translation
        return m

    @classmethod
    def from_matrix(cls, m) -> SE3:
        m = np.asarray(m, dtype=float)
        if m.shape != (4, 4):
            raise ValueError(f"expected a 4x4 matrix, got shape {m.shape}")
        rotation = quaternion_to_rotation(rotation_to_quaternion(m[:3, :3]))
        return cls(rotation, m[:3, 3])

    def transform(self, point) -> np.ndarray:
        """Apply the transform to one point of shape (3,) or to points of shape (N, 3)."""
        pts = np.asarray(point, dtype=float)
        if pts.shape == (3,):
            return self.rotation @ pts + self.translation
        if pts.ndim == 2 and pts.shape[1] == 3:
            return pts @ self.rotation.T + self.translation
        raise ValueError(f"expected points of shape (3,) or (N, 3), got {pts.shape}")

    def __matmul__(self, other: SE3) -> SE3:
        if not isinstance(other, SE3):
            return NotImplemented
        return SE3(self.rotation @ other.rotation, self.rotation @ other.translation + self.translation)