"""Simulation of a vehicle moving on a circle at constant speeds."""

from __future__ import annotations

import math
from collections.abc import Iterator

import numpy as np

from .lie import quaternion_to_rotation, rotation_to_quaternion, so3_exp
from .state import NavState


def _quat_mul(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    aw, ax, ay, az = a
    bw, bx, by, bz = b
    return np.array(
        [
            aw * bw - ax * bx - ay * by - az * bz,
            aw * bx + ax * bw + ay * bz - az * by,
            aw * by - ax * bz + ay * bw + az * bx,
            aw * bz + ax * by - ay * bx + az * bw,
        ]
    )


def simulate_circular_motion(
    angular_velocity_deg: float = 10.0,
    linear_velocity: float = 5.0,
    dt: float = 0.05,
    steps: int = 100,
    use_quaternion: bool = False,
) -> Iterator[NavState]:
    """Yield the state after each of ``steps`` updates of a vehicle turning about z.

    The body moves forward along its x axis at ``linear_velocity`` m/s while
    turning at ``angular_velocity_deg`` degrees per second. The rotation is
    updated either with the SO(3) exponential or with a first-order quaternion
    step followed by normalisation.
    """
    if dt <= 0:
        raise ValueError("dt must be positive")
    if steps < 0:
        raise ValueError("steps must not be negative")
    return _simulate(math.radians(angular_velocity_deg), linear_velocity, dt, steps, use_quaternion)


def _simulate(omega_z: float, linear_velocity: float, dt: float, steps: int, use_quaternion: bool) -> Iterator[NavState]:
    omega = np.array([0.0, 0.0, omega_z])
    v_body = np.array([linear_velocity, 0.0, 0.0])
    rotation = np.eye(3)
    position = np.zeros(3)

    for i in range(1, steps + 1):
        v_world = rotation @ v_body
        position = position + v_world * dt

        if use_quaternion:
            q = _quat_mul(rotation_to_quaternion(rotation), np.concatenate(([1.0], 0.5 * omega * dt)))
            rotation = quaternion_to_rotation(q)
        else:
            rotation = rotation @ so3_exp(omega * dt)

        yield NavState(i * dt, rotation.copy(), position.copy(), v_world)