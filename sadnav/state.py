"""Sensor readings and the navigation state."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .lie import SE3


def _vec3(value) -> np.ndarray:
    arr = np.array(value, dtype=float).reshape(-1)
    if arr.shape != (3,):
        raise ValueError(f"expected a 3-vector, got shape {np.shape(value)}")
    return arr


def _zeros() -> np.ndarray:
    return np.zeros(3)


@dataclass
class IMU:
    """One IMU reading: angular rate (rad/s) and specific force (m/s^2)."""

    timestamp: float = 0.0
    gyro: np.ndarray = field(default_factory=_zeros)
    acce: np.ndarray = field(default_factory=_zeros)

    def __post_init__(self) -> None:
        self.timestamp = float(self.timestamp)
        self.gyro = _vec3(self.gyro)
        self.acce = _vec3(self.acce)


@dataclass
class Odom:
    """One wheel encoder reading, in pulses per measurement interval."""

    timestamp: float = 0.0
    left_pulse: float = 0.0
    right_pulse: float = 0.0


@dataclass
class GNSS:
    """One GNSS reading, with its pose in the map frame once converted."""

    unix_time: float = 0.0
    lat_lon_alt: np.ndarray = field(default_factory=_zeros)
    heading: float = 0.0
    heading_valid: bool = False
    utm_pose: SE3 = field(default_factory=SE3)
    utm_valid: bool = False

    def __post_init__(self) -> None:
        self.lat_lon_alt = _vec3(self.lat_lon_alt)


@dataclass
class NavState:
    """Full navigation state: time, rotation, position, velocity and biases."""

    timestamp: float = 0.0
    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    position: np.ndarray = field(default_factory=_zeros)
    velocity: np.ndarray = field(default_factory=_zeros)
    bg: np.ndarray = field(default_factory=_zeros)
    ba: np.ndarray = field(default_factory=_zeros)

    def __post_init__(self) -> None:
        self.timestamp = float(self.timestamp)
        self.rotation = np.array(self.rotation, dtype=float)
        if self.rotation.shape != (3, 3):
            raise ValueError(f"rotation must be 3x3, got shape {self.rotation.shape}")
        self.position = _vec3(self.position)
        self.velocity = _vec3(self.velocity)
        self.bg = _vec3(self.bg)
        self.ba = _vec3(self.ba)

    def se3(self) -> SE3:
        """The pose part of the state."""
        return SE3(self.rotation.copy(), self.position.copy())