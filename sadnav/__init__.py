"""Lie-group helpers, IMU integration and initialisation, error-state Kalman
filtering, IMU preintegration, point-cloud nearest-neighbour search and
point-cloud images."""

__version__ = "0.1.0"