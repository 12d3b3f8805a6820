"""Range images of lidar scans, coloured through the HSV space."""

from __future__ import annotations

import numpy as np

from .bfnn import _as_cloud

_SECTOR_DATA = np.array([[1, 3, 0], [1, 0, 2], [3, 0, 1], [0, 2, 1], [0, 1, 3], [2, 1, 0]])


def hsv_to_bgr(image) -> np.ndarray:
    """Convert an 8-bit HSV image (hue in 0..180) to blue, green, red."""
    hsv = np.asarray(image)
    if hsv.ndim < 1 or hsv.shape[-1] != 3:
        raise ValueError(f"expected an image whose last axis has 3 channels, got {hsv.shape}")
    h = hsv[..., 0].astype(float) * (6.0 / 180.0)
    s = hsv[..., 1].astype(float) / 255.0
    v = hsv[..., 2].astype(float) / 255.0

    h = np.where(h < 0, h + 6, h)
    h = np.where(h >= 6, h - 6, h)
    sector = np.floor(h).astype(int)
    frac = h - sector
    invalid = (sector < 0) | (sector >= 6)
    sector = np.where(invalid, 0, sector)
    frac = np.where(invalid, 0.0, frac)

    tab = np.stack([v, v * (1 - s), v * (1 - s * frac), v * (1 - s * (1 - frac))], axis=-1)
    bgr = np.take_along_axis(tab, _SECTOR_DATA[sector], axis=-1)
    return np.clip(np.rint(bgr * 255.0), 0, 255).astype(np.uint8)


def generate_range_image(
    points,
    azimuth_resolution_deg: float = 0.3,
    elevation_rows: int = 16,
    elevation_range: float = 15.0,
    lidar_height: float = 1.128,
) -> np.ndarray:
    """Build a blue, green, red range image of a scan.

    Columns follow the azimuth over 360 degrees and rows the elevation over
    ``[-elevation_range, elevation_range]`` degrees, upper elevations on top.
    The hue of a pixel encodes the horizontal range; pixels without a point
    stay black.
    """
    pts = _as_cloud(points)
    if azimuth_resolution_deg <= 0:
        raise ValueError("azimuth resolution must be positive")
    if elevation_rows <= 0:
        raise ValueError("elevation rows must be positive")
    if elevation_range <= 0:
        raise ValueError("elevation range must be positive")

    cols = int(360 / azimuth_resolution_deg)
    rows = int(elevation_rows)
    hsv = np.zeros((rows, cols, 3), dtype=np.uint8)
    ele_resolution = elevation_range * 2 / elevation_rows

    with np.errstate(invalid="ignore", divide="ignore"):
        azimuth = np.degrees(np.arctan2(pts[:, 1], pts[:, 0]))
        horizontal = np.hypot(pts[:, 0], pts[:, 1])
        elevation = np.degrees(np.arcsin((pts[:, 2] - lidar_height) / horizontal))
        azimuth = np.where(azimuth < 0, azimuth + 360, azimuth)

        x = np.trunc(azimuth / azimuth_resolution_deg)
        y = np.trunc((elevation + elevation_range) / ele_resolution + 0.5)
        keep = np.isfinite(x) & np.isfinite(y) & (x >= 0) & (x < cols) & (y >= 0) & (y < rows)

    hue = np.clip(np.trunc(horizontal[keep] / 100 * 255.0), 0, 255).astype(np.uint8)
    hsv[y[keep].astype(int), x[keep].astype(int), 0] = hue
    hsv[y[keep].astype(int), x[keep].astype(int), 1] = 255
    hsv[y[keep].astype(int), x[keep].astype(int), 2] = 127

    return hsv_to_bgr(hsv[::-1])