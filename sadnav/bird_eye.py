"""Bird's-eye view images of point clouds.

Images are ``uint8`` arrays of shape (rows, cols, 3) in blue, green, red
channel order.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image

from .bfnn import _as_cloud

BEV_COLOR = (227, 143, 79)
"""Blue, green, red colour of an occupied pixel."""

BACKGROUND = (255, 255, 255)


def generate_bev_image(points, resolution: float = 0.1, min_z: float = 0.2, max_z: float = 2.5) -> np.ndarray:
    """Project the points whose height lies in ``[min_z, max_z]`` onto a top-down image.

    The image spans the x and y extent of the whole cloud at ``resolution``
    metres per pixel; rows follow y and columns follow x. Occupied pixels get
    :data:`BEV_COLOR`, the rest stay white.
    """
    pts = _as_cloud(points)
    if len(pts) == 0:
        raise ValueError("cannot build an image from an empty cloud")
    if resolution <= 0:
        raise ValueError("resolution must be positive")

    min_x, min_y = pts[:, 0].min(), pts[:, 1].min()
    max_x, max_y = pts[:, 0].max(), pts[:, 1].max()
    inv_r = 1.0 / resolution

    rows = int((max_y - min_y) * inv_r)
    cols = int((max_x - min_x) * inv_r)

    x_center = 0.5 * (max_x + min_x)
    y_center = 0.5 * (max_y + min_y)
    x_center_image = float(cols // 2)
    y_center_image = float(rows // 2)

    image = np.full((rows, cols, 3), BACKGROUND, dtype=np.uint8)

    with np.errstate(invalid="ignore"):
        px = np.trunc((pts[:, 0] - x_center) * inv_r + x_center_image)
        py = np.trunc((pts[:, 1] - y_center) * inv_r + y_center_image)
        z = pts[:, 2]
        keep = (px >= 0) & (px < cols) & (py >= 0) & (py < rows) & (z >= min_z) & (z <= max_z)

    image[py[keep].astype(int), px[keep].astype(int)] = BEV_COLOR
    return image


def save_image(image, path) -> None:
    """Write a blue, green, red image to ``path``; the format follows the file suffix."""
    arr = np.asarray(image)
    if arr.ndim != 3 or arr.shape[2] != 3:
        raise ValueError(f"expected an image of shape (rows, cols, 3), got {arr.shape}")
    if arr.shape[0] == 0 or arr.shape[1] == 0:
        raise ValueError("cannot save an empty image")
    rgb = np.ascontiguousarray(arr[..., ::-1].astype(np.uint8))
    Image.fromarray(rgb, mode="RGB").save(Path(path))