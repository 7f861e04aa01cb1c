"""Circular visibility mask.

JPEG has no alpha channel, so instead of making the corners transparent the
pixels outside the circle are painted with an opaque fill color. The edge is
binary; no blending is done at the boundary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from dirphoto.imaging.errors import DegenerateImageError

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from dirphoto.imaging.decoder import PixelGrid

WHITE: tuple[int, int, int, int] = (255, 255, 255, 255)


def outside_circle(size: int) -> NDArray[np.bool_]:
    """Boolean ``size x size`` array, True where a pixel lies outside the inscribed circle.

    Each pixel is tested at its center ``(x + 0.5, y + 0.5)`` against a circle
    centered at ``(size / 2, size / 2)`` with radius ``size / 2``, which keeps the
    mask symmetric for both even and odd sizes.
    """
    half = size / 2
    offsets = np.arange(size, dtype=np.float64) + 0.5 - half
    dist_sq = offsets[np.newaxis, :] ** 2 + offsets[:, np.newaxis] ** 2
    return dist_sq > half * half


def apply_circle_mask(grid: PixelGrid, fill: tuple[int, int, int, int] = WHITE) -> PixelGrid:
    """Return a copy of a square grid with everything outside the circle set to ``fill``.

    Raises:
        ValueError: If the grid is not square.
        DegenerateImageError: If the grid is empty.
    """
    height, width = grid.shape[:2]
    if width != height:
        raise ValueError(f"circle mask needs a square image, got {width}x{height}")
    if width == 0:
        raise DegenerateImageError("cannot mask a zero-area image")

    masked = grid.copy()
    masked[outside_circle(width)] = np.asarray(fill, dtype=np.uint8)
    return masked
