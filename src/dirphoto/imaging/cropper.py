"""Centered square crop."""

from __future__ import annotations

from typing import TYPE_CHECKING

from dirphoto.imaging.errors import DegenerateImageError

if TYPE_CHECKING:
    from dirphoto.imaging.decoder import PixelGrid


def square_window(width: int, height: int) -> tuple[int, int, int]:
    """Return ``(x0, y0, size)`` of the centered square inside a width x height canvas.

    Odd leftovers are floored, so the window leans one pixel toward the origin.
    """
    size = min(width, height)
    return (width - size) // 2, (height - size) // 2, size


def crop_to_square(grid: PixelGrid) -> PixelGrid:
    """Copy the centered ``min(W, H)`` square out of ``grid`` without scaling."""
    height, width = grid.shape[:2]
    if width == 0 or height == 0:
        raise DegenerateImageError(f"cannot crop a zero-area image ({width}x{height})")

    x0, y0, size = square_window(width, height)
    return grid[y0 : y0 + size, x0 : x0 + size].copy()
