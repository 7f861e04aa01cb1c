"""JPEG encoding with an optional byte-size budget.

Budgeted encodes walk a fixed descending quality sequence and keep the first
result that fits. The search is greedy on purpose: because quality only
decreases, the first fit is also the highest quality in the sequence that fits.
The image is never resized to meet the budget.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image

from dirphoto.imaging.errors import BudgetUnsatisfiableError, EncodingError
from dirphoto.imaging.mask import WHITE

if TYPE_CHECKING:
    from collections.abc import Iterator

    from dirphoto.imaging.decoder import PixelGrid

logger = logging.getLogger(__name__)

OUTPUT_FORMAT = "JPEG"


@dataclass(frozen=True)
class EncoderSettings:
    """Quality and size tunables for the encoder.

    The budgeted search tries ``start_quality``, ``start_quality - quality_step``, ...
    for as long as the quality stays above ``quality_floor``.
    """

    preview_quality: int = 85
    start_quality: int = 90
    quality_step: int = 10
    quality_floor: int = 10
    max_bytes: int = 100 * 1024

    def __post_init__(self) -> None:
        for name in ("preview_quality", "start_quality"):
            value = getattr(self, name)
            if not 1 <= value <= 100:
                raise ValueError(f"{name} must be between 1 and 100, got {value}")
        if self.quality_step < 1:
            raise ValueError(f"quality_step must be positive, got {self.quality_step}")
        if not 0 <= self.quality_floor < self.start_quality:
            raise ValueError(
                f"quality_floor must be in [0, start_quality), got {self.quality_floor} (start {self.start_quality})"
            )
        if self.max_bytes < 1:
            raise ValueError(f"max_bytes must be positive, got {self.max_bytes}")


@dataclass(frozen=True)
class EncodedImage:
    """Final encoder output. The format is always JPEG."""

    data: bytes
    quality: int
    width: int
    height: int
    format: str = OUTPUT_FORMAT

    def __bytes__(self) -> bytes:
        return self.data

    def __len__(self) -> int:
        return len(self.data)


def quality_steps(settings: EncoderSettings) -> Iterator[int]:
    """Yield the quality levels a budgeted encode tries, highest first."""
    quality = settings.start_quality
    while quality > settings.quality_floor:
        yield quality
        quality -= settings.quality_step


def flatten(grid: PixelGrid) -> Image.Image:
    """Composite an RGBA grid over opaque white and return an RGB image."""
    rgba = Image.fromarray(np.ascontiguousarray(grid, dtype=np.uint8))
    if rgba.mode != "RGBA":
        rgba = rgba.convert("RGBA")
    background = Image.new("RGB", rgba.size, WHITE[:3])
    background.paste(rgba, mask=rgba.getchannel("A"))
    return background


def encode_jpeg(image: Image.Image, quality: int) -> bytes:
    """Encode an RGB image as baseline JPEG at the given quality."""
    buffer = io.BytesIO()
    try:
        image.save(buffer, format=OUTPUT_FORMAT, quality=quality)
    except (OSError, ValueError) as exc:
        raise EncodingError(f"failed to encode JPEG at quality {quality}: {exc}") from exc
    return buffer.getvalue()


def encode(grid: PixelGrid, *, enforce_budget: bool, settings: EncoderSettings | None = None) -> EncodedImage:
    """Encode a pixel grid as JPEG.

    Args:
        grid: RGBA pixel grid.
        enforce_budget: When False, encode once at ``preview_quality``. When True,
            search down the quality sequence until the output fits ``max_bytes``.
        settings: Encoder tunables; defaults are used when omitted.

    Raises:
        BudgetUnsatisfiableError: No quality in the sequence fits the budget.
        EncodingError: Pillow failed to encode the image.
    """
    settings = settings or EncoderSettings()
    image = flatten(grid)
    width, height = image.size

    if not enforce_budget:
        data = encode_jpeg(image, settings.preview_quality)
        return EncodedImage(data=data, quality=settings.preview_quality, width=width, height=height)

    last_size, last_quality = 0, settings.start_quality
    for quality in quality_steps(settings):
        data = encode_jpeg(image, quality)
        logger.debug("Quality %d produced %d bytes (budget %d)", quality, len(data), settings.max_bytes)
        if len(data) <= settings.max_bytes:
            return EncodedImage(data=data, quality=quality, width=width, height=height)
        last_size, last_quality = len(data), quality

    raise BudgetUnsatisfiableError(settings.max_bytes, last_size, last_quality)
