"""Pipeline orchestrator: decode, frame, mask, encode.

``process`` is the only function the HTTP layer calls. It is synchronous and
keeps no state between calls, so concurrent invocations need no locking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from dirphoto.imaging.cropper import crop_to_square
from dirphoto.imaging.decoder import decode_image
from dirphoto.imaging.encoder import EncodedImage, EncoderSettings, encode
from dirphoto.imaging.mask import apply_circle_mask

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessingOptions:
    """Framing flags chosen by the operator."""

    crop: bool = False
    round: bool = False

    @property
    def square(self) -> bool:
        """Rounding only makes sense on a square canvas, so it implies cropping."""
        return self.crop or self.round


def process(
    payload: bytes | str,
    options: ProcessingOptions,
    enforce_budget: bool,
    *,
    settings: EncoderSettings | None = None,
    max_pixels: int | None = None,
) -> EncodedImage:
    """Run an uploaded image through the pipeline and return the JPEG result.

    Args:
        payload: Raw image bytes or base64 text, optionally with a data-URI header.
        options: Crop and round flags.
        enforce_budget: Apply the size budget (committed photos) or not (previews).
        settings: Encoder tunables.
        max_pixels: Optional limit on the decoded pixel count.

    Raises:
        ImageProcessingError: The first failure of any stage, unchanged.
    """
    decoded = decode_image(payload, max_pixels=max_pixels)
    grid = decoded.grid

    if options.square:
        grid = crop_to_square(grid)
        logger.debug("Cropped %dx%d to %dx%d", decoded.width, decoded.height, grid.shape[1], grid.shape[0])
    if options.round:
        grid = apply_circle_mask(grid)

    result = encode(grid, enforce_budget=enforce_budget, settings=settings)
    logger.info(
        "Processed %s %dx%d -> JPEG %dx%d, %d bytes at quality %d (crop=%s, round=%s, budget=%s)",
        decoded.format,
        decoded.width,
        decoded.height,
        result.width,
        result.height,
        len(result),
        result.quality,
        options.crop,
        options.round,
        enforce_budget,
    )
    return result
