"""Format detection, validation, and decoding of uploaded images.

Accepts raw image bytes or base64 text, optionally prefixed with a data-URI
header (``data:image/png;base64,``). Only JPEG and PNG are decoded; every other
format is rejected from its header, before any pixel data is read.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from PIL import Image, UnidentifiedImageError

from dirphoto.imaging.errors import (
    DecodeError,
    DegenerateImageError,
    ImageTooLargeError,
    UnsupportedFormatError,
)

logger = logging.getLogger(__name__)

PixelGrid = NDArray[np.uint8]
"""HxWx4 RGBA uint8 array, origin top-left."""

# Pillow reports multi-picture JPEGs written by many phone cameras as MPO.
_FORMAT_ALIASES: dict[str, str] = {
    "JPEG": "JPEG",
    "MPO": "JPEG",
    "PNG": "PNG",
}

ALLOWED_FORMATS: frozenset[str] = frozenset(_FORMAT_ALIASES.values())

# Pillow keeps 16-bit greyscale PNGs in these modes; convert("RGBA") would clip them.
_WIDE_GREY_MODES = frozenset({"I", "I;16", "I;16B", "I;16L", "I;16N"})

_DATA_URI_PREFIX = b"data:"
_BASE64_PAYLOAD = re.compile(rb"[A-Za-z0-9+/\r\n ]+={0,2}\s*")


@dataclass(frozen=True)
class DecodedImage:
    """A decoded pixel grid and the format it was stored in."""

    grid: PixelGrid
    format: str

    @property
    def width(self) -> int:
        return int(self.grid.shape[1])

    @property
    def height(self) -> int:
        return int(self.grid.shape[0])


def strip_data_uri_header(payload: bytes | str) -> bytes:
    """Remove a leading ``data:<mime>;base64,`` header if present.

    Text payloads are cut at the first comma, since base64 never contains one.
    Binary payloads are only cut when they start with ``data:`` (after leading
    whitespace), because raw image bytes may contain commas anywhere.
    """
    if isinstance(payload, str):
        _, sep, rest = payload.partition(",")
        text = rest if sep else payload
        try:
            return text.strip().encode("ascii")
        except UnicodeEncodeError:
            raise DecodeError("invalid base64") from None

    payload = payload.lstrip()
    if payload.startswith(_DATA_URI_PREFIX):
        _, sep, rest = payload.partition(b",")
        if not sep:
            raise DecodeError("malformed data URI header")
        return rest.strip()
    return payload


def read_image_bytes(payload: bytes | str) -> bytes:
    """Turn an upload payload into raw encoded image bytes.

    A payload made entirely of base64 characters is base64-decoded; anything
    else is taken to be raw image data already.
    """
    data = strip_data_uri_header(payload)
    if not data:
        raise DecodeError("empty image data")

    if _BASE64_PAYLOAD.fullmatch(data) is None:
        return data
    try:
        return base64.b64decode(data)
    except binascii.Error:
        raise DecodeError("invalid base64") from None


def _to_rgba(image: Image.Image) -> Image.Image:
    if image.mode in _WIDE_GREY_MODES:
        samples = np.asarray(image).astype(np.uint16)
        image = Image.fromarray((samples >> 8).astype(np.uint8))
    return image.convert("RGBA")


def decode_image(payload: bytes | str, *, max_pixels: int | None = None) -> DecodedImage:
    """Decode an uploaded image into an RGBA pixel grid.

    Args:
        payload: Raw image bytes or base64 text, with or without a data-URI header.
        max_pixels: Reject images whose width*height exceeds this, checked
            before the pixel data is decoded. ``None`` disables the check.

    Returns:
        The decoded grid together with the canonical format name.

    Raises:
        DecodeError: The payload is not a readable image.
        UnsupportedFormatError: The image is not a still JPEG or PNG.
        ImageTooLargeError: The image exceeds ``max_pixels``.
        DegenerateImageError: The image has zero width or height.
    """
    data = read_image_bytes(payload)

    try:
        image = Image.open(io.BytesIO(data))
    except UnidentifiedImageError:
        raise DecodeError("failed to decode image: unrecognised image data") from None
    except Image.DecompressionBombError as exc:
        raise DecodeError(f"failed to decode image: {exc}") from exc
    except (OSError, SyntaxError, ValueError) as exc:
        raise DecodeError(f"failed to decode image: {exc}") from exc

    with image:
        detected = (image.format or "unknown").upper()
        image_format = _FORMAT_ALIASES.get(detected)
        if image_format is None:
            raise UnsupportedFormatError(detected)
        if image_format == "PNG" and getattr(image, "is_animated", False):
            raise UnsupportedFormatError("APNG")

        width, height = image.size
        if width <= 0 or height <= 0:
            raise DegenerateImageError(f"image has zero area ({width}x{height})")
        if max_pixels is not None and width * height > max_pixels:
            raise ImageTooLargeError(width, height, max_pixels)

        try:
            image.load()
            rgba = _to_rgba(image)
        except (OSError, SyntaxError, ValueError, EOFError) as exc:
            raise DecodeError(f"failed to decode image: {exc}") from exc

    grid = np.array(rgba, dtype=np.uint8)
    logger.debug("Decoded %s image %dx%d (mode %s)", detected, width, height, image.mode)
    return DecodedImage(grid=grid, format=image_format)
