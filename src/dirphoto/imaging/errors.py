"""Exception taxonomy for the image pipeline.

Every error is terminal for the invocation that raised it. Subclasses of
``InvalidImageError`` describe problems with the uploaded image that the user
can fix; ``EncodingError`` is an internal failure meant for operators.
"""

from __future__ import annotations


class ImageProcessingError(Exception):
    """Base class for all pipeline failures."""

    user_correctable: bool = False


class InvalidImageError(ImageProcessingError):
    """The input image cannot be turned into a photo; the user should pick another one."""

    user_correctable = True


class DecodeError(InvalidImageError):
    """Malformed, truncated, or non-image input bytes."""


class UnsupportedFormatError(InvalidImageError):
    """A valid image in a codec outside the allow-set."""

    def __init__(self, image_format: str) -> None:
        super().__init__(f"unsupported image format: {image_format} (only JPEG and PNG allowed)")
        self.image_format = image_format


class DegenerateImageError(InvalidImageError):
    """Zero-area input."""


class ImageTooLargeError(InvalidImageError):
    """Pixel count exceeds the configured limit."""

    def __init__(self, width: int, height: int, max_pixels: int) -> None:
        super().__init__(
            f"image dimensions too large ({width}x{height} = {width * height:,} pixels, maximum is {max_pixels:,})"
        )
        self.width = width
        self.height = height
        self.max_pixels = max_pixels


class BudgetUnsatisfiableError(InvalidImageError):
    """No quality level in the search sequence fits the size budget."""

    def __init__(self, max_bytes: int, smallest_size: int, lowest_quality: int) -> None:
        super().__init__(
            f"cannot compress image below {max_bytes} bytes "
            f"(smallest encoding was {smallest_size} bytes at quality {lowest_quality})"
        )
        self.max_bytes = max_bytes
        self.smallest_size = smallest_size
        self.lowest_quality = lowest_quality


class EncodingError(ImageProcessingError):
    """The JPEG encoder failed on a valid pixel grid."""
