"""Normalise OCR page rasters to PNG for display.

Whatever encoding the OCR service hands back (PNG, JPEG, WebP, TIFF, ...),
pages are stored as PNG no wider than the configured display width. Final
dimensions are read back from the encoded output rather than trusted from the
OCR response.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field

from PIL import Image, UnidentifiedImageError

from src.errors import ExternalServiceError

_LOG = logging.getLogger("image_normalizer")
PNG_MEDIA_TYPE = "image/png"
PNG_COMPRESS_LEVEL = 8


@dataclass(frozen=True, slots=True)
class NormalizedImage:
    data: bytes = field(repr=False)
    width: int
    height: int
    mime_type: str = PNG_MEDIA_TYPE


def scaled_size(width: int, height: int, max_width: int) -> tuple[int, int]:
    """Return the target size for a ``width``x``height`` image capped at ``max_width``."""
    if width <= max_width:
        return width, height
    return max_width, max(1, round(height * max_width / width))


def _png_mode(image: Image.Image) -> Image.Image:
    if image.mode in ("1", "L", "LA", "P", "RGB", "RGBA", "I;16"):
        return image
    if image.mode == "I":
        # Pillow is dropping 32-bit integer PNG output
        return image.convert("I;16")
    if image.mode == "CMYK" or "A" not in image.getbands():
        return image.convert("RGB")
    return image.convert("RGBA")


def normalize_page_image(
    content: bytes | None,
    mime_type: str | None = None,
    declared_width: int = 0,
    declared_height: int = 0,
    *,
    max_width: int = 1200,
) -> NormalizedImage | None:
    """Return PNG bytes with verified dimensions, or ``None`` when no image was supplied."""
    if not content:
        return None
    if max_width < 1:
        raise ValueError("max_width must be >= 1")
    try:
        with Image.open(io.BytesIO(content)) as source:
            source.load()
            image = _png_mode(source)
            target = scaled_size(image.width, image.height, max_width)
            if target != image.size:
                image = image.resize(target, Image.Resampling.LANCZOS)
            buffer = io.BytesIO()
            image.save(buffer, format="PNG", compress_level=PNG_COMPRESS_LEVEL)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ExternalServiceError(
            f"OCR page image ({mime_type or 'unknown type'}) could not be decoded: {exc}"
        ) from exc

    data = buffer.getvalue()
    with Image.open(io.BytesIO(data)) as encoded:
        width, height = encoded.size
    if declared_width and declared_height and (declared_width, declared_height) != (width, height):
        _LOG.debug(
            "page_image_dimensions_adjusted",
            extra={
                "declared_width": declared_width,
                "declared_height": declared_height,
                "width": width,
                "height": height,
            },
        )
    return NormalizedImage(data=data, width=width, height=height)


__all__ = ["NormalizedImage", "normalize_page_image", "scaled_size", "PNG_MEDIA_TYPE"]
