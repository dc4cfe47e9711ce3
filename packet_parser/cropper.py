"""
Region Cropper
==============
Cuts the band of a page raster that holds one question.

Spans arrive in document coordinates (y grows upward); the raster is
top-down, so the top of the question maps to row
``image.height - top_y * scale``.
"""

from __future__ import annotations

import logging
from typing import Optional

from PIL import Image

logger = logging.getLogger(__name__)


def pixel_span(
    image_height: int,
    bottom_y: float,
    top_y: float,
    scale: float,
) -> Optional[tuple[int, int]]:
    """
    Convert a document-space span to raster rows ``(top_row, bottom_row)``,
    clamped to the image. Returns None for a non-positive height.
    """
    height = (top_y - bottom_y) * scale
    if height <= 0:
        return None

    top_row = round(image_height - top_y * scale)
    bottom_row = round(top_row + height)

    top_row = max(0, top_row)
    bottom_row = min(image_height, bottom_row)
    if bottom_row - top_row <= 0:
        return None
    return top_row, bottom_row


def crop_region(
    image: Image.Image,
    bottom_y: float,
    top_y: float,
    scale: float,
) -> Optional[Image.Image]:
    """
    Crop a full-width band from a page raster.

    Args:
        image: Full-page raster, top-down.
        bottom_y: Lower edge of the question in document coordinates.
        top_y: Upper edge of the question in document coordinates.
        scale: Pixels per document unit.

    Returns:
        A new image containing only the band, or None if the region is
        degenerate (non-positive height, or entirely off the page).
    """
    rows = pixel_span(image.height, bottom_y, top_y, scale)
    if rows is None:
        logger.debug(
            f"Degenerate crop region bottom={bottom_y:.1f} top={top_y:.1f}"
        )
        return None

    top_row, bottom_row = rows
    return image.crop((0, top_row, image.width, bottom_row))
