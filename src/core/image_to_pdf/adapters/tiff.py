from __future__ import annotations

from .base import BasePillowDecoder
from ..detection import ImageFormat


class TIFFDecoder(BasePillowDecoder):
    """Every page of a multi-page TIFF becomes its own canonical image."""

    image_format = ImageFormat.TIFF
    pillow_formats = ("TIFF",)
    multi_frame = True
