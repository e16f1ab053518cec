from __future__ import annotations

from .base import BasePillowDecoder
from ..detection import ImageFormat


class WEBPDecoder(BasePillowDecoder):
    """Animated WEBP files contribute their first frame only."""

    image_format = ImageFormat.WEBP
    pillow_formats = ("WEBP",)
