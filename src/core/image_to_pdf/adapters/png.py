from __future__ import annotations

from .base import BasePillowDecoder
from ..detection import ImageFormat


class PNGDecoder(BasePillowDecoder):
    image_format = ImageFormat.PNG
    pillow_formats = ("PNG",)
