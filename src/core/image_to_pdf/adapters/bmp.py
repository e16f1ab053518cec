from __future__ import annotations

from .base import BasePillowDecoder
from ..detection import ImageFormat


class BMPDecoder(BasePillowDecoder):
    image_format = ImageFormat.BMP
    pillow_formats = ("BMP", "DIB")
