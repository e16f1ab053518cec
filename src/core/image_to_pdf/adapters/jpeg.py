from __future__ import annotations

from io import BytesIO

from PIL import Image

from .base import BasePillowDecoder
from ..detection import ImageFormat
from ..models import CanonicalImage, SourceImage

_EXIF_ORIENTATION = 0x0112


class JPEGDecoder(BasePillowDecoder):
    image_format = ImageFormat.JPEG
    pillow_formats = ("JPEG",)

    def decode(self, source: SourceImage, *, svg_scale: float = 2.0) -> list[CanonicalImage]:
        images = super().decode(source, svg_scale=svg_scale)
        if self._embeddable(source):
            images[0].passthrough = source.data
        return images

    def _embeddable(self, source: SourceImage) -> bool:
        # PDF readers ignore EXIF, so rotated or CMYK files have to be re-encoded.
        with Image.open(BytesIO(source.data), formats=self.pillow_formats) as image:
            if image.mode not in ("L", "RGB"):
                return False
            orientation = image.getexif().get(_EXIF_ORIENTATION, 1)
        return orientation in (None, 1)
