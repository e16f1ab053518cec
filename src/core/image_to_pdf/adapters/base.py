from __future__ import annotations

from io import BytesIO
from typing import Iterator, Protocol

from PIL import Image, ImageOps, ImageSequence

from ..detection import ImageFormat
from ..errors import DecodeError
from ..models import CanonicalImage, SourceImage


class Decoder(Protocol):
    image_format: ImageFormat

    def decode(self, source: SourceImage, *, svg_scale: float = 2.0) -> list[CanonicalImage]:  # pragma: no cover - interface
        ...


_RGB_MODES = {"CMYK", "YCbCr", "LAB", "HSV", "RGBX"}
_HIGH_DEPTH_MODES = {"I", "I;16", "I;16B", "I;16L", "I;16N", "F"}


def normalize_mode(image: Image.Image) -> Image.Image:
    """Reduce any Pillow mode to one of L, LA, RGB or RGBA."""
    mode = image.mode
    if mode in ("L", "LA", "RGB", "RGBA"):
        return image
    if mode in ("P", "PA"):
        has_alpha = mode == "PA" or "transparency" in image.info
        return image.convert("RGBA" if has_alpha else "RGB")
    if mode == "1":
        return image.convert("L")
    if mode in _HIGH_DEPTH_MODES:
        return image.convert("I").point(lambda value: value * (1 / 256)).convert("L")
    if mode in _RGB_MODES:
        return image.convert("RGB")
    return image.convert("RGBA" if "A" in image.getbands() else "RGB")


class BasePillowDecoder:
    image_format: ImageFormat
    pillow_formats: tuple[str, ...] = ()
    multi_frame: bool = False

    def decode(self, source: SourceImage, *, svg_scale: float = 2.0) -> list[CanonicalImage]:
        images: list[CanonicalImage] = []
        with Image.open(BytesIO(source.data), formats=self.pillow_formats or None) as image:
            for index, frame in enumerate(self._frames(image)):
                images.append(self._canonical(source, frame, index))
        return images

    def _frames(self, image: Image.Image) -> Iterator[Image.Image]:
        if not self.multi_frame:
            image.load()
            yield image
            return
        for frame in ImageSequence.Iterator(image):
            yield frame

    def _canonical(self, source: SourceImage, frame: Image.Image, index: int) -> CanonicalImage:
        if frame.width <= 0 or frame.height <= 0:
            raise DecodeError(
                source.name,
                f"frame {index} has zero width or height",
                format=self.image_format.value,
                code="EMPTY_IMAGE",
            )
        upright = ImageOps.exif_transpose(frame)
        return CanonicalImage(
            image=normalize_mode(upright),
            source_name=source.name,
            format=self.image_format,
            frame_index=index,
        )


__all__ = ["BasePillowDecoder", "Decoder", "normalize_mode"]
