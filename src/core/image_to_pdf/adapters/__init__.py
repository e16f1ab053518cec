from __future__ import annotations

from functools import lru_cache
from typing import Dict, Iterable, Type

from PIL import Image

from .base import BasePillowDecoder, Decoder
from .bmp import BMPDecoder
from .heic import HEICDecoder
from .jpeg import JPEGDecoder
from .png import PNGDecoder
from .svg import SVGDecoder, SvgDocument
from .tiff import TIFFDecoder
from .webp import WEBPDecoder
from ..detection import DetectionError, ImageFormat, detect_image_format
from ..errors import DecodeError
from ..models import CanonicalImage, SourceImage

_DECODER_CLASSES: Dict[ImageFormat, Type[Decoder]] = {
    ImageFormat.JPEG: JPEGDecoder,
    ImageFormat.PNG: PNGDecoder,
    ImageFormat.WEBP: WEBPDecoder,
    ImageFormat.BMP: BMPDecoder,
    ImageFormat.TIFF: TIFFDecoder,
    ImageFormat.SVG: SVGDecoder,
    ImageFormat.HEIC: HEICDecoder,
}

# Errors Pillow and ElementTree raise for damaged or hostile input.
_DECODER_FAILURES = (
    OSError,
    SyntaxError,
    ValueError,
    OverflowError,
    RecursionError,
    Image.DecompressionBombError,
)


@lru_cache(maxsize=len(_DECODER_CLASSES))
def get_decoder(image_format: ImageFormat) -> Decoder:
    decoder_cls = _DECODER_CLASSES.get(image_format)
    if not decoder_cls:
        raise KeyError(f"No decoder registered for {image_format}")
    return decoder_cls()  # type: ignore[return-value]


def decode_source(
    source: SourceImage,
    *,
    svg_scale: float = 2.0,
    allowed_formats: Iterable[ImageFormat] | None = None,
) -> list[CanonicalImage]:
    """Decode one source file into one canonical image per frame, in frame order."""
    if not source.data:
        raise DecodeError(source.name, "file is empty", code="EMPTY_IMAGE")
    try:
        detection = detect_image_format(source.name, source.data, source.mime_type)
    except DetectionError as exc:
        raise DecodeError(source.name, str(exc), code=exc.code) from exc

    image_format = detection.image_format
    if allowed_formats is not None and image_format not in set(allowed_formats):
        raise DecodeError(
            source.name,
            f"{image_format.value} input is disabled",
            format=image_format.value,
            code="UNSUPPORTED_FORMAT",
        )
    try:
        decoder = get_decoder(image_format)
    except (KeyError, RuntimeError) as exc:
        raise DecodeError(
            source.name, str(exc), format=image_format.value, code="UNSUPPORTED_FORMAT"
        ) from exc

    try:
        images = decoder.decode(source, svg_scale=svg_scale)
    except DecodeError:
        raise
    except _DECODER_FAILURES as exc:
        reason = str(exc) or exc.__class__.__name__
        raise DecodeError(source.name, reason, format=image_format.value) from exc
    if not images:
        raise DecodeError(source.name, "no frames", format=image_format.value, code="EMPTY_IMAGE")
    return images


__all__ = [
    "BasePillowDecoder",
    "Decoder",
    "SvgDocument",
    "decode_source",
    "get_decoder",
]
