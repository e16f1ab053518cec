from __future__ import annotations

from .base import BasePillowDecoder
from ..detection import ImageFormat


class HEICDecoder(BasePillowDecoder):
    image_format = ImageFormat.HEIC
    pillow_formats = ("HEIF",)
    multi_frame = True

    def __init__(self) -> None:
        try:
            from pillow_heif import register_heif_opener
        except ModuleNotFoundError as exc:  # pragma: no cover - import guard
            raise RuntimeError("pillow-heif dependency is required for HEIC/HEIF images") from exc

        register_heif_opener()
