from __future__ import annotations

import mimetypes
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePath


class ImageFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    BMP = "bmp"
    TIFF = "tiff"
    SVG = "svg"
    HEIC = "heic"

    @property
    def mime_type(self) -> str:
        return MIME_MAP[self]


@dataclass(slots=True)
class DetectionResult:
    image_format: ImageFormat
    mime_type: str
    extension: str


EXTENSION_MAP: dict[str, ImageFormat] = {
    ".jpg": ImageFormat.JPEG,
    ".jpeg": ImageFormat.JPEG,
    ".jpe": ImageFormat.JPEG,
    ".jfif": ImageFormat.JPEG,
    ".png": ImageFormat.PNG,
    ".webp": ImageFormat.WEBP,
    ".bmp": ImageFormat.BMP,
    ".dib": ImageFormat.BMP,
    ".tif": ImageFormat.TIFF,
    ".tiff": ImageFormat.TIFF,
    ".svg": ImageFormat.SVG,
    ".heic": ImageFormat.HEIC,
    ".heif": ImageFormat.HEIC,
    ".hif": ImageFormat.HEIC,
}

MIME_MAP: dict[ImageFormat, str] = {
    ImageFormat.JPEG: "image/jpeg",
    ImageFormat.PNG: "image/png",
    ImageFormat.WEBP: "image/webp",
    ImageFormat.BMP: "image/bmp",
    ImageFormat.TIFF: "image/tiff",
    ImageFormat.SVG: "image/svg+xml",
    ImageFormat.HEIC: "image/heic",
}

# Aliases browsers and OSes report for the same formats.
MIME_ALIASES: dict[str, ImageFormat] = {
    "image/jpeg": ImageFormat.JPEG,
    "image/jpg": ImageFormat.JPEG,
    "image/pjpeg": ImageFormat.JPEG,
    "image/png": ImageFormat.PNG,
    "image/x-png": ImageFormat.PNG,
    "image/webp": ImageFormat.WEBP,
    "image/bmp": ImageFormat.BMP,
    "image/x-bmp": ImageFormat.BMP,
    "image/x-ms-bmp": ImageFormat.BMP,
    "image/tiff": ImageFormat.TIFF,
    "image/tiff-fx": ImageFormat.TIFF,
    "image/svg+xml": ImageFormat.SVG,
    "image/heic": ImageFormat.HEIC,
    "image/heif": ImageFormat.HEIC,
    "image/heic-sequence": ImageFormat.HEIC,
    "image/heif-sequence": ImageFormat.HEIC,
}

_HEIF_BRANDS = {b"heic", b"heix", b"heim", b"heis", b"hevc", b"hevx", b"mif1", b"msf1", b"heif"}
_XML_SPACE_RE = re.compile(rb"\s*")
_DOCTYPE_RE = re.compile(rb"<!DOCTYPE[^\[>]*(?:\[.*?\])?\s*>", re.IGNORECASE | re.DOTALL)
_SVG_ROOT_RE = re.compile(rb"<(?:[A-Za-z_][\w.-]*:)?svg[\s/>]")


class DetectionError(RuntimeError):
    """Raised when format detection fails."""

    def __init__(self, message: str, *, code: str = "UNSUPPORTED_FORMAT") -> None:
        super().__init__(message)
        self.code = code


def sniff_format(data: bytes) -> ImageFormat | None:
    head = data[:64]
    if head.startswith(b"\xff\xd8\xff"):
        return ImageFormat.JPEG
    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return ImageFormat.PNG
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return ImageFormat.WEBP
    if head.startswith(b"BM"):
        return ImageFormat.BMP
    if head[:4] in (b"II*\x00", b"MM\x00*"):
        return ImageFormat.TIFF
    if head[4:8] == b"ftyp":
        if head[8:12] in (b"avif", b"avis"):
            return None
        box_size = int.from_bytes(head[:4], "big")
        brands = data[8 : max(16, min(box_size, 256))]
        for offset in range(0, len(brands) - 3, 4):
            if brands[offset : offset + 4] in _HEIF_BRANDS:
                return ImageFormat.HEIC
        return None
    if _svg_root_follows_prolog(data):
        return ImageFormat.SVG
    return None


def _svg_root_follows_prolog(data: bytes) -> bool:
    """True when the root element following the XML prolog is <svg>."""
    position = 3 if data.startswith(b"\xef\xbb\xbf") else 0
    while True:
        position = _XML_SPACE_RE.match(data, position).end()
        if data.startswith(b"<?", position):
            end = data.find(b"?>", position + 2)
            terminator = 2
        elif data.startswith(b"<!--", position):
            end = data.find(b"-->", position + 4)
            terminator = 3
        else:
            doctype = _DOCTYPE_RE.match(data, position)
            if doctype is None:
                return _SVG_ROOT_RE.match(data, position) is not None
            end, terminator = doctype.end(), 0
        if end < 0:
            return False
        position = end + terminator


def format_from_declared(name: str, mime_type: str | None) -> ImageFormat | None:
    if mime_type:
        normalized = mime_type.split(";", 1)[0].strip().lower()
        declared = MIME_ALIASES.get(normalized)
        if declared is not None:
            return declared
    extension = PurePath(name).suffix.lower()
    if extension in EXTENSION_MAP:
        return EXTENSION_MAP[extension]
    guessed, _ = mimetypes.guess_type(name)
    if guessed:
        return MIME_ALIASES.get(guessed)
    return None


def detect_image_format(name: str, data: bytes, mime_type: str | None = None) -> DetectionResult:
    extension = PurePath(name).suffix.lower()
    declared = format_from_declared(name, mime_type)
    sniffed = sniff_format(data)
    if declared is None and sniffed is None:
        raise DetectionError(f"Unsupported image type: {mime_type or extension or '<none>'}")
    if declared is None:
        assert sniffed is not None
        return DetectionResult(image_format=sniffed, mime_type=sniffed.mime_type, extension=extension)
    if sniffed != declared:
        raise DetectionError(
            f"Content sniff mismatch: expected {declared.value}, detected {sniffed.value if sniffed else 'unknown'}",
            code="CORRUPT_IMAGE",
        )
    return DetectionResult(image_format=declared, mime_type=declared.mime_type, extension=extension)


__all__ = [
    "DetectionError",
    "DetectionResult",
    "EXTENSION_MAP",
    "ImageFormat",
    "MIME_MAP",
    "detect_image_format",
    "format_from_declared",
    "sniff_format",
]
