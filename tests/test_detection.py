from __future__ import annotations

from io import BytesIO

import pytest
from PIL import Image

from core.image_to_pdf.detection import (
    DetectionError,
    ImageFormat,
    detect_image_format,
    format_from_declared,
    sniff_format,
)

SVG_BYTES = b'<?xml version="1.0"?>\n<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10"></svg>'
HEIC_BYTES = b"\x00\x00\x00\x18ftypheic\x00\x00\x00\x00mif1heic" + b"\x00" * 32
AVIF_BYTES = b"\x00\x00\x00\x1cftypavif\x00\x00\x00\x00avifmif1miaf" + b"\x00" * 32


def _raster(fmt: str) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (4, 4), (1, 2, 3)).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.mark.parametrize(
    ("fmt", "expected"),
    [
        ("PNG", ImageFormat.PNG),
        ("JPEG", ImageFormat.JPEG),
        ("WEBP", ImageFormat.WEBP),
        ("BMP", ImageFormat.BMP),
        ("TIFF", ImageFormat.TIFF),
    ],
)
def test_sniff_raster_signatures(fmt: str, expected: ImageFormat) -> None:
    assert sniff_format(_raster(fmt)) is expected


def test_sniff_svg_and_heif_brands() -> None:
    assert sniff_format(SVG_BYTES) is ImageFormat.SVG
    assert sniff_format(HEIC_BYTES) is ImageFormat.HEIC
    assert sniff_format(AVIF_BYTES) is None
    assert sniff_format(b"plain text") is None


def test_declared_mime_wins_over_extension() -> None:
    assert format_from_declared("scan.bin", "image/png") is ImageFormat.PNG
    assert format_from_declared("photo.JPG", None) is ImageFormat.JPEG
    assert format_from_declared("graphic.svg", "application/octet-stream") is ImageFormat.SVG
    assert format_from_declared("notes.txt", None) is None


def test_detect_uses_sniff_when_nothing_is_declared() -> None:
    result = detect_image_format("upload", _raster("PNG"))
    assert result.image_format is ImageFormat.PNG
    assert result.mime_type == "image/png"


def test_detect_rejects_content_mismatch() -> None:
    with pytest.raises(DetectionError) as excinfo:
        detect_image_format("photo.jpg", _raster("PNG"))
    assert excinfo.value.code == "CORRUPT_IMAGE"


def test_detect_rejects_unknown_types() -> None:
    with pytest.raises(DetectionError) as excinfo:
        detect_image_format("notes.txt", b"hello world")
    assert excinfo.value.code == "UNSUPPORTED_FORMAT"


def test_sniff_svg_after_long_prolog() -> None:
    comment = b"<!-- " + b"exported by a drawing tool " * 400 + b"-->\n"
    doctype = (
        b'<!DOCTYPE svg PUBLIC "-//W3C//DTD SVG 1.1//EN" '
        b'"http://www.w3.org/Graphics/SVG/1.1/DTD/svg11.dtd" [\n<!ENTITY ns "x">\n]>\n'
    )
    data = b'\xef\xbb\xbf<?xml version="1.0"?>\n' + comment + doctype + SVG_BYTES.split(b"\n", 1)[1]
    assert len(comment) > 4096
    assert sniff_format(data) is ImageFormat.SVG
    assert detect_image_format("figure.svg", data).image_format is ImageFormat.SVG


def test_sniff_svg_requires_svg_root() -> None:
    assert sniff_format(b"<html><body><svg></svg></body></html>") is None
    assert sniff_format(b"<!-- unterminated <svg>") is None
    assert sniff_format(b'<svg:svg xmlns:svg="http://www.w3.org/2000/svg"/>') is ImageFormat.SVG
