from __future__ import annotations

import zlib
from io import BytesIO

import fitz
import pytest
from PIL import Image

from core.image_to_pdf.detection import ImageFormat
from core.image_to_pdf.document import new_document
from core.image_to_pdf.emitter import append_page, content_stream, encode_image
from core.image_to_pdf.models import CanonicalImage, PlacedImage


def canonical(image: Image.Image, passthrough: bytes | None = None) -> CanonicalImage:
    return CanonicalImage(
        image=image,
        source_name="sample.png",
        format=ImageFormat.JPEG if passthrough else ImageFormat.PNG,
        passthrough=passthrough,
    )


def test_rgb_image_is_flate_encoded() -> None:
    encoded = encode_image(canonical(Image.new("RGB", (4, 3), (10, 20, 30))))

    assert encoded.filter == "FlateDecode"
    assert encoded.color_space == "DeviceRGB"
    assert encoded.smask is None
    assert zlib.decompress(encoded.data) == bytes([10, 20, 30]) * 12


def test_alpha_channel_becomes_soft_mask() -> None:
    image = Image.new("RGBA", (2, 2), (255, 0, 0, 128))
    encoded = encode_image(canonical(image))

    assert encoded.color_space == "DeviceRGB"
    assert zlib.decompress(encoded.smask) == bytes([128]) * 4


def test_opaque_alpha_is_dropped() -> None:
    encoded = encode_image(canonical(Image.new("LA", (2, 2), (90, 255))))
    assert encoded.color_space == "DeviceGray"
    assert encoded.smask is None


def test_jpeg_passthrough_embeds_original_bytes() -> None:
    buffer = BytesIO()
    Image.new("RGB", (8, 8), (1, 2, 3)).save(buffer, format="JPEG")
    encoded = encode_image(canonical(Image.new("RGB", (8, 8)), passthrough=buffer.getvalue()))

    assert encoded.filter == "DCTDecode"
    assert encoded.data == buffer.getvalue()


def test_quality_setting_reencodes_as_jpeg() -> None:
    encoded = encode_image(canonical(Image.new("RGB", (16, 16), (9, 9, 9))), jpeg_quality=50)
    assert encoded.filter == "DCTDecode"
    assert encoded.data.startswith(b"\xff\xd8")


def test_content_stream_places_image() -> None:
    placement = PlacedImage(page_width=200, page_height=100, x=10, y=20.5, width=100, height=50, scale=1)
    assert content_stream(placement) == b"q 100 0 0 50 10 20.5 cm /Im0 Do Q"


def test_appended_pages_open_in_a_pdf_reader() -> None:
    document = new_document()
    sizes = [(300, 200), (120, 400)]
    for width, height in sizes:
        placement = PlacedImage(
            page_width=width + 20, page_height=height + 20, x=10, y=10, width=width, height=height, scale=1
        )
        image = Image.new("RGBA", (width, height), (0, 0, 255, 200))
        assert append_page(document, canonical(image), placement) is document

    with fitz.open(stream=document.finalize(), filetype="pdf") as pdf:
        assert pdf.page_count == 2
        for page, (width, height) in zip(pdf, sizes):
            assert page.rect.width == pytest.approx(width + 20)
            assert page.rect.height == pytest.approx(height + 20)
            assert len(page.get_images()) == 1
