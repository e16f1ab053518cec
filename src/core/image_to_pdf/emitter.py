from __future__ import annotations

import zlib
from dataclasses import dataclass, field
from io import BytesIO

from PIL import Image

from .document import Name, PdfDocument, Ref, format_number
from .errors import EmitError
from .models import CanonicalImage, PlacedImage

IMAGE_RESOURCE = "Im0"


@dataclass(slots=True)
class EncodedImage:
    """Image XObject payload, ready to be written into a document."""

    width: int
    height: int
    color_space: str
    filter: str
    data: bytes = field(repr=False)
    smask: bytes | None = field(default=None, repr=False)
    source_name: str | None = None

    @property
    def size_bytes(self) -> int:
        return len(self.data) + (len(self.smask) if self.smask else 0)


def _split_alpha(raster: Image.Image) -> tuple[Image.Image, Image.Image | None]:
    if raster.mode not in ("LA", "RGBA"):
        if raster.mode not in ("L", "RGB"):
            raster = raster.convert("RGB")
        return raster, None
    alpha = raster.getchannel("A")
    color = raster.convert("L" if raster.mode == "LA" else "RGB")
    if alpha.getextrema() == (255, 255):
        return color, None
    return color, alpha


def encode_image(image: CanonicalImage, *, jpeg_quality: int | None = None) -> EncodedImage:
    """Encode a canonical image as a PDF image stream.

    Safe to call from worker threads; it touches nothing but *image*.
    """
    try:
        if image.passthrough is not None and jpeg_quality is None:
            return EncodedImage(
                width=image.width,
                height=image.height,
                color_space="DeviceGray" if image.image.mode == "L" else "DeviceRGB",
                filter="DCTDecode",
                data=image.passthrough,
                source_name=image.source_name,
            )

        raster, alpha = _split_alpha(image.image)
        if jpeg_quality is not None:
            buffer = BytesIO()
            raster.save(buffer, format="JPEG", quality=jpeg_quality)
            data, stream_filter = buffer.getvalue(), "DCTDecode"
        else:
            data, stream_filter = zlib.compress(raster.tobytes()), "FlateDecode"
        return EncodedImage(
            width=raster.width,
            height=raster.height,
            color_space="DeviceGray" if raster.mode == "L" else "DeviceRGB",
            filter=stream_filter,
            data=data,
            smask=zlib.compress(alpha.tobytes()) if alpha is not None else None,
            source_name=image.source_name,
        )
    except (OSError, ValueError) as exc:
        raise EmitError(str(exc) or exc.__class__.__name__, file_name=image.source_name) from exc


def content_stream(placement: PlacedImage) -> bytes:
    operands = " ".join(
        format_number(value)
        for value in (placement.width, 0, 0, placement.height, placement.x, placement.y)
    )
    return f"q {operands} cm /{IMAGE_RESOURCE} Do Q".encode("ascii")


def append_encoded_page(
    document: PdfDocument,
    encoded: EncodedImage,
    placement: PlacedImage,
) -> PdfDocument:
    try:
        image_dict: dict[str, object] = {
            "Type": Name("XObject"),
            "Subtype": Name("Image"),
            "Width": encoded.width,
            "Height": encoded.height,
            "ColorSpace": Name(encoded.color_space),
            "BitsPerComponent": 8,
            "Filter": Name(encoded.filter),
        }
        if encoded.smask is not None:
            smask_id = document.add_stream(
                {
                    "Type": Name("XObject"),
                    "Subtype": Name("Image"),
                    "Width": encoded.width,
                    "Height": encoded.height,
                    "ColorSpace": Name("DeviceGray"),
                    "BitsPerComponent": 8,
                    "Filter": Name("FlateDecode"),
                },
                encoded.smask,
            )
            image_dict["SMask"] = Ref(smask_id)
        image_id = document.add_stream(image_dict, encoded.data)  # type: ignore[arg-type]
        content_id = document.add_stream({}, content_stream(placement))
        document.add_page(
            {
                "MediaBox": [0, 0, placement.page_width, placement.page_height],
                "Resources": {
                    "XObject": {IMAGE_RESOURCE: Ref(image_id)},
                    "ProcSet": [Name("PDF"), Name("ImageB"), Name("ImageC")],
                },
                "Contents": Ref(content_id),
            }
        )
    except TypeError as exc:
        raise EmitError(str(exc), file_name=encoded.source_name) from exc
    return document


def append_page(
    document: PdfDocument,
    image: CanonicalImage,
    placement: PlacedImage,
    *,
    jpeg_quality: int | None = None,
) -> PdfDocument:
    """Embed *image* as a new last page of *document*; returns the same document for chaining."""
    encoded = encode_image(image, jpeg_quality=jpeg_quality)
    return append_encoded_page(document, encoded, placement)


__all__ = [
    "EncodedImage",
    "append_encoded_page",
    "append_page",
    "content_stream",
    "encode_image",
]
