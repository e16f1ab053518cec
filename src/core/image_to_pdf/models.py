"""Domain models for image-to-PDF conversion."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePath

from PIL import Image

from .detection import ImageFormat
from .errors import ConversionError, ValidationError


class PageSize(str, Enum):
    A4 = "A4"
    LETTER = "LETTER"
    LEGAL = "LEGAL"
    A3 = "A3"
    A5 = "A5"
    FIT = "FIT"

    @property
    def dimensions(self) -> tuple[float, float] | None:
        """Portrait (width, height) in points, or ``None`` for fit-to-image."""
        return PAGE_DIMENSIONS.get(self)


PAGE_DIMENSIONS: dict[PageSize, tuple[float, float]] = {
    PageSize.A4: (595.28, 841.89),
    PageSize.LETTER: (612.0, 792.0),
    PageSize.LEGAL: (612.0, 1008.0),
    PageSize.A3: (841.89, 1190.55),
    PageSize.A5: (419.53, 595.28),
}


class Orientation(str, Enum):
    AUTO = "auto"
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


@dataclass(frozen=True, slots=True)
class SourceImage:
    """One input file, immutable once read."""

    name: str
    data: bytes = field(repr=False)
    mime_type: str | None = None

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return PurePath(self.name).suffix.lower()

    @property
    def stem(self) -> str:
        return PurePath(self.name).stem or "image"

    @classmethod
    def from_path(cls, path: Path, mime_type: str | None = None) -> "SourceImage":
        return cls(name=path.name, data=path.read_bytes(), mime_type=mime_type)


@dataclass(slots=True)
class CanonicalImage:
    """Decoder-normalized raster ready for layout and embedding."""

    image: Image.Image = field(repr=False)
    source_name: str
    format: ImageFormat
    frame_index: int = 0
    passthrough: bytes | None = field(default=None, repr=False)

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


@dataclass(frozen=True, slots=True)
class PageOptions:
    page_size: PageSize = PageSize.A4
    orientation: Orientation = Orientation.AUTO
    margin: float = 36.0
    center_image: bool = True
    scale_to_fit: bool = True
    svg_scale: float = 2.0
    allow_upscale: bool = False
    jpeg_quality: int | None = None

    def validate(self) -> None:
        if not math.isfinite(self.margin) or self.margin < 0:
            raise ValidationError(f"margin must be a non-negative number of points, got {self.margin}")
        if not math.isfinite(self.svg_scale) or self.svg_scale <= 0:
            raise ValidationError(f"svg_scale must be positive, got {self.svg_scale}")
        if self.jpeg_quality is not None and not 1 <= self.jpeg_quality <= 95:
            raise ValidationError(f"jpeg_quality must be between 1 and 95, got {self.jpeg_quality}")

    def as_dict(self) -> dict[str, object]:
        return {
            "page_size": self.page_size.value,
            "orientation": self.orientation.value,
            "margin": self.margin,
            "center_image": self.center_image,
            "scale_to_fit": self.scale_to_fit,
            "svg_scale": self.svg_scale,
            "allow_upscale": self.allow_upscale,
            "jpeg_quality": self.jpeg_quality,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object], base: "PageOptions | None" = None) -> "PageOptions":
        base = base or cls()
        quality = data.get("jpeg_quality", base.jpeg_quality)
        try:
            return cls(
                page_size=PageSize(str(data.get("page_size", base.page_size.value)).upper()),
                orientation=Orientation(str(data.get("orientation", base.orientation.value)).lower()),
                margin=float(data.get("margin", base.margin)),  # type: ignore[arg-type]
                center_image=bool(data.get("center_image", base.center_image)),
                scale_to_fit=bool(data.get("scale_to_fit", base.scale_to_fit)),
                svg_scale=float(data.get("svg_scale", base.svg_scale)),  # type: ignore[arg-type]
                allow_upscale=bool(data.get("allow_upscale", base.allow_upscale)),
                jpeg_quality=int(quality) if quality is not None else None,  # type: ignore[arg-type]
            )
        except (TypeError, ValueError) as exc:
            raise ValidationError(str(exc)) from exc


@dataclass(frozen=True, slots=True)
class PlacedImage:
    """Page geometry in PDF points; origin is the page's bottom-left corner."""

    page_width: float
    page_height: float
    x: float
    y: float
    width: float
    height: float
    scale: float

    def contains(self, margin: float, tolerance: float = 1e-6) -> bool:
        return (
            self.x >= margin - tolerance
            and self.y >= margin - tolerance
            and self.x + self.width <= self.page_width - margin + tolerance
            and self.y + self.height <= self.page_height - margin + tolerance
        )


@dataclass(slots=True)
class BatchExportResult:
    archive: bytes = field(repr=False)
    pdf_count: int
    image_count: int
    page_count: int
    documents: list[str] = field(default_factory=list)
    pages_per_document: list[int] = field(default_factory=list)


class OutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class ConversionOutcome:
    """Terminal state of one run: bytes on success, an error on failure, neither when cancelled."""

    run_id: str
    status: OutcomeStatus
    data: bytes | None = field(default=None, repr=False)
    filename: str | None = None
    media_type: str | None = None
    image_count: int = 0
    page_count: int = 0
    batch: BatchExportResult | None = None
    error: ConversionError | None = None

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.SUCCEEDED

    @property
    def cancelled(self) -> bool:
        return self.status is OutcomeStatus.CANCELLED

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error else None

    @property
    def error_message(self) -> str | None:
        return str(self.error) if self.error else None


__all__ = [
    "BatchExportResult",
    "CanonicalImage",
    "ConversionOutcome",
    "Orientation",
    "OutcomeStatus",
    "PAGE_DIMENSIONS",
    "PageOptions",
    "PageSize",
    "PlacedImage",
    "SourceImage",
]
