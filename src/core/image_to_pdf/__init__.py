"""Image-to-PDF conversion engine."""

from .config import AppConfig, load_config
from .core import ConversionService, build_archive
from .errors import (
    ConversionCancelled,
    ConversionError,
    DecodeError,
    EmitError,
    FinalizeError,
    LayoutError,
    ValidationError,
)
from .models import (
    BatchExportResult,
    ConversionOutcome,
    Orientation,
    OutcomeStatus,
    PageOptions,
    PageSize,
    SourceImage,
)

__all__ = [
    "AppConfig",
    "BatchExportResult",
    "ConversionCancelled",
    "ConversionError",
    "ConversionOutcome",
    "ConversionService",
    "DecodeError",
    "EmitError",
    "FinalizeError",
    "LayoutError",
    "Orientation",
    "OutcomeStatus",
    "PageOptions",
    "PageSize",
    "SourceImage",
    "ValidationError",
    "build_archive",
    "load_config",
]
