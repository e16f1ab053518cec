"""Error types raised by the conversion engine."""

from __future__ import annotations

from typing import Any


class ConversionError(RuntimeError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error_code": self.code, "message": self.message}
        file_name = getattr(self, "file_name", None)
        if file_name:
            payload["file_name"] = file_name
        return payload


class DecodeError(ConversionError):
    """Raised when a source file cannot be turned into a canonical image."""

    def __init__(
        self,
        file_name: str,
        reason: str,
        *,
        format: str | None = None,
        code: str = "CORRUPT_IMAGE",
    ) -> None:
        label = format or "unknown"
        super().__init__(code, f"Could not decode {file_name} ({label}): {reason}")
        self.file_name = file_name
        self.format = format
        self.reason = reason


class LayoutError(ConversionError):
    def __init__(self, file_name: str | None, reason: str) -> None:
        target = file_name or "image"
        super().__init__("LAYOUT_FAILED", f"Cannot place {target} on the page: {reason}")
        self.file_name = file_name
        self.reason = reason


class EmitError(ConversionError):
    def __init__(self, reason: str, *, file_name: str | None = None) -> None:
        prefix = f"{file_name}: " if file_name else ""
        super().__init__("EMIT_FAILED", f"Failed to write PDF page: {prefix}{reason}")
        self.file_name = file_name
        self.reason = reason


class FinalizeError(ConversionError):
    def __init__(self, reason: str, *, code: str = "ALREADY_FINALIZED") -> None:
        super().__init__(code, reason)
        self.reason = reason


class ValidationError(ConversionError):
    def __init__(self, reason: str, *, code: str = "VALIDATION_FAILED") -> None:
        super().__init__(code, f"Invalid conversion request: {reason}")
        self.reason = reason


class ConversionCancelled(ConversionError):
    """Signals cooperative cancellation; mapped to a cancelled outcome, never a failure."""

    def __init__(self, stage: str) -> None:
        super().__init__("CANCELED", f"Conversion canceled during {stage}")
        self.stage = stage


__all__ = [
    "ConversionCancelled",
    "ConversionError",
    "DecodeError",
    "EmitError",
    "FinalizeError",
    "LayoutError",
    "ValidationError",
]
