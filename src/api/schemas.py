"""Request and response models for the HTTP surface."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from core.image_to_pdf.errors import ValidationError
from core.image_to_pdf.models import Orientation, PageOptions, PageSize


class PageOptionsPayload(BaseModel):
    """Per-request overrides; omitted fields fall back to the configured defaults."""

    model_config = ConfigDict(extra="forbid")

    page_size: PageSize | None = None
    orientation: Orientation | None = None
    margin: float | None = Field(default=None, ge=0)
    center_image: bool | None = None
    scale_to_fit: bool | None = None
    svg_scale: float | None = Field(default=None, gt=0)
    allow_upscale: bool | None = None
    jpeg_quality: int | None = Field(default=None, ge=1, le=95)

    def to_page_options(self, base: PageOptions) -> PageOptions:
        data = self.model_dump(exclude_none=True, mode="json")
        return PageOptions.from_dict(data, base=base)


class HealthStatus(BaseModel):
    status: str
    version: str


class JobSubmitted(BaseModel):
    job_id: str
    status: str
    submitted_at: str | None
    progress: float


def parse_page_options(raw: str | None, base: PageOptions) -> PageOptions:
    if not raw:
        return base
    try:
        payload = PageOptionsPayload.model_validate_json(raw)
    except PydanticValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'options'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ValidationError(details) from exc
    options = payload.to_page_options(base)
    options.validate()
    return options


__all__ = ["HealthStatus", "JobSubmitted", "PageOptionsPayload", "parse_page_options"]
