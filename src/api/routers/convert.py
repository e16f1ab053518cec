from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response

from api.dependencies import get_config, get_service
from api.schemas import parse_page_options
from api.utils import run_cancellable
from core.image_to_pdf.config import AppConfig
from core.image_to_pdf.core import ConversionService
from core.image_to_pdf.errors import ConversionCancelled, ValidationError
from core.image_to_pdf.models import ConversionOutcome, SourceImage
from core.image_to_pdf.utils import size_within_limit

router = APIRouter(tags=["conversion"])


@router.post("/convert", summary="Convert images into one PDF")
async def convert_images(
    files: List[UploadFile] = File(...),
    options: str | None = Form(None),
    service: ConversionService = Depends(get_service),
    config: AppConfig = Depends(get_config),
) -> Response:
    sources = await read_uploads(files, config)
    page_options = parse_page_options(options, config.page.to_options())
    outcome = await run_cancellable(service.convert, sources, page_options)
    return _file_response(outcome, {"X-Page-Count": str(outcome.page_count)})


@router.post("/batch", summary="Convert images into a ZIP of PDFs")
async def batch_convert(
    files: List[UploadFile] = File(...),
    images_per_pdf: int | None = Form(None),
    options: str | None = Form(None),
    service: ConversionService = Depends(get_service),
    config: AppConfig = Depends(get_config),
) -> Response:
    sources = await read_uploads(files, config)
    page_options = parse_page_options(options, config.page.to_options())
    group_size = images_per_pdf if images_per_pdf is not None else config.runtime.batch.images_per_pdf
    outcome = await run_cancellable(service.convert_batch, sources, group_size, page_options)
    headers = {"X-Page-Count": str(outcome.page_count)}
    if outcome.batch is not None:
        headers["X-Pdf-Count"] = str(outcome.batch.pdf_count)
        headers["X-Image-Count"] = str(outcome.batch.image_count)
    return _file_response(outcome, headers)


async def read_uploads(files: List[UploadFile], config: AppConfig) -> list[SourceImage]:
    max_files = config.runtime.max_files
    if max_files > 0 and len(files) > max_files:
        raise ValidationError(
            f"{len(files)} files submitted, at most {max_files} are allowed", code="TOO_MANY_FILES"
        )
    sources: list[SourceImage] = []
    for upload in files:
        content = await upload.read()
        name = upload.filename or "upload"
        limit_mb = config.runtime.max_file_size_mb
        if limit_mb > 0 and not size_within_limit(len(content), limit_mb):
            raise ValidationError(
                f"{name} exceeds the {limit_mb} MB file size limit",
                code="SIZE_LIMIT",
            )
        sources.append(SourceImage(name=name, data=content, mime_type=upload.content_type))
    return sources


def _file_response(outcome: ConversionOutcome, headers: dict[str, str]) -> Response:
    if not outcome.success or outcome.data is None:
        raise outcome.error or ConversionCancelled("request")
    headers = {
        "Content-Disposition": f'attachment; filename="{outcome.filename}"',
        "X-Run-Id": outcome.run_id,
        **headers,
    }
    return Response(content=outcome.data, media_type=outcome.media_type, headers=headers)


__all__ = ["read_uploads", "router"]
