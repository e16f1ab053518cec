from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Any, List

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse

from api.dependencies import get_config, get_job_manager
from api.routers.convert import read_uploads
from api.schemas import JobSubmitted, parse_page_options
from api.utils import run_sync
from core.image_to_pdf.config import AppConfig
from core.image_to_pdf.errors import ValidationError
from core.image_to_pdf.jobs import JobManager, JobOptions, JobRecord, JobStatus

router = APIRouter(prefix="/api/v1", tags=["jobs"])


@router.post("/jobs", summary="Submit a conversion job", status_code=202, response_model=JobSubmitted)
async def submit_job(
    files: List[UploadFile] = File(...),
    options: str | None = Form(None),
    images_per_pdf: int | None = Form(None),
    manager: JobManager = Depends(get_job_manager),
    config: AppConfig = Depends(get_config),
) -> JobSubmitted:
    sources = await read_uploads(files, config)
    if images_per_pdf is not None and images_per_pdf < 1:
        raise ValidationError(f"images per PDF must be at least 1, got {images_per_pdf}")
    job_options = JobOptions(
        page=parse_page_options(options, config.page.to_options()),
        images_per_pdf=images_per_pdf,
    )
    record = await run_sync(manager.submit, sources, job_options)
    return JobSubmitted(
        job_id=record.job_id,
        status=record.status.value,
        submitted_at=record.submitted_at,
        progress=record.progress,
    )


@router.get("/jobs/{job_id}", summary="Retrieve job status")
def get_job(job_id: str, manager: JobManager = Depends(get_job_manager)) -> dict[str, Any]:
    record = manager.get_status(job_id)
    if record is None:
        raise HTTPException(status_code=404, detail="JOB_NOT_FOUND")
    return _serialize_record(record)


@router.get("/jobs/{job_id}/result", summary="Download the finished PDF or ZIP")
def get_job_result(job_id: str, manager: JobManager = Depends(get_job_manager)) -> FileResponse:
    record = manager.get_status(job_id)
    if record is None:
        raise HTTPException(status_code=404, detail="JOB_NOT_FOUND")
    if record.status is not JobStatus.SUCCEEDED:
        detail = "JOB_NOT_READY" if not record.status.terminal else "NO_RESULT"
        raise HTTPException(status_code=409, detail=detail)
    artifacts = record.artifacts
    if not artifacts or not artifacts.output_path or not Path(artifacts.output_path).exists():
        raise HTTPException(status_code=404, detail="ARTIFACTS_UNAVAILABLE")
    return FileResponse(
        artifacts.output_path,
        media_type=artifacts.media_type,
        filename=artifacts.filename,
    )


@router.post("/jobs/{job_id}/cancel", summary="Cancel a queued or running job")
def cancel_job(job_id: str, manager: JobManager = Depends(get_job_manager)) -> dict[str, Any]:
    if not manager.cancel(job_id):
        raise HTTPException(status_code=409, detail="NOT_CANCELABLE")
    record = manager.get_status(job_id)
    if record is None:
        raise HTTPException(status_code=404, detail="JOB_NOT_FOUND")
    return _serialize_record(record)


@router.get("/jobs", summary="List recent jobs")
def list_jobs(
    limit: int = Query(50, ge=1, le=500),
    manager: JobManager = Depends(get_job_manager),
) -> dict[str, Any]:
    return {"jobs": manager.list_jobs(limit)}


def _serialize_record(record: JobRecord) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "job_id": record.job_id,
        "status": record.status.value,
        "progress": record.progress,
        "message": record.message,
        "submitted_at": record.submitted_at,
        "started_at": record.started_at,
        "finished_at": record.finished_at,
        "error_code": record.error_code,
        "error_message": record.error_message,
        "file_names": record.file_names,
    }
    payload["artifacts"] = asdict(record.artifacts) if record.artifacts else None
    return payload


__all__ = ["router"]
