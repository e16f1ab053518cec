from __future__ import annotations

import json
import os
import shutil
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence

from .config import AppConfig
from .core import ConversionService
from .models import ConversionOutcome, PageOptions, SourceImage
from .utils import RunPaths, atomic_write, ensure_run_paths, generate_run_id


ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
LATEST_LIMIT = 200


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).strftime(ISO_FORMAT)


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def terminal(self) -> bool:
        return self in {JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELED}


@dataclass(slots=True)
class JobArtifacts:
    output_path: str | None = None
    run_dir_path: str | None = None
    filename: str | None = None
    media_type: str | None = None
    size_bytes: int = 0
    image_count: int = 0
    page_count: int = 0
    pdf_count: int = 0


@dataclass(slots=True)
class JobOptions:
    page: PageOptions = field(default_factory=PageOptions)
    images_per_pdf: int | None = None
    parallelism: int | None = None

    def as_dict(self) -> dict[str, object]:
        payload = self.page.as_dict()
        payload["images_per_pdf"] = self.images_per_pdf
        payload["parallelism"] = self.parallelism
        return payload


@dataclass(slots=True)
class JobRecord:
    job_id: str
    status: JobStatus
    progress: float = 0.0
    message: str | None = None
    submitted_at: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    artifacts: JobArtifacts | None = None
    options: dict[str, object] = field(default_factory=dict)
    file_names: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, object | None]:
        payload = asdict(self)
        payload["status"] = self.status.value
        if self.artifacts is not None:
            payload["artifacts"] = asdict(self.artifacts)
        return payload


class JobStore:
    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._root = config.runtime.output_dir
        self._index_dir = self._root / "_index"
        self._jobs_index = self._index_dir / "jobs.jsonl"
        self._latest_file = self._index_dir / "latest.json"
        self._lock = threading.Lock()
        self._index_dir.mkdir(parents=True, exist_ok=True)

    def run_paths(self, job_id: str) -> RunPaths:
        return ensure_run_paths(self._config, job_id)

    def status_path(self, job_id: str) -> Path:
        return self._root / job_id / "status.json"

    def write_status(self, record: JobRecord) -> None:
        payload = json.dumps(record.to_payload(), indent=2)
        atomic_write(self.status_path(record.job_id), payload)

    def read_status(self, job_id: str) -> JobRecord | None:
        path = self.status_path(job_id)
        if not path.exists():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
        return self._record_from_dict(data)

    def append_index(self, record: JobRecord) -> None:
        payload = json.dumps(record.to_payload())
        with self._lock:
            with self._jobs_index.open("a", encoding="utf-8") as handle:
                handle.write(payload + "\n")
            latest = [item for item in self._load_latest() if item.get("job_id") != record.job_id]
            latest.append(record.to_payload())
            latest = latest[-LATEST_LIMIT:]
            atomic_write(self._latest_file, json.dumps(latest, indent=2))

    def _load_latest(self) -> list[dict[str, object]]:
        if not self._latest_file.exists():
            return []
        try:
            return json.loads(self._latest_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return []

    def list_latest(self, limit: int = 50) -> list[dict[str, object]]:
        latest = self._load_latest()
        if limit <= 0:
            return latest
        return latest[-limit:]

    def _record_from_dict(self, data: dict[str, object]) -> JobRecord:
        status = JobStatus(str(data.get("status", JobStatus.QUEUED.value)))
        artifacts_dict = data.get("artifacts")
        artifacts = None
        if isinstance(artifacts_dict, dict):
            artifacts = JobArtifacts(
                output_path=str(artifacts_dict["output_path"]) if artifacts_dict.get("output_path") else None,
                run_dir_path=str(artifacts_dict["run_dir_path"]) if artifacts_dict.get("run_dir_path") else None,
                filename=str(artifacts_dict["filename"]) if artifacts_dict.get("filename") else None,
                media_type=str(artifacts_dict["media_type"]) if artifacts_dict.get("media_type") else None,
                size_bytes=int(artifacts_dict.get("size_bytes", 0)),
                image_count=int(artifacts_dict.get("image_count", 0)),
                page_count=int(artifacts_dict.get("page_count", 0)),
                pdf_count=int(artifacts_dict.get("pdf_count", 0)),
            )
        names = data.get("file_names")
        return JobRecord(
            job_id=str(data.get("job_id")),
            status=status,
            progress=float(data.get("progress", 0.0)),
            message=str(data.get("message")) if data.get("message") else None,
            submitted_at=str(data.get("submitted_at")) if data.get("submitted_at") else None,
            started_at=str(data.get("started_at")) if data.get("started_at") else None,
            finished_at=str(data.get("finished_at")) if data.get("finished_at") else None,
            error_code=str(data.get("error_code")) if data.get("error_code") else None,
            error_message=str(data.get("error_message")) if data.get("error_message") else None,
            artifacts=artifacts,
            options=dict(data.get("options", {})) if isinstance(data.get("options"), dict) else {},
            file_names=[str(name) for name in names] if isinstance(names, list) else [],
        )


@dataclass(slots=True)
class JobHandle:
    job_id: str
    sources: tuple[SourceImage, ...]
    options: JobOptions
    cancel_event: threading.Event
    submitted_at: datetime


class JobManager:
    def __init__(self, config: AppConfig, service: ConversionService) -> None:
        self._config = config
        self._service = service
        self._store = JobStore(config)
        pool_size = config.runtime.jobs.worker_pool_size
        if pool_size <= 0:
            pool_size = min(4, max(1, os.cpu_count() or 1))
        self._executor = ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix="job-worker")
        self._jobs: dict[str, JobHandle] = {}
        self._futures: dict[str, Future[ConversionOutcome | None]] = {}
        self._lock = threading.Lock()

    def submit(self, sources: Sequence[SourceImage], options: JobOptions | None = None) -> JobRecord:
        submitted = _utc_now()
        job_id = generate_run_id("job")
        options = options or JobOptions(page=self._config.page.to_options())
        snapshot = tuple(sources)
        self._store.run_paths(job_id)
        record = JobRecord(
            job_id=job_id,
            status=JobStatus.QUEUED,
            progress=0.0,
            submitted_at=_iso(submitted),
            options=options.as_dict(),
            file_names=[source.name for source in snapshot],
        )
        self._store.write_status(record)
        self._store.append_index(record)

        handle = JobHandle(
            job_id=job_id,
            sources=snapshot,
            options=options,
            cancel_event=threading.Event(),
            submitted_at=submitted,
        )
        with self._lock:
            self._jobs[job_id] = handle
            self._futures[job_id] = self._executor.submit(self._run_job, handle)
        return record

    def _run_job(self, handle: JobHandle) -> ConversionOutcome | None:
        try:
            return self._execute_job(handle)
        finally:
            self._finalize_job(handle.job_id)

    def _execute_job(self, handle: JobHandle) -> ConversionOutcome | None:
        if handle.cancel_event.is_set():
            self._update_status(handle.job_id, JobStatus.CANCELED, progress=0.0)
            return None
        started = _utc_now()
        self._update_status(handle.job_id, JobStatus.RUNNING, progress=0.0, started_at=_iso(started))

        def _progress(value: float, message: str) -> None:
            if handle.cancel_event.is_set():
                return
            self._update_status(handle.job_id, JobStatus.RUNNING, progress=value, message=message)

        try:
            outcome = self._run_conversion(handle, _progress)
        except Exception as exc:
            self._update_status(
                handle.job_id,
                JobStatus.FAILED,
                finished_at=_iso(_utc_now()),
                error_code="INTERNAL_ERROR",
                error_message=str(exc) or exc.__class__.__name__,
            )
            self._cleanup_artifacts(handle.job_id)
            self._append_terminal(handle.job_id)
            return None
        self._append_terminal(handle.job_id)
        return outcome

    def _run_conversion(
        self, handle: JobHandle, progress: Callable[[float, str], None]
    ) -> ConversionOutcome:
        outcome = self._service.convert_images(
            handle.sources,
            handle.options.page,
            images_per_pdf=handle.options.images_per_pdf,
            progress=progress,
            cancellation=handle.cancel_event,
            parallelism=handle.options.parallelism,
            run_id=handle.job_id,
        )
        finished = _utc_now()

        if outcome.cancelled or handle.cancel_event.is_set():
            self._cleanup_artifacts(handle.job_id)
            self._update_status(handle.job_id, JobStatus.CANCELED, finished_at=_iso(finished))
        elif not outcome.success:
            self._update_status(
                handle.job_id,
                JobStatus.FAILED,
                finished_at=_iso(finished),
                error_code=outcome.error_code,
                error_message=outcome.error_message,
            )
        else:
            output_path = self._service.save_outcome(outcome)
            saved = self._update_status(
                handle.job_id,
                JobStatus.SUCCEEDED,
                progress=1.0,
                message="Done",
                finished_at=_iso(finished),
                artifacts=self._build_artifacts(outcome, output_path),
            )
            if not saved:
                self._cleanup_artifacts(handle.job_id)
        return outcome

    def _finalize_job(self, job_id: str) -> None:
        with self._lock:
            self._jobs.pop(job_id, None)
            self._futures.pop(job_id, None)

    def _build_artifacts(self, outcome: ConversionOutcome, output_path: Path) -> JobArtifacts:
        return JobArtifacts(
            output_path=str(output_path),
            run_dir_path=str(output_path.parent),
            filename=outcome.filename,
            media_type=outcome.media_type,
            size_bytes=output_path.stat().st_size if output_path.exists() else 0,
            image_count=outcome.image_count,
            page_count=outcome.page_count,
            pdf_count=outcome.batch.pdf_count if outcome.batch else 1,
        )

    def _cleanup_artifacts(self, job_id: str) -> None:
        run_dir = self._config.runtime.output_dir / job_id
        if not run_dir.exists():
            return
        for child in run_dir.iterdir():
            if child.name == "status.json":
                continue
            if child.is_dir():
                shutil.rmtree(child)
            else:
                child.unlink(missing_ok=True)

    def _update_status(
        self,
        job_id: str,
        status: JobStatus,
        *,
        progress: float | None = None,
        message: str | None = None,
        started_at: str | None = None,
        finished_at: str | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
        artifacts: JobArtifacts | None = None,
    ) -> bool:
        with self._lock:
            record = self._store.read_status(job_id) or JobRecord(job_id=job_id, status=status)
            # Terminal states are final; a late success never replaces a cancel.
            if record.status.terminal and status is not record.status:
                return False
            record.status = status
            if progress is not None:
                record.progress = max(record.progress, min(progress, 1.0))
            if message is not None:
                record.message = message
            if started_at:
                record.started_at = started_at
            if finished_at:
                record.finished_at = finished_at
            if error_code is not None:
                record.error_code = error_code
            if error_message is not None:
                record.error_message = error_message
            if artifacts is not None:
                record.artifacts = artifacts
            self._store.write_status(record)
        return True

    def _append_terminal(self, job_id: str) -> None:
        record = self._store.read_status(job_id)
        if record:
            self._store.append_index(record)

    def cancel(self, job_id: str) -> bool:
        record = self._store.read_status(job_id)
        if record is None or record.status.terminal:
            return False
        with self._lock:
            handle = self._jobs.get(job_id)
        if not handle:
            if record.status is JobStatus.QUEUED:
                record.status = JobStatus.CANCELED
                record.finished_at = _iso(_utc_now())
                self._store.write_status(record)
                self._append_terminal(job_id)
                return True
            return False
        handle.cancel_event.set()
        return self._update_status(job_id, JobStatus.CANCELED, finished_at=_iso(_utc_now()))

    def wait(self, job_id: str, timeout: float | None = None) -> JobRecord | None:
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self._store.read_status(job_id)

    def get_status(self, job_id: str) -> JobRecord | None:
        return self._store.read_status(job_id)

    def list_jobs(self, limit: int = 50) -> list[dict[str, object]]:
        return self._store.list_latest(limit)

    def shutdown(self) -> None:
        with self._lock:
            handles = list(self._jobs.values())
        queued = []
        for handle in handles:
            record = self._store.read_status(handle.job_id)
            if record is not None and record.status is JobStatus.QUEUED:
                handle.cancel_event.set()
                queued.append(handle.job_id)
        self._executor.shutdown(wait=False, cancel_futures=True)
        # Dropped futures never run, so their records are closed here.
        for job_id in queued:
            if self._update_status(job_id, JobStatus.CANCELED, finished_at=_iso(_utc_now())):
                self._append_terminal(job_id)


__all__ = [
    "JobArtifacts",
    "JobManager",
    "JobOptions",
    "JobRecord",
    "JobStatus",
]
