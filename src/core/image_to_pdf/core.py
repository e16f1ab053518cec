from __future__ import annotations

import concurrent.futures
import time
from collections import deque
from contextlib import closing
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from threading import Event
from typing import Iterator, Sequence
from zipfile import ZIP_DEFLATED, ZipFile, ZipInfo

from .adapters import decode_source
from .config import AppConfig
from .document import PdfDocument, new_document
from .emitter import EncodedImage, append_encoded_page, encode_image
from .errors import ConversionCancelled, ConversionError, ValidationError
from .layout import compute_placement
from .logging import BatchSummary, RunLogEntry, RunLogger, StageTimings, append_summary_row
from .models import (
    BatchExportResult,
    ConversionOutcome,
    OutcomeStatus,
    PageOptions,
    PlacedImage,
    SourceImage,
)
from .progress import ProgressCallback, ProgressReporter, is_cancelled
from .utils import (
    atomic_write,
    batch_member_name,
    batch_output_name,
    ensure_run_paths,
    generate_run_id,
    partition,
    resolve_output_path,
    single_output_name,
    size_within_limit,
)

PDF_MEDIA_TYPE = "application/pdf"
ZIP_MEDIA_TYPE = "application/zip"
# Fixed member timestamp so identical inputs produce identical archives.
ARCHIVE_DATE_TIME = (1980, 1, 1, 0, 0, 0)


@dataclass(slots=True)
class _RenderedPage:
    encoded: EncodedImage
    placement: PlacedImage


@dataclass(slots=True)
class _RenderedSource:
    source: SourceImage
    pages: list[_RenderedPage]
    elapsed_ms: float


@dataclass(slots=True)
class _ConversionContext:
    run_id: str
    options: PageOptions
    reporter: ProgressReporter
    cancellation: Event | None
    deadline: float | None
    parallelism: int
    batch: bool
    timings: StageTimings


def build_archive(documents: Sequence[tuple[str, bytes]]) -> bytes:
    """Bundle finalized documents into one ZIP, members in the given order."""
    buffer = BytesIO()
    with ZipFile(buffer, "w", compression=ZIP_DEFLATED) as archive:
        for name, data in documents:
            info = ZipInfo(name, date_time=ARCHIVE_DATE_TIME)
            info.compress_type = ZIP_DEFLATED
            archive.writestr(info, data)
    return buffer.getvalue()


class ConversionService:
    def __init__(self, config: AppConfig, *, logger: RunLogger | None = None) -> None:
        self._config = config
        self._logger = logger or RunLogger(config.runtime.output_dir / config.runtime.log_file)

    @property
    def config(self) -> AppConfig:
        return self._config

    def convert(
        self,
        files: Sequence[SourceImage],
        options: PageOptions | None = None,
        *,
        progress: ProgressCallback | None = None,
        cancellation: Event | None = None,
        parallelism: int | None = None,
        run_id: str | None = None,
    ) -> ConversionOutcome:
        """Convert every file into one PDF, one page per decoded image, in input order."""
        return self._run(
            files,
            group_size=None,
            options=options,
            progress=progress,
            cancellation=cancellation,
            parallelism=parallelism,
            run_id=run_id,
        )

    def convert_batch(
        self,
        files: Sequence[SourceImage],
        group_size: int,
        options: PageOptions | None = None,
        *,
        progress: ProgressCallback | None = None,
        cancellation: Event | None = None,
        parallelism: int | None = None,
        run_id: str | None = None,
    ) -> ConversionOutcome:
        """Split files into consecutive groups of *group_size*, one PDF per group, zipped together."""
        return self._run(
            files,
            group_size=group_size,
            options=options,
            progress=progress,
            cancellation=cancellation,
            parallelism=parallelism,
            run_id=run_id,
        )

    def convert_images(
        self,
        files: Sequence[SourceImage],
        options: PageOptions | None = None,
        *,
        images_per_pdf: int | None = None,
        progress: ProgressCallback | None = None,
        cancellation: Event | None = None,
        parallelism: int | None = None,
        run_id: str | None = None,
    ) -> ConversionOutcome:
        """Batch only when there are more files than fit into one PDF."""
        if images_per_pdf is not None and len(files) > images_per_pdf:
            return self.convert_batch(
                files,
                images_per_pdf,
                options,
                progress=progress,
                cancellation=cancellation,
                parallelism=parallelism,
                run_id=run_id,
            )
        return self.convert(
            files,
            options,
            progress=progress,
            cancellation=cancellation,
            parallelism=parallelism,
            run_id=run_id,
        )

    def save_outcome(self, outcome: ConversionOutcome, output: Path | str | None = None) -> Path:
        if not outcome.success or outcome.data is None or outcome.filename is None:
            raise ValueError(f"Run {outcome.run_id} produced no output to save")
        default_dir = self._config.runtime.output_dir / outcome.run_id
        if output is None:
            default_dir = ensure_run_paths(self._config, outcome.run_id).base_dir
        destination = resolve_output_path(
            output=output, filename=outcome.filename, default_dir=default_dir
        )
        atomic_write(destination, outcome.data)
        summary = BatchSummary(
            images=outcome.image_count,
            pages=outcome.page_count,
            documents=outcome.batch.pdf_count if outcome.batch else 1,
            size_bytes=len(outcome.data),
        )
        summary_path = self._config.runtime.output_dir / self._config.runtime.summary_csv
        append_summary_row(summary_path, summary, outcome.run_id)
        return destination

    def _run(
        self,
        files: Sequence[SourceImage],
        *,
        group_size: int | None,
        options: PageOptions | None,
        progress: ProgressCallback | None,
        cancellation: Event | None,
        parallelism: int | None,
        run_id: str | None,
    ) -> ConversionOutcome:
        sources = tuple(files)
        run_id = run_id or generate_run_id()
        batch = group_size is not None
        timings = StageTimings()
        start = time.perf_counter()

        try:
            self._ensure_not_cancelled(cancellation, "initialization")
            opts = self._validate(sources, options, group_size, timings)
            groups = partition(sources, group_size if batch else len(sources))  # type: ignore[arg-type]
            context = _ConversionContext(
                run_id=run_id,
                options=opts,
                reporter=ProgressReporter(progress, len(sources), groups=len(groups)),
                cancellation=cancellation,
                deadline=self._compute_deadline(start),
                parallelism=self._effective_parallelism(parallelism),
                batch=batch,
                timings=timings,
            )
            documents: list[tuple[str, bytes]] = []
            pages_per_document: list[int] = []
            for index, group in enumerate(groups):
                data, page_count = self._build_document(group, index, context)
                documents.append((batch_member_name(index + 1), data))
                pages_per_document.append(page_count)

            self._ensure_not_cancelled(cancellation, "packaging")
            if batch:
                outcome = self._package(run_id, sources, documents, pages_per_document, context)
            else:
                outcome = ConversionOutcome(
                    run_id=run_id,
                    status=OutcomeStatus.SUCCEEDED,
                    data=documents[0][1],
                    filename=single_output_name([source.name for source in sources]),
                    media_type=PDF_MEDIA_TYPE,
                    image_count=len(sources),
                    page_count=pages_per_document[0],
                )
        except ConversionCancelled:
            outcome = ConversionOutcome(run_id=run_id, status=OutcomeStatus.CANCELLED)
        except ConversionError as exc:
            if is_cancelled(cancellation):
                outcome = ConversionOutcome(run_id=run_id, status=OutcomeStatus.CANCELLED)
            else:
                outcome = ConversionOutcome(
                    run_id=run_id,
                    status=OutcomeStatus.FAILED,
                    image_count=len(sources),
                    error=exc,
                )

        self._log_outcome(outcome, "batch" if batch else "single", sources, timings)
        return outcome

    def _validate(
        self,
        sources: Sequence[SourceImage],
        options: PageOptions | None,
        group_size: int | None,
        timings: StageTimings,
    ) -> PageOptions:
        validate_start = time.perf_counter()
        if not sources:
            raise ValidationError("at least one image is required")
        if group_size is not None and group_size < 1:
            raise ValidationError(f"images per PDF must be at least 1, got {group_size}")
        max_files = self._config.runtime.max_files
        if max_files > 0 and len(sources) > max_files:
            raise ValidationError(
                f"{len(sources)} files submitted, at most {max_files} are allowed",
                code="TOO_MANY_FILES",
            )
        limit_mb = self._config.runtime.max_file_size_mb
        for source in sources:
            if limit_mb > 0 and not size_within_limit(source.size_bytes, limit_mb):
                raise ValidationError(
                    f"{source.name} exceeds the {limit_mb} MB file size limit",
                    code="SIZE_LIMIT",
                )
        opts = options or self._config.page.to_options()
        opts.validate()
        timings.validate_ms = (time.perf_counter() - validate_start) * 1000
        return opts

    def _build_document(
        self,
        group: Sequence[SourceImage],
        group_index: int,
        context: _ConversionContext,
    ) -> tuple[bytes, int]:
        document: PdfDocument = new_document()
        with closing(self._render_in_order(group, context)) as rendered_sources:
            for rendered in rendered_sources:
                self._ensure_not_cancelled(context.cancellation, "assembly")
                assemble_start = time.perf_counter()
                for page in rendered.pages:
                    append_encoded_page(document, page.encoded, page.placement)
                context.timings.render_ms += rendered.elapsed_ms
                context.timings.assemble_ms += (time.perf_counter() - assemble_start) * 1000
                context.reporter.image_done(group_index if context.batch else None)

        self._ensure_not_cancelled(context.cancellation, "finalize")
        finalize_start = time.perf_counter()
        data = document.finalize()
        context.timings.assemble_ms += (time.perf_counter() - finalize_start) * 1000
        return data, document.page_count

    def _render_in_order(
        self,
        group: Sequence[SourceImage],
        context: _ConversionContext,
    ) -> Iterator[_RenderedSource]:
        if context.parallelism <= 1:
            for source in group:
                self._ensure_not_cancelled(context.cancellation, "decode")
                rendered = self._render(source, context.options)
                self._ensure_deadline(context, source.name)
                yield rendered
            return

        window = context.parallelism * 2
        pending: deque[tuple[SourceImage, concurrent.futures.Future[_RenderedSource]]] = deque()
        remaining = iter(group)
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=context.parallelism, thread_name_prefix="image-to-pdf"
        ) as executor:
            try:
                while True:
                    while len(pending) < window:
                        source = next(remaining, None)
                        if source is None:
                            break
                        self._ensure_not_cancelled(context.cancellation, "decode")
                        pending.append((source, executor.submit(self._render, source, context.options)))
                    if not pending:
                        return
                    source, future = pending.popleft()
                    yield self._await(future, source, context)
            finally:
                for _, future in pending:
                    future.cancel()

    def _await(
        self,
        future: concurrent.futures.Future[_RenderedSource],
        source: SourceImage,
        context: _ConversionContext,
    ) -> _RenderedSource:
        timeout = None
        if context.deadline is not None:
            timeout = max(context.deadline - time.perf_counter(), 0.0)
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError as exc:
            raise ConversionError(
                "TIMEOUT", f"Conversion exceeded allotted time for {source.name}"
            ) from exc

    def _render(self, source: SourceImage, options: PageOptions) -> _RenderedSource:
        render_start = time.perf_counter()
        images = decode_source(
            source,
            svg_scale=options.svg_scale,
            allowed_formats=self._config.allowed_formats,
        )
        pages = []
        for image in images:
            placement = compute_placement(image, options, file_name=source.name)
            encoded = encode_image(image, jpeg_quality=options.jpeg_quality)
            pages.append(_RenderedPage(encoded=encoded, placement=placement))
        elapsed_ms = (time.perf_counter() - render_start) * 1000
        return _RenderedSource(source=source, pages=pages, elapsed_ms=elapsed_ms)

    def _package(
        self,
        run_id: str,
        sources: Sequence[SourceImage],
        documents: list[tuple[str, bytes]],
        pages_per_document: list[int],
        context: _ConversionContext,
    ) -> ConversionOutcome:
        context.reporter.packaging()
        package_start = time.perf_counter()
        archive = build_archive(documents)
        context.timings.package_ms = (time.perf_counter() - package_start) * 1000
        self._ensure_not_cancelled(context.cancellation, "packaging")
        result = BatchExportResult(
            archive=archive,
            pdf_count=len(documents),
            image_count=len(sources),
            page_count=sum(pages_per_document),
            documents=[name for name, _ in documents],
            pages_per_document=pages_per_document,
        )
        return ConversionOutcome(
            run_id=run_id,
            status=OutcomeStatus.SUCCEEDED,
            data=archive,
            filename=batch_output_name(result.pdf_count),
            media_type=ZIP_MEDIA_TYPE,
            image_count=result.image_count,
            page_count=result.page_count,
            batch=result,
        )

    def _compute_deadline(self, start: float) -> float | None:
        timeout = float(self._config.runtime.convert_timeout_s)
        if timeout <= 0:
            return None
        return start + timeout

    def _effective_parallelism(self, parallelism: int | None) -> int:
        candidate = parallelism if parallelism is not None else self._config.runtime.parallelism
        return max(1, candidate)

    def _ensure_not_cancelled(self, cancellation: Event | None, stage: str) -> None:
        if is_cancelled(cancellation):
            raise ConversionCancelled(stage)

    def _ensure_deadline(self, context: _ConversionContext, filename: str) -> None:
        if context.deadline is not None and time.perf_counter() > context.deadline:
            raise ConversionError("TIMEOUT", f"Conversion exceeded allotted time for {filename}")

    def _log_outcome(
        self,
        outcome: ConversionOutcome,
        mode: str,
        sources: Sequence[SourceImage],
        timings: StageTimings,
    ) -> None:
        if outcome.batch is not None:
            pdf_count = outcome.batch.pdf_count
        else:
            pdf_count = 1 if outcome.success else 0
        self._logger.append(
            RunLogEntry(
                run_id=outcome.run_id,
                mode=mode,
                sources=[source.name for source in sources],
                status=outcome.status.value,
                error_code=outcome.error_code,
                error_message=outcome.error_message,
                timings=timings,
                page_count=outcome.page_count,
                pdf_count=pdf_count,
                output_name=outcome.filename,
                size_bytes=len(outcome.data) if outcome.data else 0,
            )
        )


__all__ = [
    "ConversionService",
    "PDF_MEDIA_TYPE",
    "ZIP_MEDIA_TYPE",
    "build_archive",
]
