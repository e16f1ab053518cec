from __future__ import annotations

import csv
import json
import threading
from io import BytesIO
from pathlib import Path
from zipfile import ZipFile

import fitz
import pytest
from PIL import Image

from core.image_to_pdf.config import AppConfig, RuntimeConfig
from core.image_to_pdf.core import ConversionService, build_archive
from core.image_to_pdf.models import Orientation, OutcomeStatus, PageOptions, PageSize, SourceImage


def build_config(output_dir: Path) -> AppConfig:
    runtime = RuntimeConfig()
    runtime.output_dir = output_dir
    runtime.log_file = "log.jsonl"
    runtime.summary_csv = "summary.csv"
    return AppConfig(runtime=runtime)


def png_source(name: str, size: tuple[int, int] = (40, 30)) -> SourceImage:
    buffer = BytesIO()
    Image.new("RGB", size, (30, 160, 90)).save(buffer, format="PNG")
    return SourceImage(name=name, data=buffer.getvalue(), mime_type="image/png")


def page_sizes(data: bytes) -> list[tuple[float, float]]:
    with fitz.open(stream=data, filetype="pdf") as pdf:
        return [(round(page.rect.width, 2), round(page.rect.height, 2)) for page in pdf]


FIT = PageOptions(page_size=PageSize.FIT, margin=0)


def test_single_image_on_portrait_a4(tmp_path: Path) -> None:
    service = ConversionService(build_config(tmp_path / "runs"))
    options = PageOptions(page_size=PageSize.A4, orientation=Orientation.PORTRAIT, margin=36)

    outcome = service.convert([png_source("photo.png", (800, 600))], options)

    assert outcome.success
    assert outcome.filename == "photo.pdf"
    assert outcome.media_type == "application/pdf"
    assert outcome.page_count == 1
    assert page_sizes(outcome.data) == [(595.28, 841.89)]


def test_pages_follow_input_order(tmp_path: Path) -> None:
    service = ConversionService(build_config(tmp_path / "runs"))
    sizes = [(100, 200), (300, 100), (50, 50), (70, 20)]
    sources = [png_source(f"img{index}.png", size) for index, size in enumerate(sizes)]

    outcome = service.convert(sources, FIT)

    assert outcome.filename == "images_4_pages.pdf"
    assert page_sizes(outcome.data) == [(float(w), float(h)) for w, h in sizes]


def test_parallel_rendering_keeps_input_order(tmp_path: Path) -> None:
    service = ConversionService(build_config(tmp_path / "runs"))
    sizes = [(20 + index * 7, 30) for index in range(12)]
    sources = [png_source(f"img{index}.png", size) for index, size in enumerate(sizes)]
    messages: list[str] = []

    outcome = service.convert(sources, FIT, parallelism=3, progress=lambda _f, m: messages.append(m))

    assert page_sizes(outcome.data) == [(float(w), float(h)) for w, h in sizes]
    assert messages == [f"Processing image {n} of 12" for n in range(1, 13)]


def test_multi_frame_tiff_adds_one_page_per_frame(tmp_path: Path) -> None:
    frames = [Image.new("L", (10, 10 + n), 128) for n in range(3)]
    buffer = BytesIO()
    frames[0].save(buffer, format="TIFF", save_all=True, append_images=frames[1:])
    sources = [SourceImage("scan.tif", buffer.getvalue()), png_source("cover.png")]

    outcome = ConversionService(build_config(tmp_path / "runs")).convert(sources, FIT)

    assert outcome.image_count == 2
    assert outcome.page_count == 4
    assert page_sizes(outcome.data)[:3] == [(10.0, 10.0), (10.0, 11.0), (10.0, 12.0)]


def test_batch_splits_into_groups(tmp_path: Path) -> None:
    service = ConversionService(build_config(tmp_path / "runs"))
    sources = [png_source(f"page{index:02d}.png", (10 + index, 10)) for index in range(25)]
    updates: list[tuple[float, str]] = []

    outcome = service.convert_batch(sources, 10, FIT, progress=lambda f, m: updates.append((f, m)))

    assert outcome.success
    assert outcome.filename == "images_3_pdfs.zip"
    assert outcome.media_type == "application/zip"
    assert outcome.batch.pdf_count == 3
    assert outcome.batch.image_count == 25
    assert outcome.batch.pages_per_document == [10, 10, 5]
    with ZipFile(BytesIO(outcome.data)) as archive:
        names = archive.namelist()
        assert names == ["images_part_001.pdf", "images_part_002.pdf", "images_part_003.pdf"]
        last = page_sizes(archive.read(names[2]))
    assert last == [(float(10 + index), 10.0) for index in range(20, 25)]

    fractions = [fraction for fraction, _ in updates]
    assert fractions == sorted(fractions)
    assert updates[0][1] == "Processing image 1 of 25 (PDF 1 of 3)"
    assert updates[-1] == (1.0, "Creating ZIP archive")


def test_batch_output_is_deterministic(tmp_path: Path) -> None:
    service = ConversionService(build_config(tmp_path / "runs"))
    sources = [png_source(f"p{index}.png") for index in range(4)]

    first = service.convert_batch(sources, 2, FIT)
    second = service.convert_batch(sources, 2, FIT)
    assert first.data == second.data


def test_convert_images_batches_only_when_needed(tmp_path: Path) -> None:
    service = ConversionService(build_config(tmp_path / "runs"))
    sources = [png_source(f"p{index}.png") for index in range(5)]

    single = service.convert_images(sources, FIT, images_per_pdf=5)
    assert single.batch is None
    assert single.filename == "images_5_pages.pdf"

    batched = service.convert_images(sources, FIT, images_per_pdf=2)
    assert batched.batch is not None
    assert batched.batch.pages_per_document == [2, 2, 1]


def test_corrupt_input_fails_whole_run(tmp_path: Path) -> None:
    service = ConversionService(build_config(tmp_path / "runs"))
    sources = [png_source("a.png"), SourceImage("broken.png", b"\x89PNG\r\n\x1a\nnope"), png_source("c.png")]

    outcome = service.convert(sources, FIT)

    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.data is None
    assert outcome.error_code == "CORRUPT_IMAGE"
    assert outcome.error.file_name == "broken.png"


def test_cancel_before_start_emits_nothing(tmp_path: Path) -> None:
    service = ConversionService(build_config(tmp_path / "runs"))
    cancellation = threading.Event()
    cancellation.set()
    updates: list[str] = []

    outcome = service.convert(
        [png_source("a.png")], FIT, cancellation=cancellation, progress=lambda _f, m: updates.append(m)
    )

    assert outcome.cancelled
    assert outcome.data is None
    assert outcome.error is None
    assert updates == []


def test_cancel_mid_run_stops_after_current_image(tmp_path: Path) -> None:
    service = ConversionService(build_config(tmp_path / "runs"))
    cancellation = threading.Event()
    updates: list[str] = []

    def on_progress(_fraction: float, message: str) -> None:
        updates.append(message)
        cancellation.set()

    sources = [png_source(f"p{index}.png") for index in range(5)]
    outcome = service.convert(sources, FIT, cancellation=cancellation, progress=on_progress)

    assert outcome.status is OutcomeStatus.CANCELLED
    assert outcome.data is None
    assert updates == ["Processing image 1 of 5"]


def test_cancel_wins_over_a_later_decode_error(tmp_path: Path) -> None:
    service = ConversionService(build_config(tmp_path / "runs"))
    cancellation = threading.Event()

    def on_progress(_fraction: float, _message: str) -> None:
        cancellation.set()

    # Both files are already decoding when the first page lands, so the error surfaces after the cancel.
    sources = [png_source("a.png"), SourceImage("broken.png", b"\x89PNG\r\n\x1a\nnope")]
    outcome = service.convert(sources, FIT, parallelism=2, cancellation=cancellation, progress=on_progress)

    assert outcome.status is OutcomeStatus.CANCELLED
    assert outcome.error is None
    assert outcome.error_code is None
    assert outcome.data is None


@pytest.mark.parametrize(
    ("overrides", "files", "group_size", "code"),
    [
        ({}, 0, None, "VALIDATION_FAILED"),
        ({}, 2, 0, "VALIDATION_FAILED"),
        ({"max_files": 2}, 3, None, "TOO_MANY_FILES"),
    ],
)
def test_request_validation(tmp_path: Path, overrides, files, group_size, code) -> None:
    config = build_config(tmp_path / "runs")
    for key, value in overrides.items():
        setattr(config.runtime, key, value)
    service = ConversionService(config)
    sources = [png_source(f"p{index}.png") for index in range(files)]

    if group_size is None:
        outcome = service.convert(sources, FIT)
    else:
        outcome = service.convert_batch(sources, group_size, FIT)

    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.error_code == code


def test_oversized_file_is_rejected_before_decoding(tmp_path: Path) -> None:
    config = build_config(tmp_path / "runs")
    config.runtime.max_file_size_mb = 1
    oversized = SourceImage("huge.png", b"\x00" * (1024 * 1024 + 1))

    outcome = ConversionService(config).convert([oversized], FIT)
    assert outcome.error_code == "SIZE_LIMIT"


def test_invalid_options_fail_validation(tmp_path: Path) -> None:
    service = ConversionService(build_config(tmp_path / "runs"))
    outcome = service.convert([png_source("a.png")], PageOptions(margin=-1))
    assert outcome.error_code == "VALIDATION_FAILED"


def test_runs_are_logged(tmp_path: Path) -> None:
    config = build_config(tmp_path / "runs")
    service = ConversionService(config)
    ok = service.convert([png_source("a.png")], FIT)
    failed = service.convert([], FIT)

    lines = (config.runtime.output_dir / "log.jsonl").read_text(encoding="utf-8").splitlines()
    entries = [json.loads(line) for line in lines]
    assert [entry["run_id"] for entry in entries] == [ok.run_id, failed.run_id]
    assert entries[0]["status"] == "succeeded"
    assert entries[1]["error_code"] == "VALIDATION_FAILED"


def test_save_outcome_writes_file_and_summary(tmp_path: Path) -> None:
    config = build_config(tmp_path / "runs")
    service = ConversionService(config)
    outcome = service.convert([png_source("a.png"), png_source("b.png")], FIT)

    default_path = service.save_outcome(outcome)
    assert default_path == (config.runtime.output_dir / outcome.run_id / "images_2_pages.pdf").resolve()
    assert default_path.read_bytes() == outcome.data

    explicit = service.save_outcome(outcome, tmp_path / "out" / "album.pdf")
    assert explicit.name == "album.pdf"
    assert explicit.exists()

    with (config.runtime.output_dir / "summary.csv").open(encoding="utf-8") as handle:
        rows = list(csv.DictReader(handle))
    assert len(rows) == 2
    assert rows[0]["run_id"] == outcome.run_id


def test_save_outcome_refuses_failed_runs(tmp_path: Path) -> None:
    service = ConversionService(build_config(tmp_path / "runs"))
    with pytest.raises(ValueError):
        service.save_outcome(service.convert([], FIT))


def test_build_archive_keeps_member_order() -> None:
    data = build_archive([("b.pdf", b"2"), ("a.pdf", b"1")])
    with ZipFile(BytesIO(data)) as archive:
        assert archive.namelist() == ["b.pdf", "a.pdf"]
        assert archive.getinfo("a.pdf").date_time == (1980, 1, 1, 0, 0, 0)
