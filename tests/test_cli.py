from __future__ import annotations

from pathlib import Path
from zipfile import ZipFile

from PIL import Image
from typer.testing import CliRunner

from core.image_to_pdf.cli import app

runner = CliRunner()


def write_config(tmp_path: Path) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(f'[runtime]\noutput_dir = "{(tmp_path / "runs").as_posix()}"\n', encoding="utf-8")
    return path


def write_png(path: Path, size: tuple[int, int] = (50, 40)) -> Path:
    Image.new("RGB", size, (250, 200, 0)).save(path, format="PNG")
    return path


def test_convert_writes_pdf(tmp_path: Path) -> None:
    first = write_png(tmp_path / "first.png")
    second = write_png(tmp_path / "second.png")
    output = tmp_path / "album.pdf"

    result = runner.invoke(
        app,
        ["convert", str(first), str(second), "-o", str(output), "--page-size", "fit", "--config", str(write_config(tmp_path))],
    )

    assert result.exit_code == 0, result.output
    assert output.read_bytes().startswith(b"%PDF-")
    assert "2 pages" in result.output


def test_convert_batches_directory(tmp_path: Path) -> None:
    images = tmp_path / "images"
    images.mkdir()
    for index in range(5):
        write_png(images / f"img{index}.png")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["convert", str(images), "-o", str(out_dir), "--images-per-pdf", "2", "--config", str(write_config(tmp_path))],
    )

    assert result.exit_code == 0, result.output
    with ZipFile(out_dir / "images_3_pdfs.zip") as archive:
        assert len(archive.namelist()) == 3


def test_convert_reports_failures(tmp_path: Path) -> None:
    broken = tmp_path / "broken.png"
    broken.write_bytes(b"not really a png")

    result = runner.invoke(app, ["convert", str(broken), "--config", str(write_config(tmp_path))])

    assert result.exit_code == 1
    assert "CORRUPT_IMAGE" in result.output


def test_formats_lists_every_format(tmp_path: Path) -> None:
    result = runner.invoke(app, ["formats", "--config", str(write_config(tmp_path))])
    assert result.exit_code == 0
    for name in ("jpeg", "png", "webp", "bmp", "tiff", "svg", "heic"):
        assert name in result.output
