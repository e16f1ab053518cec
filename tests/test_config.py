from __future__ import annotations

import json
from pathlib import Path

import pytest

from core.image_to_pdf.config import AppConfig, dump_config, load_config
from core.image_to_pdf.detection import ImageFormat
from core.image_to_pdf.models import Orientation, PageSize
from core.settings import Settings


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "absent.toml")
    assert config.runtime.output_dir == Path("runs")
    assert config.runtime.batch.images_per_pdf == 10
    assert config.allowed_formats == frozenset(ImageFormat)
    assert config.page.to_options().page_size is PageSize.A4


def test_load_config_reads_sections(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text(
        """
formats = ["png", "JPEG"]

[runtime]
output_dir = "out"
parallelism = 4
max_files = 5

[runtime.batch]
images_per_pdf = 3

[page]
page_size = "letter"
orientation = "LANDSCAPE"
margin = 12
jpeg_quality = 80
""",
        encoding="utf-8",
    )
    config = load_config(path)

    assert config.runtime.output_dir == Path("out")
    assert config.runtime.parallelism == 4
    assert config.runtime.max_files == 5
    assert config.runtime.batch.images_per_pdf == 3
    assert config.allowed_formats == {ImageFormat.PNG, ImageFormat.JPEG}
    options = config.page.to_options()
    assert options.page_size is PageSize.LETTER
    assert options.orientation is Orientation.LANDSCAPE
    assert options.margin == 12
    assert options.jpeg_quality == 80


def test_unknown_format_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text('formats = ["png", "gif"]\n', encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_dump_config_round_trips_page_options() -> None:
    payload = json.loads(dump_config(AppConfig()))
    assert payload["page"]["page_size"] == "A4"
    assert payload["runtime"]["batch"]["images_per_pdf"] == 10
    assert "heic" in payload["formats"]


def test_settings_read_prefixed_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ITP_ENABLE_LOCAL_API", "true")
    monkeypatch.setenv("ITP_CONFIG_PATH", str(tmp_path / "custom.toml"))

    settings = Settings()
    assert settings.enable_local_api is True
    assert settings.config_path == tmp_path / "custom.toml"
