from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

from .detection import ImageFormat
from .models import Orientation, PageOptions, PageSize


CONFIG_FILE = Path("config.toml")


@dataclass(slots=True)
class BatchConfig:
    images_per_pdf: int = 10


@dataclass(slots=True)
class JobsConfig:
    worker_pool_size: int = 0


@dataclass(slots=True)
class RuntimeConfig:
    output_dir: Path = Path("runs")
    log_file: str = "log.jsonl"
    summary_csv: str = "summary.csv"
    max_file_size_mb: int = 50
    max_files: int = 100
    convert_timeout_s: int = 300
    parallelism: int = 1
    enable_local_api: bool = False
    batch: BatchConfig = field(default_factory=BatchConfig)
    jobs: JobsConfig = field(default_factory=JobsConfig)


@dataclass(slots=True)
class PageConfig:
    page_size: str = PageSize.A4.value
    orientation: str = Orientation.AUTO.value
    margin: float = 36.0
    center_image: bool = True
    scale_to_fit: bool = True
    svg_scale: float = 2.0
    allow_upscale: bool = False
    jpeg_quality: int | None = None

    def to_options(self) -> PageOptions:
        return PageOptions.from_dict(
            {
                "page_size": self.page_size,
                "orientation": self.orientation,
                "margin": self.margin,
                "center_image": self.center_image,
                "scale_to_fit": self.scale_to_fit,
                "svg_scale": self.svg_scale,
                "allow_upscale": self.allow_upscale,
                "jpeg_quality": self.jpeg_quality,
            }
        )


@dataclass(slots=True)
class APIConfig:
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass(slots=True)
class AppConfig:
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    formats: tuple[str, ...] = tuple(fmt.value for fmt in ImageFormat)
    page: PageConfig = field(default_factory=PageConfig)
    api: APIConfig = field(default_factory=APIConfig)

    @property
    def allowed_formats(self) -> frozenset[ImageFormat]:
        return frozenset(ImageFormat(value) for value in self.formats)


def _read_toml(path: Path) -> Mapping[str, object]:
    if not path.exists():
        return {}
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _build_batch(data: Mapping[str, object] | None) -> BatchConfig:
    if not data:
        return BatchConfig()
    return BatchConfig(images_per_pdf=int(data.get("images_per_pdf", 10)))


def _build_jobs(data: Mapping[str, object] | None) -> JobsConfig:
    if not data:
        return JobsConfig()
    return JobsConfig(worker_pool_size=int(data.get("worker_pool_size", 0)))


def _build_runtime(data: Mapping[str, object] | None) -> RuntimeConfig:
    if not data:
        return RuntimeConfig()
    batch = data.get("batch")
    jobs = data.get("jobs")
    return RuntimeConfig(
        output_dir=Path(str(data.get("output_dir", "runs"))),
        log_file=str(data.get("log_file", "log.jsonl")),
        summary_csv=str(data.get("summary_csv", "summary.csv")),
        max_file_size_mb=int(data.get("max_file_size_mb", 50)),
        max_files=int(data.get("max_files", 100)),
        convert_timeout_s=int(data.get("convert_timeout_s", 300)),
        parallelism=int(data.get("parallelism", 1)),
        enable_local_api=bool(data.get("enable_local_api", False)),
        batch=_build_batch(batch if isinstance(batch, Mapping) else None),
        jobs=_build_jobs(jobs if isinstance(jobs, Mapping) else None),
    )


def _build_page(data: Mapping[str, object] | None) -> PageConfig:
    if not data:
        return PageConfig()
    quality = data.get("jpeg_quality")
    return PageConfig(
        page_size=str(data.get("page_size", PageSize.A4.value)).upper(),
        orientation=str(data.get("orientation", Orientation.AUTO.value)).lower(),
        margin=float(data.get("margin", 36.0)),
        center_image=bool(data.get("center_image", True)),
        scale_to_fit=bool(data.get("scale_to_fit", True)),
        svg_scale=float(data.get("svg_scale", 2.0)),
        allow_upscale=bool(data.get("allow_upscale", False)),
        jpeg_quality=int(quality) if quality is not None else None,
    )


def _build_api(data: Mapping[str, object] | None) -> APIConfig:
    if not data:
        return APIConfig()
    return APIConfig(host=str(data.get("host", "127.0.0.1")), port=int(data.get("port", 8000)))


def _tuple_of_formats(value: object | None, default: Iterable[str]) -> tuple[str, ...]:
    if not value:
        return tuple(default)
    if isinstance(value, str):
        value = (value,)
    if isinstance(value, Iterable):
        formats: list[str] = []
        for item in value:
            try:
                formats.append(ImageFormat(str(item).lower()).value)
            except ValueError as exc:
                raise ValueError(f"Unsupported image format in configuration: {item!r}") from exc
        return tuple(formats)
    raise TypeError(f"Unsupported formats configuration: {value!r}")


def load_config(path: Path | None = None) -> AppConfig:
    path = path or CONFIG_FILE
    raw = _read_toml(path)
    runtime_data = raw.get("runtime") if isinstance(raw, Mapping) else None
    formats_data = raw.get("formats") if isinstance(raw, Mapping) else None
    page_data = raw.get("page") if isinstance(raw, Mapping) else None
    api_data = raw.get("api") if isinstance(raw, Mapping) else None
    runtime = _build_runtime(runtime_data if isinstance(runtime_data, Mapping) else None)
    formats = _tuple_of_formats(formats_data, AppConfig().formats)
    page = _build_page(page_data if isinstance(page_data, Mapping) else None)
    api = _build_api(api_data if isinstance(api_data, Mapping) else None)
    return AppConfig(runtime=runtime, formats=formats, page=page, api=api)


def dump_config(config: AppConfig) -> str:
    payload = {
        "runtime": {
            "output_dir": str(config.runtime.output_dir),
            "log_file": config.runtime.log_file,
            "summary_csv": config.runtime.summary_csv,
            "max_file_size_mb": config.runtime.max_file_size_mb,
            "max_files": config.runtime.max_files,
            "convert_timeout_s": config.runtime.convert_timeout_s,
            "parallelism": config.runtime.parallelism,
            "enable_local_api": config.runtime.enable_local_api,
            "batch": {
                "images_per_pdf": config.runtime.batch.images_per_pdf,
            },
            "jobs": {
                "worker_pool_size": config.runtime.jobs.worker_pool_size,
            },
        },
        "formats": list(config.formats),
        "page": config.page.to_options().as_dict(),
        "api": {
            "host": config.api.host,
            "port": config.api.port,
        },
    }
    return json.dumps(payload, indent=2)
