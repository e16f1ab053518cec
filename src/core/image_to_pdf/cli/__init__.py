from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import typer
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TimeElapsedColumn
from rich.table import Table

from ..config import AppConfig, load_config
from ..core import ConversionService
from ..detection import EXTENSION_MAP, ImageFormat
from ..errors import ValidationError
from ..models import ConversionOutcome, Orientation, PageOptions, PageSize, SourceImage
from ..utils import iter_files

console = Console()

app = typer.Typer(help="Convert images into PDF documents")


def _load_config(path: Path | None) -> AppConfig:
    return load_config(path)


def _format_size(num_bytes: int) -> str:
    value = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if abs(value) < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"


def _build_options(
    cfg: AppConfig,
    *,
    page_size: PageSize | None,
    orientation: Orientation | None,
    margin: float | None,
    center: bool | None,
    fit: bool | None,
    svg_scale: float | None,
    upscale: bool | None,
    quality: int | None,
) -> PageOptions:
    overrides: dict[str, object] = {}
    if page_size is not None:
        overrides["page_size"] = page_size.value
    if orientation is not None:
        overrides["orientation"] = orientation.value
    if margin is not None:
        overrides["margin"] = margin
    if center is not None:
        overrides["center_image"] = center
    if fit is not None:
        overrides["scale_to_fit"] = fit
    if svg_scale is not None:
        overrides["svg_scale"] = svg_scale
    if upscale is not None:
        overrides["allow_upscale"] = upscale
    if quality is not None:
        overrides["jpeg_quality"] = quality
    return PageOptions.from_dict(overrides, base=cfg.page.to_options())


def _run_with_progress(
    service: ConversionService,
    sources: list[SourceImage],
    options: PageOptions,
    *,
    images_per_pdf: int | None,
    parallel: int | None,
) -> ConversionOutcome:
    cancellation = threading.Event()
    progress = Progress(
        SpinnerColumn(),
        "[progress.description]{task.description}",
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    )
    with progress, ThreadPoolExecutor(max_workers=1, thread_name_prefix="convert") as executor:
        task_id = progress.add_task(description="Converting images", total=len(sources))

        def _on_progress(fraction: float, message: str) -> None:
            progress.update(task_id, completed=round(fraction * len(sources)), description=message)

        future = executor.submit(
            service.convert_images,
            sources,
            options,
            images_per_pdf=images_per_pdf,
            progress=_on_progress,
            cancellation=cancellation,
            parallelism=parallel,
        )
        try:
            return future.result()
        except KeyboardInterrupt:
            cancellation.set()
            return future.result()


@app.command()
def convert(
    files: list[Path] = typer.Argument(..., help="Image files or directories, in page order"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output file or directory"),
    page_size: PageSize | None = typer.Option(None, "--page-size", case_sensitive=False),
    orientation: Orientation | None = typer.Option(None, "--orientation", case_sensitive=False),
    margin: float | None = typer.Option(None, "--margin", min=0, help="Margin in points"),
    center: bool | None = typer.Option(None, "--center/--no-center", help="Center images on the page"),
    fit: bool | None = typer.Option(None, "--fit/--no-fit", help="Scale images down to fit the page"),
    svg_scale: float | None = typer.Option(None, "--svg-scale", min=0.1, help="SVG rasterization scale"),
    upscale: bool | None = typer.Option(None, "--upscale/--no-upscale", help="Allow enlarging small images"),
    quality: int | None = typer.Option(None, "--quality", min=1, max=95, help="Re-encode images as JPEG"),
    images_per_pdf: int | None = typer.Option(
        None, "--images-per-pdf", min=1, help="Split into a ZIP of PDFs with this many images each"
    ),
    parallel: int | None = typer.Option(None, "--parallel", min=1, help="Parallel workers"),
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    cfg = _load_config(config)
    paths = list(iter_files(files))
    if not paths:
        console.print("[red]No input files found[/red]")
        raise typer.Exit(1)
    try:
        options = _build_options(
            cfg,
            page_size=page_size,
            orientation=orientation,
            margin=margin,
            center=center,
            fit=fit,
            svg_scale=svg_scale,
            upscale=upscale,
            quality=quality,
        )
    except ValidationError as exc:
        console.print(f"[red]Invalid options[/red]: {exc}")
        raise typer.Exit(1) from exc

    service = ConversionService(cfg)
    sources = [SourceImage.from_path(path) for path in paths]
    outcome = _run_with_progress(
        service, sources, options, images_per_pdf=images_per_pdf, parallel=parallel
    )
    if outcome.cancelled:
        console.print("\n[dim]Interrupted.[/dim]")
        raise typer.Exit(130)
    if not outcome.success:
        console.print(f"[red]Conversion failed[/red]: {outcome.error_code} - {outcome.error_message}")
        raise typer.Exit(1)

    destination = service.save_outcome(outcome, output)
    size = _format_size(len(outcome.data or b""))
    if outcome.batch is not None:
        table = Table(title="Batch summary")
        table.add_column("Document")
        table.add_column("Pages", justify="right")
        for name, pages in zip(outcome.batch.documents, outcome.batch.pages_per_document):
            table.add_row(name, str(pages))
        console.print(table)
        console.print(
            f"[green]Success[/green]: {outcome.image_count} images -> "
            f"{outcome.batch.pdf_count} PDFs in {destination} ({size})"
        )
    else:
        console.print(
            f"[green]Success[/green]: {outcome.page_count} pages -> {destination} ({size})"
        )


@app.command()
def formats(
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    cfg = _load_config(config)
    enabled = cfg.allowed_formats
    table = Table(title="Supported formats")
    table.add_column("Format")
    table.add_column("Extensions")
    table.add_column("MIME type")
    table.add_column("Enabled")
    for image_format in ImageFormat:
        extensions = sorted(ext for ext, fmt in EXTENSION_MAP.items() if fmt is image_format)
        table.add_row(
            image_format.value,
            ", ".join(extensions),
            image_format.mime_type,
            "yes" if image_format in enabled else "no",
        )
    console.print(table)


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    import uvicorn

    from api.app import create_app

    cfg = _load_config(config)
    cfg.runtime.enable_local_api = True
    uvicorn.run(create_app(cfg), host=host or cfg.api.host, port=port or cfg.api.port)


if __name__ == "__main__":
    app()
