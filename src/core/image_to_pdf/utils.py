from __future__ import annotations

import hashlib
import os
import tempfile
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, TypeVar

from .config import AppConfig


T = TypeVar("T")


@dataclass(slots=True)
class RunPaths:
    run_id: str
    base_dir: Path
    log_file: Path


def generate_run_id(prefix: str = "run") -> str:
    epoch_ms = int(time.time() * 1000)
    random_bits = hashlib.sha256(os.urandom(16)).hexdigest()[:8]
    return f"{prefix}-{epoch_ms}-{random_bits}"


def ensure_run_paths(config: AppConfig, run_id: str) -> RunPaths:
    base = config.runtime.output_dir / run_id
    base.mkdir(parents=True, exist_ok=True)
    return RunPaths(
        run_id=run_id,
        base_dir=base,
        log_file=config.runtime.output_dir / config.runtime.log_file,
    )


def atomic_write(path: Path, data: str | bytes, encoding: str = "utf-8") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = data.encode(encoding) if isinstance(data, str) else data
    with tempfile.NamedTemporaryFile("wb", delete=False, dir=path.parent) as tmp:
        tmp.write(payload)
        tmp.flush()
        os.fsync(tmp.fileno())
    os.replace(tmp.name, path)


def iter_files(paths: Iterable[Path]) -> Iterator[Path]:
    for path in paths:
        if path.is_file():
            yield path
        elif path.is_dir():
            for file_path in sorted(path.rglob("*")):
                if file_path.is_file():
                    yield file_path


def size_within_limit(size_bytes: int, max_mb: int) -> bool:
    return size_bytes <= max_mb * 1024 * 1024


def partition(items: Sequence[T], group_size: int) -> list[list[T]]:
    """Split *items* into consecutive groups of *group_size*; the last may be shorter."""
    if group_size < 1:
        raise ValueError("group_size must be at least 1")
    return [list(items[start : start + group_size]) for start in range(0, len(items), group_size)]


def single_output_name(names: Sequence[str]) -> str:
    if len(names) == 1:
        return f"{Path(names[0]).stem or 'image'}.pdf"
    return f"images_{len(names)}_pages.pdf"


def batch_output_name(pdf_count: int) -> str:
    return f"images_{pdf_count}_pdfs.zip"


def batch_member_name(index: int) -> str:
    return f"images_part_{index:03d}.pdf"


def resolve_output_path(
    *,
    output: Path | str | None,
    filename: str,
    default_dir: Path,
) -> Path:
    """Resolve where a finished document lands.

    Rules:
        - ``None`` → ``{default_dir}/{filename}``
        - Same suffix as *filename* → treated as literal file path
        - Otherwise → treated as directory: ``{path}/{filename}``
    """
    if output is None:
        return (default_dir / filename).resolve()

    output = Path(output)
    if output.suffix.lower() == Path(filename).suffix.lower():
        return output.resolve()

    return (output / filename).resolve()


__all__ = [
    "RunPaths",
    "atomic_write",
    "batch_member_name",
    "batch_output_name",
    "ensure_run_paths",
    "generate_run_id",
    "iter_files",
    "partition",
    "resolve_output_path",
    "single_output_name",
    "size_within_limit",
]
