from __future__ import annotations

import csv
import json
import threading
import time
from dataclasses import asdict, dataclass, field
from io import StringIO
from pathlib import Path
from typing import Any

from .utils import atomic_write


@dataclass(slots=True)
class StageTimings:
    validate_ms: float = 0.0
    render_ms: float = 0.0
    assemble_ms: float = 0.0
    package_ms: float = 0.0


@dataclass(slots=True)
class RunLogEntry:
    run_id: str
    mode: str
    sources: list[str]
    status: str
    error_code: str | None
    error_message: str | None
    timings: StageTimings
    page_count: int
    pdf_count: int
    output_name: str | None
    size_bytes: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["timings"] = asdict(self.timings)
        return payload


class RunLogger:
    def __init__(self, log_file: Path) -> None:
        self._log_file = log_file
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._log_file

    def append(self, entry: RunLogEntry) -> None:
        line = json.dumps(entry.to_dict(), ensure_ascii=False)
        with self._lock:
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
            with self._log_file.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")

    def read(self) -> list[dict[str, Any]]:
        if not self._log_file.exists():
            return []
        with self._log_file.open("r", encoding="utf-8") as handle:
            return [json.loads(line) for line in handle if line.strip()]


@dataclass(slots=True)
class BatchSummary:
    timestamp: float = field(default_factory=time.time)
    images: int = 0
    pages: int = 0
    documents: int = 0
    size_bytes: int = 0

    def as_row(self, run_id: str) -> list[str]:
        return [
            run_id,
            time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.timestamp)),
            str(self.images),
            str(self.pages),
            str(self.documents),
            str(self.size_bytes),
        ]


_SUMMARY_LOCK = threading.Lock()

SUMMARY_HEADER = ["run_id", "timestamp", "images", "pages", "documents", "size_bytes"]


def write_summary_csv(path: Path, header: list[str], rows: list[list[str]]) -> None:
    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(header)
    writer.writerows(rows)
    atomic_write(path, buffer.getvalue())


def append_summary_row(path: Path, summary: BatchSummary, run_id: str) -> None:
    with _SUMMARY_LOCK:
        rows: list[list[str]] = []
        header = SUMMARY_HEADER
        if path.exists():
            with path.open("r", encoding="utf-8", newline="") as handle:
                reader = list(csv.reader(handle))
            if reader:
                header = reader[0]
                rows = reader[1:]
        rows.append(summary.as_row(run_id))
        write_summary_csv(path, header, rows)
