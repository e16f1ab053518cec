from __future__ import annotations

from threading import Event
from typing import Callable

ProgressCallback = Callable[[float, str], None]


def _noop(_fraction: float, _message: str) -> None:
    return None


class ProgressReporter:
    """Forwards per-image progress to a caller callback.

    Fractions are clamped to [0, 1] and never move backwards within one run.
    Only the orchestrating thread calls into the reporter.
    """

    def __init__(self, callback: ProgressCallback | None, total: int, *, groups: int = 1) -> None:
        self._callback = callback or _noop
        self._total = max(total, 1)
        self._groups = groups
        self._processed = 0
        self._last = 0.0

    @property
    def fraction(self) -> float:
        return self._last

    @property
    def processed(self) -> int:
        return self._processed

    def emit(self, fraction: float, message: str) -> None:
        fraction = min(max(fraction, 0.0), 1.0)
        fraction = max(fraction, self._last)
        self._last = fraction
        self._callback(fraction, message)

    def image_done(self, group_index: int | None = None) -> None:
        self._processed += 1
        message = f"Processing image {self._processed} of {self._total}"
        if group_index is not None and self._groups > 1:
            message += f" (PDF {group_index + 1} of {self._groups})"
        self.emit(self._processed / self._total, message)

    def packaging(self) -> None:
        self.emit(1.0, "Creating ZIP archive")


def is_cancelled(cancellation: Event | None) -> bool:
    return cancellation is not None and cancellation.is_set()


__all__ = ["ProgressCallback", "ProgressReporter", "is_cancelled"]
