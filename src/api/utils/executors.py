"""Execution helpers bridging synchronous services into async contexts."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from typing import Any, TypeVar

T = TypeVar("T")


async def run_sync(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """Execute *func* in a worker thread and return the result."""

    return await asyncio.to_thread(func, *args, **kwargs)


async def run_cancellable(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """Like :func:`run_sync`, passing a ``cancellation`` event that is set if the awaiting task is cancelled."""

    cancellation = threading.Event()
    try:
        return await asyncio.to_thread(func, *args, cancellation=cancellation, **kwargs)
    except asyncio.CancelledError:
        cancellation.set()
        raise


__all__ = ["run_cancellable", "run_sync"]
