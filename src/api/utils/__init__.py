from .executors import run_cancellable, run_sync

__all__ = ["run_cancellable", "run_sync"]
