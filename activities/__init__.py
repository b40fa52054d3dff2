"""Activity definitions module."""

from activities.posting import PostingSweepInput, run_posting_sweep

__all__ = [
    "PostingSweepInput",
    "run_posting_sweep",
]
