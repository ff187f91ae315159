"""The reading tracker facade."""

from .tracker import ReadingTracker, get_tracker, reset_tracker

__all__ = [
    "ReadingTracker",
    "get_tracker",
    "reset_tracker",
]
