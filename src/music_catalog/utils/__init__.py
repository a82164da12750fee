"""Utility functions for Music Catalog."""

from .decorators import handle_errors, track_performance

__all__ = [
    "handle_errors",
    "track_performance",
]
