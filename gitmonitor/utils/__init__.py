"""Shared utilities for gitmonitor."""

from .datetime_utils import format_iso, parse_iso, to_local_naive


# Lazy import for the watchers to avoid watchdog dependency at import time
def __getattr__(name):
    if name in ("FileWatcher", "GitStateWatcher"):
        from . import file_watcher
        return getattr(file_watcher, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "FileWatcher",
    "GitStateWatcher",
    "format_iso",
    "parse_iso",
    "to_local_naive",
]
