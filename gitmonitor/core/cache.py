"""Persistent JSON cache of the discovered tree and its status snapshots."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from .config import normalize_path
from .errors import CacheCorrupt, CacheInvalid
from .models import CACHE_VERSION, CacheRecord
from .runtime import default_cache_path

logger = logging.getLogger(__name__)

DEFAULT_MIN_WRITE_INTERVAL = 30.0


def fingerprint_roots(root_paths: Iterable[Path | str]) -> str:
    """Order-independent fingerprint of a root path set."""
    normalized = sorted({str(normalize_path(p)) for p in root_paths})
    return hashlib.sha256("\n".join(normalized).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheStats:
    """Size and age of the cache file."""

    size_bytes: int
    last_modified: datetime | None

    @property
    def formatted_size(self) -> str:
        if self.size_bytes < 1024:
            return f"{self.size_bytes} bytes"
        if self.size_bytes < 1024 * 1024:
            return f"{self.size_bytes / 1024:.1f} KB"
        return f"{self.size_bytes / (1024 * 1024):.1f} MB"


class CacheStore:
    """Loads, validates and writes the scan cache.

    Writes are atomic (temp file + rename) and throttled: a save within
    ``min_write_interval`` seconds of the previous successful one is skipped
    unless forced.
    """

    def __init__(
        self,
        cache_path: Path | None = None,
        min_write_interval: float = DEFAULT_MIN_WRITE_INTERVAL,
    ):
        self.cache_path = cache_path or default_cache_path()
        self.min_write_interval = min_write_interval
        self._lock = threading.Lock()
        self._last_write: float | None = None

    def load(self) -> CacheRecord | None:
        """Load the cache, or None if it is missing or unreadable."""
        if not self.cache_path.exists():
            logger.info("No cache file found")
            return None
        try:
            record = self._read()
        except CacheCorrupt as exc:
            logger.warning("%s", exc)
            return None
        logger.info(
            "Cache loaded: %d roots from %s",
            len(record.tree),
            record.timestamp.isoformat(timespec="seconds"),
        )
        return record

    def _read(self) -> CacheRecord:
        try:
            raw = json.loads(self.cache_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CacheCorrupt(self.cache_path, str(exc)) from exc
        if not isinstance(raw, dict):
            raise CacheCorrupt(self.cache_path, "top-level value is not an object")
        try:
            return CacheRecord.from_dict(raw)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise CacheCorrupt(self.cache_path, f"unexpected shape: {exc}") from exc

    def save(self, record: CacheRecord, force: bool = False) -> bool:
        """Write the record. Returns False when the write was throttled."""
        with self._lock:
            now = time.monotonic()
            if not force and self._last_write is not None:
                elapsed = now - self._last_write
                if elapsed < self.min_write_interval:
                    logger.debug("Save throttled (last save %.1fs ago)", elapsed)
                    return False

            payload = json.dumps(record.to_dict(), indent=2, sort_keys=True)
            self._write_atomic(payload)
            self._last_write = time.monotonic()

        logger.info("Cache saved: %d roots, %d bytes", len(record.tree), len(payload))
        return True

    def _write_atomic(self, payload: str) -> None:
        directory = self.cache_path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.cache_path.name}.", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.cache_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def validate(
        self,
        record: CacheRecord,
        current_root_paths: Iterable[Path | str],
        max_age: timedelta,
        now: datetime | None = None,
    ) -> None:
        """Raise CacheInvalid if the record cannot be used for display."""
        if record.version != CACHE_VERSION:
            raise CacheInvalid(f"cache version {record.version!r} != {CACHE_VERSION!r}")
        if record.root_paths_fingerprint != fingerprint_roots(current_root_paths):
            raise CacheInvalid("monitored paths changed since the cache was written")
        age = (now or datetime.now()) - record.timestamp
        if age > max_age:
            raise CacheInvalid(
                f"cache expired: {age.total_seconds():.0f}s old "
                f"(max: {max_age.total_seconds():.0f}s)"
            )

    def is_valid(
        self,
        record: CacheRecord,
        current_root_paths: Iterable[Path | str],
        max_age: timedelta,
        now: datetime | None = None,
    ) -> bool:
        try:
            self.validate(record, current_root_paths, max_age, now=now)
        except CacheInvalid as exc:
            logger.info("Cache not usable: %s", exc.reason)
            return False
        return True

    def clear(self) -> bool:
        """Delete the cache file. Returns whether one existed."""
        with self._lock:
            existed = self.cache_path.exists()
            self.cache_path.unlink(missing_ok=True)
            self._last_write = None
        if existed:
            logger.info("Cache cleared")
        return existed

    def stats(self) -> CacheStats | None:
        try:
            stat = self.cache_path.stat()
        except FileNotFoundError:
            return None
        return CacheStats(
            size_bytes=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime),
        )
