"""Tests for the persistent scan cache."""

import json
import threading
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from gitmonitor.core.cache import CacheStats, CacheStore, fingerprint_roots
from gitmonitor.core.errors import CacheInvalid
from gitmonitor.core.models import CacheRecord, NodeKind, StatusSnapshot, TreeNode


def _record(roots=("/code",), timestamp=None) -> CacheRecord:
    repo = TreeNode.for_path(Path("/code/app"), NodeKind.REPOSITORY)
    repo.status = StatusSnapshot(current_branch="main", modified_files=("a.py",))
    repo.last_observed = datetime(2026, 2, 12, 9, 30)
    root = TreeNode.for_path(Path("/code"), NodeKind.ROOT)
    root.children = [repo]
    return CacheRecord(
        root_paths_fingerprint=fingerprint_roots(roots),
        timestamp=timestamp or datetime.now(),
        tree=[root],
    )


class TestFingerprint:
    def test_order_independent(self):
        assert fingerprint_roots(["/a", "/b"]) == fingerprint_roots(["/b", "/a"])

    def test_duplicates_ignored(self):
        assert fingerprint_roots(["/a", "/a"]) == fingerprint_roots(["/a"])

    def test_different_sets_differ(self):
        assert fingerprint_roots(["/code"]) != fingerprint_roots(["/code", "/projects"])


class TestCacheStore:
    """Tests for CacheStore."""

    @pytest.fixture
    def store(self, temp_dir):
        return CacheStore(temp_dir / "cache" / "projects.cache.json", min_write_interval=30)

    def test_load_missing(self, store):
        assert store.load() is None

    def test_save_then_load(self, store):
        record = _record()

        assert store.save(record) is True
        assert store.load() == record

    def test_file_is_readable_json(self, store):
        store.save(_record())

        data = json.loads(store.cache_path.read_text())
        assert data["version"] == "1"
        assert data["tree"][0]["children"][0]["status"]["current_branch"] == "main"
        assert "rootPathsFingerprint" in data

    def test_second_save_is_throttled(self, store):
        assert store.save(_record()) is True
        assert store.save(_record(roots=("/other",))) is False

        assert store.load().root_paths_fingerprint == fingerprint_roots(["/code"])

    def test_forced_save_bypasses_throttle(self, store):
        store.save(_record())
        assert store.save(_record(roots=("/other",)), force=True) is True

        assert store.load().root_paths_fingerprint == fingerprint_roots(["/other"])

    def test_no_temp_files_left_behind(self, store):
        store.save(_record())
        assert [p.name for p in store.cache_path.parent.iterdir()] == ["projects.cache.json"]

    @pytest.mark.parametrize("content", ["{broken", "[]", '{"tree": []}'])
    def test_corrupt_cache_loads_as_none(self, store, content):
        store.cache_path.parent.mkdir(parents=True)
        store.cache_path.write_text(content)

        assert store.load() is None

    @pytest.mark.parametrize(
        "payload",
        [
            {"rootPathsFingerprint": "x", "timestamp": "2026-01-01T00:00:00", "tree": [1]},
            {"rootPathsFingerprint": "x", "timestamp": 5, "tree": []},
            {
                "rootPathsFingerprint": "x",
                "timestamp": "2026-01-01T00:00:00",
                "tree": [{"path": "/code/app", "kind": "repository", "status": "oops"}],
            },
            {
                "rootPathsFingerprint": "x",
                "timestamp": "2026-01-01T00:00:00",
                "tree": [{"path": "/code", "kind": "root", "children": ["app"]}],
            },
        ],
    )
    def test_wrong_inner_shape_loads_as_none(self, store, payload):
        store.cache_path.parent.mkdir(parents=True)
        store.cache_path.write_text(json.dumps(payload))

        assert store.load() is None

    def test_concurrent_saves_write_once(self, store):
        barrier = threading.Barrier(2)
        results = []

        def save():
            barrier.wait()
            results.append(store.save(_record()))

        threads = [threading.Thread(target=save) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(results) == [False, True]

    def test_valid_record(self, store):
        record = _record()
        assert store.is_valid(record, ["/code"], timedelta(hours=1)) is True

    def test_fingerprint_mismatch(self, store):
        record = _record(roots=("/code",))

        with pytest.raises(CacheInvalid, match="monitored paths changed"):
            store.validate(record, ["/code", "/projects"], timedelta(hours=1))
        assert store.is_valid(record, ["/code", "/projects"], timedelta(hours=1)) is False

    def test_expired(self, store):
        now = datetime(2026, 2, 12, 12, 0)
        record = _record(timestamp=now - timedelta(hours=2))

        with pytest.raises(CacheInvalid, match="expired"):
            store.validate(record, ["/code"], timedelta(hours=1), now=now)

    def test_version_mismatch(self, store):
        record = _record()
        record.version = "0"

        assert store.is_valid(record, ["/code"], timedelta(hours=1)) is False

    def test_clear(self, store):
        store.save(_record())

        assert store.clear() is True
        assert store.load() is None
        assert store.clear() is False
        # A cleared store writes again immediately.
        assert store.save(_record()) is True

    def test_stats(self, store):
        assert store.stats() is None

        store.save(_record())
        stats = store.stats()

        assert stats.size_bytes == store.cache_path.stat().st_size
        assert stats.last_modified is not None


class TestCacheStats:
    @pytest.mark.parametrize(
        "size,expected",
        [
            (512, "512 bytes"),
            (2048, "2.0 KB"),
            (3 * 1024 * 1024, "3.0 MB"),
        ],
    )
    def test_formatted_size(self, size, expected):
        assert CacheStats(size_bytes=size, last_modified=None).formatted_size == expected
