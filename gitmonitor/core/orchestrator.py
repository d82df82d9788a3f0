"""Scan orchestration: cache display, discovery, batched refresh, persistence."""

from __future__ import annotations

import asyncio
import copy
import logging
import os
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path

from .cache import CacheStore, fingerprint_roots
from .config import ConfigStore, MonitorConfig, normalize_path
from .discovery import Discoverer
from .errors import GitMonitorError, NotARepository
from .models import CacheRecord, CommitInfo, StatusSnapshot, TreeNode, iter_forest
from .staleness import ChangeStats, StalenessDetector
from .status_fetcher import FetchMode, StatusFetcher

logger = logging.getLogger(__name__)

TreeListener = Callable[[list[TreeNode]], None]


class ScanState(str, Enum):
    IDLE = "idle"
    LOADING_CACHE = "loading_cache"
    DISPLAYING_CACHED = "displaying_cached"
    REFRESHING = "refreshing"


def default_batch_size(floor: int = 4) -> int:
    """Batch size tied to host parallelism, never below ``floor``."""
    return max(floor, os.cpu_count() or 1)


def batched(items: list, size: int) -> list[list]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def _prune(nodes: list[TreeNode], ignored: set[Path]) -> list[TreeNode]:
    kept = []
    for node in nodes:
        if node.path in ignored:
            continue
        node.children = _prune(node.children, ignored)
        kept.append(node)
    return kept


class ScanOrchestrator:
    """Owns the live tree and drives discovery and status refreshes.

    Fetches run concurrently but never touch the tree: they return
    snapshots which ``_apply`` merges one at a time under ``_tree_lock``.
    Scans are serialised by ``_scan_lock``; a scan requested while another
    runs waits for it instead of interrupting it.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        discoverer: Discoverer,
        fetcher: StatusFetcher,
        detector: StalenessDetector,
        cache_store: CacheStore,
        batch_size: int | None = None,
    ):
        self.config_store = config_store
        self.discoverer = discoverer
        self.fetcher = fetcher
        self.detector = detector
        self.cache_store = cache_store
        self.batch_size = batch_size or default_batch_size(self.config.min_batch_size)

        self.state = ScanState.IDLE
        self.last_scan: datetime | None = None
        self._roots: list[TreeNode] = []
        self._index: dict[Path, TreeNode] = {}
        self._tree_lock = threading.Lock()
        self._scan_lock = asyncio.Lock()
        self._listeners: list[TreeListener] = []
        self._background: set[asyncio.Task] = set()

    @classmethod
    def from_config_store(
        cls,
        config_store: ConfigStore,
        cache_path: Path | None = None,
    ) -> ScanOrchestrator:
        """Wire the default collaborators from the stored configuration."""
        config = config_store.config
        return cls(
            config_store=config_store,
            discoverer=Discoverer(),
            fetcher=StatusFetcher.from_config(config),
            detector=StalenessDetector(),
            cache_store=CacheStore(
                cache_path, min_write_interval=config.cache_min_write_interval_seconds
            ),
        )

    @property
    def config(self) -> MonitorConfig:
        return self.config_store.config

    # ------------------------------------------------------------------
    # read access
    # ------------------------------------------------------------------

    @property
    def roots(self) -> list[TreeNode]:
        """Deep copy of the live tree, safe to hand to readers."""
        with self._tree_lock:
            return copy.deepcopy(self._roots)

    def repositories(self) -> list[TreeNode]:
        with self._tree_lock:
            return [copy.deepcopy(node) for node in self._index.values() if node.is_repository]

    def get_node(self, path: Path | str) -> TreeNode | None:
        with self._tree_lock:
            node = self._index.get(normalize_path(path))
            return copy.deepcopy(node) if node else None

    def change_stats(self) -> ChangeStats:
        return self.detector.change_stats(self.repositories())

    def subscribe(self, listener: TreeListener) -> Callable[[], None]:
        """Register a callback receiving the tree after every change."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _publish(self) -> None:
        if not self._listeners:
            return
        tree = self.roots
        for listener in list(self._listeners):
            try:
                listener(tree)
            except Exception:
                logger.exception("Tree listener failed")

    # ------------------------------------------------------------------
    # tree mutation (single writer)
    # ------------------------------------------------------------------

    def _install_tree(self, roots: list[TreeNode]) -> None:
        with self._tree_lock:
            self._roots = roots
            self._index = {node.path: node for node in iter_forest(roots)}

    def _merge_discovered(self, discovered: list[TreeNode]) -> None:
        """Replace the tree shape, carrying snapshots over by path.

        Nodes missing from ``discovered`` disappear with the old tree. Roots
        removed and paths ignored while discovery ran are pruned against the
        current configuration.
        """
        config = self.config
        configured = set(config.root_path_set)
        discovered = _prune(
            [root for root in discovered if root.path in configured],
            config.ignored_path_set,
        )
        with self._tree_lock:
            for node in iter_forest(discovered):
                previous = self._index.get(node.path)
                if previous is None:
                    continue
                node.last_reviewed = previous.last_reviewed
                if node.is_repository and previous.is_repository:
                    node.status = previous.status
                    node.last_observed = previous.last_observed
            self._roots = discovered
            self._index = {node.path: node for node in iter_forest(discovered)}

    def _apply(self, path: Path, snapshot: StatusSnapshot) -> bool:
        """Swap a fresh snapshot onto its node. False if the node was evicted."""
        with self._tree_lock:
            node = self._index.get(path)
            if node is None or not node.is_repository:
                return False
            node.status = snapshot
            node.last_observed = datetime.now()
            return True

    def _evict(self, path: Path) -> bool:
        with self._tree_lock:
            node = self._index.get(path)
            if node is None:
                return False
            remaining = [root for root in self._roots if root is not node]
            if len(remaining) == len(self._roots):
                for root in self._roots:
                    if root.remove_descendant(path):
                        break
            self._roots = remaining
            self._index = {n.path: n for n in iter_forest(self._roots)}
            return True

    # ------------------------------------------------------------------
    # scanning
    # ------------------------------------------------------------------

    async def startup(self) -> bool:
        """Show the cached tree at once if valid, else run a full scan.

        Returns whether the cache was used.
        """
        self.state = ScanState.LOADING_CACHE
        record = await asyncio.to_thread(self.cache_store.load)
        max_age = timedelta(seconds=self.config.cache_max_age_seconds)
        if record is not None and self.cache_store.is_valid(
            record, self.config.root_path_set, max_age
        ):
            self._install_tree(record.tree)
            self.last_scan = record.timestamp
            self.state = ScanState.DISPLAYING_CACHED
            self._publish()
            self._spawn(self.light_refresh())
            return True

        await self.full_scan()
        return False

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_background(self) -> None:
        """Wait for refreshes spawned by ``startup`` or watchers."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel refreshes still running in the background."""
        pending = list(self._background)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    def request_light_refresh(self) -> asyncio.Task:
        """Schedule a light refresh without awaiting it."""
        return self._spawn(self.light_refresh())

    async def full_scan(self) -> None:
        async with self._scan_lock:
            self.state = ScanState.REFRESHING
            try:
                config = self.config
                discovered = await asyncio.to_thread(
                    self.discoverer.discover, config.root_path_set, config.ignored_path_set
                )
                self._merge_discovered(discovered)
                self._publish()

                targets = [(node.path, node.status) for node in self.repositories()]
                logger.info("Full scan: %d repositories", len(targets))
                await self._refresh(
                    [(path, FetchMode.FULL, status) for path, status in targets]
                )
                self.last_scan = datetime.now()
                await self._persist(force=True)
            finally:
                self.state = ScanState.IDLE

    async def light_refresh(self) -> int:
        """Refresh only repositories whose ``.git`` state moved on.

        A stale repository gets a FULL fetch instead of a LIGHT one when it
        has no snapshot or was last observed longer ago than
        ``full_refresh_threshold_seconds``. Returns the number fetched.
        """
        async with self._scan_lock:
            self.state = ScanState.REFRESHING
            try:
                threshold = timedelta(seconds=self.config.full_refresh_threshold_seconds)
                stale = self.detector.filter_stale(self.repositories())
                jobs = [
                    (node.path, self._refresh_mode(node, threshold), node.status)
                    for node in stale
                ]
                await self._refresh(jobs)
                if jobs:
                    self.last_scan = datetime.now()
                await self._persist(force=False)
                return len(jobs)
            finally:
                self.state = ScanState.IDLE

    def _refresh_mode(self, node: TreeNode, threshold: timedelta) -> FetchMode:
        if self.detector.needs_full_refresh(node, threshold):
            return FetchMode.FULL
        return FetchMode.LIGHT

    async def refresh_repository(self, path: Path | str) -> StatusSnapshot:
        """Full fetch of a single repository, merged into the tree."""
        repo_path = normalize_path(path)
        node = self.get_node(repo_path)
        if node is None or not node.is_repository:
            raise NotARepository(repo_path)
        snapshot = await self.fetcher.fetch(repo_path, FetchMode.FULL, node.status)
        if self._apply(repo_path, snapshot):
            self._publish()
        return snapshot

    async def _refresh(self, jobs: list[tuple[Path, FetchMode, StatusSnapshot | None]]) -> None:
        """Run fetches in sequential batches; each batch fully concurrent."""
        for number, batch in enumerate(batched(jobs, self.batch_size), start=1):
            logger.debug("Batch %d: %d repositories", number, len(batch))
            tasks = [asyncio.create_task(self._fetch_one(*job)) for job in batch]
            try:
                for finished in asyncio.as_completed(tasks):
                    result = await finished
                    if result is not None:
                        self._apply(*result)
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
            self._publish()

    async def _fetch_one(
        self,
        path: Path,
        mode: FetchMode,
        previous: StatusSnapshot | None,
    ) -> tuple[Path, StatusSnapshot] | None:
        try:
            return path, await self.fetcher.fetch(path, mode, previous)
        except GitMonitorError as exc:
            logger.warning("Failed to refresh %s: %s", path, exc)
        except Exception:
            logger.exception("Unexpected error refreshing %s", path)
        return None

    async def _persist(self, force: bool) -> None:
        record = CacheRecord(
            root_paths_fingerprint=fingerprint_roots(self.config.root_path_set),
            timestamp=datetime.now(),
            tree=self.roots,
        )
        try:
            await asyncio.to_thread(self.cache_store.save, record, force)
        except OSError as exc:
            logger.warning("Failed to save cache: %s", exc)

    # ------------------------------------------------------------------
    # user actions
    # ------------------------------------------------------------------

    async def switch_branch(self, path: Path | str, branch: str) -> StatusSnapshot:
        """Check out a branch, then refresh that repository."""
        repo_path = normalize_path(path)
        await self.fetcher.switch_branch(repo_path, branch)
        return await self.refresh_repository(repo_path)

    async def commit_history(self, path: Path | str, limit: int = 10) -> list[CommitInfo]:
        return await self.fetcher.commit_history(normalize_path(path), limit)

    def add_root(self, path: Path | str) -> bool:
        """Add a monitored root; it appears after the next full scan."""
        return self.config_store.add_root(path)

    def remove_root(self, path: Path | str) -> bool:
        removed = self.config_store.remove_root(path)
        if self._evict(normalize_path(path)) or removed:
            self._publish()
        return removed

    def ignore_path(self, path: Path | str) -> bool:
        """Exclude a path from discovery and drop it from the tree now."""
        added = self.config_store.ignore_path(path)
        if self._evict(normalize_path(path)):
            self._publish()
        return added

    def mark_reviewed(self, path: Path | str, when: datetime | None = None) -> bool:
        with self._tree_lock:
            node = self._index.get(normalize_path(path))
            if node is None:
                return False
            node.last_reviewed = when or datetime.now()
        self._publish()
        return True

