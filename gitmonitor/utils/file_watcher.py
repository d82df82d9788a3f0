"""File system monitoring for live updates."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Iterable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..core.config import normalize_path
from ..core.staleness import resolve_git_dir

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[dict[Path, str]], None]


class FileChangeHandler(FileSystemEventHandler):
    """Collects matching events and delivers them in one debounced batch."""

    def __init__(
        self,
        callback: ChangeCallback,
        matcher: Callable[[Path], bool],
        debounce_ms: int = 500,
    ):
        super().__init__()
        self.callback = callback
        self.matcher = matcher
        self.debounce_ms = debounce_ms
        self._debounce_timer: threading.Timer | None = None
        self._pending_events: dict[Path, str] = {}
        self._lock = threading.Lock()

    def _handle_event(self, raw_path: str | bytes, event_type: str) -> None:
        path = Path(os.fsdecode(raw_path))
        if not self.matcher(path):
            return

        with self._lock:
            self._pending_events[path] = event_type
            if self._debounce_timer:
                self._debounce_timer.cancel()
            self._debounce_timer = threading.Timer(
                self.debounce_ms / 1000.0,
                self._flush_events,
            )
            self._debounce_timer.daemon = True
            self._debounce_timer.start()

    def _flush_events(self) -> None:
        with self._lock:
            events = self._pending_events.copy()
            self._pending_events.clear()
            self._debounce_timer = None

        if not events:
            return
        try:
            self.callback(events)
        except Exception:
            logger.exception("File change callback failed")

    def cancel(self) -> None:
        """Drop pending events without delivering them."""
        with self._lock:
            if self._debounce_timer:
                self._debounce_timer.cancel()
                self._debounce_timer = None
            self._pending_events.clear()

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle_event(event.src_path, "created")

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle_event(event.src_path, "modified")

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle_event(event.src_path, "deleted")

    def on_moved(self, event: FileSystemEvent) -> None:
        # git writes index and refs through a lock file renamed into place
        if not event.is_directory:
            self._handle_event(event.dest_path, "moved")


class FileWatcher:
    """Runs one watchdog observer for any number of handlers.

    Usage:
        watcher = FileWatcher()
        watcher.schedule(handler, Path("/project/.git"))
        watcher.start()
        # ... later
        watcher.stop()
    """

    def __init__(self):
        self._observer: Observer | None = None
        self._handlers: list[FileChangeHandler] = []
        self._running = False

    def _ensure_observer(self) -> Observer:
        if not self._observer:
            self._observer = Observer()
        return self._observer

    def schedule(self, handler: FileChangeHandler, path: Path, recursive: bool = False) -> None:
        """Attach an existing handler to another directory."""
        if handler not in self._handlers:
            self._handlers.append(handler)
        self._ensure_observer().schedule(handler, str(path), recursive=recursive)

    def unwatch_all(self) -> None:
        if self._observer:
            self._observer.unschedule_all()
        for handler in self._handlers:
            handler.cancel()
        self._handlers.clear()

    def start(self) -> None:
        """Start watching for changes."""
        observer = self._ensure_observer()
        if not self._running:
            observer.start()
            self._running = True

    def stop(self) -> None:
        """Stop watching for changes."""
        for handler in self._handlers:
            handler.cancel()
        if self._observer and self._running:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._running = False
            self._observer = None


class GitStateWatcher(FileWatcher):
    """Reports which repositories had HEAD, index or branch refs rewritten.

    ``on_change`` runs on a timer thread with the set of affected
    repository paths; callers on an event loop must hop back themselves.
    """

    def __init__(self, on_change: Callable[[set[Path]], None], debounce_ms: int = 750):
        super().__init__()
        self.on_change = on_change
        self.debounce_ms = debounce_ms
        self._git_dirs: dict[Path, Path] = {}
        self._handler = self._new_handler()

    def _new_handler(self) -> FileChangeHandler:
        return FileChangeHandler(
            callback=self._dispatch,
            matcher=self._is_git_state,
            debounce_ms=self.debounce_ms,
        )

    @property
    def repositories(self) -> set[Path]:
        return set(self._git_dirs.values())

    def sync(self, repo_paths: Iterable[Path | str]) -> bool:
        """Watch exactly ``repo_paths``. Returns False if nothing changed."""
        wanted: dict[Path, Path] = {}
        for repo_path in repo_paths:
            repo = normalize_path(repo_path)
            wanted[normalize_path(resolve_git_dir(repo))] = repo
        if wanted == self._git_dirs:
            return False

        self.unwatch_all()
        self._handler = self._new_handler()
        self._git_dirs = {}
        for git_dir, repo in wanted.items():
            if not git_dir.is_dir():
                logger.debug("No git directory to watch for %s", repo)
                continue
            try:
                self.schedule(self._handler, git_dir, recursive=False)
                heads = git_dir / "refs" / "heads"
                if heads.is_dir():
                    self.schedule(self._handler, heads, recursive=True)
            except OSError as exc:
                logger.warning("Cannot watch %s: %s", repo, exc)
                continue
            self._git_dirs[git_dir] = repo
        logger.info("Watching %d repositories", len(self._git_dirs))
        return True

    def _owner(self, path: Path) -> tuple[Path, Path] | None:
        for git_dir, repo in self._git_dirs.items():
            if git_dir == path or git_dir in path.parents:
                return git_dir, repo
        return None

    def _is_git_state(self, path: Path) -> bool:
        owner = self._owner(path)
        if owner is None:
            return False
        parts = path.relative_to(owner[0]).parts
        if len(parts) == 1:
            return parts[0] in ("HEAD", "index")
        return parts[:2] == ("refs", "heads") and not path.name.endswith(".lock")

    def _dispatch(self, events: dict[Path, str]) -> None:
        changed = set()
        for path in events:
            owner = self._owner(path)
            if owner is not None:
                changed.add(owner[1])
        if changed:
            logger.debug("Git state changed in %d repositories", len(changed))
            self.on_change(changed)
