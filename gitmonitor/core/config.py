"""Monitor configuration and its JSON persistence."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .runtime import default_config_path

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_HOSTS = ("github.com",)
DEFAULT_OPEN_PR_STATES = ("OPEN",)


def normalize_path(path: Path | str) -> Path:
    """Absolute, user-expanded path without resolving symlinks."""
    return Path(os.path.abspath(Path(path).expanduser()))


def _positive_int(value, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _str_list(value, default: tuple[str, ...] = ()) -> list[str]:
    if not isinstance(value, list):
        return list(default)
    return [str(item) for item in value if item]


@dataclass
class MonitorConfig:
    """User configuration for discovery, caching and status fetching."""

    root_paths: list[str] = field(default_factory=list)
    ignored_paths: list[str] = field(default_factory=list)
    cache_max_age_seconds: int = 3600
    cache_min_write_interval_seconds: int = 30
    full_refresh_threshold_seconds: int = 900
    command_timeout_seconds: int = 30
    min_batch_size: int = 4
    remote_hosts: list[str] = field(default_factory=lambda: list(DEFAULT_REMOTE_HOSTS))
    open_pr_states: list[str] = field(default_factory=lambda: list(DEFAULT_OPEN_PR_STATES))
    watch_repositories: bool = False

    @property
    def root_path_set(self) -> list[Path]:
        return [normalize_path(p) for p in self.root_paths]

    @property
    def ignored_path_set(self) -> set[Path]:
        return {normalize_path(p) for p in self.ignored_paths}

    @classmethod
    def from_dict(cls, data: dict) -> MonitorConfig:
        return cls(
            root_paths=_str_list(data.get("root_paths")),
            ignored_paths=_str_list(data.get("ignored_paths")),
            cache_max_age_seconds=_positive_int(data.get("cache_max_age_seconds"), 3600),
            cache_min_write_interval_seconds=_positive_int(
                data.get("cache_min_write_interval_seconds"), 30
            ),
            full_refresh_threshold_seconds=_positive_int(
                data.get("full_refresh_threshold_seconds"), 900
            ),
            command_timeout_seconds=_positive_int(data.get("command_timeout_seconds"), 30),
            min_batch_size=_positive_int(data.get("min_batch_size"), 4),
            remote_hosts=_str_list(data.get("remote_hosts"), DEFAULT_REMOTE_HOSTS),
            open_pr_states=_str_list(data.get("open_pr_states"), DEFAULT_OPEN_PR_STATES),
            watch_repositories=bool(data.get("watch_repositories", False)),
        )

    def to_dict(self) -> dict:
        return {
            "root_paths": list(self.root_paths),
            "ignored_paths": list(self.ignored_paths),
            "cache_max_age_seconds": self.cache_max_age_seconds,
            "cache_min_write_interval_seconds": self.cache_min_write_interval_seconds,
            "full_refresh_threshold_seconds": self.full_refresh_threshold_seconds,
            "command_timeout_seconds": self.command_timeout_seconds,
            "min_batch_size": self.min_batch_size,
            "remote_hosts": list(self.remote_hosts),
            "open_pr_states": list(self.open_pr_states),
            "watch_repositories": self.watch_repositories,
        }


class ConfigStore:
    """Loads and saves ``MonitorConfig`` as JSON, and edits the path sets."""

    def __init__(self, config_path: Path | None = None):
        self.config_path = config_path or default_config_path()
        self.config = self.load()

    def load(self) -> MonitorConfig:
        if not self.config_path.exists():
            return MonitorConfig()
        try:
            data = json.loads(self.config_path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to read config %s: %s", self.config_path, exc)
            return MonitorConfig()
        if not isinstance(data, dict):
            return MonitorConfig()
        return MonitorConfig.from_dict(data)

    def save(self) -> None:
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(json.dumps(self.config.to_dict(), indent=2))

    def add_root(self, path: Path | str) -> bool:
        """Add a monitored root. Returns False if it was already present."""
        key = str(normalize_path(path))
        if key in {str(p) for p in self.config.root_path_set}:
            return False
        self.config.root_paths.append(key)
        self.save()
        return True

    def remove_root(self, path: Path | str) -> bool:
        target = normalize_path(path)
        before = len(self.config.root_paths)
        self.config.root_paths = [
            p for p in self.config.root_paths if normalize_path(p) != target
        ]
        if len(self.config.root_paths) == before:
            return False
        self.save()
        return True

    def ignore_path(self, path: Path | str) -> bool:
        key = str(normalize_path(path))
        if normalize_path(key) in self.config.ignored_path_set:
            return False
        self.config.ignored_paths.append(key)
        self.save()
        return True

    def unignore_path(self, path: Path | str) -> bool:
        target = normalize_path(path)
        before = len(self.config.ignored_paths)
        self.config.ignored_paths = [
            p for p in self.config.ignored_paths if normalize_path(p) != target
        ]
        if len(self.config.ignored_paths) == before:
            return False
        self.save()
        return True
