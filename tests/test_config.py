"""Tests for configuration and runtime home resolution."""

import json
from pathlib import Path

from gitmonitor.core.config import ConfigStore, MonitorConfig, normalize_path
from gitmonitor.core.runtime import (
    HOME_ENV_VAR,
    default_cache_path,
    default_config_path,
    resolve_runtime_home,
)


class TestMonitorConfig:
    """Tests for MonitorConfig."""

    def test_defaults(self):
        config = MonitorConfig()

        assert config.root_paths == []
        assert config.cache_max_age_seconds == 3600
        assert config.cache_min_write_interval_seconds == 30
        assert config.full_refresh_threshold_seconds == 900
        assert config.min_batch_size == 4
        assert config.remote_hosts == ["github.com"]
        assert config.open_pr_states == ["OPEN"]
        assert config.watch_repositories is False

    def test_invalid_values_fall_back_to_defaults(self):
        config = MonitorConfig.from_dict({
            "cache_max_age_seconds": "soon",
            "min_batch_size": -2,
            "root_paths": "not-a-list",
            "remote_hosts": ["gitlab.com", ""],
        })

        assert config.cache_max_age_seconds == 3600
        assert config.min_batch_size == 4
        assert config.root_paths == []
        assert config.remote_hosts == ["gitlab.com"]

    def test_round_trip(self):
        config = MonitorConfig(root_paths=["/code"], ignored_paths=["/code/old"], min_batch_size=8)
        assert MonitorConfig.from_dict(config.to_dict()) == config

    def test_path_sets_are_normalized(self, temp_dir):
        config = MonitorConfig(root_paths=[str(temp_dir / "a" / ".." / "b")])
        assert config.root_path_set == [temp_dir / "b"]


class TestConfigStore:
    """Tests for ConfigStore."""

    def test_missing_file_gives_defaults(self, temp_dir):
        store = ConfigStore(temp_dir / "config.json")
        assert store.config == MonitorConfig()

    def test_corrupt_file_gives_defaults(self, temp_dir):
        path = temp_dir / "config.json"
        path.write_text("{not json")

        assert ConfigStore(path).config == MonitorConfig()

    def test_add_root_persists(self, temp_dir):
        path = temp_dir / "config.json"
        store = ConfigStore(path)

        assert store.add_root(temp_dir / "code") is True
        assert store.add_root(temp_dir / "code") is False

        saved = json.loads(path.read_text())
        assert saved["root_paths"] == [str(temp_dir / "code")]
        assert ConfigStore(path).config.root_paths == [str(temp_dir / "code")]

    def test_remove_root(self, temp_dir):
        store = ConfigStore(temp_dir / "config.json")
        store.add_root(temp_dir / "code")

        assert store.remove_root(temp_dir / "code") is True
        assert store.remove_root(temp_dir / "code") is False
        assert store.config.root_paths == []

    def test_ignore_and_unignore(self, temp_dir):
        store = ConfigStore(temp_dir / "config.json")

        assert store.ignore_path(temp_dir / "code" / "old") is True
        assert store.ignore_path(temp_dir / "code" / "old") is False
        assert normalize_path(temp_dir / "code" / "old") in store.config.ignored_path_set

        assert store.unignore_path(temp_dir / "code" / "old") is True
        assert store.config.ignored_paths == []


class TestRuntimeHome:
    """Tests for runtime home resolution."""

    def test_env_var_wins(self, temp_dir, monkeypatch):
        monkeypatch.setenv(HOME_ENV_VAR, str(temp_dir / "custom"))

        home = resolve_runtime_home()

        assert home == temp_dir / "custom"
        assert home.is_dir()

    def test_default_paths(self, temp_dir):
        assert default_cache_path(temp_dir) == temp_dir / "projects.cache.json"
        assert default_config_path(temp_dir) == temp_dir / "config.json"

    def test_normalize_path_expands_user(self):
        assert normalize_path("~/code") == Path.home() / "code"
