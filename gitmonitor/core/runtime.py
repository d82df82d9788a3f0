"""Runtime home directory resolution."""

from __future__ import annotations

import os
import tempfile
import uuid
from pathlib import Path

HOME_ENV_VAR = "GITMONITOR_HOME"


def _is_writable_dir(path: Path) -> bool:
    """Return whether path exists and accepts create/write/delete operations."""
    try:
        path.mkdir(parents=True, exist_ok=True)
        probe = path / f".gm-write-probe-{uuid.uuid4().hex}"
        probe.write_text("ok")
        probe.unlink(missing_ok=True)
        return True
    except OSError:
        return False


def resolve_runtime_home() -> Path:
    """Resolve the runtime home with a writable fallback for restricted envs."""
    configured = os.environ.get(HOME_ENV_VAR)
    if configured:
        path = Path(configured).expanduser()
        if _is_writable_dir(path):
            return path

    preferred = Path.home() / ".gitmonitor"
    if _is_writable_dir(preferred):
        return preferred

    fallback = Path(tempfile.gettempdir()) / "gitmonitor-runtime"
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback


def default_cache_path(home: Path | None = None) -> Path:
    return (home or resolve_runtime_home()) / "projects.cache.json"


def default_config_path(home: Path | None = None) -> Path:
    return (home or resolve_runtime_home()) / "config.json"
