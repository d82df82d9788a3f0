"""Pytest configuration and shared fixtures."""

import pytest
from pathlib import Path
import tempfile
import shutil
import subprocess


def _git(cwd: Path, *args: str) -> subprocess.CompletedProcess:
    return subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    path = Path(tempfile.mkdtemp())
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture(autouse=True)
def isolated_home(temp_dir, monkeypatch):
    """Keep config and cache files out of the real home directory."""
    home = temp_dir / ".gitmonitor-home"
    monkeypatch.setenv("GITMONITOR_HOME", str(home))
    return home


@pytest.fixture
def run_git():
    """Run a git command in a directory, failing the test on error."""
    return _git


@pytest.fixture
def make_repo():
    """Factory creating a real git repository with one commit on ``main``."""

    def factory(path: Path, commit: bool = True) -> Path:
        path.mkdir(parents=True, exist_ok=True)
        _git(path, "init", "-q")
        _git(path, "symbolic-ref", "HEAD", "refs/heads/main")
        _git(path, "config", "user.email", "test@test.com")
        _git(path, "config", "user.name", "Test User")
        _git(path, "config", "commit.gpgsign", "false")
        if commit:
            (path / "README.md").write_text("# Test\n")
            _git(path, "add", "README.md")
            _git(path, "commit", "-q", "-m", "Initial commit")
        return path

    return factory


@pytest.fixture
def git_repo(temp_dir, make_repo):
    """A real git repository with a single commit."""
    return make_repo(temp_dir / "repo")


@pytest.fixture
def fake_repo():
    """Factory for a directory that looks like a repository to stat-only checks."""

    def factory(path: Path) -> Path:
        git_dir = path / ".git"
        (git_dir / "refs" / "heads").mkdir(parents=True)
        (git_dir / "HEAD").write_text("ref: refs/heads/main\n")
        (git_dir / "index").write_bytes(b"DIRC")
        return path

    return factory
