"""Process-free change detection from ``.git`` modification times."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from .models import TreeNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeStats:
    """How many of a set of repositories look changed."""

    total_repos: int
    changed_repos: int

    @property
    def change_rate(self) -> float:
        return self.changed_repos / self.total_repos if self.total_repos else 0.0

    @property
    def percent_changed(self) -> str:
        return f"{self.change_rate * 100:.1f}%"


def resolve_git_dir(repo_path: Path) -> Path:
    """Return the git directory of a working tree.

    Linked worktrees and submodules have a ``.git`` file holding a
    ``gitdir: <path>`` pointer instead of a directory.
    """
    dot_git = repo_path / ".git"
    if dot_git.is_file():
        try:
            content = dot_git.read_text(encoding="utf-8").strip()
        except OSError:
            return dot_git
        if content.startswith("gitdir:"):
            target = Path(content.split(":", 1)[1].strip())
            return target if target.is_absolute() else (repo_path / target)
    return dot_git


def _mtime(path: Path) -> datetime | None:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime)
    except OSError:
        return None


class StalenessDetector:
    """Decides whether a repository may have changed since its last snapshot.

    Only ``stat`` calls are made, so running it over every known repository
    costs far less than a single ``git status``.
    """

    def is_stale(self, repo_path: Path, last_observed: datetime | None) -> bool:
        if last_observed is None:
            return True

        git_dir = resolve_git_dir(repo_path)
        index_mtime = _mtime(git_dir / "index")
        if index_mtime is None:
            logger.debug("No readable index for %s, assuming changed", repo_path)
            return True
        head_mtime = _mtime(git_dir / "HEAD")
        if head_mtime is None:
            logger.debug("No readable HEAD for %s, assuming changed", repo_path)
            return True
        refs_mtime = _mtime(git_dir / "refs" / "heads")

        stale = (
            index_mtime > last_observed
            or head_mtime > last_observed
            or (refs_mtime is not None and refs_mtime > last_observed)
        )
        if stale:
            logger.debug("%s: changes detected", repo_path.name)
        return stale

    def filter_stale(self, nodes: Iterable[TreeNode]) -> list[TreeNode]:
        """Repository nodes whose on-disk state may have moved on."""
        repos = [node for node in nodes if node.is_repository]
        stale = [node for node in repos if self.is_stale(node.path, node.last_observed)]
        logger.info("Change detection: %d of %d repos changed", len(stale), len(repos))
        return stale

    @staticmethod
    def needs_full_refresh(
        node: TreeNode,
        threshold: timedelta,
        now: datetime | None = None,
    ) -> bool:
        """True when a node has no snapshot or was last observed too long ago."""
        if node.status is None or node.last_observed is None:
            return True
        return (now or datetime.now()) - node.last_observed > threshold

    def change_stats(self, nodes: Iterable[TreeNode]) -> ChangeStats:
        repos = [node for node in nodes if node.is_repository]
        changed = sum(1 for node in repos if self.is_stale(node.path, node.last_observed))
        return ChangeStats(total_repos=len(repos), changed_repos=changed)
