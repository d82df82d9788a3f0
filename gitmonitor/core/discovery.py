"""Discovery of repositories and workspaces under the monitored roots."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from .config import normalize_path
from .models import NodeKind, TreeNode

logger = logging.getLogger(__name__)

HIDDEN_PREFIX = "."


def is_git_repo(path: Path) -> bool:
    """Check if a path directly contains a ``.git`` entry (directory or file)."""
    return (path / ".git").exists()


class Discoverer:
    """Builds the tree shape for a set of root paths.

    The walk stops two levels below each root: a child directory is either a
    repository, a workspace holding repositories one level further down, or a
    plain folder.
    """

    def __init__(self, max_workers: int = 4):
        self.max_workers = max_workers

    def discover(
        self,
        root_paths: Iterable[Path | str],
        ignored_paths: Iterable[Path | str] = (),
    ) -> list[TreeNode]:
        """Discover every root concurrently; one node per surviving root.

        A root nested inside another root is only listed at the top level,
        so no path appears twice in the forest.
        """
        roots = list(dict.fromkeys(normalize_path(p) for p in root_paths))
        ignored = {normalize_path(p) for p in ignored_paths}
        if not roots:
            return []

        def walk(root: Path) -> TreeNode | None:
            return self.discover_root(root, ignored | (set(roots) - {root}))

        with ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(roots)),
            thread_name_prefix="discover",
        ) as pool:
            results = list(pool.map(walk, roots))
        return [node for node in results if node is not None]

    def discover_root(self, root: Path, ignored: set[Path]) -> TreeNode | None:
        """Classify one root path. Returns None when the root itself is ignored."""
        if root in ignored:
            return None

        if is_git_repo(root):
            logger.info("Found git repo at root: %s", root)
            return TreeNode.for_path(root, NodeKind.REPOSITORY)

        node = TreeNode.for_path(root, NodeKind.ROOT)
        if not root.is_dir():
            logger.warning("Monitored path does not exist or is not a directory: %s", root)
            return node

        for child in self._child_dirs(root, ignored):
            node.children.append(self._classify(child, ignored))
        logger.info("Scanned %s: %d entries", root, len(node.children))
        return node

    def _classify(self, path: Path, ignored: set[Path]) -> TreeNode:
        if is_git_repo(path):
            return TreeNode.for_path(path, NodeKind.REPOSITORY)

        repos = [
            TreeNode.for_path(child, NodeKind.REPOSITORY)
            for child in self._child_dirs(path, ignored)
            if is_git_repo(child)
        ]
        if repos:
            node = TreeNode.for_path(path, NodeKind.WORKSPACE)
            node.children = repos
            return node
        return TreeNode.for_path(path, NodeKind.PLAIN_FOLDER)

    @staticmethod
    def _child_dirs(path: Path, ignored: set[Path]) -> list[Path]:
        """Visible, non-ignored subdirectories; empty if unreadable."""
        try:
            entries = sorted(path.iterdir())
        except OSError as exc:
            logger.warning("Failed to list contents of %s: %s", path, exc)
            return []

        children = []
        for entry in entries:
            if entry.name.startswith(HIDDEN_PREFIX) or entry in ignored:
                continue
            try:
                if entry.is_dir():
                    children.append(entry)
            except OSError:
                continue
        return children
