"""Data model: monitored tree nodes, status snapshots, and the cache record."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path

from ..utils import format_iso, parse_iso


class NodeKind(str, Enum):
    """Classification of a directory under monitoring."""

    ROOT = "root"
    WORKSPACE = "workspace"
    REPOSITORY = "repository"
    PLAIN_FOLDER = "plain_folder"


class HealthStatus(str, Enum):
    """Overall health of a repository, used for sorting and badges."""

    CLEAN = "clean"
    HAS_PULL_REQUESTS = "has_pull_requests"
    NEEDS_ATTENTION = "needs_attention"


@dataclass(frozen=True)
class BranchInfo:
    """A local branch and its tip commit."""

    name: str
    is_current: bool = False
    last_commit_hash: str | None = None
    last_commit_date: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "is_current": self.is_current,
            "last_commit_hash": self.last_commit_hash,
            "last_commit_date": format_iso(self.last_commit_date),
        }

    @classmethod
    def from_dict(cls, data: dict) -> BranchInfo:
        return cls(
            name=str(data["name"]),
            is_current=bool(data.get("is_current", False)),
            last_commit_hash=data.get("last_commit_hash"),
            last_commit_date=parse_iso(data.get("last_commit_date")),
        )


@dataclass(frozen=True)
class StatusSnapshot:
    """Point-in-time git state of one repository.

    Snapshots are never mutated. A refresh builds a new snapshot and swaps it
    onto the node in a single assignment.
    """

    current_branch: str = ""
    has_uncommitted_changes: bool = False
    untracked_files: tuple[str, ...] = ()
    modified_files: tuple[str, ...] = ()
    staged_files: tuple[str, ...] = ()
    last_commit_hash: str | None = None
    last_commit_message: str | None = None
    last_commit_date: datetime | None = None
    ahead: int = 0
    behind: int = 0
    pending_pull_requests: int = 0
    has_remote_host: bool = False
    branches: tuple[BranchInfo, ...] = ()

    @property
    def health(self) -> HealthStatus:
        if self.has_uncommitted_changes:
            return HealthStatus.NEEDS_ATTENTION
        if self.pending_pull_requests > 0:
            return HealthStatus.HAS_PULL_REQUESTS
        return HealthStatus.CLEAN

    def evolve(self, **changes) -> StatusSnapshot:
        """Return a copy with some fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "current_branch": self.current_branch,
            "has_uncommitted_changes": self.has_uncommitted_changes,
            "untracked_files": list(self.untracked_files),
            "modified_files": list(self.modified_files),
            "staged_files": list(self.staged_files),
            "last_commit_hash": self.last_commit_hash,
            "last_commit_message": self.last_commit_message,
            "last_commit_date": format_iso(self.last_commit_date),
            "ahead": self.ahead,
            "behind": self.behind,
            "pending_pull_requests": self.pending_pull_requests,
            "has_remote_host": self.has_remote_host,
            "branches": [branch.to_dict() for branch in self.branches],
        }

    @classmethod
    def from_dict(cls, data: dict) -> StatusSnapshot:
        return cls(
            current_branch=str(data.get("current_branch", "")),
            has_uncommitted_changes=bool(data.get("has_uncommitted_changes", False)),
            untracked_files=tuple(data.get("untracked_files") or ()),
            modified_files=tuple(data.get("modified_files") or ()),
            staged_files=tuple(data.get("staged_files") or ()),
            last_commit_hash=data.get("last_commit_hash"),
            last_commit_message=data.get("last_commit_message"),
            last_commit_date=parse_iso(data.get("last_commit_date")),
            ahead=int(data.get("ahead", 0) or 0),
            behind=int(data.get("behind", 0) or 0),
            pending_pull_requests=int(data.get("pending_pull_requests", 0) or 0),
            has_remote_host=bool(data.get("has_remote_host", False)),
            branches=tuple(BranchInfo.from_dict(b) for b in data.get("branches") or ()),
        )


@dataclass(frozen=True)
class CommitInfo:
    """A single entry of a repository's history."""

    hash: str
    author: str
    email: str
    message: str
    date: datetime | None = None

    @property
    def short_hash(self) -> str:
        return self.hash[:7]

    def to_dict(self) -> dict:
        return {
            "hash": self.hash,
            "author": self.author,
            "email": self.email,
            "message": self.message,
            "date": format_iso(self.date),
        }


@dataclass
class TreeNode:
    """One filesystem entry under monitoring.

    Each node owns its children; the tree never shares a node between two
    parents.
    """

    path: Path
    name: str
    kind: NodeKind
    children: list[TreeNode] = field(default_factory=list)
    status: StatusSnapshot | None = None
    last_observed: datetime | None = None
    last_reviewed: datetime | None = None

    @classmethod
    def for_path(cls, path: Path, kind: NodeKind) -> TreeNode:
        return cls(path=path, name=path.name or str(path), kind=kind)

    @property
    def is_repository(self) -> bool:
        return self.kind is NodeKind.REPOSITORY

    @property
    def status_description(self) -> str:
        """Human-readable one-line summary."""
        if not self.is_repository:
            return "Not a Git repository"
        if self.status is None:
            return "No status available"

        parts = [f"On branch: {self.status.current_branch}"]
        if self.status.has_uncommitted_changes:
            parts.append("Uncommitted changes")
        if self.status.pending_pull_requests > 0:
            parts.append(f"{self.status.pending_pull_requests} PR(s)")
        return " • ".join(parts)

    def walk(self) -> Iterator[TreeNode]:
        """Yield this node and all descendants, pre-order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def repositories(self) -> list[TreeNode]:
        return [node for node in self.walk() if node.is_repository]

    def find(self, path: Path) -> TreeNode | None:
        for node in self.walk():
            if node.path == path:
                return node
        return None

    def remove_descendant(self, path: Path) -> bool:
        """Detach the descendant at ``path``. Returns whether one was removed."""
        for index, child in enumerate(self.children):
            if child.path == path:
                del self.children[index]
                return True
            if child.remove_descendant(path):
                return True
        return False

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "name": self.name,
            "kind": self.kind.value,
            "children": [child.to_dict() for child in self.children],
            "status": self.status.to_dict() if self.status else None,
            "last_observed": format_iso(self.last_observed),
            "last_reviewed": format_iso(self.last_reviewed),
        }

    @classmethod
    def from_dict(cls, data: dict) -> TreeNode:
        status = data.get("status")
        return cls(
            path=Path(data["path"]),
            name=str(data.get("name") or Path(data["path"]).name),
            kind=NodeKind(data["kind"]),
            children=[cls.from_dict(child) for child in data.get("children") or ()],
            status=StatusSnapshot.from_dict(status) if status else None,
            last_observed=parse_iso(data.get("last_observed")),
            last_reviewed=parse_iso(data.get("last_reviewed")),
        )


def iter_forest(roots: list[TreeNode]) -> Iterator[TreeNode]:
    """Pre-order walk over several trees."""
    for root in roots:
        yield from root.walk()


CACHE_VERSION = "1"


@dataclass
class CacheRecord:
    """Persisted form of one full scan."""

    root_paths_fingerprint: str
    timestamp: datetime
    tree: list[TreeNode] = field(default_factory=list)
    version: str = CACHE_VERSION

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "rootPathsFingerprint": self.root_paths_fingerprint,
            "timestamp": self.timestamp.isoformat(),
            "tree": [node.to_dict() for node in self.tree],
        }

    @classmethod
    def from_dict(cls, data: dict) -> CacheRecord:
        timestamp = parse_iso(data.get("timestamp"))
        if timestamp is None:
            raise ValueError("missing or invalid timestamp")
        return cls(
            version=str(data.get("version", "")),
            root_paths_fingerprint=str(data["rootPathsFingerprint"]),
            timestamp=timestamp,
            tree=[TreeNode.from_dict(node) for node in data.get("tree") or ()],
        )
