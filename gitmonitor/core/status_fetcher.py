"""Concurrent git/gh status collection for a single repository."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TypeVar

from ..utils import parse_iso
from .config import DEFAULT_OPEN_PR_STATES, DEFAULT_REMOTE_HOSTS, MonitorConfig
from .discovery import is_git_repo
from .errors import CommandFailed, NotARepository, UncommittedChangesPresent
from .models import BranchInfo, CommitInfo, StatusSnapshot
from .process import EXIT_NOT_FOUND, ProcessRunner, resolve_command

logger = logging.getLogger(__name__)

T = TypeVar("T")

BRANCH_FORMAT = "%(refname:short)|%(objectname:short)|%(committerdate:iso8601)|%(HEAD)"
_DEFAULTS = StatusSnapshot()


class FetchMode(str, Enum):
    FULL = "full"
    LIGHT = "light"


def _lines(output: str) -> tuple[str, ...]:
    return tuple(line for line in output.splitlines() if line.strip())


def parse_branches(output: str) -> tuple[BranchInfo, ...]:
    """Parse ``git branch --format`` output, most recent commit first."""
    branches = []
    for line in output.splitlines():
        parts = line.rsplit("|", 3)
        if len(parts) < 4:
            continue
        name, short_hash, date_str, head_marker = parts
        branches.append(BranchInfo(
            name=name,
            is_current=head_marker.strip() == "*",
            last_commit_hash=short_hash or None,
            last_commit_date=parse_iso(date_str),
        ))
    # Undated branches sort last; sorted() keeps git's order among ties.
    return tuple(sorted(
        branches,
        key=lambda b: (
            b.last_commit_date is None,
            -b.last_commit_date.timestamp() if b.last_commit_date else 0.0,
        ),
    ))


def parse_last_commit(output: str) -> tuple[str | None, datetime | None]:
    """Split ``%s|%cd`` log output into (subject, date)."""
    text = output.strip()
    if "|" not in text:
        raise ValueError(f"unexpected log output: {text!r}")
    message, _, date_str = text.rpartition("|")
    return message.strip() or None, parse_iso(date_str)


def parse_ahead_behind(output: str) -> tuple[int, int]:
    """Parse ``rev-list --left-right --count HEAD...@{u}`` into (ahead, behind)."""
    parts = output.split()
    if len(parts) < 2:
        raise ValueError(f"unexpected rev-list output: {output!r}")
    return int(parts[0]), int(parts[1])


def count_open_states(output: str, open_states: Iterable[str]) -> int:
    wanted = {state.strip().upper() for state in open_states}
    return sum(1 for line in output.splitlines() if line.strip().upper() in wanted)


class StatusFetcher:
    """Assembles a ``StatusSnapshot`` from independent git subcommands.

    Every subcommand is isolated: when one fails its field falls back to the
    previous snapshot's value (or the empty default) instead of failing the
    whole fetch.
    """

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        remote_hosts: Iterable[str] = DEFAULT_REMOTE_HOSTS,
        open_pr_states: Iterable[str] = DEFAULT_OPEN_PR_STATES,
        command_timeout: float = 30.0,
        resolver: Callable[[str], str | None] = resolve_command,
    ):
        self.runner = runner or ProcessRunner(default_timeout=command_timeout)
        self.remote_hosts = tuple(remote_hosts)
        self.open_pr_states = tuple(open_pr_states)
        self.command_timeout = command_timeout
        self._resolve = resolver

    @classmethod
    def from_config(cls, config: MonitorConfig, runner: ProcessRunner | None = None) -> StatusFetcher:
        return cls(
            runner=runner,
            remote_hosts=config.remote_hosts,
            open_pr_states=config.open_pr_states,
            command_timeout=config.command_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # command helpers
    # ------------------------------------------------------------------

    async def _run(self, command: str, repo_path: Path, *args: str) -> str:
        executable = self._resolve(command)
        if executable is None:
            raise CommandFailed(EXIT_NOT_FOUND, f"{command}: not found", command)
        result = await self.runner.run(
            executable, list(args), cwd=repo_path, timeout=self.command_timeout
        )
        if not result.ok:
            raise CommandFailed(result.exit_code, result.stderr, f"{command} {args[0]}")
        return result.stdout

    async def _git(self, repo_path: Path, *args: str) -> str:
        return await self._run("git", repo_path, *args)

    async def _facet(
        self,
        name: str,
        repo_path: Path,
        operation: Awaitable[T],
        fallback: T,
    ) -> T:
        try:
            return await operation
        except (CommandFailed, ValueError) as exc:
            logger.debug("%s failed for %s: %s", name, repo_path, exc)
            return fallback

    # ------------------------------------------------------------------
    # individual facets
    # ------------------------------------------------------------------

    async def current_branch(self, repo_path: Path) -> str:
        branch = (await self._git(repo_path, "rev-parse", "--abbrev-ref", "HEAD")).strip()
        if not branch:
            raise ValueError("empty branch name")
        return branch

    async def has_uncommitted_changes(self, repo_path: Path) -> bool:
        output = await self._git(repo_path, "status", "--porcelain")
        return bool(output.strip())

    async def untracked_files(self, repo_path: Path) -> tuple[str, ...]:
        return _lines(await self._git(repo_path, "ls-files", "--others", "--exclude-standard"))

    async def modified_files(self, repo_path: Path) -> tuple[str, ...]:
        return _lines(await self._git(repo_path, "diff", "--name-only"))

    async def staged_files(self, repo_path: Path) -> tuple[str, ...]:
        return _lines(await self._git(repo_path, "diff", "--cached", "--name-only"))

    async def last_commit(self, repo_path: Path) -> tuple[str | None, str | None, datetime | None]:
        hash_output, log_output = await asyncio.gather(
            self._git(repo_path, "rev-parse", "HEAD"),
            self._git(repo_path, "log", "-1", "--pretty=%s|%cd", "--date=iso-strict"),
            return_exceptions=True,
        )
        for outcome in (hash_output, log_output):
            if isinstance(outcome, BaseException):
                raise outcome
        message, date = parse_last_commit(log_output)
        return hash_output.strip() or None, message, date

    async def ahead_behind(self, repo_path: Path) -> tuple[int, int]:
        output = await self._git(repo_path, "rev-list", "--left-right", "--count", "HEAD...@{u}")
        return parse_ahead_behind(output)

    async def branches(self, repo_path: Path) -> tuple[BranchInfo, ...]:
        output = await self._git(
            repo_path, "branch", "-v", "--sort=-committerdate", f"--format={BRANCH_FORMAT}"
        )
        return parse_branches(output)

    async def has_remote_host(self, repo_path: Path) -> bool:
        output = await self._git(repo_path, "remote", "-v")
        return any(host in output for host in self.remote_hosts)

    async def pending_pull_requests(self, repo_path: Path) -> int:
        """Open PR count via the GitHub CLI; 0 when gh is not installed."""
        if self._resolve("gh") is None:
            return 0
        output = await self._run(
            "gh", repo_path, "pr", "list", "--state", "open", "--json", "state", "--jq", ".[].state"
        )
        return count_open_states(output, self.open_pr_states)

    async def _remote_and_pull_requests(
        self,
        repo_path: Path,
        previous: StatusSnapshot | None,
    ) -> tuple[bool, int]:
        base = previous or _DEFAULTS
        has_remote = await self._facet(
            "remote-host", repo_path, self.has_remote_host(repo_path), base.has_remote_host
        )
        if not has_remote:
            return False, 0
        pr_count = await self._facet(
            "pull-requests", repo_path, self.pending_pull_requests(repo_path),
            base.pending_pull_requests,
        )
        return has_remote, pr_count

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    async def fetch(
        self,
        repo_path: Path,
        mode: FetchMode = FetchMode.FULL,
        previous: StatusSnapshot | None = None,
    ) -> StatusSnapshot:
        """Collect a snapshot for one repository.

        Args:
            repo_path: Working tree to inspect.
            mode: FULL runs every facet; LIGHT only branch, dirty check and
                last commit, copying the rest from ``previous``.
            previous: Snapshot used for per-field fallbacks.

        Raises:
            NotARepository: If ``repo_path`` has no ``.git`` entry.
        """
        if not is_git_repo(repo_path):
            raise NotARepository(repo_path)
        if mode is FetchMode.LIGHT:
            return await self._fetch_light(repo_path, previous)
        return await self._fetch_full(repo_path, previous)

    async def _fetch_light(
        self,
        repo_path: Path,
        previous: StatusSnapshot | None,
    ) -> StatusSnapshot:
        base = previous or _DEFAULTS
        branch, dirty, commit = await asyncio.gather(
            self._facet("current-branch", repo_path, self.current_branch(repo_path), base.current_branch),
            self._facet("dirty-check", repo_path, self.has_uncommitted_changes(repo_path),
                        base.has_uncommitted_changes),
            self._facet("last-commit", repo_path, self.last_commit(repo_path),
                        (base.last_commit_hash, base.last_commit_message, base.last_commit_date)),
        )
        commit_hash, message, date = commit
        return base.evolve(
            current_branch=branch,
            has_uncommitted_changes=dirty,
            last_commit_hash=commit_hash,
            last_commit_message=message,
            last_commit_date=date,
        )

    async def _fetch_full(
        self,
        repo_path: Path,
        previous: StatusSnapshot | None,
    ) -> StatusSnapshot:
        base = previous or _DEFAULTS
        (
            branch,
            dirty,
            untracked,
            modified,
            staged,
            commit,
            counts,
            branch_list,
            remote,
        ) = await asyncio.gather(
            self._facet("current-branch", repo_path, self.current_branch(repo_path), base.current_branch),
            self._facet("dirty-check", repo_path, self.has_uncommitted_changes(repo_path),
                        base.has_uncommitted_changes),
            self._facet("untracked-files", repo_path, self.untracked_files(repo_path), base.untracked_files),
            self._facet("modified-files", repo_path, self.modified_files(repo_path), base.modified_files),
            self._facet("staged-files", repo_path, self.staged_files(repo_path), base.staged_files),
            self._facet("last-commit", repo_path, self.last_commit(repo_path),
                        (base.last_commit_hash, base.last_commit_message, base.last_commit_date)),
            self._facet("ahead-behind", repo_path, self.ahead_behind(repo_path), (base.ahead, base.behind)),
            self._facet("branches", repo_path, self.branches(repo_path), base.branches),
            self._remote_and_pull_requests(repo_path, previous),
        )
        commit_hash, message, date = commit
        ahead, behind = counts
        has_remote, pr_count = remote
        return StatusSnapshot(
            current_branch=branch,
            has_uncommitted_changes=dirty,
            untracked_files=untracked,
            modified_files=modified,
            staged_files=staged,
            last_commit_hash=commit_hash,
            last_commit_message=message,
            last_commit_date=date,
            ahead=ahead,
            behind=behind,
            pending_pull_requests=pr_count,
            has_remote_host=has_remote,
            branches=branch_list,
        )

    async def switch_branch(self, repo_path: Path, branch: str) -> None:
        """Check out ``branch``, refusing when the working tree is dirty.

        Raises:
            NotARepository: If ``repo_path`` has no ``.git`` entry.
            UncommittedChangesPresent: If ``status --porcelain`` is non-empty.
            CommandFailed: If the dirty check or the checkout fails.
        """
        if not is_git_repo(repo_path):
            raise NotARepository(repo_path)
        if await self.has_uncommitted_changes(repo_path):
            raise UncommittedChangesPresent(repo_path)
        await self._git(repo_path, "checkout", branch)
        logger.info("Switched %s to %s", repo_path, branch)

    async def commit_history(self, repo_path: Path, limit: int = 10) -> list[CommitInfo]:
        """Most recent commits on the current branch; empty on failure."""
        if not is_git_repo(repo_path):
            raise NotARepository(repo_path)
        try:
            output = await self._git(
                repo_path, "log", f"-{limit}", "--pretty=%H|%an|%ae|%s|%cd", "--date=iso-strict"
            )
        except CommandFailed as exc:
            logger.debug("History unavailable for %s: %s", repo_path, exc)
            return []

        commits = []
        for line in output.splitlines():
            parts = line.split("|")
            if len(parts) < 5:
                continue
            commits.append(CommitInfo(
                hash=parts[0],
                author=parts[1],
                email=parts[2],
                message="|".join(parts[3:-1]),
                date=parse_iso(parts[-1]),
            ))
        return commits
