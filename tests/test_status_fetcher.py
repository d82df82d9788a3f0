"""Tests for per-repository status collection."""

import shutil
from datetime import datetime

import pytest

from gitmonitor.core.errors import CommandFailed, NotARepository, UncommittedChangesPresent
from gitmonitor.core.models import StatusSnapshot
from gitmonitor.core.process import ProcessResult
from gitmonitor.core.status_fetcher import (
    FetchMode,
    StatusFetcher,
    count_open_states,
    parse_ahead_behind,
    parse_branches,
    parse_last_commit,
)

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

BRANCH_OUTPUT = (
    "feature|1111111|2026-02-10 09:00:00 +0000| \n"
    "main|2222222|2026-02-12 10:30:00 +0000|*\n"
    "orphan|3333333|| \n"
)

HAPPY_PATH = {
    ("git", "rev-parse", "--abbrev-ref", "HEAD"): "main\n",
    ("git", "status", "--porcelain"): " M a.py\n?? new.txt\n",
    ("git", "ls-files", "--others"): "new.txt\n",
    ("git", "diff", "--name-only"): "a.py\n",
    ("git", "diff", "--cached"): "",
    ("git", "rev-parse", "HEAD"): "abc123def\n",
    ("git", "log", "-1"): "Add parser|2026-02-12T10:30:00+00:00\n",
    ("git", "rev-list"): "2\t1\n",
    ("git", "branch"): BRANCH_OUTPUT,
    ("git", "remote", "-v"): "origin\tgit@github.com:me/app.git (fetch)\n",
    ("gh", "pr", "list"): "OPEN\nOPEN\nopen\n",
}


class FakeRunner:
    """Answers commands by prefix and records every call."""

    def __init__(self, responses: dict, failures: tuple = ()):
        self.responses = responses
        self.failures = failures
        self.calls: list[tuple[str, ...]] = []

    async def run(self, executable, args, cwd=None, timeout=None):
        command = (executable, *args)
        self.calls.append(command)
        for prefix in self.failures:
            if command[:len(prefix)] == prefix:
                return ProcessResult("", "fatal: simulated failure", 128)
        for prefix, stdout in self.responses.items():
            if command[:len(prefix)] == prefix:
                return ProcessResult(stdout, "", 0)
        return ProcessResult("", f"unexpected command {command}", 1)

    def called(self, *prefix: str) -> bool:
        return any(call[:len(prefix)] == prefix for call in self.calls)


def _fetcher(runner: FakeRunner, gh: bool = True) -> StatusFetcher:
    def resolve(name):
        if name == "gh" and not gh:
            return None
        return name

    return StatusFetcher(runner=runner, resolver=resolve)


@pytest.fixture
def repo(temp_dir, fake_repo):
    return fake_repo(temp_dir / "app")


class TestParsers:
    def test_parse_branches_sorted_newest_first(self):
        branches = parse_branches(BRANCH_OUTPUT)

        assert [b.name for b in branches] == ["main", "feature", "orphan"]
        assert branches[0].is_current is True
        assert branches[0].last_commit_hash == "2222222"
        assert branches[2].last_commit_date is None

    def test_parse_branches_name_with_pipe(self):
        branches = parse_branches("odd|name|abc|2026-02-12 10:30:00 +0000| \n")
        assert branches[0].name == "odd|name"

    def test_parse_last_commit(self):
        message, date = parse_last_commit("Fix a|b case|2026-02-12T10:30:00+00:00\n")

        assert message == "Fix a|b case"
        assert isinstance(date, datetime)

    def test_parse_last_commit_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_last_commit("no separator here")

    def test_parse_ahead_behind(self):
        assert parse_ahead_behind("3\t0\n") == (3, 0)
        with pytest.raises(ValueError):
            parse_ahead_behind("")

    def test_count_open_states_case_insensitive(self):
        assert count_open_states("OPEN\nopen\nMERGED\n", ["open"]) == 2


class TestFetchFull:
    """Tests for FULL fetches against a fake runner."""

    @pytest.mark.asyncio
    async def test_populates_every_field(self, repo):
        runner = FakeRunner(HAPPY_PATH)

        snapshot = await _fetcher(runner).fetch(repo, FetchMode.FULL)

        assert snapshot.current_branch == "main"
        assert snapshot.has_uncommitted_changes is True
        assert snapshot.untracked_files == ("new.txt",)
        assert snapshot.modified_files == ("a.py",)
        assert snapshot.staged_files == ()
        assert snapshot.last_commit_hash == "abc123def"
        assert snapshot.last_commit_message == "Add parser"
        assert snapshot.last_commit_date is not None
        assert (snapshot.ahead, snapshot.behind) == (2, 1)
        assert [b.name for b in snapshot.branches] == ["main", "feature", "orphan"]
        assert snapshot.has_remote_host is True
        assert snapshot.pending_pull_requests == 3

    @pytest.mark.asyncio
    async def test_without_gh_pull_requests_are_zero(self, repo):
        runner = FakeRunner(HAPPY_PATH)

        snapshot = await _fetcher(runner, gh=False).fetch(repo)

        assert snapshot.pending_pull_requests == 0
        assert snapshot.current_branch == "main"
        assert snapshot.has_remote_host is True
        assert not runner.called("gh")

    @pytest.mark.asyncio
    async def test_no_matching_remote_skips_gh(self, repo):
        responses = dict(HAPPY_PATH)
        responses[("git", "remote", "-v")] = "origin\thttps://gitlab.com/me/app.git (fetch)\n"
        runner = FakeRunner(responses)

        snapshot = await _fetcher(runner).fetch(repo)

        assert snapshot.has_remote_host is False
        assert snapshot.pending_pull_requests == 0
        assert not runner.called("gh")

    @pytest.mark.asyncio
    async def test_configured_remote_hosts(self, repo):
        responses = dict(HAPPY_PATH)
        responses[("git", "remote", "-v")] = "origin\thttps://gitlab.com/me/app.git (fetch)\n"
        fetcher = StatusFetcher(
            runner=FakeRunner(responses), remote_hosts=["gitlab.com"], resolver=lambda n: n
        )

        snapshot = await fetcher.fetch(repo)

        assert snapshot.has_remote_host is True

    @pytest.mark.asyncio
    async def test_failed_facet_keeps_previous_value(self, repo):
        runner = FakeRunner(HAPPY_PATH, failures=(("git", "rev-list"), ("git", "branch")))
        previous = StatusSnapshot(ahead=7, behind=4, current_branch="old")

        snapshot = await _fetcher(runner).fetch(repo, FetchMode.FULL, previous)

        assert (snapshot.ahead, snapshot.behind) == (7, 4)
        assert snapshot.branches == ()
        assert snapshot.current_branch == "main"

    @pytest.mark.asyncio
    async def test_failed_facet_without_previous_uses_defaults(self, repo):
        runner = FakeRunner(HAPPY_PATH, failures=(("git", "rev-parse", "--abbrev-ref"),))

        snapshot = await _fetcher(runner).fetch(repo)

        assert snapshot.current_branch == ""
        assert snapshot.modified_files == ("a.py",)

    @pytest.mark.asyncio
    async def test_last_commit_needs_both_commands(self, repo):
        runner = FakeRunner(HAPPY_PATH, failures=(("git", "log", "-1"),))
        previous = StatusSnapshot(last_commit_hash="old", last_commit_message="Old")

        snapshot = await _fetcher(runner).fetch(repo, FetchMode.FULL, previous)

        assert snapshot.last_commit_hash == "old"
        assert snapshot.last_commit_message == "Old"

    @pytest.mark.asyncio
    async def test_not_a_repository(self, temp_dir):
        with pytest.raises(NotARepository):
            await _fetcher(FakeRunner(HAPPY_PATH)).fetch(temp_dir)


class TestFetchLight:
    @pytest.mark.asyncio
    async def test_only_cheap_commands_run(self, repo):
        runner = FakeRunner(HAPPY_PATH)
        previous = StatusSnapshot(
            current_branch="old",
            ahead=5,
            untracked_files=("kept.txt",),
            pending_pull_requests=1,
        )

        snapshot = await _fetcher(runner).fetch(repo, FetchMode.LIGHT, previous)

        assert snapshot.current_branch == "main"
        assert snapshot.has_uncommitted_changes is True
        assert snapshot.last_commit_hash == "abc123def"
        assert snapshot.ahead == 5
        assert snapshot.untracked_files == ("kept.txt",)
        assert snapshot.pending_pull_requests == 1
        assert not runner.called("git", "rev-list")
        assert not runner.called("git", "branch")
        assert not runner.called("gh")
        assert len(runner.calls) == 4


class TestSwitchBranch:
    @pytest.mark.asyncio
    async def test_dirty_tree_refuses_without_checkout(self, repo):
        runner = FakeRunner(HAPPY_PATH)

        with pytest.raises(UncommittedChangesPresent):
            await _fetcher(runner).switch_branch(repo, "feature")

        assert not runner.called("git", "checkout")

    @pytest.mark.asyncio
    async def test_clean_tree_checks_out(self, repo):
        runner = FakeRunner({("git", "status"): "", ("git", "checkout"): ""})

        await _fetcher(runner).switch_branch(repo, "feature")

        assert ("git", "checkout", "feature") in runner.calls

    @pytest.mark.asyncio
    async def test_failed_checkout_raises(self, repo):
        runner = FakeRunner({("git", "status"): ""}, failures=(("git", "checkout"),))

        with pytest.raises(CommandFailed) as exc_info:
            await _fetcher(runner).switch_branch(repo, "nope")

        assert exc_info.value.exit_code == 128


class TestCommitHistory:
    @pytest.mark.asyncio
    async def test_parses_entries(self, repo):
        runner = FakeRunner({
            ("git", "log", "-2"): (
                "aaaaaaaaaa|Ann|ann@example.com|Fix a|b|2026-02-12T10:30:00+00:00\n"
                "bbbbbbbbbb|Bob|bob@example.com|Initial|2026-02-11T10:30:00+00:00\n"
            ),
        })

        commits = await _fetcher(runner).commit_history(repo, limit=2)

        assert [c.short_hash for c in commits] == ["aaaaaaa", "bbbbbbb"]
        assert commits[0].message == "Fix a|b"
        assert commits[1].author == "Bob"

    @pytest.mark.asyncio
    async def test_failure_returns_empty(self, repo):
        assert await _fetcher(FakeRunner({})).commit_history(repo) == []


@requires_git
class TestAgainstRealGit:
    """End-to-end fetches on throwaway repositories."""

    @pytest.mark.asyncio
    async def test_clean_repository(self, git_repo):
        snapshot = await StatusFetcher().fetch(git_repo)

        assert snapshot.current_branch == "main"
        assert snapshot.has_uncommitted_changes is False
        assert snapshot.last_commit_message == "Initial commit"
        assert snapshot.has_remote_host is False
        assert snapshot.pending_pull_requests == 0
        assert [b.name for b in snapshot.branches] == ["main"]
        assert snapshot.branches[0].is_current is True

    @pytest.mark.asyncio
    async def test_working_tree_changes(self, git_repo, run_git):
        (git_repo / "README.md").write_text("# Changed\n")
        (git_repo / "staged.txt").write_text("x\n")
        run_git(git_repo, "add", "staged.txt")
        (git_repo / "new.txt").write_text("y\n")

        snapshot = await StatusFetcher().fetch(git_repo)

        assert snapshot.has_uncommitted_changes is True
        assert snapshot.modified_files == ("README.md",)
        assert snapshot.staged_files == ("staged.txt",)
        assert snapshot.untracked_files == ("new.txt",)

    @pytest.mark.asyncio
    async def test_switch_branch(self, git_repo, run_git):
        run_git(git_repo, "branch", "feature")
        fetcher = StatusFetcher()

        await fetcher.switch_branch(git_repo, "feature")

        assert (await fetcher.fetch(git_repo, FetchMode.LIGHT)).current_branch == "feature"

    @pytest.mark.asyncio
    async def test_switch_branch_refused_when_dirty(self, git_repo, run_git):
        run_git(git_repo, "branch", "feature")
        (git_repo / "README.md").write_text("# Dirty\n")

        with pytest.raises(UncommittedChangesPresent):
            await StatusFetcher().switch_branch(git_repo, "feature")

        assert (await StatusFetcher().current_branch(git_repo)) == "main"

    @pytest.mark.asyncio
    async def test_commit_history(self, git_repo):
        commits = await StatusFetcher().commit_history(git_repo)

        assert len(commits) == 1
        assert commits[0].message == "Initial commit"
        assert commits[0].author == "Test User"
        assert commits[0].email == "test@test.com"
