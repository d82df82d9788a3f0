"""Error taxonomy for the monitoring core."""

from __future__ import annotations

from pathlib import Path


class GitMonitorError(Exception):
    """Base class for every error raised by gitmonitor."""


class NotARepository(GitMonitorError):
    """An operation that needs a ``.git`` entry was invoked on a plain directory."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(f"Not a git repository: {self.path}")


class CommandFailed(GitMonitorError):
    """A subprocess exited with a non-zero status."""

    def __init__(self, exit_code: int, stderr: str, command: str = ""):
        self.exit_code = exit_code
        self.stderr = stderr
        self.command = command
        detail = stderr.strip() or "no output"
        prefix = f"{command}: " if command else ""
        super().__init__(f"{prefix}exited with code {exit_code}: {detail}")


class UncommittedChangesPresent(GitMonitorError):
    """Branch switch refused because the working tree is dirty."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(
            f"{self.path} has uncommitted changes. Commit or stash them first."
        )


class CacheInvalid(GitMonitorError):
    """The persisted cache does not match the current configuration or is too old.

    Not a failure: callers treat it as the signal to run a full scan.
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class CacheCorrupt(CacheInvalid):
    """The persisted cache could not be parsed."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        super().__init__(f"Corrupt cache at {self.path}: {reason}")
