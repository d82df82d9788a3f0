"""Async subprocess runner and executable resolution for git and gh."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

# Checked before PATH so GUI launches with a minimal environment still find
# Homebrew and system installs.
SEARCH_PATHS = (
    "/usr/bin",
    "/usr/local/bin",
    "/opt/homebrew/bin",
    "/bin",
)

EXIT_NOT_FOUND = 127
EXIT_TIMED_OUT = -1
TERMINATE_GRACE_SECONDS = 5.0


@dataclass(frozen=True)
class ProcessResult:
    """Captured output of one finished subprocess."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ProcessRunner:
    """Runs short-lived commands without blocking the event loop.

    Uses asyncio.create_subprocess_exec, so arguments are passed directly and
    never interpreted by a shell. Failures are reported through the exit code
    rather than raised.
    """

    def __init__(self, default_timeout: float = 30.0):
        self.default_timeout = default_timeout

    async def run(
        self,
        executable: str,
        args: list[str] | tuple[str, ...],
        cwd: Path | str | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        timeout = self.default_timeout if timeout is None else timeout
        try:
            proc = await asyncio.create_subprocess_exec(
                executable,
                *args,
                cwd=str(cwd) if cwd else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=_subprocess_env(),
            )
        except FileNotFoundError:
            return ProcessResult("", f"{executable}: not found", EXIT_NOT_FOUND)
        except OSError as exc:
            return ProcessResult("", str(exc), EXIT_NOT_FOUND)

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            logger.debug("%s %s timed out after %ss", executable, " ".join(args), timeout)
            return ProcessResult("", f"timed out after {timeout}s", EXIT_TIMED_OUT)
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.terminate()
                try:
                    await asyncio.wait_for(proc.wait(), timeout=TERMINATE_GRACE_SECONDS)
                except TimeoutError:
                    proc.kill()
                    await proc.wait()
            raise

        return ProcessResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=proc.returncode if proc.returncode is not None else EXIT_TIMED_OUT,
        )


def _subprocess_env() -> dict[str, str]:
    env = dict(os.environ)
    path_var = env.get("PATH", "")
    missing = [p for p in SEARCH_PATHS if p not in path_var.split(os.pathsep)]
    if missing:
        env["PATH"] = os.pathsep.join([path_var, *missing]) if path_var else os.pathsep.join(missing)
    # Never block on a credential prompt during background scans.
    env.setdefault("GIT_TERMINAL_PROMPT", "0")
    # Keep `git status` from rewriting the index, which would look like a change.
    env.setdefault("GIT_OPTIONAL_LOCKS", "0")
    return env


@lru_cache(maxsize=None)
def resolve_command(name: str) -> str | None:
    """Locate an executable once per process lifetime.

    Returns the absolute path, or None if the command is not installed.
    """
    for directory in SEARCH_PATHS:
        candidate = Path(directory) / name
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate)
    found = shutil.which(name)
    if found is None:
        logger.info("Command %r not found", name)
    return found


@dataclass(frozen=True)
class DependencyStatus:
    """A required or optional external tool that is missing."""

    command: str
    message: str
    install_instruction: str


_DEPENDENCIES = {
    "git": (
        "Git is not installed or not in PATH.",
        "Install git from your package manager (e.g. 'brew install git').",
    ),
    "gh": (
        "GitHub CLI (gh) is not installed. Pull request counts will show 0.",
        "Install it from https://cli.github.com/ (e.g. 'brew install gh').",
    ),
}


def check_dependencies() -> list[DependencyStatus]:
    """Report which of git / gh cannot be found."""
    missing = []
    for command, (message, instruction) in _DEPENDENCIES.items():
        if resolve_command(command) is None:
            missing.append(DependencyStatus(command, message, instruction))
    return missing
