"""Git integration used by ``dotlink update``."""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import DependencyMissing, NotARepository, PullFailed, VcsError

logger = logging.getLogger(__name__)


class PullOutcome(str, Enum):
    ALREADY_CURRENT = "already_current"
    ADVANCED = "advanced"


@dataclass(frozen=True, slots=True)
class PullResult:
    """What ``git pull`` did to the repository."""

    outcome: PullOutcome
    branch: str
    before: str
    after: str
    log: tuple[str, ...] = ()


def command_exists(name: str) -> bool:
    """Check if a command exists in the system PATH."""
    return shutil.which(name) is not None


def require_git() -> None:
    if not command_exists("git"):
        raise DependencyMissing(
            "git is required but not installed. "
            "On Ubuntu/Debian: sudo apt-get install git; on macOS: brew install git"
        )


class GitRepository:
    """Thin wrapper over the ``git`` executable for one work tree."""

    def __init__(self, path: Path, *, timeout: float | None = 120.0) -> None:
        self.path = path
        self.timeout = timeout

    def _run_git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        cmd = ["git", "-C", str(self.path), *args]
        logger.debug("Running: %s", " ".join(cmd))
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=False,
            timeout=self.timeout,
        )
        if check and result.returncode != 0:
            logger.error("Git command failed: %s", result.stderr.strip())
            raise VcsError(f"git {' '.join(args)} failed: {result.stderr.strip()}")
        return result

    def ensure_work_tree(self) -> None:
        result = self._run_git("rev-parse", "--is-inside-work-tree", check=False)
        if result.returncode != 0 or result.stdout.strip() != "true":
            raise NotARepository(f"Not a git repository: {self.path}")

    def status_lines(self) -> list[str]:
        """Uncommitted changes as ``git status --porcelain`` lines."""

        self.ensure_work_tree()
        result = self._run_git("status", "--porcelain")
        return [line for line in result.stdout.splitlines() if line.strip()]

    def current_branch(self) -> str:
        return self._run_git("rev-parse", "--abbrev-ref", "HEAD").stdout.strip()

    def head(self) -> str:
        return self._run_git("rev-parse", "HEAD").stdout.strip()

    def pull(self) -> PullResult:
        """Pull ``origin/<current branch>`` and report whether HEAD moved."""

        self.ensure_work_tree()
        branch = self.current_branch()
        before = self.head()

        logger.info("Fetching latest changes for %s", branch)
        result = self._run_git("pull", "origin", branch, check=False)
        if result.returncode != 0:
            raise PullFailed(f"Failed to pull latest changes: {result.stderr.strip() or result.stdout.strip()}")

        after = self.head()
        if before == after:
            return PullResult(PullOutcome.ALREADY_CURRENT, branch, before, after)

        log = self._run_git("log", "--oneline", f"{before}..{after}").stdout.splitlines()
        return PullResult(PullOutcome.ADVANCED, branch, before, after, tuple(log))
