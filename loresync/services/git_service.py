"""Git service: data repository versioning via git CLI."""

from __future__ import annotations

import asyncio
import logging
import subprocess
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_GIT_TIMEOUT_SECONDS = 120


@dataclass(frozen=True)
class GitResult:
    ok: bool
    message: str = ""
    error: str | None = None
    pulled: bool = False
    pushed: bool = False


def _describe(exc: Exception) -> str:
    if isinstance(exc, subprocess.CalledProcessError):
        detail = (exc.stderr or exc.stdout or "").strip() or "no output"
        return f"{' '.join(exc.cmd[:2])} failed (exit {exc.returncode}): {detail}"
    if isinstance(exc, subprocess.TimeoutExpired):
        return f"git timed out after {exc.timeout}s"
    return str(exc)


class GitService:
    """Wraps git CLI operations on the data repository.

    The blocking methods are safe to call from worker threads; ``pull`` and
    ``commit_and_push`` are their async counterparts.
    """

    def __init__(self, repo_dir: Path) -> None:
        self.repo_dir = repo_dir

    def _run(
        self,
        *args: str,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        """Run a git command in the data repository."""
        return subprocess.run(
            ["git", *args],
            cwd=self.repo_dir,
            check=check,
            capture_output=True,
            text=True,
            timeout=_GIT_TIMEOUT_SECONDS,
        )

    def is_repo(self) -> bool:
        if not self.repo_dir.is_dir():
            return False
        try:
            result = self._run("rev-parse", "--git-dir", check=False)
        except (OSError, subprocess.TimeoutExpired):
            return False
        return result.returncode == 0

    def has_remote(self) -> bool:
        result = self._run("remote", check=False)
        return result.returncode == 0 and bool(result.stdout.strip())

    def has_changes(self) -> bool:
        result = self._run("status", "--porcelain", check=False)
        return result.returncode == 0 and bool(result.stdout.strip())

    def init_repo(self) -> None:
        """Initialize a git repo if one doesn't exist, then commit any existing files."""
        try:
            self.repo_dir.mkdir(parents=True, exist_ok=True)
            if not (self.repo_dir / ".git").exists():
                self._run("init")
                self._run("config", "user.email", "loresync@localhost")
                self._run("config", "user.name", "loresync")
                logger.info("Initialized git repo in %s", self.repo_dir)

            # Commit any existing files so HEAD is valid
            self.commit_all("Initial commit")
        except (subprocess.CalledProcessError, FileNotFoundError) as exc:
            logger.error(
                "Failed to initialize git repo in %s: %s. "
                "Ensure 'git' is installed and the data directory is writable.",
                self.repo_dir,
                exc,
            )
            raise

    def commit_all(self, message: str) -> str | None:
        """Stage all changes and commit. Returns commit hash or None if nothing to commit."""
        self._run("add", "-A")
        result = self._run("diff", "--cached", "--quiet", check=False)
        if result.returncode == 0:
            return None
        self._run("commit", "-m", message)
        return self.head_commit()

    def head_commit(self) -> str | None:
        """Return the current HEAD commit hash, or None if the repo has no commits."""
        result = self._run("rev-parse", "HEAD", check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def pull_sync(self) -> GitResult:
        """``git pull --rebase``, stashing local changes around it."""
        if not self.is_repo():
            return GitResult(ok=False, error="Not a git repository")
        try:
            if not self.has_remote():
                return GitResult(ok=False, error="No remote configured")

            before = self.head_commit()
            stashed = False
            if self.has_changes():
                stash = self._run("stash", check=False)
                if stash.returncode != 0:
                    logger.warning("git stash failed: %s", stash.stderr.strip())
                else:
                    stashed = "No local changes" not in stash.stdout

            try:
                self._run("pull", "--rebase")
            finally:
                if stashed:
                    pop = self._run("stash", "pop", check=False)
                    if pop.returncode != 0:
                        # Changes remain in `git stash list`
                        logger.error("git stash pop failed: %s", pop.stderr.strip())
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as exc:
            error = _describe(exc)
            logger.warning("Pull failed in %s: %s", self.repo_dir, error)
            return GitResult(ok=False, error=error)

        pulled = self.head_commit() != before
        return GitResult(
            ok=True,
            pulled=pulled,
            message="Pulled new changes" if pulled else "Already up to date",
        )

    def commit_and_push_sync(self, message: str) -> GitResult:
        """Stage, commit and (when a remote exists) push."""
        if not self.is_repo():
            return GitResult(ok=False, error="Not a git repository")
        try:
            if self.commit_all(message) is None:
                return GitResult(ok=True, message="No changes to commit")
            if not self.has_remote():
                return GitResult(ok=True, message="Committed (no remote to push)")
            self._run("push")
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as exc:
            error = _describe(exc)
            logger.warning("Commit/push failed in %s: %s", self.repo_dir, error)
            return GitResult(ok=False, error=error)
        return GitResult(ok=True, pushed=True, message="Committed and pushed")

    async def pull(self) -> GitResult:
        return await asyncio.to_thread(self.pull_sync)

    async def commit_and_push(self, message: str) -> GitResult:
        return await asyncio.to_thread(self.commit_and_push_sync, message)
