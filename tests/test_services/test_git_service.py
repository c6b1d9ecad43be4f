"""Tests for the git service, against real repositories in tmp_path."""

from __future__ import annotations

import subprocess
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from loresync.services.git_service import _GIT_TIMEOUT_SECONDS, GitService

if TYPE_CHECKING:
    from pathlib import Path


def _git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    )
    return result.stdout.strip()


def _identify(repo: Path) -> None:
    _git(repo, "config", "user.email", "test@localhost")
    _git(repo, "config", "user.name", "test")


@pytest.fixture
def shared(tmp_path: Path) -> tuple[GitService, GitService]:
    """Two clones of one bare remote, as on two machines."""
    remote = tmp_path / "remote.git"
    _git(tmp_path, "init", "--bare", str(remote))

    first = GitService(tmp_path / "first")
    (tmp_path / "first").mkdir()
    (tmp_path / "first" / "README.md").write_text("data repo\n")
    first.init_repo()
    _git(first.repo_dir, "remote", "add", "origin", str(remote))
    _git(first.repo_dir, "push", "-u", "origin", "HEAD")

    _git(tmp_path, "clone", str(remote), "second")
    _identify(tmp_path / "second")
    return first, GitService(tmp_path / "second")


class TestGitServiceInit:
    def test_init_creates_repo(self, tmp_path: Path) -> None:
        gs = GitService(tmp_path / "data")
        gs.init_repo()
        assert (tmp_path / "data" / ".git").is_dir()
        assert gs.is_repo()

    def test_init_is_idempotent(self, tmp_path: Path) -> None:
        gs = GitService(tmp_path)
        (tmp_path / "file.txt").write_text("hello")
        gs.init_repo()
        head = gs.head_commit()
        gs.init_repo()
        assert gs.head_commit() == head

    def test_plain_directory_is_not_a_repo(self, tmp_path: Path) -> None:
        assert not GitService(tmp_path / "missing").is_repo()


class TestGitServiceCommit:
    def test_commit_returns_hash(self, tmp_path: Path) -> None:
        gs = GitService(tmp_path)
        (tmp_path / "init.txt").write_text("init")
        gs.init_repo()
        (tmp_path / "new.txt").write_text("content")
        commit = gs.commit_all("add new file")
        assert commit is not None
        assert len(commit) == 40

    def test_commit_returns_none_when_clean(self, tmp_path: Path) -> None:
        gs = GitService(tmp_path)
        (tmp_path / "init.txt").write_text("init")
        gs.init_repo()
        assert gs.commit_all("nothing changed") is None

    def test_commit_without_remote(self, tmp_path: Path) -> None:
        gs = GitService(tmp_path)
        gs.init_repo()
        (tmp_path / "doc.md").write_text("x")
        result = gs.commit_and_push_sync("Sync: Added 1 source(s)")
        assert result.ok
        assert not result.pushed
        assert result.message == "Committed (no remote to push)"
        assert _git(tmp_path, "log", "-1", "--format=%s") == "Sync: Added 1 source(s)"

    def test_nothing_to_commit(self, tmp_path: Path) -> None:
        gs = GitService(tmp_path)
        gs.init_repo()
        result = gs.commit_and_push_sync("Sync")
        assert result.ok
        assert result.message == "No changes to commit"

    def test_commit_outside_repo_fails_softly(self, tmp_path: Path) -> None:
        result = GitService(tmp_path / "missing").commit_and_push_sync("Sync")
        assert not result.ok
        assert result.error == "Not a git repository"


class TestGitServicePull:
    def test_pull_outside_repo(self, tmp_path: Path) -> None:
        result = GitService(tmp_path / "missing").pull_sync()
        assert not result.ok
        assert result.error == "Not a git repository"

    def test_pull_without_remote(self, tmp_path: Path) -> None:
        gs = GitService(tmp_path)
        gs.init_repo()
        result = gs.pull_sync()
        assert not result.ok
        assert result.error == "No remote configured"

    def test_push_then_pull_between_machines(
        self, shared: tuple[GitService, GitService]
    ) -> None:
        first, second = shared
        (first.repo_dir / "doc.md").write_text("from first\n")
        pushed = first.commit_and_push_sync("Sync: Added 1 source(s)")
        assert pushed.ok
        assert pushed.pushed
        assert pushed.message == "Committed and pushed"

        pulled = second.pull_sync()
        assert pulled.ok
        assert pulled.pulled
        assert (second.repo_dir / "doc.md").read_text() == "from first\n"

        again = second.pull_sync()
        assert again.ok
        assert not again.pulled
        assert again.message == "Already up to date"

    def test_pull_keeps_local_changes(self, shared: tuple[GitService, GitService]) -> None:
        first, second = shared
        (first.repo_dir / "other.md").write_text("remote\n")
        first.commit_and_push_sync("remote change")
        (second.repo_dir / "README.md").write_text("local edit\n")

        result = second.pull_sync()
        assert result.ok
        assert result.pulled
        assert (second.repo_dir / "README.md").read_text() == "local edit\n"
        assert (second.repo_dir / "other.md").exists()

    def test_push_failure_is_reported(self, shared: tuple[GitService, GitService]) -> None:
        first, second = shared
        (second.repo_dir / "b.md").write_text("second\n")
        second.commit_and_push_sync("second")
        (first.repo_dir / "a.md").write_text("first\n")

        # first is behind the remote, so the push is rejected
        result = first.commit_and_push_sync("first")
        assert not result.ok
        assert result.error is not None
        assert "push" in result.error


class TestGitServiceTimeout:
    def test_commands_use_timeout(self, tmp_path: Path) -> None:
        gs = GitService(tmp_path)
        with patch("loresync.services.git_service.subprocess.run") as run:
            gs.head_commit()
        assert run.call_args.kwargs["timeout"] == _GIT_TIMEOUT_SECONDS

    def test_timeout_is_reported(self, tmp_path: Path) -> None:
        gs = GitService(tmp_path)
        gs.init_repo()
        (tmp_path / "x.md").write_text("x")
        with patch.object(
            gs, "commit_all", side_effect=subprocess.TimeoutExpired(["git"], _GIT_TIMEOUT_SECONDS)
        ):
            result = gs.commit_and_push_sync("Sync")
        assert not result.ok
        assert result.error == f"git timed out after {_GIT_TIMEOUT_SECONDS}s"

    @pytest.mark.asyncio
    async def test_async_wrappers(self, tmp_path: Path) -> None:
        gs = GitService(tmp_path)
        gs.init_repo()
        (tmp_path / "x.md").write_text("x")
        assert (await gs.commit_and_push("Sync")).ok
        assert (await gs.pull()).error == "No remote configured"
