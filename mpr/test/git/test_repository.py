"""Tests for git/repository.py."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from mpr.core.result import Err, Ok
from mpr.git.repository import Repository, parse_remote_slug


def make_completed_process(
    stdout: str = "",
    stderr: str = "",
    returncode: int = 0,
) -> subprocess.CompletedProcess[str]:
    """Create a mock CompletedProcess."""
    return subprocess.CompletedProcess(
        args=["git"],
        returncode=returncode,
        stdout=stdout,
        stderr=stderr,
    )


class TestParseRemoteSlug:
    @pytest.mark.parametrize(
        "url",
        [
            "git@github.com:openMF/mifos-pay.git",
            "https://github.com/openMF/mifos-pay.git",
            "https://github.com/openMF/mifos-pay",
            "ssh://git@github.com/openMF/mifos-pay.git",
            "https://github.com/openMF/mifos-pay/\n",
        ],
    )
    def test_known_forms(self, url: str) -> None:
        assert parse_remote_slug(url) == "openMF/mifos-pay"

    def test_unparseable(self) -> None:
        assert parse_remote_slug("not a url") is None


class TestRepositoryMocked:
    """Repository queries with a mocked subprocess."""

    @patch("subprocess.run")
    def test_is_shallow(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = make_completed_process(stdout="true\n")

        result = Repository(tmp_path).is_shallow()

        assert result == Ok(True)
        args = mock_run.call_args[0][0]
        assert args[:3] == ["git", "-C", str(tmp_path)]
        assert args[3:] == ["rev-parse", "--is-shallow-repository"]

    @patch("subprocess.run")
    def test_commit_count(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = make_completed_process(stdout="1234\n")
        assert Repository(tmp_path).commit_count() == Ok(1234)

    @patch("subprocess.run")
    def test_commit_count_garbage(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = make_completed_process(stdout="lots\n")

        result = Repository(tmp_path).commit_count()

        assert isinstance(result, Err)
        assert "unexpected output" in result.error.message

    @patch("subprocess.run")
    def test_tags(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = make_completed_process(stdout="1.0.0\n\n1.1.0-beta\n")
        assert Repository(tmp_path).tags() == Ok(("1.0.0", "1.1.0-beta"))

    @patch("subprocess.run")
    def test_failure_carries_stderr(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = make_completed_process(
            stderr="fatal: not a git repository\n", returncode=128
        )

        result = Repository(tmp_path).log("HEAD", "* %s", max_count=1)

        assert isinstance(result, Err)
        assert result.error.command == "log"
        assert result.error.message == "fatal: not a git repository"
        assert result.error.returncode == 128

    @patch("subprocess.run")
    def test_latest_subject(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = make_completed_process(stdout="* Fix login crash\n")

        result = Repository(tmp_path).log("HEAD", "* %s", max_count=1)

        assert result == Ok("* Fix login crash\n")
        args = mock_run.call_args[0][0]
        assert args[3:] == ["log", "--format=* %s", "--max-count=1", "HEAD"]

    @patch("subprocess.run")
    def test_remote_slug(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = make_completed_process(stdout="git@github.com:acme/app.git\n")
        assert Repository(tmp_path).remote_slug() == Ok("acme/app")

    @patch("subprocess.run")
    def test_commit_paths_nothing_staged(self, mock_run: MagicMock, tmp_path: Path) -> None:
        # add succeeds, diff --cached --quiet exits 0 (no changes)
        mock_run.return_value = make_completed_process()

        result = Repository(tmp_path).commit_paths(["a.txt"], "msg")

        assert result == Ok(False)
        assert mock_run.call_count == 2


_needs_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _git(root: Path, *args: str) -> None:
    subprocess.run(
        ["git", "-C", str(root), *args],
        check=True,
        capture_output=True,
        text=True,
    )


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    root.mkdir()
    _git(root, "init", "-q")
    _git(root, "config", "user.email", "dev@example.com")
    _git(root, "config", "user.name", "Dev")
    _git(root, "config", "commit.gpgsign", "false")
    for i, subject in enumerate(("Initial commit", "Add login", "Fix login crash")):
        (root / f"f{i}.txt").write_text(str(i), encoding="utf-8")
        _git(root, "add", ".")
        _git(root, "commit", "-q", "-m", subject)
    _git(root, "tag", "1.0.0")
    _git(root, "tag", "1.1.0-beta")
    return root


@_needs_git
class TestRepositoryIntegration:
    def test_history_queries(self, git_repo: Path) -> None:
        repo = Repository(git_repo)

        assert repo.is_shallow() == Ok(False)
        assert repo.commit_count() == Ok(3)
        assert repo.tags() == Ok(("1.0.0", "1.1.0-beta"))
        assert repo.log("HEAD", "* %s", max_count=1) == Ok("* Fix login crash\n")

    def test_latest_subject_on_a_root_commit(self, tmp_path: Path) -> None:
        root = tmp_path / "single"
        root.mkdir()
        _git(root, "init", "-q")
        _git(root, "config", "user.email", "dev@example.com")
        _git(root, "config", "user.name", "Dev")
        _git(root, "config", "commit.gpgsign", "false")
        (root / "a.txt").write_text("a", encoding="utf-8")
        _git(root, "add", ".")
        _git(root, "commit", "-q", "-m", "Initial commit")

        result = Repository(root).log("HEAD", "* %s", max_count=1)

        assert result == Ok("* Initial commit\n")

    def test_commit_paths(self, git_repo: Path) -> None:
        repo = Repository(git_repo)
        deps = git_repo / "app" / "dependencies"
        deps.mkdir(parents=True)
        (deps / "releaseRuntimeClasspath.txt").write_text("lib:1.0\n", encoding="utf-8")

        first = repo.commit_paths([":(glob)**/dependencies/*.txt"], "Update baselines")
        second = repo.commit_paths([":(glob)**/dependencies/*.txt"], "Update baselines")

        assert first == Ok(True)
        assert second == Ok(False)
        assert repo.commit_count() == Ok(4)

    def test_missing_remote(self, git_repo: Path) -> None:
        result = Repository(git_repo).remote_slug()

        assert isinstance(result, Err)
        assert result.error.command == "remote get-url"
