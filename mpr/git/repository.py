"""Git repository abstraction.

Release metadata is derived from repository history: the commit count, the
tag list and the most recent commit subject. This module wraps the handful
of git queries the orchestrator needs. All operations return Result types.

Usage:
    repo = Repository(Path("/path/to/app"))

    match repo.commit_count():
        case Ok(count):
            print(f"{count} commits")
        case Err(e):
            print(f"Error: {e.message}")
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from mpr.core.result import Err, Ok, Result
from mpr.platform.process import ProcessError
from mpr.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 30.0

_SLUG_RE = re.compile(r"[:/]([^/:]+)/([^/]+?)(?:\.git)?/?$")

__all__ = [
    "GitError",
    "Repository",
    "parse_remote_slug",
]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git command that failed
        message: Error message
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1


def parse_remote_slug(url: str) -> str | None:
    """Extract ``owner/name`` from a remote URL.

    Handles scp-like (``git@host:owner/name.git``), https and ssh URLs.
    """
    m = _SLUG_RE.search(url.strip())
    if m is None:
        return None
    return f"{m.group(1)}/{m.group(2)}"


class Repository:
    """Git repository abstraction.

    Attributes:
        path: Path to the repository root
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def is_shallow(self) -> Result[bool, GitError]:
        """True when the checkout lacks full history (``fetch-depth`` > 0)."""
        result = self._run(["rev-parse", "--is-shallow-repository"])
        match result:
            case Err(e):
                return Err(self._error("rev-parse --is-shallow-repository", e))
            case Ok(stdout):
                return Ok(stdout.strip() == "true")

    def commit_count(self, ref: str = "HEAD") -> Result[int, GitError]:
        """Number of commits reachable from ref."""
        result = self._run(["rev-list", "--count", ref])
        match result:
            case Err(e):
                return Err(self._error("rev-list --count", e))
            case Ok(stdout):
                try:
                    return Ok(int(stdout.strip()))
                except ValueError:
                    return Err(
                        GitError(
                            command="rev-list --count",
                            message=f"unexpected output: {stdout.strip()!r}",
                        )
                    )

    def tags(self) -> Result[tuple[str, ...], GitError]:
        result = self._run(["tag"])
        match result:
            case Err(e):
                return Err(self._error("tag", e))
            case Ok(stdout):
                return Ok(tuple(ln.strip() for ln in stdout.splitlines() if ln.strip()))

    def log(
        self, revision: str, fmt: str, *, max_count: int | None = None
    ) -> Result[str, GitError]:
        """Formatted log, e.g. ``log("HEAD", "* %s", max_count=1)`` for the latest subject."""
        args = ["log", f"--format={fmt}"]
        if max_count is not None:
            args.append(f"--max-count={max_count}")
        result = self._run([*args, revision])
        match result:
            case Err(e):
                return Err(self._error("log", e))
            case Ok(stdout):
                return Ok(stdout)

    def remote_slug(self, remote: str = "origin") -> Result[str, GitError]:
        """``owner/name`` of a remote."""
        result = self._run(["remote", "get-url", remote])
        match result:
            case Err(e):
                return Err(self._error("remote get-url", e))
            case Ok(stdout):
                slug = parse_remote_slug(stdout)
                if slug is None:
                    return Err(
                        GitError(
                            command="remote get-url",
                            message=f"cannot parse owner/name from remote url: {stdout.strip()}",
                        )
                    )
                return Ok(slug)

    def commit_paths(self, pathspecs: list[str], message: str) -> Result[bool, GitError]:
        """Stage pathspecs and commit them.

        Returns Ok(False) when nothing matched or nothing changed.
        """
        added = self._run(["add", "--", *pathspecs])
        if isinstance(added, Err):
            return Err(self._error("add", added.error))

        staged = self._run(["diff", "--cached", "--quiet"])
        if isinstance(staged, Ok):
            return Ok(False)

        committed = self._run(["commit", "-m", message])
        if isinstance(committed, Err):
            return Err(self._error("commit", committed.error))
        return Ok(True)

    def _error(self, command: str, e: ProcessError) -> GitError:
        return GitError(
            command=command,
            message=e.stderr.strip() or e.stdout.strip() or f"git {command} failed",
            returncode=e.returncode,
        )

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        return run_process(
            ["git", "-C", str(self.path), *args], cwd=self.path, timeout=_GIT_TIMEOUT_SECONDS
        )
