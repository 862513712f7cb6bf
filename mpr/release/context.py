from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from mpr.core.config import Config
from mpr.core.project import Project
from mpr.core.result import Result
from mpr.git.repository import GitError
from mpr.output.console import ConsoleProtocol
from mpr.release.artifacts import ArtifactStore
from mpr.release.secrets import Secrets
from mpr.release.tools import ToolSession


class GitHistory(Protocol):
    """The part of a repository that release metadata is derived from."""

    def is_shallow(self) -> Result[bool, GitError]: ...

    def commit_count(self, ref: str = "HEAD") -> Result[int, GitError]: ...

    def tags(self) -> Result[tuple[str, ...], GitError]: ...

    def log(
        self, revision: str, fmt: str, *, max_count: int | None = None
    ) -> Result[str, GitError]: ...

    def remote_slug(self, remote: str = "origin") -> Result[str, GitError]: ...

    def commit_paths(self, pathspecs: list[str], message: str) -> Result[bool, GitError]: ...


class CheckoutLocks:
    """One mutex per module directory.

    Stages that run in parallel but write into the same module, or run a
    tool from it, hold its lock for their whole run.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def __call__(self, module: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(module, threading.Lock())


@dataclass(frozen=True, slots=True)
class StageContext:
    """Everything a stage may touch, passed explicitly.

    One instance per run; stages share it read-only and communicate only
    through ``store``. ``checkout`` serializes stages that share a module.
    """

    project: Project
    config: Config
    session: ToolSession
    store: ArtifactStore
    secrets: Secrets
    history: GitHistory
    console: ConsoleProtocol
    checkout_locks: CheckoutLocks = field(default_factory=CheckoutLocks)

    @property
    def root(self) -> Path:
        return self.project.root

    def module_dir(self, module: str) -> Path:
        return self.project.module_dir(module)

    def checkout(self, module: str) -> threading.Lock:
        return self.checkout_locks(module)
