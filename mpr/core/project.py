"""Project detection and paths.

The project is the root of the application repository being released: the
directory holding the build wrapper and the per-platform modules. It is
identified by an ``mpr.toml`` file or, failing that, a ``.git`` entry.

All orchestrator state (artifact store, channel locks, pages output) lives
under ``<root>/.mpr/`` so a run never writes outside the checkout.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from .config import CONFIG_FILENAME, Config
from .result import Err, Ok, Result

__all__ = [
    "PROJECT_ENV_VAR",
    "Project",
    "ProjectError",
    "ProjectSource",
    "detect_project",
    "find_project_upward",
    "is_project_root",
]

PROJECT_ENV_VAR = "MPR_PROJECT_ROOT"

ProjectSource = Literal["env", "cwd"]


@dataclass(frozen=True)
class ProjectError:
    """Error when the project root cannot be detected."""

    message: str
    searched_from: Path | None = None


@dataclass(frozen=True, slots=True)
class Project:
    """A detected application repository."""

    root: Path

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILENAME

    @property
    def state_dir(self) -> Path:
        """Path to orchestrator state (.mpr/)."""
        return self.root / ".mpr"

    @property
    def locks_dir(self) -> Path:
        return self.state_dir / "locks"

    @property
    def work_dir(self) -> Path:
        """Scratch space for stages (archives, staging copies)."""
        return self.state_dir / "work"

    def artifacts_dir(self, config: Config) -> Path:
        return self._resolve(config.artifacts.dir)

    def pages_dir(self, config: Config) -> Path:
        return self._resolve(config.publish.pages_dir)

    def module_dir(self, module: str) -> Path:
        return self.root / module

    def _resolve(self, value: str) -> Path:
        p = Path(value).expanduser()
        return p if p.is_absolute() else self.root / p

    def __str__(self) -> str:
        return str(self.root)


def is_project_root(path: Path) -> bool:
    """A project root has mpr.toml or is the top of a git checkout."""
    return (path / CONFIG_FILENAME).is_file() or (path / ".git").exists()


def find_project_upward(start: Path) -> Path | None:
    """Search upward from start for a project root.

    ``mpr.toml`` wins over ``.git`` so that a config placed in a monorepo
    subdirectory is picked up before the enclosing checkout.
    """
    for parent in (start, *start.parents):
        if (parent / CONFIG_FILENAME).is_file():
            return parent
    for parent in (start, *start.parents):
        if (parent / ".git").exists():
            return parent
    return None


def detect_project(
    *,
    start_dir: Path | None = None,
    env_var: str = PROJECT_ENV_VAR,
) -> Result[Project, ProjectError]:
    """Detect the project root directory.

    Detection order:
    1. MPR_PROJECT_ROOT environment variable (if set and valid)
    2. Search upward from start_dir (or cwd)
    """
    env_value = os.environ.get(env_var)
    if env_value:
        env_path = Path(env_value).expanduser().resolve()
        if env_path.is_dir() and is_project_root(env_path):
            return Ok(Project(root=env_path))
        return Err(
            ProjectError(
                message=f"${env_var} is set to '{env_value}' but it is not a project root",
                searched_from=env_path if env_path.is_dir() else None,
            )
        )

    search_start = (start_dir or Path.cwd()).resolve()
    found = find_project_upward(search_start)
    if found is None:
        return Err(
            ProjectError(
                message=f"Could not find project ({CONFIG_FILENAME} or .git not found)",
                searched_from=search_start,
            )
        )
    return Ok(Project(root=found))
