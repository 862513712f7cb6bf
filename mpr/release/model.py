from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Literal, get_args


ReleaseType = Literal["internal", "beta"]
ArtifactPlatform = Literal["android", "ios", "desktop", "web"]
DesktopTarget = Literal["ubuntu", "macos", "windows"]

RELEASE_TYPES: tuple[str, ...] = get_args(ReleaseType)
DESKTOP_TARGETS: tuple[str, ...] = get_args(DesktopTarget)

# Binaries are only needed until the publish/aggregate stages of the same run.
BINARY_RETENTION_DAYS = 1


@dataclass(frozen=True, slots=True)
class ReleaseMetadata:
    """Version information shared by every downstream stage of one run."""

    version: str
    version_code: int
    changelog_text: str
    changelog_beta_text: str

    def build_env(self) -> dict[str, str]:
        """Environment the build tool reads to stamp binaries."""
        return {"VERSION": self.version, "VERSION_CODE": str(self.version_code)}


@dataclass(frozen=True, slots=True)
class BuildArtifact:
    """A named, write-once output stored in the artifact store.

    ``files`` are absolute paths inside the store; ``relpath`` gives the
    layout below ``root`` that consumers rely on (e.g. ``prod/release/x.apk``).
    """

    name: str
    platform: ArtifactPlatform | None
    variant: str
    root: Path
    files: tuple[Path, ...]
    retention_days: int
    created_at: datetime

    def relpath(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def file(self, relpath: str) -> Path | None:
        for f in self.files:
            if self.relpath(f) == relpath:
                return f
        return None

    def glob(self, pattern: str) -> tuple[Path, ...]:
        """Files whose store-relative path matches a glob pattern."""
        return tuple(f for f in self.files if fnmatchcase(self.relpath(f), pattern))


@dataclass(frozen=True, slots=True)
class PublishGate:
    """Invocation-time switches. Read-only for the whole run."""

    publish_android: bool = False
    publish_android_firebase: bool = True
    build_ios: bool = False
    publish_ios: bool = False
    publish_desktop: bool = False
    publish_web: bool = True
    release_type: ReleaseType = "internal"

    @property
    def is_beta(self) -> bool:
        return self.release_type == "beta"


@dataclass(frozen=True, slots=True)
class ModuleNames:
    android: str
    ios: str
    desktop: str
    web: str


@dataclass(frozen=True, slots=True)
class RunInputs:
    modules: ModuleNames
    gate: PublishGate = field(default_factory=PublishGate)
    target_branch: str = "dev"
    desktop_targets: tuple[DesktopTarget, ...] = ()

    @property
    def release_type(self) -> ReleaseType:
        return self.gate.release_type


@dataclass(frozen=True, slots=True)
class CheckInputs:
    """Inputs of the pull-request check pipeline."""

    android_module: str
    desktop_module: str
    ref: str = "HEAD"
    pull_request: bool = False
    fork: bool = False
    desktop_targets: tuple[DesktopTarget, ...] = ()


@dataclass(frozen=True, slots=True)
class ReleaseRecord:
    """An immutable release on the hosting service, keyed by tag."""

    tag: str
    title: str
    body: str
    files: tuple[Path, ...]
    target: str
    prerelease: bool = True
    draft: bool = False
