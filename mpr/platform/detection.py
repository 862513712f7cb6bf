"""Host operating system detection.

Desktop packages can only be produced for the OS the build runs on, so the
desktop fan-out defaults to the host's target.
"""

from __future__ import annotations

import sys as _sys
from enum import Enum, auto
from functools import lru_cache

__all__ = ["Platform", "detect_platform", "host_desktop_target"]


class Platform(Enum):
    """Operating system platform."""

    LINUX = auto()
    MACOS = auto()
    WINDOWS = auto()
    UNKNOWN = auto()

    def __str__(self) -> str:
        return self.name.lower()

    @property
    def desktop_target(self) -> str | None:
        """Desktop matrix target name for this platform (CI runner naming)."""
        return {
            Platform.LINUX: "ubuntu",
            Platform.MACOS: "macos",
            Platform.WINDOWS: "windows",
        }.get(self)


@lru_cache(maxsize=1)
def detect_platform() -> Platform:
    if _sys.platform.startswith("linux"):
        return Platform.LINUX
    if _sys.platform == "darwin":
        return Platform.MACOS
    if _sys.platform in ("win32", "cygwin"):
        return Platform.WINDOWS
    return Platform.UNKNOWN


def host_desktop_target() -> str | None:
    return detect_platform().desktop_target
