"""Platform abstraction layer."""

from .detection import Platform, detect_platform, host_desktop_target
from .process import ProcessError, merged_env, run

__all__ = [
    # detection
    "Platform",
    "detect_platform",
    "host_desktop_target",
    # process
    "ProcessError",
    "merged_env",
    "run",
]
