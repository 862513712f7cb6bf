"""Git operations used to derive release metadata."""

from mpr.git.repository import GitError, Repository, parse_remote_slug

__all__ = [
    "GitError",
    "Repository",
    "parse_remote_slug",
]
