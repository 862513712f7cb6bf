"""Release metadata generation.

``version`` is whatever the build tool writes into the version file.
``version_code`` is derived from history so that it grows with every commit
and every release tag:

    version_code = (commit_count + non_beta_tag_count) << 1

Tags containing ``beta`` are not counted. History must be complete: a
shallow checkout would under-count and reuse codes.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from mpr.core.result import Err, Ok, Result
from mpr.git.repository import GitError
from mpr.release.artifacts import ArtifactStore
from mpr.release.changelog import (
    BETA_CHANGELOG_ARTIFACT,
    BETA_CHANGELOG_FILE,
    BETA_LOG_FORMAT,
    BETA_LOG_REVISION,
    GITHUB_CHANGELOG_ARTIFACT,
    GITHUB_CHANGELOG_FILE,
    generate_github_notes,
)
from mpr.release.context import StageContext
from mpr.release.errors import StageError
from mpr.release.model import ReleaseMetadata


def compute_version_code(commit_count: int, tags: Iterable[str]) -> int:
    non_beta = sum(1 for t in tags if "beta" not in t)
    return (commit_count + non_beta) << 1


def read_version_file(path: Path) -> Result[str, StageError]:
    try:
        version = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return Err(
            StageError(
                kind="version_file_missing",
                message=f"version file not found: {path.name}",
                hint=str(path),
            )
        )
    except OSError as e:
        return Err(StageError(kind="io_failed", message=f"failed to read {path}: {e}"))
    if not version:
        return Err(
            StageError(
                kind="version_file_missing",
                message=f"version file is empty: {path.name}",
                hint=str(path),
            )
        )
    return Ok(version)


def _git_error(e: GitError) -> StageError:
    return StageError(kind="tool_failed", message=f"git {e.command} failed", hint=e.message)


def compute_version(ctx: StageContext) -> Result[tuple[str, int], StageError]:
    """Version string and code from the build tool and full history."""
    shallow = ctx.history.is_shallow()
    if isinstance(shallow, Err):
        return Err(_git_error(shallow.error))
    if shallow.value:
        return Err(
            StageError(
                kind="shallow_history",
                message="repository history is shallow; version code would be wrong",
                hint="Fetch full history: git fetch --unshallow --tags",
            )
        )

    task = ctx.session.gradle(ctx.config.project.version_task)
    if isinstance(task, Err):
        return task

    version = read_version_file(ctx.root / ctx.config.project.version_file)
    if isinstance(version, Err):
        return version

    count = ctx.history.commit_count()
    if isinstance(count, Err):
        return Err(_git_error(count.error))
    tags = ctx.history.tags()
    if isinstance(tags, Err):
        return Err(_git_error(tags.error))

    return Ok((version.value, compute_version_code(count.value, tags.value)))


def _github_notes(ctx: StageContext, *, version: str, target_branch: str) -> str:
    """Host-generated notes. A failure here leaves the notes empty."""
    slug = ctx.config.project.repository
    if slug is None:
        remote = ctx.history.remote_slug()
        if isinstance(remote, Err):
            ctx.console.warning(f"release notes skipped: {remote.error.message}")
            return ""
        slug = remote.value

    notes = generate_github_notes(
        ctx.session, repo_slug=slug, tag=version, target_branch=target_branch
    )
    if isinstance(notes, Err):
        ctx.console.warning(f"release notes skipped: {notes.error.pretty()}")
        return ""
    return notes.value


def _beta_notes(ctx: StageContext) -> str:
    """Latest commit subject. A failure here leaves the notes empty."""
    beta = ctx.history.log(BETA_LOG_REVISION, BETA_LOG_FORMAT, max_count=1)
    if isinstance(beta, Err):
        ctx.console.warning(f"beta changelog skipped: {beta.error.message}")
        return ""
    return beta.value


def generate_release_info(
    ctx: StageContext,
    *,
    target_branch: str,
    store: ArtifactStore | None = None,
) -> Result[ReleaseMetadata, StageError]:
    """Compute metadata and, when a store is given, write both changelog artifacts."""
    computed = compute_version(ctx)
    if isinstance(computed, Err):
        return computed
    version, version_code = computed.value

    github_notes = _github_notes(ctx, version=version, target_branch=target_branch)
    beta_text = _beta_notes(ctx)

    metadata = ReleaseMetadata(
        version=version,
        version_code=version_code,
        changelog_text=github_notes,
        changelog_beta_text=beta_text,
    )

    if store is not None:
        for name, filename, text in (
            (GITHUB_CHANGELOG_ARTIFACT, GITHUB_CHANGELOG_FILE, metadata.changelog_text),
            (BETA_CHANGELOG_ARTIFACT, BETA_CHANGELOG_FILE, metadata.changelog_beta_text),
        ):
            stored = store.put_text(name, filename, text)
            if isinstance(stored, Err):
                return stored

    return Ok(metadata)
