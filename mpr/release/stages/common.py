"""Helpers shared by stage bodies."""

from __future__ import annotations

import shutil
from pathlib import Path

from mpr.core.result import Err, Ok, Result
from mpr.release.errors import StageError
from mpr.release.graph import StageOutputs
from mpr.release.model import BuildArtifact, ReleaseMetadata

METADATA_STAGE = "generate_release_info"


def require_metadata(outputs: StageOutputs) -> Result[ReleaseMetadata, StageError]:
    meta = outputs.get(METADATA_STAGE)
    if not isinstance(meta, ReleaseMetadata):
        return Err(
            StageError(
                kind="missing_metadata",
                message="release metadata is not available",
                hint=f"{METADATA_STAGE} must succeed first",
            )
        )
    return Ok(meta)


def require_file(artifact: BuildArtifact, relpath: str) -> Result[Path, StageError]:
    path = artifact.file(relpath)
    if path is None:
        return Err(
            StageError(
                kind="missing_artifact",
                message=f"{artifact.name} has no {relpath}",
            )
        )
    return Ok(path)


def require_glob(artifact: BuildArtifact, pattern: str) -> Result[tuple[Path, ...], StageError]:
    matched = artifact.glob(pattern)
    if not matched:
        return Err(
            StageError(
                kind="missing_artifact",
                message=f"{artifact.name} has no file matching {pattern}",
            )
        )
    return Ok(matched)


def missing_outputs(paths: list[Path], *, what: str, hint: str | None = None) -> StageError | None:
    missing = [p for p in paths if not p.is_file()]
    if not missing:
        return None
    return StageError(
        kind="missing_artifact",
        message=f"{what} not produced: {', '.join(p.name for p in missing)}",
        hint=hint or str(missing[0].parent),
    )


def copy_to(src: Path, dest: Path) -> Result[Path, StageError]:
    """Copy ``src`` to ``dest`` (a file path), creating parent directories."""
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dest)
    except OSError as e:
        return Err(StageError(kind="io_failed", message=f"failed to copy {src.name}: {e}"))
    return Ok(dest)
