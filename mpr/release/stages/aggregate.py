"""Release aggregation.

Collects the installable outputs of every build into one pre-release on the
hosting service, keyed by the version. Any missing piece fails the stage.
"""

from __future__ import annotations

from pathlib import Path
from zipfile import ZIP_DEFLATED, ZipFile

from mpr.core.result import Err, Ok, Result
from mpr.release.changelog import GITHUB_CHANGELOG_ARTIFACT, GITHUB_CHANGELOG_FILE
from mpr.release.context import StageContext
from mpr.release.errors import StageError
from mpr.release.model import DesktopTarget, ModuleNames, ReleaseMetadata, ReleaseRecord
from mpr.release.stages.build import (
    ANDROID_ARTIFACT,
    ANDROID_FLAVORS,
    WEB_ARTIFACT,
    android_apk_relpath,
    desktop_artifact_name,
)
from mpr.release.stages.common import require_file, require_glob
from mpr.release.timeouts import GH_UPLOAD_TIMEOUT_SECONDS

# What each desktop artifact contributes to the release.
DESKTOP_RELEASE_FILES: dict[DesktopTarget, tuple[str, ...]] = {
    "windows": ("exe/*.exe", "msi/*.msi"),
    "macos": ("*.dmg",),
    "ubuntu": ("*.deb",),
}


def zip_bundle(zip_path: Path, *, files: list[tuple[Path, str]]) -> Result[Path, StageError]:
    try:
        zip_path.parent.mkdir(parents=True, exist_ok=True)
        zip_path.unlink(missing_ok=True)
        with ZipFile(zip_path, "w", compression=ZIP_DEFLATED, strict_timestamps=False) as zf:
            for src, arc in files:
                zf.write(src, arcname=arc)
    except OSError as e:
        return Err(StageError(kind="io_failed", message=f"failed to write {zip_path.name}: {e}"))
    return Ok(zip_path)


def collect_release_files(
    ctx: StageContext, *, modules: ModuleNames
) -> Result[list[Path], StageError]:
    """Every file attached to the release, in a stable order.

    Every desktop OS is required, whichever targets this run built.
    """
    files: list[Path] = []

    android = ctx.store.get(ANDROID_ARTIFACT)
    if isinstance(android, Err):
        return android
    for flavor in reversed(ANDROID_FLAVORS):
        apk = require_file(android.value, android_apk_relpath(modules.android, flavor))
        if isinstance(apk, Err):
            return apk
        files.append(apk.value)

    for target, patterns in DESKTOP_RELEASE_FILES.items():
        artifact = ctx.store.get(desktop_artifact_name(target))
        if isinstance(artifact, Err):
            return artifact
        for pattern in patterns:
            matched = require_glob(artifact.value, pattern)
            if isinstance(matched, Err):
                return matched
            files.extend(matched.value)

    web = ctx.store.get(WEB_ARTIFACT)
    if isinstance(web, Err):
        return web
    zipped = zip_bundle(
        ctx.project.work_dir / "release" / f"{modules.web}.zip",
        files=[(f, web.value.relpath(f)) for f in web.value.files],
    )
    if isinstance(zipped, Err):
        return zipped
    files.append(zipped.value)

    return Ok(files)


def github_release(
    ctx: StageContext,
    meta: ReleaseMetadata,
    *,
    modules: ModuleNames,
    target_branch: str,
) -> Result[ReleaseRecord, StageError]:
    files = collect_release_files(ctx, modules=modules)
    if isinstance(files, Err):
        return files

    changelog = ctx.store.get(GITHUB_CHANGELOG_ARTIFACT)
    if isinstance(changelog, Err):
        return changelog
    notes = require_file(changelog.value, GITHUB_CHANGELOG_FILE)
    if isinstance(notes, Err):
        return notes
    try:
        body = notes.value.read_text(encoding="utf-8")
    except OSError as e:
        return Err(StageError(kind="io_failed", message=f"failed to read release notes: {e}"))

    record = ReleaseRecord(
        tag=meta.version,
        title=meta.version,
        body=body,
        files=tuple(files.value),
        target=target_branch,
    )
    created = ctx.session.gh(
        "release",
        "create",
        record.tag,
        "--prerelease",
        "--title",
        record.title,
        "--notes-file",
        str(notes.value),
        "--target",
        record.target,
        *[str(f) for f in record.files],
        timeout=GH_UPLOAD_TIMEOUT_SECONDS,
    )
    if isinstance(created, Err):
        return created

    ctx.console.success(f"pre-release {record.tag} created with {len(record.files)} file(s)")
    return Ok(record)
