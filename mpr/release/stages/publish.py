"""Per-platform publish stages.

Each one consumes artifacts from the store and hands them to one external
publish command. Store uploads are the only calls that retry.
"""

from __future__ import annotations

import shutil
from pathlib import Path

from mpr.core.result import Err, Ok, Result
from mpr.release.changelog import (
    BETA_CHANGELOG_ARTIFACT,
    BETA_CHANGELOG_FILE,
    GITHUB_CHANGELOG_ARTIFACT,
)
from mpr.release.context import StageContext
from mpr.release.errors import StageError
from mpr.release.model import BuildArtifact, DesktopTarget, ReleaseMetadata, ReleaseType
from mpr.release.retry import retry_bounded
from mpr.release.secrets import (
    inflate_android_secrets,
    inflate_firebase_creds,
    inflate_playstore_creds,
)
from mpr.release.stages.build import (
    ANDROID_ARTIFACT,
    IOS_ARTIFACT,
    WEB_ARTIFACT,
    android_apk_relpath,
    desktop_artifact_name,
)
from mpr.release.stages.common import copy_to, require_file, require_glob

AAB_ARTIFACT = "release-aabs"


def store_upload(ctx: StageContext, *lane: str) -> Result[int, StageError]:
    """Run a Fastlane store lane under the upload retry bound.

    Returns the number of attempts it took.
    """
    ready = ctx.session.ensure_fastlane()
    if isinstance(ready, Err):
        return ready

    limit = ctx.config.publish.upload_max_retries
    label = " ".join(lane)

    def on_retry(n: int, error: StageError) -> None:
        ctx.console.warning(f"fastlane {label}: attempt {n}/{limit} failed, retrying")

    attempted = retry_bounded(
        lambda: ctx.session.fastlane(*lane, kind="upload_failed"),
        attempts=limit,
        delay_seconds=ctx.config.publish.upload_retry_delay,
        on_retry=on_retry,
    )
    if isinstance(attempted.result, Err):
        e = attempted.result.error
        return Err(
            StageError(
                kind="upload_failed",
                message=f"{e.message} after {attempted.attempts} attempt(s)",
                hint=e.hint,
            )
        )
    return Ok(attempted.attempts)


def _beta_changelog(ctx: StageContext) -> Result[Path, StageError]:
    artifact = ctx.store.get(BETA_CHANGELOG_ARTIFACT)
    if isinstance(artifact, Err):
        return artifact
    return require_file(artifact.value, BETA_CHANGELOG_FILE)


def publish_android_on_firebase(
    ctx: StageContext, meta: ReleaseMetadata, *, module: str
) -> Result[None, StageError]:
    with ctx.checkout(module):
        return _publish_android_on_firebase(ctx, meta, module=module)


def _publish_android_on_firebase(
    ctx: StageContext, meta: ReleaseMetadata, *, module: str
) -> Result[None, StageError]:
    artifact = ctx.store.get(ANDROID_ARTIFACT)
    if isinstance(artifact, Err):
        return artifact
    relpath = android_apk_relpath(module, "prod")
    apk = require_file(artifact.value, relpath)
    if isinstance(apk, Err):
        return apk
    changelog = _beta_changelog(ctx)
    if isinstance(changelog, Err):
        return changelog

    # The lane reads both from the module's build outputs.
    outputs = ctx.module_dir(module) / "build" / "outputs"
    for src, dest in (
        (apk.value, outputs / "apk" / relpath),
        (changelog.value, outputs / BETA_CHANGELOG_FILE),
    ):
        copied = copy_to(src, dest)
        if isinstance(copied, Err):
            return copied

    creds = inflate_firebase_creds(ctx.module_dir(module), ctx.secrets)
    if isinstance(creds, Err):
        return creds

    deployed = ctx.session.fastlane(
        "android",
        "deploy_on_firebase",
        env={"VERSION_CODE": str(meta.version_code)},
        kind="upload_failed",
    )
    if isinstance(deployed, Err):
        return deployed
    return Ok(None)


def publish_android_on_playstore(
    ctx: StageContext,
    meta: ReleaseMetadata,
    *,
    module: str,
    release_type: ReleaseType,
) -> Result[BuildArtifact, StageError]:
    """Build a signed bundle with the upload key and push it to the internal track.

    Beta releases are then promoted from internal to beta.
    """
    with ctx.checkout(module):
        return _publish_android_on_playstore(ctx, meta, module=module, release_type=release_type)


def _publish_android_on_playstore(
    ctx: StageContext,
    meta: ReleaseMetadata,
    *,
    module: str,
    release_type: ReleaseType,
) -> Result[BuildArtifact, StageError]:
    module_dir = ctx.module_dir(module)
    keystore = ctx.secrets.upload_keystore

    inflated = inflate_android_secrets(
        project_root=ctx.root, module_dir=module_dir, keystore=keystore, secrets=ctx.secrets
    )
    if isinstance(inflated, Err):
        return inflated

    built = ctx.session.gradle(
        f":{module}:bundleRelease", env={**keystore.env(), **meta.build_env()}
    )
    if isinstance(built, Err):
        return built

    bundle_dir = module_dir / "build" / "outputs" / "bundle"
    aabs: list[tuple[Path, str]] = []
    if bundle_dir.is_dir():
        aabs = [
            (p, p.relative_to(bundle_dir).as_posix())
            for p in sorted(bundle_dir.rglob("*.aab"))
            if p.is_file()
        ]
    stored = ctx.store.put(AAB_ARTIFACT, aabs, platform="android", variant="release")
    if isinstance(stored, Err):
        return stored

    internal = store_upload(ctx, "deploy_internal")
    if isinstance(internal, Err):
        return internal

    if release_type == "beta":
        promoted = store_upload(ctx, "promote_to_beta")
        if isinstance(promoted, Err):
            return promoted

    return stored


def publish_ios_app_to_firebase(
    ctx: StageContext, *, ios_module: str, android_module: str
) -> Result[None, StageError]:
    # Writes the beta changelog into the Android module too.
    with ctx.checkout(android_module):
        return _publish_ios_app_to_firebase(
            ctx, ios_module=ios_module, android_module=android_module
        )


def _publish_ios_app_to_firebase(
    ctx: StageContext, *, ios_module: str, android_module: str
) -> Result[None, StageError]:
    artifact = ctx.store.get(IOS_ARTIFACT)
    if isinstance(artifact, Err):
        return artifact
    ipas = require_glob(artifact.value, "*.ipa")
    if isinstance(ipas, Err):
        return ipas
    changelog = _beta_changelog(ctx)
    if isinstance(changelog, Err):
        return changelog

    # The Fastlane setup reads the beta changelog from the Android module.
    android_outputs = ctx.module_dir(android_module) / "build" / "outputs"
    targets = [(ipa, ctx.module_dir(ios_module) / ipa.name) for ipa in ipas.value]
    targets.append((changelog.value, android_outputs / BETA_CHANGELOG_FILE))
    for src, dest in targets:
        copied = copy_to(src, dest)
        if isinstance(copied, Err):
            return copied

    deployed = ctx.session.fastlane("ios", "deploy_on_firebase", kind="upload_failed")
    if isinstance(deployed, Err):
        return deployed
    return Ok(None)


def publish_ios_app_to_app_center(ctx: StageContext) -> Result[None, StageError]:
    for name in (IOS_ARTIFACT, GITHUB_CHANGELOG_ARTIFACT):
        artifact = ctx.store.get(name)
        if isinstance(artifact, Err):
            return artifact
    ctx.console.warning("App Center publishing is not implemented; nothing was uploaded")
    return Ok(None)


def publish_desktop(
    ctx: StageContext, *, targets: tuple[DesktopTarget, ...]
) -> Result[None, StageError]:
    for target in targets:
        artifact = ctx.store.get(desktop_artifact_name(target))
        if isinstance(artifact, Err):
            return artifact
    ctx.console.warning("desktop store publishing is not implemented; nothing was uploaded")
    return Ok(None)


def publish_web(ctx: StageContext) -> Result[Path, StageError]:
    """Replace the pages directory with the current web bundle."""
    artifact = ctx.store.get(WEB_ARTIFACT)
    if isinstance(artifact, Err):
        return artifact

    pages = ctx.project.pages_dir(ctx.config)
    try:
        if pages.exists():
            shutil.rmtree(pages)
        pages.mkdir(parents=True)
    except OSError as e:
        return Err(StageError(kind="io_failed", message=f"failed to reset {pages}: {e}"))

    for src in artifact.value.files:
        copied = copy_to(src, pages / artifact.value.relpath(src))
        if isinstance(copied, Err):
            return copied

    ctx.console.success(f"web app deployed to {pages}")
    return Ok(pages)


def play_promote_production(ctx: StageContext, *, module: str) -> Result[int, StageError]:
    """Promote the current beta track release to production."""
    creds = inflate_playstore_creds(ctx.module_dir(module), ctx.secrets)
    if isinstance(creds, Err):
        return creds
    return store_upload(ctx, "android", "promote_to_production")
