"""Per-platform build stages.

Each stage asks the build tool for binaries and stores what it produced as
one named artifact. Nothing here compiles or signs anything itself.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from mpr.core.result import Err, Ok, Result
from mpr.platform.detection import host_desktop_target
from mpr.release.context import StageContext
from mpr.release.errors import StageError
from mpr.release.model import BINARY_RETENTION_DAYS, BuildArtifact, DesktopTarget, ReleaseMetadata
from mpr.release.secrets import inflate_android_secrets
from mpr.release.stages.common import missing_outputs

ANDROID_ARTIFACT = "android-app"
IOS_ARTIFACT = "ios-app"
WEB_ARTIFACT = "web-app"

ANDROID_FLAVORS = ("demo", "prod")

# Installer kinds per desktop OS. Each lives in its own directory below the
# compose binaries output.
DESKTOP_KINDS: dict[DesktopTarget, tuple[str, ...]] = {
    "windows": ("exe", "msi"),
    "ubuntu": ("deb",),
    "macos": ("dmg",),
}


@dataclass(frozen=True, slots=True)
class DesktopPackaging:
    """Which packaging task to run and where it leaves installers."""

    task: str
    subdir: str


RELEASE_PACKAGING = DesktopPackaging("packageReleaseDistributionForCurrentOS", "main-release")
DEBUG_PACKAGING = DesktopPackaging("packageDistributionForCurrentOS", "main")


def desktop_artifact_name(target: DesktopTarget) -> str:
    return f"desktop-app-{target}"


def android_apk_relpath(module: str, flavor: str) -> str:
    return f"{flavor}/release/{module}-{flavor}-release.apk"


def build_android(
    ctx: StageContext, meta: ReleaseMetadata, *, module: str
) -> Result[BuildArtifact, StageError]:
    module_dir = ctx.module_dir(module)
    keystore = ctx.secrets.original_keystore

    inflated = inflate_android_secrets(
        project_root=ctx.root, module_dir=module_dir, keystore=keystore, secrets=ctx.secrets
    )
    if isinstance(inflated, Err):
        return inflated

    built = ctx.session.gradle(
        f":{module}:assembleRelease", env={**keystore.env(), **meta.build_env()}
    )
    if isinstance(built, Err):
        return built

    apk_root = module_dir / "build" / "outputs" / "apk"
    files = [
        (apk_root / android_apk_relpath(module, flavor), android_apk_relpath(module, flavor))
        for flavor in ANDROID_FLAVORS
    ]
    missing = missing_outputs([src for src, _ in files], what="release APKs")
    if missing is not None:
        return Err(missing)

    return ctx.store.put(
        ANDROID_ARTIFACT,
        files,
        platform="android",
        variant="release",
        retention_days=BINARY_RETENTION_DAYS,
    )


def build_ios(
    ctx: StageContext, *, module: str, enabled: bool
) -> Result[BuildArtifact | None, StageError]:
    """Build the iOS app when enabled; otherwise succeed without an artifact."""
    if not enabled:
        ctx.console.info("iOS build disabled; no artifact produced")
        return Ok(None)

    built = ctx.session.fastlane("ios", "build_ios")
    if isinstance(built, Err):
        return built

    ipa = ctx.module_dir(module) / f"{module}-app.ipa"
    missing = missing_outputs([ipa], what="iOS app")
    if missing is not None:
        return Err(missing)

    return ctx.store.put(
        IOS_ARTIFACT,
        [(ipa, ipa.name)],
        platform="ios",
        variant="release",
        retention_days=BINARY_RETENTION_DAYS,
    )


def desktop_files(binaries: Path, target: DesktopTarget) -> list[tuple[Path, str]]:
    """Installers for ``target`` below ``binaries``.

    Windows keeps its ``exe/`` and ``msi/`` directories; single-kind targets
    are stored flat.
    """
    kinds = DESKTOP_KINDS[target]
    nested = len(kinds) > 1
    files: list[tuple[Path, str]] = []
    for kind in kinds:
        for p in sorted((binaries / kind).glob(f"*.{kind}")):
            if p.is_file():
                files.append((p, f"{kind}/{p.name}" if nested else p.name))
    return files


def package_desktop(
    ctx: StageContext,
    *,
    module: str,
    target: DesktopTarget,
    packaging: DesktopPackaging,
    artifact_name: str,
    env: Mapping[str, str] | None = None,
    retention_days: int | None = None,
) -> Result[BuildArtifact, StageError]:
    built = ctx.session.gradle(packaging.task, env=env)
    if isinstance(built, Err):
        return built

    binaries = ctx.module_dir(module) / "build" / "compose" / "binaries" / packaging.subdir
    files = desktop_files(binaries, target)
    if not files:
        hint = str(binaries)
        if target != host_desktop_target():
            hint = f"{packaging.task} only packages for the host OS ({host_desktop_target()})"
        return Err(
            StageError(
                kind="missing_artifact",
                message=f"no {'/'.join(DESKTOP_KINDS[target])} installer for {target}",
                hint=hint,
            )
        )

    return ctx.store.put(
        artifact_name,
        files,
        platform="desktop",
        variant=target,
        retention_days=retention_days,
    )


def build_desktop(
    ctx: StageContext, *, module: str, target: DesktopTarget
) -> Result[BuildArtifact, StageError]:
    return package_desktop(
        ctx,
        module=module,
        target=target,
        packaging=RELEASE_PACKAGING,
        artifact_name=desktop_artifact_name(target),
        env=ctx.secrets.notarization.env(),
        retention_days=BINARY_RETENTION_DAYS,
    )


def build_web(ctx: StageContext, *, module: str) -> Result[BuildArtifact, StageError]:
    built = ctx.session.gradle("jsBrowserDistribution")
    if isinstance(built, Err):
        return built

    bundle = ctx.module_dir(module) / "build" / "dist" / "js" / "productionExecutable"
    return ctx.store.put_dir(WEB_ARTIFACT, bundle, platform="web", variant="production")
