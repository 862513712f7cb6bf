"""Pull-request check stages: static checks, dependency guard, debug builds."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from mpr.core.result import Err, Ok, Result
from mpr.release.context import StageContext
from mpr.release.errors import StageError
from mpr.release.model import BuildArtifact, DesktopTarget
from mpr.release.stages.build import DEBUG_PACKAGING, package_desktop

CheckName = Literal["build_logic", "spotless", "detekt"]

CHECK_TASKS: dict[CheckName, tuple[str, ...]] = {
    "build_logic": ("check", "-p", "build-logic"),
    "spotless": ("spotlessCheck", "--no-configuration-cache", "--no-daemon"),
    "detekt": ("detekt",),
}

DETEKT_ARTIFACT = "detekt-reports"
DETEKT_REPORT_GLOB = "**/build/reports/detekt/detekt.md"
DEBUG_APKS_ARTIFACT = "android-apks"
DEBUG_APK_GLOB = "**/build/outputs/apk/**/*.apk"

DEPENDENCY_BASELINES = ":(glob)**/dependencies/*.txt"
BASELINE_COMMIT_MESSAGE = "Updates baselines for Dependency Guard"

CHECK_DESKTOP_ARTIFACTS: dict[DesktopTarget, str] = {
    "windows": "Windows-Apps",
    "ubuntu": "Linux-App",
    "macos": "MacOS-App",
}


def _collect(root: Path, pattern: str) -> list[tuple[Path, str]]:
    return [
        (p, p.relative_to(root).as_posix())
        for p in sorted(root.glob(pattern))
        if p.is_file() and ".mpr" not in p.relative_to(root).parts
    ]


def setup(ctx: StageContext) -> Result[None, StageError]:
    """Make sure the build tool starts; later stages reuse its caches."""
    started = ctx.session.gradle("--version")
    if isinstance(started, Err):
        return started
    return Ok(None)


def run_check(ctx: StageContext, check: CheckName) -> Result[BuildArtifact | None, StageError]:
    ran = ctx.session.gradle(*CHECK_TASKS[check])
    if isinstance(ran, Err):
        return ran
    if check != "detekt":
        return Ok(None)

    reports = _collect(ctx.root, DETEKT_REPORT_GLOB)
    if not reports:
        ctx.console.warning("detekt passed but wrote no markdown report")
        return Ok(None)
    return ctx.store.put(DETEKT_ARTIFACT, reports, variant="detekt")


def dependency_guard(
    ctx: StageContext,
    *,
    module: str,
    pull_request: bool,
    fork: bool,
) -> Result[bool, StageError]:
    """Verify dependency baselines.

    A pull request from the same repository gets regenerated baselines
    committed locally. Returns True when new baselines were committed.
    """
    verified = ctx.session.gradle(f":{module}:dependencyGuard")
    if isinstance(verified, Ok):
        return Ok(False)

    if fork or not pull_request:
        return Err(
            StageError(
                kind="tool_failed",
                message="Dependency Guard failed",
                hint="Update baselines with: ./gradlew dependencyGuardBaseline",
            )
        )

    regenerated = ctx.session.gradle(f":{module}:dependencyGuardBaseline")
    if isinstance(regenerated, Err):
        return regenerated

    committed = ctx.history.commit_paths([DEPENDENCY_BASELINES], BASELINE_COMMIT_MESSAGE)
    if isinstance(committed, Err):
        e = committed.error
        return Err(
            StageError(kind="tool_failed", message=f"git {e.command} failed", hint=e.message)
        )
    if committed.value:
        ctx.console.success("dependency baselines regenerated and committed")
    return Ok(committed.value)


def build_debug_android(ctx: StageContext, *, module: str) -> Result[BuildArtifact, StageError]:
    built = ctx.session.gradle(f":{module}:assembleDemoDebug")
    if isinstance(built, Err):
        return built

    apks = _collect(ctx.root, DEBUG_APK_GLOB)
    return ctx.store.put(DEBUG_APKS_ARTIFACT, apks, platform="android", variant="demoDebug")


def build_desktop_app(
    ctx: StageContext, *, module: str, target: DesktopTarget
) -> Result[BuildArtifact, StageError]:
    return package_desktop(
        ctx,
        module=module,
        target=target,
        packaging=DEBUG_PACKAGING,
        artifact_name=CHECK_DESKTOP_ARTIFACTS[target],
    )
