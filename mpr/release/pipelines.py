"""Pipeline definitions.

Each function wires stage bodies into a ``StageGraph``. The graph is the
single source of truth for ordering: which stage needs which, and which
gate switches it off.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from mpr.core.result import Err, Ok, Result
from mpr.release.context import StageContext
from mpr.release.errors import StageError
from mpr.release.graph import Gate, Stage, StageBody, StageGraph, StageOutputs
from mpr.release.metadata import generate_release_info
from mpr.release.model import CheckInputs, DesktopTarget, ReleaseMetadata, RunInputs
from mpr.release.stages.aggregate import github_release
from mpr.release.stages.build import build_android, build_desktop, build_ios, build_web
from mpr.release.stages.checks import (
    CHECK_TASKS,
    build_debug_android,
    build_desktop_app,
    dependency_guard,
    run_check,
    setup,
)
from mpr.release.stages.common import METADATA_STAGE, require_metadata
from mpr.release.stages.publish import (
    play_promote_production,
    publish_android_on_firebase,
    publish_android_on_playstore,
    publish_desktop,
    publish_ios_app_to_app_center,
    publish_ios_app_to_firebase,
    publish_web,
)

RELEASE_PIPELINE = "release"
CHECK_PIPELINE = "check"
PROMOTE_PIPELINE = "promote"
PIPELINES = (RELEASE_PIPELINE, CHECK_PIPELINE, PROMOTE_PIPELINE)


def desktop_stage(target: DesktopTarget) -> str:
    return f"build_desktop[{target}]"


def check_stage(check: str) -> str:
    return f"checks[{check}]"


def desktop_app_stage(target: DesktopTarget) -> str:
    return f"build_desktop_app[{target}]"


def _with_metadata(body: Callable[[ReleaseMetadata], Result[object, StageError]]) -> StageBody:
    def run(outputs: StageOutputs) -> Result[object, StageError]:
        meta = require_metadata(outputs)
        if isinstance(meta, Err):
            return meta
        return body(meta.value)

    return run


def release_graph(ctx: StageContext, inputs: RunInputs) -> StageGraph:
    m = inputs.modules
    gate = inputs.gate
    targets = inputs.desktop_targets
    desktop_builds = tuple(desktop_stage(t) for t in targets)

    g = StageGraph(RELEASE_PIPELINE)
    g.add(
        Stage(
            METADATA_STAGE,
            lambda _: generate_release_info(
                ctx, target_branch=inputs.target_branch, store=ctx.store
            ),
            title="Generate Release Info",
        )
    )

    # Builds
    g.add(
        Stage(
            "build_android",
            _with_metadata(lambda meta: build_android(ctx, meta, module=m.android)),
            needs=(METADATA_STAGE,),
            title="Build Android Application",
        )
    )
    g.add(
        Stage(
            "build_ios",
            lambda _: build_ios(ctx, module=m.ios, enabled=gate.build_ios),
            title="Build iOS App",
        )
    )
    for target in targets:
        g.add(
            Stage(
                desktop_stage(target),
                lambda _, t=target: build_desktop(ctx, module=m.desktop, target=t),
                title=f"Build Desktop App ({target})",
            )
        )
    g.add(
        Stage(
            "build_web",
            lambda _: build_web(ctx, module=m.web),
            title="Build Web Application",
        )
    )

    # Publishing
    g.add(
        Stage(
            "publish_android_on_firebase",
            _with_metadata(lambda meta: publish_android_on_firebase(ctx, meta, module=m.android)),
            needs=("build_android", METADATA_STAGE),
            gate=Gate("publish_android_firebase", gate.publish_android_firebase),
            title="Deploy Android App On Firebase",
        )
    )
    g.add(
        Stage(
            "publish_android_on_playstore",
            _with_metadata(
                lambda meta: publish_android_on_playstore(
                    ctx, meta, module=m.android, release_type=inputs.release_type
                )
            ),
            needs=("build_android", METADATA_STAGE),
            gate=Gate("publish_android", gate.publish_android),
            title="Publish Android App On Play Store",
        )
    )
    g.add(
        Stage(
            "publish_ios_app_to_firebase",
            lambda _: publish_ios_app_to_firebase(
                ctx, ios_module=m.ios, android_module=m.android
            ),
            needs=("build_ios", METADATA_STAGE),
            gate=Gate("publish_ios", gate.publish_ios),
            title="Publish iOS App On Firebase",
        )
    )
    g.add(
        Stage(
            "publish_ios_app_to_app_center",
            lambda _: publish_ios_app_to_app_center(ctx),
            needs=("build_ios", METADATA_STAGE),
            gate=Gate("publish_ios", gate.publish_ios),
            title="Publish iOS App On App Center",
        )
    )
    g.add(
        Stage(
            "publish_desktop",
            lambda _: publish_desktop(ctx, targets=targets),
            needs=desktop_builds,
            gate=Gate("publish_desktop", gate.publish_desktop),
            title="Publish Desktop App",
        )
    )
    g.add(
        Stage(
            "publish_web",
            lambda _: publish_web(ctx),
            needs=("build_web",),
            gate=Gate("publish_web", gate.publish_web),
            title="Publish Web App",
        )
    )

    # Aggregation
    g.add(
        Stage(
            "github_release",
            _with_metadata(
                lambda meta: github_release(
                    ctx,
                    meta,
                    modules=m,
                    target_branch=inputs.target_branch,
                )
            ),
            needs=("build_android", *desktop_builds, "build_web", "build_ios", METADATA_STAGE),
            gate=Gate("release_type == beta", gate.is_beta),
            title="Create Github Release",
        )
    )
    return g


def check_graph(ctx: StageContext, inputs: CheckInputs) -> StageGraph:
    checks = tuple(check_stage(c) for c in CHECK_TASKS)

    g = StageGraph(CHECK_PIPELINE)
    g.add(Stage("setup", lambda _: setup(ctx), title="Setup"))
    for check in CHECK_TASKS:
        g.add(
            Stage(
                check_stage(check),
                lambda _, c=check: run_check(ctx, c),
                needs=("setup",),
                title=f"Run {check}",
            )
        )
    g.add(
        Stage(
            "dependency_guard",
            lambda _: dependency_guard(
                ctx,
                module=inputs.android_module,
                pull_request=inputs.pull_request,
                fork=inputs.fork,
            ),
            needs=("setup",),
            title="Check Dependency Guard",
        )
    )

    after_checks = (*checks, "dependency_guard")
    g.add(
        Stage(
            "build",
            lambda _: build_debug_android(ctx, module=inputs.android_module),
            needs=after_checks,
            title="Build APKs",
        )
    )
    for target in inputs.desktop_targets:
        g.add(
            Stage(
                desktop_app_stage(target),
                lambda _, t=target: build_desktop_app(ctx, module=inputs.desktop_module, target=t),
                needs=after_checks,
                title=f"Build Desktop App ({target})",
            )
        )
    return g


def promote_graph(ctx: StageContext, *, android_module: str) -> StageGraph:
    g = StageGraph(PROMOTE_PIPELINE)
    g.add(
        Stage(
            "play_promote_production",
            lambda _: play_promote_production(ctx, module=android_module),
            title="Play Publish Production",
        )
    )
    return g


@dataclass(frozen=True, slots=True)
class PlanRow:
    level: int
    name: str
    title: str
    needs: tuple[str, ...]
    gate: str | None
    enabled: bool


def plan(graph: StageGraph) -> Result[list[PlanRow], StageError]:
    """Stages grouped by depth with their gate state, for display."""
    levels = graph.levels()
    if isinstance(levels, Err):
        return levels
    rows: list[PlanRow] = []
    for depth, names in enumerate(levels.value):
        for name in names:
            stage = graph.get(name)
            rows.append(
                PlanRow(
                    level=depth,
                    name=name,
                    title=stage.display,
                    needs=stage.needs,
                    gate=stage.gate.label if stage.gate is not None else None,
                    enabled=stage.gate.enabled if stage.gate is not None else True,
                )
            )
    return Ok(rows)
