"""Release commands: run, inspect and promote releases."""

from __future__ import annotations

from enum import StrEnum

import typer

from mpr.cli.commands._helpers import (
    finish_run,
    release_service,
    required_module,
    unwrap_or_exit,
)
from mpr.cli.context import build_context
from mpr.output.report import print_metadata, print_plan
from mpr.release.model import CheckInputs, PublishGate, RunInputs
from mpr.release.service import parse_release_type, resolve_desktop_targets, resolve_modules


class ReleaseKind(StrEnum):
    internal = "internal"
    beta = "beta"


class DesktopOS(StrEnum):
    ubuntu = "ubuntu"
    macos = "macos"
    windows = "windows"


class Pipeline(StrEnum):
    release = "release"
    check = "check"
    promote = "promote"


def release(
    release_type: ReleaseKind = typer.Option(
        ReleaseKind.internal, "--release-type", help="Release type"
    ),
    target_branch: str = typer.Option("dev", "--target-branch", help="Target branch for release"),
    android_module: str | None = typer.Option(
        None, "--android-module", help="Android module name", show_default=False
    ),
    ios_module: str | None = typer.Option(
        None, "--ios-module", help="iOS module name", show_default=False
    ),
    desktop_module: str | None = typer.Option(
        None, "--desktop-module", help="Desktop module name", show_default=False
    ),
    web_module: str | None = typer.Option(
        None, "--web-module", help="Web module name", show_default=False
    ),
    desktop_target: list[DesktopOS] = typer.Option(
        [], "--desktop-target", help="Desktop OS to package (repeatable; default: host OS)"
    ),
    publish_android: bool = typer.Option(
        False, "--publish-android/--no-publish-android", help="Publish Android app on Play Store"
    ),
    publish_android_firebase: bool = typer.Option(
        True,
        "--publish-android-firebase/--no-publish-android-firebase",
        help="Distribute Android app on Firebase",
    ),
    build_ios: bool = typer.Option(False, "--build-ios/--no-build-ios", help="Build iOS app"),
    publish_ios: bool = typer.Option(
        False, "--publish-ios/--no-publish-ios", help="Publish iOS app"
    ),
    publish_desktop: bool = typer.Option(
        False, "--publish-desktop/--no-publish-desktop", help="Publish desktop apps"
    ),
    publish_web: bool = typer.Option(
        True, "--publish-web/--no-publish-web", help="Publish web app"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the stage plan and exit"),
    no_wait: bool = typer.Option(
        False, "--no-wait", help="Fail instead of queueing behind a running release"
    ),
    max_workers: int | None = typer.Option(
        None, "--max-workers", min=1, help="Parallel stages", show_default=False
    ),
) -> None:
    """Build every platform, publish what is enabled, and aggregate beta releases."""
    ctx = build_context()

    inputs = RunInputs(
        modules=unwrap_or_exit(
            resolve_modules(
                ctx.config,
                android=android_module,
                ios=ios_module,
                desktop=desktop_module,
                web=web_module,
            ),
            ctx,
        ),
        gate=PublishGate(
            publish_android=publish_android,
            publish_android_firebase=publish_android_firebase,
            build_ios=build_ios,
            publish_ios=publish_ios,
            publish_desktop=publish_desktop,
            publish_web=publish_web,
            release_type=unwrap_or_exit(parse_release_type(release_type.value), ctx),
        ),
        target_branch=target_branch,
        desktop_targets=unwrap_or_exit(
            resolve_desktop_targets([t.value for t in desktop_target], ctx.config), ctx
        ),
    )

    service = release_service(ctx)
    if dry_run:
        rows = unwrap_or_exit(service.release_plan(inputs), ctx)
        print_plan("release plan", rows, ctx.console)
        return

    finish_run(service.release(inputs, wait=not no_wait, max_workers=max_workers), ctx)


def promote(
    android_module: str | None = typer.Option(
        None, "--android-module", help="Android module name", show_default=False
    ),
    no_wait: bool = typer.Option(
        False, "--no-wait", help="Fail instead of queueing behind a running promotion"
    ),
) -> None:
    """Promote the Play Store beta release to production."""
    ctx = build_context()
    module = required_module(ctx, "android", android_module or ctx.config.modules.android)
    finish_run(release_service(ctx).promote(android_module=module, wait=not no_wait), ctx)


def info(
    target_branch: str = typer.Option("dev", "--target-branch", help="Target branch for notes"),
) -> None:
    """Compute and print release metadata without building anything."""
    ctx = build_context()
    meta = unwrap_or_exit(release_service(ctx).info(target_branch=target_branch), ctx)
    print_metadata(meta, ctx.console)


def graph(
    pipeline: Pipeline = typer.Argument(Pipeline.release, help="Pipeline to show"),
) -> None:
    """Print a pipeline's stages in dependency order."""
    ctx = build_context()
    service = release_service(ctx)

    # Placeholders are enough to show the shape; nothing runs.
    android = ctx.config.modules.android or "<android>"
    match pipeline:
        case Pipeline.release:
            targets = unwrap_or_exit(resolve_desktop_targets([], ctx.config), ctx)
            modules = unwrap_or_exit(
                resolve_modules(
                    ctx.config,
                    android=android,
                    ios=ctx.config.modules.ios or "<ios>",
                    desktop=ctx.config.modules.desktop or "<desktop>",
                    web=ctx.config.modules.web or "<web>",
                ),
                ctx,
            )
            rows = service.release_plan(RunInputs(modules=modules, desktop_targets=targets))
        case Pipeline.check:
            targets = unwrap_or_exit(resolve_desktop_targets([], ctx.config), ctx)
            rows = service.check_plan(
                CheckInputs(
                    android_module=android,
                    desktop_module=ctx.config.modules.desktop or "<desktop>",
                    desktop_targets=targets,
                )
            )
        case Pipeline.promote:
            rows = service.promote_plan(android_module=android)

    print_plan(f"{pipeline.value} pipeline", unwrap_or_exit(rows, ctx), ctx.console)
