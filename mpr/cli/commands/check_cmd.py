"""Check command - pull-request checks and debug builds."""

from __future__ import annotations

import typer

from mpr.cli.commands._helpers import (
    finish_run,
    release_service,
    required_module,
    unwrap_or_exit,
)
from mpr.cli.commands.release_cmd import DesktopOS
from mpr.cli.context import build_context
from mpr.release.model import CheckInputs
from mpr.release.service import resolve_desktop_targets


def check(
    ref: str = typer.Option("HEAD", "--ref", help="Ref being checked (names the run channel)"),
    android_module: str | None = typer.Option(
        None, "--android-module", help="Android module name", show_default=False
    ),
    desktop_module: str | None = typer.Option(
        None, "--desktop-module", help="Desktop module name", show_default=False
    ),
    desktop_target: list[DesktopOS] = typer.Option(
        [], "--desktop-target", help="Desktop OS to package (repeatable; default: host OS)"
    ),
    pull_request: bool = typer.Option(
        False, "--pull-request", help="Regenerate dependency baselines on failure"
    ),
    fork: bool = typer.Option(
        False, "--fork", help="Changes come from a fork; never regenerate baselines"
    ),
    max_workers: int | None = typer.Option(
        None, "--max-workers", min=1, help="Parallel stages", show_default=False
    ),
) -> None:
    """Run static checks, dependency guard and debug builds.

    A newer check of the same ref supersedes this one.
    """
    ctx = build_context()

    inputs = CheckInputs(
        android_module=required_module(
            ctx, "android", android_module or ctx.config.modules.android
        ),
        desktop_module=required_module(
            ctx, "desktop", desktop_module or ctx.config.modules.desktop
        ),
        ref=ref,
        pull_request=pull_request,
        fork=fork,
        desktop_targets=unwrap_or_exit(
            resolve_desktop_targets([t.value for t in desktop_target], ctx.config), ctx
        ),
    )
    finish_run(release_service(ctx).check(inputs, max_workers=max_workers), ctx)
