"""Shared helpers for CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn

import typer

from mpr.core.errors import ErrorCode
from mpr.core.result import Err, Result
from mpr.output.console import Style
from mpr.output.errors import print_stage_error, report_exit_code, stage_error_exit_code
from mpr.output.report import print_run_summary
from mpr.release.errors import StageError
from mpr.release.scheduler import RunReport
from mpr.release.service import ReleaseService

if TYPE_CHECKING:
    from mpr.cli.context import CLIContext


def release_service(ctx: CLIContext) -> ReleaseService:
    return ReleaseService(project=ctx.project, config=ctx.config, console=ctx.console)


def unwrap_or_exit[T](result: Result[T, StageError], ctx: CLIContext) -> T:
    """Return the value, or print the error and exit with its code."""
    if isinstance(result, Err):
        print_stage_error(result.error, ctx.console)
        raise typer.Exit(code=stage_error_exit_code(result.error))
    return result.value


def finish_run(result: Result[RunReport, StageError], ctx: CLIContext) -> NoReturn:
    """Print the run summary and exit with the run's code."""
    report = unwrap_or_exit(result, ctx)
    print_run_summary(report, ctx.console)
    raise typer.Exit(code=report_exit_code(report))


def required_module(ctx: CLIContext, platform: str, value: str | None) -> str:
    if not value:
        ctx.console.error(f"missing module name: {platform}")
        ctx.console.print(
            f"hint: pass --{platform}-module or set [modules] {platform} in mpr.toml", Style.DIM
        )
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))
    return value
