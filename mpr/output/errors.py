"""Error presentation utilities.

Centralized error formatting and exit code mapping for consistent UX.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from mpr.core.errors import ErrorCode
from mpr.output.console import Style
from mpr.release.errors import StageError

if TYPE_CHECKING:
    from mpr.output.console import ConsoleProtocol
    from mpr.release.scheduler import RunReport

__all__ = ["print_stage_error", "report_exit_code", "stage_error_exit_code"]


def print_stage_error(error: StageError, console: ConsoleProtocol) -> None:
    console.error(error.message)
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)


def stage_error_exit_code(error: StageError) -> int:
    match error.kind:
        case "invalid_input" | "graph_invalid":
            return int(ErrorCode.USER_ERROR)
        case (
            "shallow_history"
            | "version_file_missing"
            | "secret_missing"
            | "secret_invalid"
            | "lock_busy"
        ):
            return int(ErrorCode.ENV_ERROR)
        case "upload_failed":
            return int(ErrorCode.NETWORK_ERROR)
        case "missing_artifact" | "artifact_exists" | "io_failed":
            return int(ErrorCode.IO_ERROR)
        case "tool_failed" | "missing_metadata" | "cancelled" | "unexpected":
            return int(ErrorCode.BUILD_ERROR)
    return int(ErrorCode.BUILD_ERROR)


def report_exit_code(report: RunReport) -> int:
    """OK when nothing failed or was blocked; otherwise the first failure's class."""
    if report.succeeded:
        return int(ErrorCode.OK)
    error = report.first_error()
    if error is None:
        return int(ErrorCode.BUILD_ERROR)
    return stage_error_exit_code(error)
