"""Run summaries and stage plans."""

from __future__ import annotations

from typing import TYPE_CHECKING

from mpr.output.console import Style

if TYPE_CHECKING:
    from mpr.output.console import ConsoleProtocol
    from mpr.release.model import ReleaseMetadata
    from mpr.release.pipelines import PlanRow
    from mpr.release.scheduler import RunReport

__all__ = ["print_metadata", "print_plan", "print_run_summary"]


def print_run_summary(report: RunReport, console: ConsoleProtocol) -> None:
    rows = [
        [
            o.name,
            o.status,
            f"{o.duration:.1f}s" if o.status in ("succeeded", "failed") else "-",
            o.error.message if o.error is not None else (o.reason or ""),
        ]
        for o in report.outcomes
    ]
    console.newline()
    console.table(f"{report.pipeline} summary", ["stage", "status", "time", "detail"], rows)

    if report.succeeded:
        console.success(f"{report.pipeline}: ok")
        return
    failed = report.by_status("failed")
    blocked = report.by_status("blocked")
    console.error(f"{report.pipeline}: {len(failed)} failed, {len(blocked)} blocked")


def print_plan(title: str, rows: list[PlanRow], console: ConsoleProtocol) -> None:
    table_rows = [
        [
            str(r.level),
            r.name,
            ", ".join(r.needs) or "-",
            "-" if r.gate is None else f"{r.gate} ({'on' if r.enabled else 'off'})",
        ]
        for r in rows
    ]
    console.table(title, ["level", "stage", "needs", "gate"], table_rows)
    skipped = [r.name for r in rows if not r.enabled]
    if skipped:
        console.print(f"gated off: {', '.join(skipped)}", Style.DIM)


def print_metadata(meta: ReleaseMetadata, console: ConsoleProtocol) -> None:
    console.print(f"version: {meta.version}")
    console.print(f"version code: {meta.version_code}")
    console.newline()
    console.header("beta changelog")
    console.print(meta.changelog_beta_text.strip() or "(empty)", Style.DIM)
    console.header("release notes")
    console.print(meta.changelog_text.strip() or "(empty)", Style.DIM)
