from __future__ import annotations

import os
import shutil
import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

from mpr.core.config import Config
from mpr.core.project import Project
from mpr.core.result import Err, Ok, Result
from mpr.git.repository import Repository
from mpr.output.console import ConsoleProtocol, Style
from mpr.platform.detection import host_desktop_target
from mpr.release.artifacts import ArtifactStore
from mpr.release.context import GitHistory, StageContext
from mpr.release.errors import StageError
from mpr.release.graph import StageGraph
from mpr.release.lock import ChannelLock, LockMode
from mpr.release.metadata import generate_release_info
from mpr.release.model import (
    DESKTOP_TARGETS,
    CheckInputs,
    DesktopTarget,
    ModuleNames,
    ReleaseMetadata,
    ReleaseType,
    RunInputs,
)
from mpr.release.pipelines import (
    PlanRow,
    check_graph,
    plan,
    promote_graph,
    release_graph,
)
from mpr.release.scheduler import RunReport, Scheduler
from mpr.release.secrets import Secrets
from mpr.release.tools import SubprocessToolRunner, ToolRunner, ToolSession

# One release pipeline in flight at a time, queued, never preempted.
RELEASE_CHANNEL = "pages"
PROMOTE_CHANNEL = "production"


def check_channel(ref: str) -> str:
    return f"build-{ref}"


def new_run_id() -> str:
    return f"{time.strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:6]}"


def parse_release_type(value: str) -> Result[ReleaseType, StageError]:
    match value:
        case "internal" | "beta":
            return Ok(value)
    return Err(
        StageError(
            kind="invalid_input",
            message=f"invalid release type: {value}",
            hint="Use 'internal' or 'beta'",
        )
    )


def _desktop_target(value: str) -> DesktopTarget | None:
    match value:
        case "ubuntu" | "macos" | "windows":
            return value
    return None


def resolve_desktop_targets(
    requested: Sequence[str], config: Config
) -> Result[tuple[DesktopTarget, ...], StageError]:
    """Explicit targets, else configured ones, else the host OS."""
    raw: Sequence[str] = requested or config.desktop.targets
    if not raw:
        host = host_desktop_target()
        if host is None:
            return Err(
                StageError(
                    kind="invalid_input",
                    message="cannot infer a desktop target for this OS",
                    hint="Pass --desktop-target or set [desktop] targets in mpr.toml",
                )
            )
        raw = [host]

    out: list[DesktopTarget] = []
    for value in raw:
        target = _desktop_target(value)
        if target is None:
            return Err(
                StageError(
                    kind="invalid_input",
                    message=f"unknown desktop target: {value}",
                    hint="Use ubuntu, macos or windows",
                )
            )
        if target not in out:
            out.append(target)
    return Ok(tuple(out))


def check_release_inputs(inputs: RunInputs) -> Result[None, StageError]:
    """A beta release aggregates installers for every desktop OS."""
    if not inputs.gate.is_beta:
        return Ok(None)
    missing = [t for t in DESKTOP_TARGETS if t not in inputs.desktop_targets]
    if missing:
        return Err(
            StageError(
                kind="invalid_input",
                message=f"beta release is missing desktop target(s): {', '.join(missing)}",
                hint="Pass --desktop-target for ubuntu, macos and windows",
            )
        )
    return Ok(None)


def resolve_modules(
    config: Config,
    *,
    android: str | None = None,
    ios: str | None = None,
    desktop: str | None = None,
    web: str | None = None,
) -> Result[ModuleNames, StageError]:
    """Module names from CLI options, falling back to ``[modules]``."""
    values = {
        "android": android or config.modules.android,
        "ios": ios or config.modules.ios,
        "desktop": desktop or config.modules.desktop,
        "web": web or config.modules.web,
    }
    missing = [k for k, v in values.items() if not v]
    if missing:
        return Err(
            StageError(
                kind="invalid_input",
                message=f"missing module name(s): {', '.join(missing)}",
                hint="Pass --<platform>-module or set them under [modules] in mpr.toml",
            )
        )
    return Ok(
        ModuleNames(
            android=values["android"] or "",
            ios=values["ios"] or "",
            desktop=values["desktop"] or "",
            web=values["web"] or "",
        )
    )


def purge_expired_runs(artifacts_dir: Path, *, default_retention_days: int) -> list[str]:
    """Drop expired artifacts of earlier runs and any run left empty."""
    if not artifacts_dir.is_dir():
        return []
    removed: list[str] = []
    for run_dir in sorted(p for p in artifacts_dir.iterdir() if p.is_dir()):
        store = ArtifactStore(run_dir, default_retention_days=default_retention_days)
        removed.extend(f"{run_dir.name}/{name}" for name in store.purge_expired())
        if not any(run_dir.iterdir()):
            shutil.rmtree(run_dir, ignore_errors=True)
    return removed


class ReleaseService:
    """Runs pipelines for one project checkout."""

    def __init__(
        self,
        *,
        project: Project,
        config: Config,
        console: ConsoleProtocol,
        runner: ToolRunner | None = None,
        history: GitHistory | None = None,
        environ: Mapping[str, str] | None = None,
        run_id: str | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self._project = project
        self._config = config
        self._console = console
        self._runner = runner or SubprocessToolRunner()
        self._history = history or Repository(project.root)
        self._secrets = Secrets.from_env(os.environ if environ is None else environ)
        self._run_id = run_id or new_run_id()
        self._sleep_fn = sleep_fn

    @property
    def run_id(self) -> str:
        return self._run_id

    def store_dir(self, pipeline: str) -> Path:
        return self._project.artifacts_dir(self._config) / f"{pipeline}-{self._run_id}"

    def context(self, pipeline: str) -> StageContext:
        return StageContext(
            project=self._project,
            config=self._config,
            session=ToolSession(
                runner=self._runner, tools=self._config.tools, cwd=self._project.root
            ),
            store=ArtifactStore(
                self.store_dir(pipeline),
                default_retention_days=self._config.artifacts.retention_days,
            ),
            secrets=self._secrets,
            history=self._history,
            console=self._console,
        )

    def release(
        self,
        inputs: RunInputs,
        *,
        wait: bool = True,
        max_workers: int | None = None,
    ) -> Result[RunReport, StageError]:
        valid = check_release_inputs(inputs)
        if isinstance(valid, Err):
            return valid
        graph = release_graph(self.context("release"), inputs)
        return self._run(graph, RELEASE_CHANNEL, "queue", wait=wait, max_workers=max_workers)

    def check(
        self, inputs: CheckInputs, *, max_workers: int | None = None
    ) -> Result[RunReport, StageError]:
        graph = check_graph(self.context("check"), inputs)
        return self._run(
            graph, check_channel(inputs.ref), "cancel", wait=False, max_workers=max_workers
        )

    def promote(self, *, android_module: str, wait: bool = True) -> Result[RunReport, StageError]:
        graph = promote_graph(self.context("promote"), android_module=android_module)
        return self._run(graph, PROMOTE_CHANNEL, "queue", wait=wait, max_workers=1)

    def info(self, *, target_branch: str) -> Result[ReleaseMetadata, StageError]:
        """Release metadata only; nothing is stored."""
        return generate_release_info(self.context("info"), target_branch=target_branch)

    def release_plan(self, inputs: RunInputs) -> Result[list[PlanRow], StageError]:
        valid = check_release_inputs(inputs)
        if isinstance(valid, Err):
            return valid
        return plan(release_graph(self.context("release"), inputs))

    def check_plan(self, inputs: CheckInputs) -> Result[list[PlanRow], StageError]:
        return plan(check_graph(self.context("check"), inputs))

    def promote_plan(self, *, android_module: str) -> Result[list[PlanRow], StageError]:
        return plan(promote_graph(self.context("promote"), android_module=android_module))

    def _run(
        self,
        graph: StageGraph,
        channel: str,
        mode: LockMode,
        *,
        wait: bool,
        max_workers: int | None,
    ) -> Result[RunReport, StageError]:
        purged = purge_expired_runs(
            self._project.artifacts_dir(self._config),
            default_retention_days=self._config.artifacts.retention_days,
        )
        if purged:
            self._console.print(f"purged {len(purged)} expired artifact(s)", Style.DIM)

        lock = ChannelLock(self._project.locks_dir, channel, self._run_id, mode)
        acquired = lock.acquire(
            wait=wait,
            timeout=self._config.run.lock_timeout,
            sleep_fn=self._sleep_fn,
            on_wait=lambda holder: self._console.info(
                f"waiting for run {holder} on channel '{channel}'"
            ),
        )
        if isinstance(acquired, Err):
            return acquired

        self._console.header(f"{graph.name} pipeline (run {self._run_id})")
        try:
            scheduler = Scheduler(
                graph,
                console=self._console,
                max_workers=max_workers or self._config.run.max_workers,
                is_cancelled=lock.is_superseded,
            )
            return scheduler.run()
        finally:
            lock.release()
