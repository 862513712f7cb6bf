"""Topological stage scheduler.

Stages whose needs have all succeeded are submitted to a thread pool; the
scheduler waits for any of them to finish, records the outcome, and looks
for newly ready stages. There is no shared state between stages apart from
the outputs handed to dependants.

Outcome rules:
- gate off                            -> skipped (not attempted, not failed)
- a need failed or was blocked        -> blocked
- a need was skipped or cancelled     -> skipped
- run cancelled before the stage      -> cancelled
- body returned Err or raised         -> failed
"""

from __future__ import annotations

import time
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Literal

from mpr.core.result import Err, Ok, Result
from mpr.output.console import ConsoleProtocol
from mpr.release.errors import StageError
from mpr.release.graph import Stage, StageGraph

StageStatus = Literal["succeeded", "failed", "skipped", "blocked", "cancelled"]


@dataclass(frozen=True, slots=True)
class StageOutcome:
    name: str
    status: StageStatus
    error: StageError | None = None
    reason: str | None = None
    duration: float = 0.0


@dataclass(frozen=True, slots=True)
class RunReport:
    pipeline: str
    outcomes: tuple[StageOutcome, ...]
    outputs: dict[str, object] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        """True when no stage failed or was blocked."""
        return all(o.status not in ("failed", "blocked") for o in self.outcomes)

    @property
    def cancelled(self) -> bool:
        return any(o.status == "cancelled" for o in self.outcomes)

    def outcome(self, name: str) -> StageOutcome:
        for o in self.outcomes:
            if o.name == name:
                return o
        raise KeyError(name)

    def status(self, name: str) -> StageStatus:
        return self.outcome(name).status

    def by_status(self, status: StageStatus) -> list[str]:
        return [o.name for o in self.outcomes if o.status == status]

    def first_error(self) -> StageError | None:
        for o in self.outcomes:
            if o.error is not None:
                return o.error
        return None


_Decision = Literal["wait", "run"] | StageOutcome


class Scheduler:
    def __init__(
        self,
        graph: StageGraph,
        *,
        console: ConsoleProtocol,
        max_workers: int = 4,
        is_cancelled: Callable[[], bool] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._graph = graph
        self._console = console
        self._max_workers = max(1, max_workers)
        self._is_cancelled = is_cancelled or (lambda: False)
        self._clock = clock

    def run(self) -> Result[RunReport, StageError]:
        valid = self._graph.validate()
        if isinstance(valid, Err):
            return valid
        order = self._graph.topological_order()
        if isinstance(order, Err):
            return order

        outcomes: dict[str, StageOutcome] = {}
        outputs: dict[str, object] = {}
        pending: list[str] = list(order.value)
        running: dict[Future[tuple[StageOutcome, object]], str] = {}

        with ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="mpr-stage"
        ) as pool:
            while pending or running:
                for name in list(pending):
                    stage = self._graph.get(name)
                    decision = self._decide(stage, outcomes)
                    if decision == "wait":
                        continue
                    pending.remove(name)
                    if decision == "run":
                        inputs = {n: outputs[n] for n in stage.needs if n in outputs}
                        self._console.print(f"> {stage.display}")
                        running[pool.submit(self._execute, stage, inputs)] = name
                    else:
                        outcomes[name] = decision
                        self._report(decision)

                if not running:
                    # Every remaining stage waits on something that will never finish.
                    for name in pending:
                        outcomes[name] = StageOutcome(name, "blocked", reason="unreachable")
                    break

                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    name = running.pop(future)
                    outcome, output = future.result()
                    outcomes[name] = outcome
                    if outcome.status == "succeeded":
                        outputs[name] = output
                    self._report(outcome)

        return Ok(
            RunReport(
                pipeline=self._graph.name,
                outcomes=tuple(outcomes[n] for n in order.value),
                outputs=outputs,
            )
        )

    def _decide(self, stage: Stage, outcomes: dict[str, StageOutcome]) -> _Decision:
        if any(n not in outcomes for n in stage.needs):
            return "wait"

        bad = [n for n in stage.needs if outcomes[n].status in ("failed", "blocked")]
        if bad:
            return StageOutcome(stage.name, "blocked", reason=f"needs {', '.join(bad)}")

        unmet = [n for n in stage.needs if outcomes[n].status in ("skipped", "cancelled")]
        if unmet:
            return StageOutcome(stage.name, "skipped", reason=f"needs {', '.join(unmet)}")

        if self._is_cancelled():
            return StageOutcome(stage.name, "cancelled", reason="superseded by a newer run")

        if stage.gate is not None and not stage.gate.enabled:
            return StageOutcome(stage.name, "skipped", reason=f"{stage.gate.label} is off")

        return "run"

    def _execute(self, stage: Stage, inputs: dict[str, object]) -> tuple[StageOutcome, object]:
        start = self._clock()
        try:
            result = stage.run(inputs)
        except Exception as e:  # fails this stage only
            result = Err(
                StageError(kind="unexpected", message=f"{type(e).__name__}: {e}")
            )
        elapsed = self._clock() - start

        if isinstance(result, Err):
            return (
                StageOutcome(stage.name, "failed", error=result.error, duration=elapsed),
                None,
            )
        return StageOutcome(stage.name, "succeeded", duration=elapsed), result.value

    def _report(self, outcome: StageOutcome) -> None:
        match outcome.status:
            case "succeeded":
                self._console.success(f"{outcome.name} ({outcome.duration:.1f}s)")
            case "failed":
                detail = outcome.error.pretty() if outcome.error else "failed"
                self._console.error(f"{outcome.name}: {detail}")
            case "blocked":
                self._console.warning(f"{outcome.name} blocked ({outcome.reason})")
            case "skipped" | "cancelled":
                self._console.info(f"{outcome.name} {outcome.status} ({outcome.reason})")
