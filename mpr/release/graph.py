"""Stage dependency graph.

A pipeline is a DAG of named stages. Each stage declares the stages it
needs; the scheduler starts it once all of them succeeded. The graph is
validated (unknown names, cycles) before anything runs.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass

from mpr.core.result import Err, Ok, Result
from mpr.release.errors import StageError

StageOutputs = Mapping[str, object]
StageBody = Callable[[StageOutputs], Result[object, StageError]]


@dataclass(frozen=True, slots=True)
class Gate:
    """A boolean switch that turns a stage into a no-op when off."""

    label: str
    enabled: bool


@dataclass(frozen=True, slots=True)
class Stage:
    """One unit of delegated work.

    ``run`` receives the outputs of the stages listed in ``needs`` (keyed by
    stage name) and returns its own output, which dependants receive in turn.
    """

    name: str
    run: StageBody
    needs: tuple[str, ...] = ()
    gate: Gate | None = None
    title: str = ""

    @property
    def display(self) -> str:
        return self.title or self.name


class StageGraph:
    def __init__(self, name: str) -> None:
        self.name = name
        self._stages: dict[str, Stage] = {}

    def add(self, stage: Stage) -> Stage:
        if stage.name in self._stages:
            raise ValueError(f"duplicate stage: {stage.name}")
        self._stages[stage.name] = stage
        return stage

    def get(self, name: str) -> Stage:
        return self._stages[name]

    def __contains__(self, name: object) -> bool:
        return name in self._stages

    def __iter__(self) -> Iterator[Stage]:
        return iter(self._stages.values())

    def __len__(self) -> int:
        return len(self._stages)

    def names(self) -> list[str]:
        return list(self._stages)

    def dependants(self, name: str) -> list[str]:
        """Stages that list ``name`` directly in their needs."""
        return [s.name for s in self._stages.values() if name in s.needs]

    def validate(self) -> Result[None, StageError]:
        for stage in self._stages.values():
            unknown = [n for n in stage.needs if n not in self._stages]
            if unknown:
                return Err(
                    StageError(
                        kind="graph_invalid",
                        message=f"{stage.name} needs unknown stage(s): {', '.join(unknown)}",
                    )
                )
        order = self.topological_order()
        if isinstance(order, Err):
            return order
        return Ok(None)

    def topological_order(self) -> Result[list[str], StageError]:
        """Kahn's algorithm; ties keep insertion order so output is stable."""
        remaining = {name: set(s.needs) for name, s in self._stages.items()}
        order: list[str] = []
        while remaining:
            ready = [name for name, needs in remaining.items() if not needs]
            if not ready:
                cycle = ", ".join(sorted(remaining))
                return Err(
                    StageError(
                        kind="graph_invalid",
                        message=f"dependency cycle among: {cycle}",
                    )
                )
            for name in ready:
                order.append(name)
                del remaining[name]
            for needs in remaining.values():
                needs.difference_update(ready)
        return Ok(order)

    def levels(self) -> Result[list[list[str]], StageError]:
        """Stages grouped by depth: every stage in level N only needs levels < N."""
        order = self.topological_order()
        if isinstance(order, Err):
            return order
        depth: dict[str, int] = {}
        for name in order.value:
            needs = self._stages[name].needs
            depth[name] = 1 + max((depth[n] for n in needs), default=-1)
        out: list[list[str]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
        for name in order.value:
            out[depth[name]].append(name)
        return Ok(out)
