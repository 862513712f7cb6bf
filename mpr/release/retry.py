"""Bounded retry for the store upload path.

Only store uploads retry. Every other tool call fails the stage on its first
error and recovery means re-running the whole pipeline.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from time import sleep

from mpr.core.result import Err, Result


@dataclass(frozen=True, slots=True)
class Attempted[T, E]:
    """Final result of a retried operation and how many attempts it took."""

    result: Result[T, E]
    attempts: int


def retry_bounded[T, E](
    op: Callable[[], Result[T, E]],
    *,
    attempts: int,
    delay_seconds: float = 0.0,
    on_retry: Callable[[int, E], None] | None = None,
    sleep_fn: Callable[[float], None] = sleep,
) -> Attempted[T, E]:
    """Call ``op`` until it succeeds or ``attempts`` calls have failed.

    ``attempts`` is the total number of calls, not the number of retries:
    with ``attempts=5`` four failures followed by a success succeed, five
    failures fail. The delay grows linearly with the attempt number.
    """
    total = max(1, attempts)
    result: Result[T, E] = op()
    n = 1
    while isinstance(result, Err) and n < total:
        if on_retry is not None:
            on_retry(n, result.error)
        if delay_seconds > 0:
            sleep_fn(delay_seconds * n)
        result = op()
        n += 1
    return Attempted(result=result, attempts=n)
