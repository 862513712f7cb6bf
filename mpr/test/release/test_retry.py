from __future__ import annotations

from collections.abc import Callable

from mpr.core.result import Err, Ok, Result
from mpr.release.retry import retry_bounded


def _no_sleep(seconds: float) -> None:
    del seconds


def _flaky(failures: int) -> tuple[Callable[[], Result[str, str]], list[int]]:
    calls: list[int] = []

    def op() -> Result[str, str]:
        calls.append(len(calls) + 1)
        if len(calls) <= failures:
            return Err(f"fail {len(calls)}")
        return Ok("uploaded")

    return op, calls


def test_four_failures_then_success() -> None:
    op, calls = _flaky(4)

    attempted = retry_bounded(op, attempts=5, sleep_fn=_no_sleep)

    assert attempted.result == Ok("uploaded")
    assert attempted.attempts == 5
    assert len(calls) == 5


def test_five_failures_fail() -> None:
    op, calls = _flaky(5)

    attempted = retry_bounded(op, attempts=5, sleep_fn=_no_sleep)

    assert attempted.result == Err("fail 5")
    assert attempted.attempts == 5
    assert len(calls) == 5


def test_success_first_time_does_not_retry() -> None:
    op, calls = _flaky(0)
    retried: list[int] = []

    attempted = retry_bounded(op, attempts=5, on_retry=lambda n, e: retried.append(n))

    assert attempted.attempts == 1
    assert calls == [1]
    assert retried == []


def test_delay_grows_linearly() -> None:
    op, _ = _flaky(3)
    slept: list[float] = []
    retried: list[tuple[int, str]] = []

    retry_bounded(
        op,
        attempts=5,
        delay_seconds=2.0,
        sleep_fn=slept.append,
        on_retry=lambda n, e: retried.append((n, e)),
    )

    assert slept == [2.0, 4.0, 6.0]
    assert retried == [(1, "fail 1"), (2, "fail 2"), (3, "fail 3")]


def test_attempts_below_one_still_calls_once() -> None:
    op, calls = _flaky(1)

    attempted = retry_bounded(op, attempts=0, sleep_fn=_no_sleep)

    assert isinstance(attempted.result, Err)
    assert calls == [1]
