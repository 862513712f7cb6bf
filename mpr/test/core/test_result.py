"""Tests for mpr.core.result module."""

from __future__ import annotations

import pytest

from mpr.core.result import Err, Ok, Result, is_err, is_ok


class TestOk:
    """Test Ok variant."""

    def test_holds_value(self) -> None:
        result = Ok(42)
        assert result.value == 42
        assert result.is_ok()
        assert not result.is_err()

    def test_unwrap(self) -> None:
        assert Ok("v").unwrap() == "v"

    def test_unwrap_or_ignores_default(self) -> None:
        assert Ok(1).unwrap_or(2) == 1

    def test_map(self) -> None:
        assert Ok(2).map(lambda x: x * 3) == Ok(6)

    def test_map_err_is_noop(self) -> None:
        assert Ok(2).map_err(lambda e: f"wrapped {e}") == Ok(2)

    def test_frozen(self) -> None:
        result = Ok(1)
        with pytest.raises(AttributeError):
            result.value = 2  # type: ignore[misc]

    def test_repr(self) -> None:
        assert repr(Ok("x")) == "Ok('x')"


class TestErr:
    """Test Err variant."""

    def test_holds_error(self) -> None:
        result = Err("boom")
        assert result.error == "boom"
        assert result.is_err()
        assert not result.is_ok()

    def test_unwrap_raises(self) -> None:
        with pytest.raises(ValueError, match="boom"):
            Err("boom").unwrap()

    def test_unwrap_or_returns_default(self) -> None:
        assert Err("boom").unwrap_or(7) == 7

    def test_map_is_noop(self) -> None:
        err = Err("boom")
        assert err.map(lambda x: x) is err

    def test_map_err(self) -> None:
        assert Err(1).map_err(lambda e: e + 1) == Err(2)


class TestPatternMatching:
    """Result works with match statements."""

    def _describe(self, result: Result[int, str]) -> str:
        match result:
            case Ok(value):
                return f"ok {value}"
            case Err(error):
                return f"err {error}"

    def test_match_ok(self) -> None:
        assert self._describe(Ok(3)) == "ok 3"

    def test_match_err(self) -> None:
        assert self._describe(Err("bad")) == "err bad"


def test_type_guards() -> None:
    assert is_ok(Ok(1))
    assert not is_ok(Err(1))
    assert is_err(Err(1))
    assert not is_err(Ok(1))
