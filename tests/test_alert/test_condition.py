"""Tests for AlertCondition — operator table, aliases, non-numeric values."""

from __future__ import annotations

import pytest

from opswatch.alert.condition import (
    AlertCondition,
    is_supported_operator,
    normalize_operator,
)


def _cond(op: str, threshold: float = 10.0) -> AlertCondition:
    return AlertCondition(metric_name="m", operator=op, threshold=threshold)


class TestOperators:
    @pytest.mark.parametrize(
        ("op", "value", "expected"),
        [
            (">", 11, True),
            (">", 10, False),
            (">=", 10, True),
            (">=", 9.99, False),
            ("<", 9, True),
            ("<", 10, False),
            ("<=", 10, True),
            ("<=", 10.01, False),
            ("==", 10.0, True),
            ("==", 10.5, False),
            ("!=", 10.5, True),
            ("!=", 10, False),
        ],
    )
    def test_symbols(self, op: str, value: float, expected: bool) -> None:
        assert _cond(op).evaluate(value) is expected

    @pytest.mark.parametrize(
        ("alias", "symbol"),
        [("gt", ">"), ("gte", ">="), ("lt", "<"), ("lte", "<="), ("eq", "=="), ("ne", "!=")],
    )
    def test_aliases_match_symbols(self, alias: str, symbol: str) -> None:
        for value in (9.0, 10.0, 11.0):
            assert _cond(alias).evaluate(value) == _cond(symbol).evaluate(value)

    def test_unknown_operator_is_false(self) -> None:
        assert _cond("~=").evaluate(100) is False
        assert _cond("").evaluate(100) is False


class TestValueTypes:
    def test_bool_not_coerced(self) -> None:
        assert _cond(">", 0.5).evaluate(True) is False

    def test_string_not_coerced(self) -> None:
        assert _cond(">").evaluate("100") is False

    def test_none_is_false(self) -> None:
        assert _cond("!=").evaluate(None) is False


class TestNormalize:
    def test_normalize(self) -> None:
        assert normalize_operator("gte") == ">="
        assert normalize_operator("<") == "<"
        assert normalize_operator("between") is None

    def test_is_supported(self) -> None:
        assert is_supported_operator("ne")
        assert not is_supported_operator("GT")
