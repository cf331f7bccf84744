"""Threshold comparison used by alert rules."""

from __future__ import annotations

import operator
from collections.abc import Callable
from dataclasses import dataclass

OPERATORS: dict[str, Callable[[float, float], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
}

# Word-form aliases accepted from the wire / older rule definitions.
OPERATOR_ALIASES: dict[str, str] = {
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "eq": "==",
    "ne": "!=",
}


def normalize_operator(op: str) -> str | None:
    """Return the symbolic form of *op*, or None if unsupported."""
    if op in OPERATORS:
        return op
    return OPERATOR_ALIASES.get(op)


def is_supported_operator(op: str) -> bool:
    return normalize_operator(op) is not None


@dataclass(frozen=True)
class AlertCondition:
    """Comparison of a metric value against ``(operator, threshold)``.

    ``evaluate`` never raises: an unknown operator or a non-numeric value
    evaluates to False.
    """

    metric_name: str
    operator: str
    threshold: float
    duration: float = 0.0

    def evaluate(self, value: object) -> bool:
        symbol = normalize_operator(self.operator)
        if symbol is None:
            return False
        # bool is an int subclass; no implicit coercion.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return OPERATORS[symbol](value, self.threshold)
