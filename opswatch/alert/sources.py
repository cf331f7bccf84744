"""Metric value sources — resolve a rule's ``query`` to a current value."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import Protocol, runtime_checkable

from prometheus_client import CollectorRegistry

ValueFn = Callable[[str], float | Awaitable[float]]


@runtime_checkable
class MetricValueSource(Protocol):
    """Strategy used by the alert manager to read a named series."""

    async def value(self, query: str) -> float: ...


class ConstantValueSource:
    """Returns the same value for every query (reference stub)."""

    def __init__(self, value: float = 0.0) -> None:
        self._value = value

    async def value(self, query: str) -> float:
        return self._value


class MappingValueSource:
    """Reads values from a mutable mapping or a callable.

    Unknown series resolve to *default*. With a callable, the callable may
    be sync or async and receives the query name.
    """

    def __init__(
        self,
        values: Mapping[str, float] | ValueFn | None = None,
        default: float = 0.0,
    ) -> None:
        self._values = values if values is not None else {}
        self._default = default

    async def value(self, query: str) -> float:
        if callable(self._values):
            result = self._values(query)
            if asyncio.iscoroutine(result):
                result = await result
            return float(result)  # type: ignore[arg-type]
        return float(self._values.get(query, self._default))


class RegistryValueSource:
    """Reads a sample from a ``prometheus_client`` registry by series name.

    The query may carry labels in the form ``name{k="v",k2="v2"}``.
    Missing series resolve to *default*.
    """

    def __init__(self, registry: CollectorRegistry, default: float = 0.0) -> None:
        self._registry = registry
        self._default = default

    async def value(self, query: str) -> float:
        name, labels = parse_series(query)
        sample = self._registry.get_sample_value(name, labels)
        return self._default if sample is None else sample


def parse_series(query: str) -> tuple[str, dict[str, str]]:
    """Split ``name{k="v"}`` into the series name and its label dict."""
    query = query.strip()
    if "{" not in query or not query.endswith("}"):
        return query, {}
    name, _, body = query.partition("{")
    labels: dict[str, str] = {}
    for pair in body[:-1].split(","):
        if "=" not in pair:
            continue
        key, _, val = pair.partition("=")
        labels[key.strip()] = val.strip().strip('"')
    return name.strip(), labels
