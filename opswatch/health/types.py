"""Health probe results and alerting thresholds."""

from __future__ import annotations

import time
from collections.abc import Iterable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @property
    def rank(self) -> int:
        """0 for healthy, increasing with badness."""
        return _STATUS_RANK[self]


_STATUS_RANK: dict[HealthStatus, int] = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.UNHEALTHY: 2,
}


class HealthCheck(BaseModel):
    """Outcome of one probe run. Replaced wholesale on every cycle."""

    name: str
    status: HealthStatus
    message: str = ""
    duration: float = Field(default=0.0, ge=0.0)
    last_check: float = Field(default_factory=time.time)
    details: dict[str, Any] = Field(default_factory=dict)


class AlertThreshold(BaseModel):
    """Per-probe gate deciding whether a classification raises an alert."""

    warning_threshold: float = 0.0
    critical_threshold: float = 0.0
    duration: float = Field(default=0.0, ge=0.0)
    enabled: bool = True


def worst_status(statuses: Iterable[HealthStatus]) -> HealthStatus:
    """Worst-of aggregation. An empty input is healthy."""
    worst = HealthStatus.HEALTHY
    for status in statuses:
        if status.rank > worst.rank:
            worst = status
    return worst


def default_thresholds() -> dict[str, AlertThreshold]:
    return {
        # connection latency, ms
        "database": AlertThreshold(
            warning_threshold=1000, critical_threshold=5000, duration=60,
        ),
        # allocated MB
        "memory": AlertThreshold(
            warning_threshold=1024, critical_threshold=2048, duration=300,
        ),
        # percent
        "cpu": AlertThreshold(
            warning_threshold=80, critical_threshold=95, duration=120,
        ),
        # live asyncio tasks
        "concurrency": AlertThreshold(
            warning_threshold=1000, critical_threshold=10000, duration=60,
        ),
        # percent
        "disk": AlertThreshold(
            warning_threshold=80, critical_threshold=95, duration=600,
        ),
        # failed endpoints
        "http_endpoints": AlertThreshold(
            warning_threshold=1, critical_threshold=0, duration=60,
        ),
    }
