"""Domain types for the alerting subsystem."""

from __future__ import annotations

import itertools
import time
from enum import StrEnum

from pydantic import BaseModel, Field, model_validator

_id_seq = itertools.count(1)


class Severity(StrEnum):
    """Alert severity — ordered info < warning < error < critical."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK: dict[Severity, int] = {
    Severity.INFO: 0,
    Severity.WARNING: 1,
    Severity.ERROR: 2,
    Severity.CRITICAL: 3,
}


class AlertType(StrEnum):
    """Closed set of fault categories."""

    # System
    HIGH_CPU = "high_cpu"
    HIGH_MEMORY = "high_memory"
    HIGH_DISK_USAGE = "high_disk_usage"
    HIGH_ERROR_RATE = "high_error_rate"
    SLOW_RESPONSE = "slow_response"
    HIGH_LATENCY = "high_latency"

    # Database
    DB_CONNECTION_ERROR = "db_connection_error"
    DB_SLOW_QUERY = "db_slow_query"
    DB_HIGH_CONNECTIONS = "db_high_connections"

    # Application
    AUTH_FAILURE = "auth_failure"
    API_RATE_LIMIT = "api_rate_limit"
    WEBSOCKET_ERROR = "websocket_error"
    BUSINESS_LOGIC_ERROR = "business_logic_error"

    # Infrastructure
    SERVICE_DOWN = "service_down"
    HEALTH_CHECK_FAILED = "health_check_failed"
    EXTERNAL_API_ERROR = "external_api_error"


class AlertStatus(StrEnum):
    FIRING = "firing"
    RESOLVED = "resolved"
    SILENCED = "silenced"


class Alert(BaseModel):
    """A materialized, notification-worthy event with a lifecycle status.

    ``ends_at`` is set exactly when ``status`` is RESOLVED.
    """

    id: str
    type: AlertType
    severity: Severity
    title: str
    description: str = ""
    source: str = ""
    created_at: float = Field(default_factory=time.time)
    starts_at: float = Field(default_factory=time.time)
    ends_at: float | None = None
    status: AlertStatus = AlertStatus.FIRING
    value: float = 0.0
    threshold: float = 0.0
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _ends_at_matches_status(self) -> Alert:
        resolved = self.status == AlertStatus.RESOLVED
        if resolved != (self.ends_at is not None):
            raise ValueError("ends_at must be set if and only if status is resolved")
        return self

    @property
    def active(self) -> bool:
        return self.status != AlertStatus.RESOLVED

    def mark_resolved(self, now: float | None = None) -> None:
        self.status = AlertStatus.RESOLVED
        self.ends_at = time.time() if now is None else now

    def mark_silenced(self) -> None:
        self.status = AlertStatus.SILENCED
        self.ends_at = None


class AlertRule(BaseModel):
    """A standing threshold condition against a named metric series."""

    id: str
    name: str
    type: AlertType
    severity: Severity
    description: str = ""
    query: str = ""
    threshold: float = 0.0
    operator: str = ">"
    # Minimum continuous breach (seconds) before the rule fires.
    duration: float = Field(default=0.0, ge=0.0)
    enabled: bool = True
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

    @property
    def alert_id(self) -> str:
        """The single alert id this rule can raise."""
        return f"{self.id}_{self.type.value}"


def new_alert(
    alert_type: AlertType,
    severity: Severity,
    title: str,
    description: str = "",
    source: str = "",
) -> Alert:
    """Create a firing alert with a generated id."""
    now = time.time()
    return Alert(
        id=f"alert_{time.time_ns()}_{next(_id_seq)}",
        type=alert_type,
        severity=severity,
        title=title,
        description=description,
        source=source,
        created_at=now,
        starts_at=now,
    )


def new_rule(name: str, alert_type: AlertType, severity: Severity) -> AlertRule:
    """Create an enabled rule with a generated id."""
    now = time.time()
    return AlertRule(
        id=f"rule_{time.time_ns()}_{next(_id_seq)}",
        name=name,
        type=alert_type,
        severity=severity,
        created_at=now,
        updated_at=now,
    )
