"""Built-in alert rules installed by the alert system at initialization."""

from __future__ import annotations

import time

from opswatch.alert.types import AlertRule, AlertType, Severity

_DEFAULT_LABELS = {"category": "default", "default": "true"}


def _rule(
    rule_id: str,
    name: str,
    alert_type: AlertType,
    severity: Severity,
    description: str,
    query: str,
    threshold: float,
    duration: float,
    summary: str,
) -> AlertRule:
    now = time.time()
    return AlertRule(
        id=rule_id,
        name=name,
        type=alert_type,
        severity=severity,
        description=description,
        query=query,
        threshold=threshold,
        operator=">",
        duration=duration,
        enabled=True,
        labels=dict(_DEFAULT_LABELS),
        annotations={"summary": summary, "description": description},
        created_at=now,
        updated_at=now,
    )


def default_rules() -> list[AlertRule]:
    """Fresh copies of the four built-in rules."""
    return [
        _rule(
            "default_high_error_rate",
            "High Error Rate",
            AlertType.HIGH_ERROR_RATE,
            Severity.WARNING,
            "HTTP error rate is above 5%",
            "http_error_rate",
            5.0,
            300.0,
            "High HTTP error rate detected",
        ),
        _rule(
            "default_slow_response",
            "Slow Response Time",
            AlertType.SLOW_RESPONSE,
            Severity.WARNING,
            "95th percentile response time is above 2 seconds",
            "http_response_time_p95",
            2.0,
            180.0,
            "Slow response times detected",
        ),
        _rule(
            "default_db_connection_error",
            "Database Connection Errors",
            AlertType.DB_CONNECTION_ERROR,
            Severity.CRITICAL,
            "Database connection errors detected",
            "db_connection_errors",
            1.0,
            60.0,
            "Database connectivity issues",
        ),
        _rule(
            "default_high_memory_usage",
            "High Memory Usage",
            AlertType.HIGH_MEMORY,
            Severity.WARNING,
            "Memory usage is above 80%",
            "memory_usage_percent",
            80.0,
            300.0,
            "High memory usage detected",
        ),
    ]
