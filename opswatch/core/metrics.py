"""Prometheus metrics for alert lifecycle, notifications and health probes.

Every ``AlertMetrics`` owns its collectors on an explicit
``CollectorRegistry`` so several alert systems (or test cases) in one
process never collide on the global default registry.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

_HEALTH_DURATION_BUCKETS = (
    0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0,
)

# health_status gauge encoding.
HEALTH_STATUS_VALUES: dict[str, float] = {
    "unhealthy": 0.0,
    "degraded": 1.0,
    "healthy": 2.0,
}


class AlertMetrics:
    """Counters, gauges and histograms emitted by the alert core.

    Usage::

        metrics = AlertMetrics(CollectorRegistry())
        metrics.alert_event("high_cpu", "warning", "fired")
        metrics.sample("alerts_total", {"type": "high_cpu", ...})
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        self._alerts_total = Counter(
            "alerts_total",
            "Total number of alert lifecycle events",
            ["type", "severity", "action"],
            registry=self.registry,
        )
        self._alert_duration = Histogram(
            "alert_duration_seconds",
            "Time from alert start to resolution",
            ["type"],
            registry=self.registry,
        )
        self._notifications_total = Counter(
            "notifications_total",
            "Notification delivery attempts",
            ["notifier", "result"],
            registry=self.registry,
        )
        self._health_checks_total = Counter(
            "health_checks_total",
            "Total number of health checks",
            ["check_name", "status"],
            registry=self.registry,
        )
        self._health_check_duration = Histogram(
            "health_check_duration_seconds",
            "Health check duration in seconds",
            ["check_name", "status"],
            buckets=_HEALTH_DURATION_BUCKETS,
            registry=self.registry,
        )
        self._health_status = Gauge(
            "health_status",
            "Health status (0=unhealthy, 1=degraded, 2=healthy)",
            ["check_name", "status"],
            registry=self.registry,
        )
        self._recovery_attempts = Counter(
            "recovery_attempts_total",
            "Automated recovery attempts",
            ["check_name", "result"],
            registry=self.registry,
        )

    # ── Alerts ──────────────────────────────────────────────────

    def alert_event(self, alert_type: str, severity: str, action: str) -> None:
        self._alerts_total.labels(
            type=alert_type, severity=severity, action=action,
        ).inc()

    def alert_resolved_after(self, alert_type: str, seconds: float) -> None:
        self._alert_duration.labels(type=alert_type).observe(max(seconds, 0.0))

    def notification(self, notifier: str, ok: bool) -> None:
        self._notifications_total.labels(
            notifier=notifier, result="success" if ok else "failure",
        ).inc()

    # ── Health ──────────────────────────────────────────────────

    def health_check(self, check_name: str, status: str, duration: float) -> None:
        self._health_checks_total.labels(check_name=check_name, status=status).inc()
        self._health_check_duration.labels(
            check_name=check_name, status=status,
        ).observe(max(duration, 0.0))
        self._health_status.labels(check_name=check_name, status=status).set(
            HEALTH_STATUS_VALUES.get(status, 0.0),
        )

    def recovery(self, check_name: str, ok: bool) -> None:
        self._recovery_attempts.labels(
            check_name=check_name, result="success" if ok else "failure",
        ).inc()

    # ── Queries ─────────────────────────────────────────────────

    def sample(self, name: str, labels: dict[str, str] | None = None) -> float | None:
        """Return a single sample value from the registry, or None."""
        return self.registry.get_sample_value(name, labels or {})
