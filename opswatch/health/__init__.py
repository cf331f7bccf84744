"""Health monitoring — probes, thresholds, recovery actions."""

from opswatch.health.monitor import HealthMonitor
from opswatch.health.probes import (
    MemorySample,
    Probe,
    check_concurrency,
    check_cpu,
    check_database,
    check_disk,
    check_http_endpoints,
    check_memory,
)
from opswatch.health.recovery import DatabaseRecoveryAction, RecoveryAction
from opswatch.health.types import (
    AlertThreshold,
    HealthCheck,
    HealthStatus,
    default_thresholds,
    worst_status,
)

__all__ = [
    "AlertThreshold",
    "DatabaseRecoveryAction",
    "HealthCheck",
    "HealthMonitor",
    "HealthStatus",
    "MemorySample",
    "Probe",
    "RecoveryAction",
    "check_concurrency",
    "check_cpu",
    "check_database",
    "check_disk",
    "check_http_endpoints",
    "check_memory",
    "default_thresholds",
    "worst_status",
]
