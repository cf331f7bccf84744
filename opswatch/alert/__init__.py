"""Alerting module — data model, store, conditions, rule engine."""

from opswatch.alert.condition import AlertCondition, normalize_operator
from opswatch.alert.defaults import default_rules
from opswatch.alert.manager import AlertManager
from opswatch.alert.sources import (
    ConstantValueSource,
    MappingValueSource,
    MetricValueSource,
    RegistryValueSource,
)
from opswatch.alert.store import AlertStore, MemoryAlertStore, create_store
from opswatch.alert.types import (
    Alert,
    AlertRule,
    AlertStatus,
    AlertType,
    Severity,
    new_alert,
    new_rule,
)

__all__ = [
    "Alert",
    "AlertCondition",
    "AlertManager",
    "AlertRule",
    "AlertStatus",
    "AlertStore",
    "AlertType",
    "ConstantValueSource",
    "MappingValueSource",
    "MemoryAlertStore",
    "MetricValueSource",
    "RegistryValueSource",
    "Severity",
    "create_store",
    "default_rules",
    "new_alert",
    "new_rule",
]
