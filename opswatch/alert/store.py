"""Alert and rule persistence — abstract store plus the in-memory backend."""

from __future__ import annotations

import abc
import asyncio
import time
from collections.abc import Mapping

import structlog

from opswatch.alert.types import Alert, AlertRule, AlertStatus
from opswatch.core.config import AlertsConfig
from opswatch.core.exceptions import ConfigError, NotFoundError

logger = structlog.get_logger(__name__)

# Filter keys understood by ``get_alerts``; anything else is ignored.
FILTER_KEYS = ("status", "severity", "type", "source")


class AlertStore(abc.ABC):
    """System of record for alerts and rules.

    Lookups, updates and deletes of an unknown id raise ``NotFoundError``.
    """

    @abc.abstractmethod
    async def save_alert(self, alert: Alert) -> None:
        """Insert or overwrite an alert."""

    @abc.abstractmethod
    async def get_alert(self, alert_id: str) -> Alert:
        """Return the alert with *alert_id*."""

    @abc.abstractmethod
    async def get_alerts(self, filters: Mapping[str, object] | None = None) -> list[Alert]:
        """Return alerts matching every given filter (AND semantics)."""

    @abc.abstractmethod
    async def update_alert(self, alert: Alert) -> None:
        """Overwrite an existing alert."""

    @abc.abstractmethod
    async def delete_alert(self, alert_id: str) -> None:
        """Remove an alert."""

    @abc.abstractmethod
    async def save_rule(self, rule: AlertRule) -> None:
        """Insert or overwrite a rule."""

    @abc.abstractmethod
    async def get_rule(self, rule_id: str) -> AlertRule:
        """Return the rule with *rule_id*."""

    @abc.abstractmethod
    async def get_rules(self) -> list[AlertRule]:
        """Return all rules."""

    @abc.abstractmethod
    async def update_rule(self, rule: AlertRule) -> None:
        """Overwrite an existing rule and stamp ``updated_at``."""

    @abc.abstractmethod
    async def delete_rule(self, rule_id: str) -> None:
        """Remove a rule."""

    @abc.abstractmethod
    async def purge_resolved(self, older_than: float) -> int:
        """Delete resolved alerts that ended before *older_than*.

        Returns the number of alerts removed.
        """


def matches_filters(alert: Alert, filters: Mapping[str, object] | None) -> bool:
    """AND-semantics equality match; absent keys are unconstrained."""
    if not filters:
        return True
    for key in FILTER_KEYS:
        if key not in filters or filters[key] is None:
            continue
        # StrEnum members compare equal to their plain-string values.
        if getattr(alert, key) != filters[key]:
            return False
    return True


class MemoryAlertStore(AlertStore):
    """Dict-backed store. Not crash-durable.

    Writers serialize on an ``asyncio.Lock``. Readers never await while
    touching the dicts, so they always see a complete write.
    """

    def __init__(self) -> None:
        self._alerts: dict[str, Alert] = {}
        self._rules: dict[str, AlertRule] = {}
        self._lock = asyncio.Lock()

    # ── Alerts ──────────────────────────────────────────────────

    async def save_alert(self, alert: Alert) -> None:
        async with self._lock:
            self._alerts[alert.id] = alert

    async def get_alert(self, alert_id: str) -> Alert:
        alert = self._alerts.get(alert_id)
        if alert is None:
            raise NotFoundError(f"alert not found: {alert_id}")
        return alert

    async def get_alerts(self, filters: Mapping[str, object] | None = None) -> list[Alert]:
        return [a for a in list(self._alerts.values()) if matches_filters(a, filters)]

    async def update_alert(self, alert: Alert) -> None:
        async with self._lock:
            if alert.id not in self._alerts:
                raise NotFoundError(f"alert not found: {alert.id}")
            self._alerts[alert.id] = alert

    async def delete_alert(self, alert_id: str) -> None:
        async with self._lock:
            if alert_id not in self._alerts:
                raise NotFoundError(f"alert not found: {alert_id}")
            del self._alerts[alert_id]

    async def purge_resolved(self, older_than: float) -> int:
        async with self._lock:
            stale = [
                a.id
                for a in self._alerts.values()
                if a.status == AlertStatus.RESOLVED
                and a.ends_at is not None
                and a.ends_at < older_than
            ]
            for alert_id in stale:
                del self._alerts[alert_id]
        return len(stale)

    # ── Rules ───────────────────────────────────────────────────

    async def save_rule(self, rule: AlertRule) -> None:
        async with self._lock:
            self._rules[rule.id] = rule

    async def get_rule(self, rule_id: str) -> AlertRule:
        rule = self._rules.get(rule_id)
        if rule is None:
            raise NotFoundError(f"rule not found: {rule_id}")
        return rule

    async def get_rules(self) -> list[AlertRule]:
        return list(self._rules.values())

    async def update_rule(self, rule: AlertRule) -> None:
        async with self._lock:
            if rule.id not in self._rules:
                raise NotFoundError(f"rule not found: {rule.id}")
            rule.updated_at = time.time()
            self._rules[rule.id] = rule

    async def delete_rule(self, rule_id: str) -> None:
        async with self._lock:
            if rule_id not in self._rules:
                raise NotFoundError(f"rule not found: {rule_id}")
            del self._rules[rule_id]


def create_store(config: AlertsConfig) -> AlertStore:
    """Build the configured store backend."""
    backend = config.store_backend.strip().lower()
    if backend == "memory":
        logger.info("alert_store_initialized", backend=backend)
        return MemoryAlertStore()
    raise ConfigError(f"unsupported alert store backend: {config.store_backend!r}")
