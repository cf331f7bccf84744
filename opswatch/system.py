"""AlertSystem — composition root wiring store, manager, notifiers and monitor."""

from __future__ import annotations

import asyncio

import structlog
from prometheus_client import CollectorRegistry
from sqlalchemy.ext.asyncio import AsyncEngine

from opswatch.alert.defaults import default_rules
from opswatch.alert.manager import AlertManager
from opswatch.alert.sources import MetricValueSource
from opswatch.alert.store import AlertStore, create_store
from opswatch.core.config import Settings
from opswatch.core.exceptions import AlreadyRunningError, LifecycleError
from opswatch.core.metrics import AlertMetrics
from opswatch.health.monitor import HealthMonitor
from opswatch.health.recovery import DatabaseRecoveryAction
from opswatch.notify.factory import create_notifiers
from opswatch.notify.notifiers import Notifier

logger = structlog.get_logger(__name__)


class AlertSystem:
    """Owns one alert manager, its store, notifiers and health monitor.

    Usage::

        system = AlertSystem(settings, db=engine)
        await system.initialize()
        await system.start()
        ...
        await system.stop()
    """

    def __init__(
        self,
        config: Settings,
        db: AsyncEngine | None = None,
        registry: CollectorRegistry | None = None,
        value_source: MetricValueSource | None = None,
    ) -> None:
        self._config = config
        self._db = db
        self._metrics = AlertMetrics(registry)
        self._value_source = value_source

        self._store: AlertStore | None = None
        self._manager: AlertManager | None = None
        self._health_monitor: HealthMonitor | None = None
        self._notifiers: list[Notifier] = []
        self._initialized = False

    # ── Accessors ───────────────────────────────────────────────

    @property
    def config(self) -> Settings:
        return self._config

    @property
    def manager(self) -> AlertManager:
        if self._manager is None:
            raise LifecycleError("alert system is not initialized")
        return self._manager

    @property
    def store(self) -> AlertStore:
        if self._store is None:
            raise LifecycleError("alert system is not initialized")
        return self._store

    @property
    def health_monitor(self) -> HealthMonitor | None:
        """None when the health monitor is disabled."""
        return self._health_monitor

    @property
    def notifiers(self) -> list[Notifier]:
        return list(self._notifiers)

    @property
    def metrics(self) -> AlertMetrics:
        return self._metrics

    @property
    def initialized(self) -> bool:
        return self._initialized

    # ── Lifecycle ───────────────────────────────────────────────

    async def initialize(self) -> None:
        if self._initialized:
            raise AlreadyRunningError("alert system is already initialized")
        alerts = self._config.alerts

        self._store = create_store(alerts)

        self._manager = AlertManager(
            self._store,
            self._metrics,
            value_source=self._value_source,
            evaluation_interval=alerts.evaluation_interval,
            resolved_retention=alerts.resolved_retention,
        )

        if alerts.enable_notifications:
            self._notifiers = create_notifiers(self._config.notifiers)
            for notifier in self._notifiers:
                self._manager.add_notifier(notifier)

        if alerts.enable_health_monitor:
            self._health_monitor = HealthMonitor(
                self._manager,
                self._metrics,
                db=self._db,
                check_interval=alerts.health_check_interval,
                config=self._config.health,
            )
            if alerts.enable_auto_recovery and self._db is not None:
                self._health_monitor.register_recovery_action(
                    "database",
                    DatabaseRecoveryAction(self._db, ping_timeout=self._config.health.db_timeout),
                )

        for rule in default_rules():
            await self._manager.add_rule(rule)

        self._initialized = True
        logger.info(
            "alert_system_initialized",
            store_backend=alerts.store_backend,
            notifiers=[n.name for n in self._notifiers],
            health_monitor=self._health_monitor is not None,
            auto_recovery=alerts.enable_auto_recovery and self._db is not None,
        )

    async def start(self, shutdown: asyncio.Event | None = None) -> None:
        """Start the manager and monitor loops; *shutdown* ends both at their next tick."""
        if not self._initialized:
            await self.initialize()

        await self.manager.start(shutdown)
        if self._health_monitor is not None:
            await self._health_monitor.start(shutdown)
        logger.info("alert_system_started")

    async def stop(self) -> None:
        """Stop sub-components; failures are logged, never raised."""
        if self._health_monitor is not None:
            try:
                await self._health_monitor.stop()
            except Exception:
                logger.exception("health_monitor_stop_error")

        if self._manager is not None:
            try:
                await self._manager.stop()
            except Exception:
                logger.exception("alert_manager_stop_error")

        for notifier in self._notifiers:
            try:
                await notifier.close()
            except Exception:
                logger.exception("notifier_close_error", notifier=notifier.name)

        logger.info("alert_system_stopped")
