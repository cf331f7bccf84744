"""HealthMonitor — periodic probes, health alerts and automated recovery."""

from __future__ import annotations

import asyncio
import functools
from datetime import UTC, datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from opswatch.alert.manager import AlertManager
from opswatch.alert.types import Alert, AlertType, Severity
from opswatch.core.config import HealthConfig
from opswatch.core.exceptions import AlreadyRunningError, NotFoundError, NotRunningError
from opswatch.core.metrics import AlertMetrics
from opswatch.core.tasks import wait_tick
from opswatch.health.probes import (
    Probe,
    check_concurrency,
    check_cpu,
    check_database,
    check_disk,
    check_http_endpoints,
    check_memory,
)
from opswatch.health.recovery import RecoveryAction
from opswatch.health.types import (
    AlertThreshold,
    HealthCheck,
    HealthStatus,
    default_thresholds,
    worst_status,
)

logger = structlog.get_logger(__name__)

HEALTH_ALERT_SOURCE = "health_monitor"

_STATUS_MESSAGES: dict[HealthStatus, str] = {
    HealthStatus.UNHEALTHY: "System component is unhealthy",
    HealthStatus.DEGRADED: "System component has degraded performance",
}


class HealthMonitor:
    """Runs every registered probe on a fixed interval.

    Each probe runs as its own task so a slow probe never delays the
    others, and a pass is never awaited by the next tick. After a probe
    finishes its snapshot is replaced, metrics are recorded and the
    probe's ``AlertThreshold`` decides whether ``health_<name>`` is fired
    (critical for unhealthy, warning for degraded) or resolved.

    Usage::

        monitor = HealthMonitor(manager, metrics, db=engine)
        monitor.register_recovery_action("database", DatabaseRecoveryAction(engine))
        await monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        manager: AlertManager,
        metrics: AlertMetrics | None = None,
        db: AsyncEngine | None = None,
        check_interval: float = 30.0,
        config: HealthConfig | None = None,
        thresholds: dict[str, AlertThreshold] | None = None,
        register_defaults: bool = True,
    ) -> None:
        self._manager = manager
        self._metrics = metrics or AlertMetrics()
        self._db = db
        self._check_interval = check_interval
        self._config = config or HealthConfig()
        self._thresholds = thresholds if thresholds is not None else default_thresholds()

        self._probes: dict[str, Probe] = {}
        self._recovery_actions: dict[str, RecoveryAction] = {}
        self._checks: dict[str, HealthCheck] = {}

        self._lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._probe_tasks: set[asyncio.Task[None]] = set()
        self._running = False

        if register_defaults:
            self._register_default_probes()

    def _register_default_probes(self) -> None:
        self.register_probe(
            "database",
            functools.partial(check_database, self._db, self._config.db_timeout),
        )
        self.register_probe("memory", check_memory)
        self.register_probe("concurrency", check_concurrency)
        self.register_probe("cpu", check_cpu)
        self.register_probe(
            "http_endpoints",
            functools.partial(
                check_http_endpoints,
                list(self._config.endpoints),
                self._config.http_timeout,
            ),
        )
        self.register_probe("disk", check_disk)

    # ── Properties ──────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    @property
    def check_interval(self) -> float:
        return self._check_interval

    # ── Registration ────────────────────────────────────────────

    def register_probe(self, name: str, probe: Probe) -> None:
        """Add or replace the probe run under *name*."""
        self._probes[name] = probe
        logger.debug("health_probe_registered", check_name=name)

    def register_recovery_action(self, name: str, action: RecoveryAction) -> None:
        """Attach *action* to the probe *name*; replaces any previous one."""
        self._recovery_actions[name] = action
        logger.info("recovery_action_registered", check_name=name, action=action.name)

    def set_threshold(self, name: str, threshold: AlertThreshold) -> None:
        self._thresholds[name] = threshold

    def get_thresholds(self) -> dict[str, AlertThreshold]:
        return {name: t.model_copy() for name, t in self._thresholds.items()}

    # ── Queries ─────────────────────────────────────────────────

    def get_health_status(self) -> dict[str, HealthCheck]:
        """Copy of the latest snapshot per probe."""
        return {name: check.model_copy(deep=True) for name, check in self._checks.items()}

    def get_overall_status(self) -> HealthStatus:
        return worst_status(check.status for check in self._checks.values())

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self, shutdown: asyncio.Event | None = None) -> None:
        """Run one pass immediately, then one every ``check_interval`` seconds.

        Setting *shutdown* makes the loop exit at its next tick boundary.
        """
        if self._running:
            raise AlreadyRunningError("health monitor is already running")
        self._running = True
        self._task = asyncio.create_task(self._check_loop(shutdown))
        logger.info(
            "health_monitor_started",
            check_interval=self._check_interval,
            probes=sorted(self._probes),
        )

    async def stop(self) -> None:
        """Cancel the loop and let in-flight probes finish."""
        if not self._running:
            raise NotRunningError("health monitor is not running")
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._probe_tasks:
            await asyncio.gather(*list(self._probe_tasks), return_exceptions=True)
        logger.info("health_monitor_stopped")

    async def _check_loop(self, shutdown: asyncio.Event | None) -> None:
        while self._running:
            try:
                self._spawn_pass()
                if not await wait_tick(self._check_interval, shutdown):
                    break
            except asyncio.CancelledError:
                break

    # ── Checks ──────────────────────────────────────────────────

    async def run_checks(self) -> dict[str, HealthCheck]:
        """Run every probe concurrently and wait for all of them."""
        tasks = self._spawn_pass()
        if tasks:
            await asyncio.gather(*tasks)
        return self.get_health_status()

    def _spawn_pass(self) -> list[asyncio.Task[None]]:
        tasks = []
        for name, probe in list(self._probes.items()):
            task = asyncio.create_task(self._run_probe(name, probe))
            self._probe_tasks.add(task)
            task.add_done_callback(self._probe_tasks.discard)
            tasks.append(task)
        return tasks

    async def _run_probe(self, name: str, probe: Probe) -> None:
        try:
            check = await probe()
        except Exception as exc:
            logger.exception("health_probe_error", check_name=name)
            check = HealthCheck(
                name=name,
                status=HealthStatus.UNHEALTHY,
                message=f"probe failed: {exc}",
            )
        if check.name != name:
            check = check.model_copy(update={"name": name})

        async with self._lock:
            self._checks[name] = check

        self._metrics.health_check(name, check.status.value, check.duration)
        logger.debug(
            "health_check_completed",
            check_name=name,
            status=check.status.value,
            duration=round(check.duration, 4),
        )

        try:
            await self._apply_threshold(check)
        except Exception:
            logger.exception("health_alert_error", check_name=name)

    async def _apply_threshold(self, check: HealthCheck) -> None:
        threshold = self._thresholds.get(check.name)
        if threshold is None or not threshold.enabled:
            return

        alert_id = f"health_{check.name}"
        if check.status == HealthStatus.HEALTHY:
            try:
                await self._manager.resolve_alert(alert_id)
            except NotFoundError:
                pass
            return

        severity = Severity.CRITICAL if check.status == HealthStatus.UNHEALTHY else Severity.WARNING
        await self._manager.fire_alert(_health_alert(alert_id, check, severity))
        await self._attempt_recovery(check)

    async def _attempt_recovery(self, check: HealthCheck) -> None:
        action = self._recovery_actions.get(check.name)
        if action is None or not action.enabled:
            return

        logger.info("recovery_action_attempting", check_name=check.name, action=action.name)
        try:
            async with asyncio.timeout(self._config.recovery_timeout):
                await action.execute(check)
        except Exception:
            self._metrics.recovery(check.name, ok=False)
            logger.exception("recovery_action_failed", check_name=check.name, action=action.name)
            return
        self._metrics.recovery(check.name, ok=True)
        logger.info("recovery_action_succeeded", check_name=check.name, action=action.name)


def _health_alert(alert_id: str, check: HealthCheck, severity: Severity) -> Alert:
    message = _STATUS_MESSAGES.get(check.status, "System component status changed")
    return Alert(
        id=alert_id,
        type=AlertType.HEALTH_CHECK_FAILED,
        severity=severity,
        title=f"Health check failed: {check.name}",
        description=f"{message} - {check.message}",
        source=HEALTH_ALERT_SOURCE,
        created_at=check.last_check,
        starts_at=check.last_check,
        labels={"check_name": check.name, "status": check.status.value},
        annotations={
            "check_duration": f"{check.duration:.3f}s",
            "last_check": datetime.fromtimestamp(check.last_check, tz=UTC).isoformat(),
        },
    )
