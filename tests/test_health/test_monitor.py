"""Tests for HealthMonitor — snapshots, threshold alerts, recovery, lifecycle."""

from __future__ import annotations

import asyncio
import functools

import pytest

from opswatch.alert.manager import AlertManager
from opswatch.alert.store import MemoryAlertStore
from opswatch.alert.types import AlertStatus, AlertType, Severity
from opswatch.core.config import HealthConfig
from opswatch.core.exceptions import AlreadyRunningError, NotRunningError, RecoveryError
from opswatch.core.metrics import AlertMetrics
from opswatch.health.monitor import HealthMonitor
from opswatch.health.probes import check_database
from opswatch.health.recovery import RecoveryAction
from opswatch.health.types import AlertThreshold, HealthCheck, HealthStatus


# ── Helpers ─────────────────────────────────────────────────────


class _Probe:
    """Probe whose result can be changed between passes."""

    def __init__(self, name: str, status: HealthStatus = HealthStatus.HEALTHY) -> None:
        self.name = name
        self.status = status
        self.calls = 0

    async def __call__(self) -> HealthCheck:
        self.calls += 1
        return HealthCheck(name=self.name, status=self.status, message=f"{self.name} {self.status}")


class _CountingRecovery(RecoveryAction):
    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        super().__init__("counting")
        self.calls = 0
        self._fail = fail
        self._delay = delay

    async def execute(self, check: HealthCheck) -> None:
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._fail:
            raise RecoveryError(self.name, "nope")


def _monitor(
    manager: AlertManager | None = None,
    metrics: AlertMetrics | None = None,
    **kw: object,
) -> tuple[HealthMonitor, AlertManager, AlertMetrics]:
    metrics = metrics or AlertMetrics()
    manager = manager or AlertManager(MemoryAlertStore(), metrics)
    monitor = HealthMonitor(manager, metrics, register_defaults=False, **kw)  # type: ignore[arg-type]
    return monitor, manager, metrics


# ── Database scenario ───────────────────────────────────────────


class TestNilDatabase:
    async def test_fires_critical_and_recovers_once(self) -> None:
        monitor, manager, _ = _monitor()
        monitor.register_probe("database", functools.partial(check_database, None))
        recovery = _CountingRecovery()
        monitor.register_recovery_action("database", recovery)

        checks = await monitor.run_checks()

        assert checks["database"].status == HealthStatus.UNHEALTHY
        assert checks["database"].message
        assert checks["database"].duration >= 0
        alert = await manager.get_alert("health_database")
        assert alert.severity == Severity.CRITICAL
        assert alert.type == AlertType.HEALTH_CHECK_FAILED
        assert alert.source == "health_monitor"
        assert alert.title == "Health check failed: database"
        assert alert.labels == {"check_name": "database", "status": "unhealthy"}
        assert set(alert.annotations) == {"check_duration", "last_check"}
        assert recovery.calls == 1

    async def test_default_probes_include_database(self) -> None:
        manager = AlertManager(MemoryAlertStore())
        monitor = HealthMonitor(manager, config=HealthConfig(endpoints=[]))
        checks = await monitor.run_checks()
        assert set(checks) == {
            "database", "memory", "concurrency", "cpu", "http_endpoints", "disk",
        }
        assert checks["database"].status == HealthStatus.UNHEALTHY


# ── Threshold alerts ────────────────────────────────────────────


class TestThresholdAlerts:
    async def test_degraded_fires_warning(self) -> None:
        monitor, manager, _ = _monitor()
        monitor.register_probe("memory", _Probe("memory", HealthStatus.DEGRADED))
        await monitor.run_checks()
        alert = await manager.get_alert("health_memory")
        assert alert.severity == Severity.WARNING
        assert "degraded" in alert.description

    async def test_healthy_resolves(self) -> None:
        monitor, manager, _ = _monitor()
        probe = _Probe("cpu", HealthStatus.UNHEALTHY)
        monitor.register_probe("cpu", probe)
        await monitor.run_checks()
        assert [a.id for a in manager.get_active_alerts()] == ["health_cpu"]

        probe.status = HealthStatus.HEALTHY
        await monitor.run_checks()
        assert manager.get_active_alerts() == []
        assert (await manager.get_alert("health_cpu")).status == AlertStatus.RESOLVED

    async def test_healthy_without_alert_is_quiet(self) -> None:
        monitor, manager, _ = _monitor()
        monitor.register_probe("cpu", _Probe("cpu"))
        await monitor.run_checks()
        assert await manager.get_alerts() == []

    async def test_disabled_threshold_no_alert(self) -> None:
        monitor, manager, _ = _monitor()
        monitor.set_threshold("cpu", AlertThreshold(enabled=False))
        monitor.register_probe("cpu", _Probe("cpu", HealthStatus.UNHEALTHY))
        await monitor.run_checks()
        assert manager.get_active_alerts() == []

    async def test_missing_threshold_no_alert(self) -> None:
        monitor, manager, _ = _monitor()
        monitor.register_probe("custom", _Probe("custom", HealthStatus.UNHEALTHY))
        await monitor.run_checks()
        assert manager.get_active_alerts() == []
        assert monitor.get_health_status()["custom"].status == HealthStatus.UNHEALTHY

    async def test_custom_thresholds_table(self) -> None:
        monitor, manager, _ = _monitor(thresholds={"custom": AlertThreshold()})
        monitor.register_probe("custom", _Probe("custom", HealthStatus.UNHEALTHY))
        await monitor.run_checks()
        assert [a.id for a in manager.get_active_alerts()] == ["health_custom"]


# ── Probe faults ────────────────────────────────────────────────


class TestProbeFaults:
    async def test_raising_probe_becomes_unhealthy(self) -> None:
        monitor, _, _ = _monitor()

        async def broken() -> HealthCheck:
            raise RuntimeError("kaboom")

        monitor.register_probe("memory", broken)
        checks = await monitor.run_checks()
        assert checks["memory"].status == HealthStatus.UNHEALTHY
        assert "kaboom" in checks["memory"].message

    async def test_snapshot_keyed_by_registered_name(self) -> None:
        monitor, _, _ = _monitor()
        monitor.register_probe("renamed", _Probe("something_else"))
        checks = await monitor.run_checks()
        assert checks["renamed"].name == "renamed"


# ── Metrics ─────────────────────────────────────────────────────


class TestMetrics:
    async def test_probe_metrics_recorded(self) -> None:
        monitor, _, metrics = _monitor()
        monitor.register_probe("memory", _Probe("memory", HealthStatus.DEGRADED))
        await monitor.run_checks()
        labels = {"check_name": "memory", "status": "degraded"}
        assert metrics.sample("health_checks_total", labels) == 1.0
        assert metrics.sample("health_check_duration_seconds_count", labels) == 1.0
        assert metrics.sample("health_status", labels) == 1.0


# ── Aggregation ─────────────────────────────────────────────────


class TestOverallStatus:
    async def test_empty_is_healthy(self) -> None:
        monitor, _, _ = _monitor()
        assert monitor.get_overall_status() == HealthStatus.HEALTHY

    async def test_worst_of(self) -> None:
        monitor, _, _ = _monitor()
        monitor.register_probe("a", _Probe("a"))
        monitor.register_probe("b", _Probe("b", HealthStatus.DEGRADED))
        await monitor.run_checks()
        assert monitor.get_overall_status() == HealthStatus.DEGRADED

        monitor.register_probe("c", _Probe("c", HealthStatus.UNHEALTHY))
        await monitor.run_checks()
        assert monitor.get_overall_status() == HealthStatus.UNHEALTHY

    async def test_status_is_a_copy(self) -> None:
        monitor, _, _ = _monitor()
        monitor.register_probe("a", _Probe("a"))
        await monitor.run_checks()
        snapshot = monitor.get_health_status()
        snapshot["a"].details["x"] = 1
        assert "x" not in monitor.get_health_status()["a"].details


# ── Recovery ────────────────────────────────────────────────────


class TestRecovery:
    async def test_failure_is_logged_not_raised(self) -> None:
        monitor, manager, metrics = _monitor()
        monitor.register_probe("database", _Probe("database", HealthStatus.UNHEALTHY))
        action = _CountingRecovery(fail=True)
        monitor.register_recovery_action("database", action)

        await monitor.run_checks()

        assert action.calls == 1
        assert len(manager.get_active_alerts()) == 1
        assert metrics.sample(
            "recovery_attempts_total", {"check_name": "database", "result": "failure"},
        ) == 1.0

    async def test_success_recorded(self) -> None:
        monitor, _, metrics = _monitor()
        monitor.register_probe("database", _Probe("database", HealthStatus.DEGRADED))
        monitor.register_recovery_action("database", _CountingRecovery())
        await monitor.run_checks()
        assert metrics.sample(
            "recovery_attempts_total", {"check_name": "database", "result": "success"},
        ) == 1.0

    async def test_timeout_bounded(self) -> None:
        monitor, _, metrics = _monitor(config=HealthConfig(recovery_timeout=0.01))
        monitor.register_probe("database", _Probe("database", HealthStatus.UNHEALTHY))
        monitor.register_recovery_action("database", _CountingRecovery(delay=5.0))
        await asyncio.wait_for(monitor.run_checks(), timeout=2.0)
        assert metrics.sample(
            "recovery_attempts_total", {"check_name": "database", "result": "failure"},
        ) == 1.0

    async def test_disabled_action_skipped(self) -> None:
        monitor, _, _ = _monitor()
        monitor.register_probe("database", _Probe("database", HealthStatus.UNHEALTHY))
        action = _CountingRecovery()
        action.set_enabled(False)
        monitor.register_recovery_action("database", action)
        await monitor.run_checks()
        assert action.calls == 0

    async def test_not_called_when_healthy(self) -> None:
        monitor, _, _ = _monitor()
        monitor.register_probe("database", _Probe("database"))
        action = _CountingRecovery()
        monitor.register_recovery_action("database", action)
        await monitor.run_checks()
        assert action.calls == 0


# ── Lifecycle ───────────────────────────────────────────────────


class TestLifecycle:
    async def test_start_runs_immediate_pass(self) -> None:
        monitor, _, _ = _monitor(check_interval=60.0)
        probe = _Probe("a")
        monitor.register_probe("a", probe)
        await monitor.start()
        try:
            for _ in range(100):
                if probe.calls:
                    break
                await asyncio.sleep(0.01)
            assert probe.calls == 1
            assert monitor.running is True
        finally:
            await monitor.stop()
        assert monitor.running is False

    async def test_periodic_passes(self) -> None:
        monitor, _, _ = _monitor(check_interval=0.01)
        probe = _Probe("a")
        monitor.register_probe("a", probe)
        await monitor.start()
        try:
            for _ in range(200):
                if probe.calls >= 3:
                    break
                await asyncio.sleep(0.01)
            assert probe.calls >= 3
        finally:
            await monitor.stop()

    async def test_shutdown_event_ends_loop(self) -> None:
        monitor, _, _ = _monitor(check_interval=60.0)
        probe = _Probe("a")
        monitor.register_probe("a", probe)
        shutdown = asyncio.Event()
        await monitor.start(shutdown)
        shutdown.set()
        for _ in range(100):
            if monitor._task is not None and monitor._task.done():
                break
            await asyncio.sleep(0.01)
        assert monitor._task is not None and monitor._task.done()
        assert probe.calls == 1
        await monitor.stop()

    async def test_double_start_raises(self) -> None:
        monitor, _, _ = _monitor()
        await monitor.start()
        try:
            with pytest.raises(AlreadyRunningError):
                await monitor.start()
        finally:
            await monitor.stop()

    async def test_stop_not_running_raises(self) -> None:
        monitor, _, _ = _monitor()
        with pytest.raises(NotRunningError):
            await monitor.stop()

    async def test_slow_probe_does_not_delay_others(self) -> None:
        monitor, _, _ = _monitor(check_interval=60.0)
        release = asyncio.Event()

        async def slow() -> HealthCheck:
            await release.wait()
            return HealthCheck(name="slow", status=HealthStatus.HEALTHY)

        monitor.register_probe("slow", slow)
        monitor.register_probe("fast", _Probe("fast"))
        await monitor.start()
        try:
            for _ in range(100):
                if "fast" in monitor.get_health_status():
                    break
                await asyncio.sleep(0.01)
            status = monitor.get_health_status()
            assert "fast" in status
            assert "slow" not in status
        finally:
            release.set()
            await monitor.stop()
        assert "slow" in monitor.get_health_status()
