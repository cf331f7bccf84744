"""AlertManager — alert lifecycle state machine, rule engine and fan-out.

Per alert id::

    (absent) ──fire──▶ firing ──resolve──▶ resolved ──fire──▶ firing
                         │
                         └──silence──▶ silenced ──fire after expiry──▶ firing

While a silence is unexpired every ``fire_alert`` for that id is dropped
without touching the store or the notifiers.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING

import structlog

from opswatch.alert.condition import AlertCondition
from opswatch.alert.sources import ConstantValueSource, MetricValueSource
from opswatch.alert.store import AlertStore
from opswatch.alert.types import Alert, AlertRule, AlertStatus
from opswatch.core.exceptions import AlreadyRunningError, NotFoundError, NotRunningError
from opswatch.core.metrics import AlertMetrics
from opswatch.core.tasks import wait_tick

if TYPE_CHECKING:
    from opswatch.notify.notifiers import Notifier

logger = structlog.get_logger(__name__)

RULE_ALERT_SOURCE = "alert_manager"


class AlertManager:
    """Owns the rule index, the active-alert index and the silence table.

    Usage::

        manager = AlertManager(store, metrics, value_source=source)
        manager.add_notifier(LogNotifier())
        await manager.add_rule(rule)
        await manager.start()
        ...
        await manager.stop()

    State mutations (fire / resolve / silence, rule CRUD) serialize on one
    ``asyncio.Lock``. Notifications are dispatched as detached tasks outside
    that lock; a failing or slow notifier never affects the caller or the
    other notifiers.
    """

    def __init__(
        self,
        store: AlertStore,
        metrics: AlertMetrics | None = None,
        value_source: MetricValueSource | None = None,
        evaluation_interval: float = 30.0,
        resolved_retention: float = 0.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._metrics = metrics or AlertMetrics()
        self._value_source: MetricValueSource = value_source or ConstantValueSource()
        self._evaluation_interval = evaluation_interval
        self._resolved_retention = resolved_retention
        self._clock = clock

        self._rules: dict[str, AlertRule] = {}
        self._active: dict[str, Alert] = {}
        self._silenced_until: dict[str, float] = {}
        self._notifiers: dict[str, Notifier] = {}
        # rule id → time the current continuous breach began.
        self._breach_started: dict[str, float] = {}

        self._lock = asyncio.Lock()
        self._eval_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._notify_tasks: set[asyncio.Task[None]] = set()
        self._running = False
        self._stopped = False

    # ── Properties ──────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    @property
    def evaluation_interval(self) -> float:
        return self._evaluation_interval

    @property
    def store(self) -> AlertStore:
        return self._store

    # ── Rules ───────────────────────────────────────────────────

    async def add_rule(self, rule: AlertRule) -> None:
        async with self._lock:
            await self._store.save_rule(rule)
            self._rules[rule.id] = rule
        logger.info(
            "alert_rule_added",
            rule_id=rule.id,
            rule_name=rule.name,
            type=rule.type.value,
            severity=rule.severity.value,
        )

    async def update_rule(self, rule: AlertRule) -> None:
        """Replace a rule.

        Disabling the rule, or changing its type, resolves the alert it raised.
        """
        async with self._lock:
            previous = self._rules.get(rule.id)
            if previous is None:
                raise NotFoundError(f"rule not found: {rule.id}")
            await self._store.update_rule(rule)
            self._rules[rule.id] = rule
            self._breach_started.pop(rule.id, None)
        logger.info("alert_rule_updated", rule_id=rule.id, rule_name=rule.name)

        if not rule.enabled or previous.alert_id != rule.alert_id:
            await self._resolve_rule_alert(previous)

    async def remove_rule(self, rule_id: str) -> None:
        """Delete a rule and resolve the alert it raised, if still active."""
        async with self._lock:
            removed = self._rules.get(rule_id)
            if removed is None:
                raise NotFoundError(f"rule not found: {rule_id}")
            await self._store.delete_rule(rule_id)
            del self._rules[rule_id]
            self._breach_started.pop(rule_id, None)
        logger.info("alert_rule_removed", rule_id=rule_id)

        await self._resolve_rule_alert(removed)

    async def _resolve_rule_alert(self, rule: AlertRule) -> None:
        if rule.alert_id not in self._active:
            return
        try:
            await self.resolve_alert(rule.alert_id)
        except NotFoundError:
            pass

    async def get_rule(self, rule_id: str) -> AlertRule:
        rule = self._rules.get(rule_id)
        if rule is None:
            return await self._store.get_rule(rule_id)
        return rule

    def get_rules(self) -> list[AlertRule]:
        return list(self._rules.values())

    # ── Alerts ──────────────────────────────────────────────────

    async def fire_alert(self, alert: Alert) -> bool:
        """Fire *alert*. Returns False if it was dropped by an active silence."""
        async with self._lock:
            now = self._clock()
            until = self._silenced_until.get(alert.id)
            if until is not None:
                if now < until:
                    logger.debug(
                        "alert_silenced_dropped",
                        alert_id=alert.id,
                        silenced_until=until,
                    )
                    return False
                del self._silenced_until[alert.id]

            alert.status = AlertStatus.FIRING
            alert.ends_at = None
            existing = self._active.get(alert.id)
            if existing is not None and existing.status == AlertStatus.FIRING:
                # Re-fire of a live alert keeps its original start.
                alert.starts_at = existing.starts_at

            await self._store.save_alert(alert)
            self._active[alert.id] = alert
            self._metrics.alert_event(alert.type.value, alert.severity.value, "fired")
            notifiers = [n for n in self._notifiers.values() if n.enabled]

        logger.warning(
            "alert_fired",
            alert_id=alert.id,
            type=alert.type.value,
            severity=alert.severity.value,
            title=alert.title,
            description=alert.description,
            value=alert.value,
            threshold=alert.threshold,
        )
        self._dispatch(alert.model_copy(deep=True), notifiers)
        return True

    async def resolve_alert(self, alert_id: str) -> None:
        async with self._lock:
            current = self._active.get(alert_id)
            if current is None:
                raise NotFoundError(f"active alert not found: {alert_id}")

            now = self._clock()
            resolved = current.model_copy(deep=True)
            resolved.mark_resolved(now)
            await self._store.update_alert(resolved)
            del self._active[alert_id]
            self._silenced_until.pop(alert_id, None)

            duration = now - resolved.starts_at
            self._metrics.alert_event(resolved.type.value, resolved.severity.value, "resolved")
            self._metrics.alert_resolved_after(resolved.type.value, duration)

        logger.info(
            "alert_resolved",
            alert_id=alert_id,
            type=resolved.type.value,
            duration_secs=round(duration, 3),
        )

    async def silence_alert(self, alert_id: str, duration: float) -> None:
        """Suppress firing of *alert_id* for *duration* seconds."""
        if duration <= 0:
            raise ValueError(f"silence duration must be positive, got {duration}")

        async with self._lock:
            current = self._active.get(alert_id)
            if current is None:
                raise NotFoundError(f"active alert not found: {alert_id}")

            until = self._clock() + duration
            silenced = current.model_copy(deep=True)
            silenced.mark_silenced()
            await self._store.update_alert(silenced)
            self._active[alert_id] = silenced
            self._silenced_until[alert_id] = until
            self._metrics.alert_event(silenced.type.value, silenced.severity.value, "silenced")

        logger.info(
            "alert_silenced",
            alert_id=alert_id,
            duration_secs=duration,
            until=until,
        )

    async def get_alert(self, alert_id: str) -> Alert:
        alert = self._active.get(alert_id)
        if alert is None:
            return await self._store.get_alert(alert_id)
        return alert

    async def get_alerts(self, filters: Mapping[str, object] | None = None) -> list[Alert]:
        return await self._store.get_alerts(filters)

    def get_active_alerts(self) -> list[Alert]:
        return list(self._active.values())

    def get_silences(self) -> dict[str, float]:
        """Unexpired silences as ``{alert_id: until}``."""
        now = self._clock()
        return {aid: until for aid, until in self._silenced_until.items() if until > now}

    # ── Notifiers ───────────────────────────────────────────────

    def add_notifier(self, notifier: Notifier) -> None:
        self._notifiers[notifier.name] = notifier
        logger.info("notifier_added", notifier=notifier.name)

    def remove_notifier(self, name: str) -> None:
        if name not in self._notifiers:
            raise NotFoundError(f"notifier not found: {name}")
        del self._notifiers[name]
        logger.info("notifier_removed", notifier=name)

    def get_notifiers(self) -> list[Notifier]:
        return list(self._notifiers.values())

    def _dispatch(self, alert: Alert, notifiers: list[Notifier]) -> None:
        for notifier in notifiers:
            task = asyncio.create_task(self._notify_one(notifier, alert))
            self._notify_tasks.add(task)
            task.add_done_callback(self._notify_tasks.discard)

    async def _notify_one(self, notifier: Notifier, alert: Alert) -> None:
        try:
            await notifier.notify(alert)
        except Exception:
            self._metrics.notification(notifier.name, ok=False)
            logger.exception(
                "notification_failed",
                notifier=notifier.name,
                alert_id=alert.id,
            )
            return
        self._metrics.notification(notifier.name, ok=True)
        logger.debug("notification_sent", notifier=notifier.name, alert_id=alert.id)

    async def drain_notifications(self) -> None:
        """Wait for every in-flight notification task to finish."""
        while self._notify_tasks:
            await asyncio.gather(*list(self._notify_tasks), return_exceptions=True)

    # ── Rule evaluation ─────────────────────────────────────────

    async def evaluate_rules(self) -> None:
        """Evaluate every enabled rule once.

        A failure on one rule is logged and does not stop the others.
        """
        async with self._eval_lock:
            rules = [r for r in self._rules.values() if r.enabled]
            for rule in rules:
                try:
                    await self._evaluate_rule(rule)
                except Exception:
                    logger.exception(
                        "rule_evaluation_error",
                        rule_id=rule.id,
                        rule_name=rule.name,
                    )

    async def _evaluate_rule(self, rule: AlertRule) -> None:
        value = await self._value_source.value(rule.query)
        condition = AlertCondition(
            metric_name=rule.query,
            operator=rule.operator,
            threshold=rule.threshold,
            duration=rule.duration,
        )
        alert_id = rule.alert_id
        now = self._clock()

        if not condition.evaluate(value):
            self._breach_started.pop(rule.id, None)
            if alert_id in self._active:
                try:
                    await self.resolve_alert(alert_id)
                except NotFoundError:
                    pass
            return

        first_breach = self._breach_started.setdefault(rule.id, now)
        if now - first_breach < rule.duration:
            logger.debug(
                "rule_breach_pending",
                rule_id=rule.id,
                breached_for=round(now - first_breach, 3),
                duration=rule.duration,
            )
            return

        existing = self._active.get(alert_id)
        if existing is not None and not self._silence_expired(existing):
            return

        await self.fire_alert(Alert(
            id=alert_id,
            type=rule.type,
            severity=rule.severity,
            title=f"Alert: {rule.name}",
            description=rule.description,
            source=RULE_ALERT_SOURCE,
            created_at=now,
            starts_at=now,
            value=value,
            threshold=rule.threshold,
            labels=dict(rule.labels),
            annotations=dict(rule.annotations),
        ))

    def _silence_expired(self, alert: Alert) -> bool:
        if alert.status != AlertStatus.SILENCED:
            return False
        until = self._silenced_until.get(alert.id)
        return until is None or self._clock() >= until

    async def sweep_resolved(self) -> int:
        """Drop resolved alerts older than the retention window from the store."""
        if self._resolved_retention <= 0:
            return 0
        removed = await self._store.purge_resolved(self._clock() - self._resolved_retention)
        if removed:
            logger.info("resolved_alerts_swept", removed=removed)
        return removed

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self, shutdown: asyncio.Event | None = None) -> None:
        """Load persisted rules and start the periodic evaluation loop.

        Setting *shutdown* makes the loop exit at its next tick boundary.

        Raises:
            AlreadyRunningError: Already running, or stopped earlier.
        """
        if self._stopped:
            raise AlreadyRunningError("alert manager was stopped and cannot be restarted")
        if self._running:
            raise AlreadyRunningError("alert manager is already running")
        self._running = True

        try:
            rules = await self._store.get_rules()
        except Exception:
            self._running = False
            raise
        async with self._lock:
            for rule in rules:
                self._rules[rule.id] = rule
        logger.info("alert_rules_loaded", count=len(rules))

        self._task = asyncio.create_task(self._evaluation_loop(shutdown))
        logger.info(
            "alert_manager_started",
            evaluation_interval=self._evaluation_interval,
        )

    async def stop(self) -> None:
        """Stop the evaluation loop and let in-flight notifications finish.

        Raises:
            NotRunningError: The manager is not running.
        """
        if not self._running:
            raise NotRunningError("alert manager is not running")
        self._running = False
        self._stopped = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.drain_notifications()
        logger.info("alert_manager_stopped")

    async def _evaluation_loop(self, shutdown: asyncio.Event | None) -> None:
        while self._running:
            try:
                if not await wait_tick(self._evaluation_interval, shutdown):
                    break
                await self.evaluate_rules()
                await self.sweep_resolved()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("evaluation_loop_error")

