"""Tests for alert domain types — severity order, lifecycle invariants, ids."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from opswatch.alert.types import (
    Alert,
    AlertRule,
    AlertStatus,
    AlertType,
    Severity,
    new_alert,
    new_rule,
)


# ── Helpers ─────────────────────────────────────────────────────


def _alert(**kw: object) -> Alert:
    defaults: dict[str, object] = {
        "id": "a1",
        "type": AlertType.HIGH_CPU,
        "severity": Severity.WARNING,
        "title": "cpu hot",
    }
    defaults.update(kw)
    return Alert(**defaults)  # type: ignore[arg-type]


# ── Severity ────────────────────────────────────────────────────


class TestSeverity:
    def test_total_order(self) -> None:
        assert Severity.INFO < Severity.WARNING < Severity.ERROR < Severity.CRITICAL

    def test_sorting(self) -> None:
        ordered = sorted([Severity.CRITICAL, Severity.INFO, Severity.ERROR, Severity.WARNING])
        assert ordered == [Severity.INFO, Severity.WARNING, Severity.ERROR, Severity.CRITICAL]

    def test_comparisons(self) -> None:
        assert Severity.CRITICAL >= Severity.CRITICAL
        assert Severity.WARNING <= Severity.ERROR
        assert max(Severity.WARNING, Severity.CRITICAL) == Severity.CRITICAL

    def test_string_values(self) -> None:
        assert Severity("critical") is Severity.CRITICAL
        assert Severity.INFO == "info"


class TestAlertType:
    def test_closed_set(self) -> None:
        assert len(AlertType) == 16
        assert AlertType("health_check_failed") is AlertType.HEALTH_CHECK_FAILED

    def test_unknown_value_rejected(self) -> None:
        with pytest.raises(ValueError):
            AlertType("disk_on_fire")


# ── Alert ───────────────────────────────────────────────────────


class TestAlert:
    def test_defaults(self) -> None:
        a = _alert()
        assert a.status == AlertStatus.FIRING
        assert a.ends_at is None
        assert a.active is True
        assert a.labels == {}

    def test_resolved_requires_ends_at(self) -> None:
        with pytest.raises(ValidationError):
            _alert(status=AlertStatus.RESOLVED)

    def test_ends_at_requires_resolved(self) -> None:
        with pytest.raises(ValidationError):
            _alert(ends_at=123.0)

    def test_mark_resolved(self) -> None:
        a = _alert()
        a.mark_resolved(500.0)
        assert a.status == AlertStatus.RESOLVED
        assert a.ends_at == 500.0
        assert a.active is False

    def test_mark_silenced_keeps_ends_at_empty(self) -> None:
        a = _alert()
        a.mark_silenced()
        assert a.status == AlertStatus.SILENCED
        assert a.ends_at is None
        assert a.active is True

    def test_json_dump_uses_plain_values(self) -> None:
        data = _alert(labels={"env": "prod"}).model_dump(mode="json")
        assert data["type"] == "high_cpu"
        assert data["severity"] == "warning"
        assert data["status"] == "firing"
        assert data["labels"] == {"env": "prod"}


# ── Constructors ────────────────────────────────────────────────


class TestConstructors:
    def test_new_alert_id_prefix(self) -> None:
        a = new_alert(AlertType.SERVICE_DOWN, Severity.CRITICAL, "down", "api is down", "probe")
        assert a.id.startswith("alert_")
        assert a.status == AlertStatus.FIRING
        assert a.created_at == a.starts_at
        assert a.source == "probe"

    def test_new_alert_ids_unique(self) -> None:
        ids = {new_alert(AlertType.HIGH_CPU, Severity.INFO, "t").id for _ in range(100)}
        assert len(ids) == 100

    def test_new_rule(self) -> None:
        r = new_rule("cpu", AlertType.HIGH_CPU, Severity.WARNING)
        assert r.id.startswith("rule_")
        assert r.enabled is True
        assert r.operator == ">"
        assert r.duration == 0.0

    def test_rule_alert_id(self) -> None:
        r = AlertRule(id="r1", name="x", type=AlertType.HIGH_CPU, severity=Severity.WARNING)
        assert r.alert_id == "r1_high_cpu"

    def test_rule_negative_duration_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AlertRule(
                id="r1", name="x", type=AlertType.HIGH_CPU,
                severity=Severity.WARNING, duration=-1,
            )
