"""Tests for the built-in alert rules."""

from __future__ import annotations

from opswatch.alert.defaults import default_rules
from opswatch.alert.types import AlertType, Severity


class TestDefaultRules:
    def test_ids(self) -> None:
        assert [r.id for r in default_rules()] == [
            "default_high_error_rate",
            "default_slow_response",
            "default_db_connection_error",
            "default_high_memory_usage",
        ]

    def test_db_rule_is_critical(self) -> None:
        rules = {r.id: r for r in default_rules()}
        db = rules["default_db_connection_error"]
        assert db.severity == Severity.CRITICAL
        assert db.type == AlertType.DB_CONNECTION_ERROR
        assert db.query == "db_connection_errors"
        assert db.duration == 60.0

    def test_thresholds_and_durations(self) -> None:
        rules = {r.id: r for r in default_rules()}
        assert (rules["default_high_error_rate"].threshold, rules["default_high_error_rate"].duration) == (5.0, 300.0)
        assert (rules["default_slow_response"].threshold, rules["default_slow_response"].duration) == (2.0, 180.0)
        assert rules["default_high_memory_usage"].threshold == 80.0

    def test_all_enabled_and_labelled(self) -> None:
        for rule in default_rules():
            assert rule.enabled is True
            assert rule.operator == ">"
            assert rule.labels == {"category": "default", "default": "true"}
            assert set(rule.annotations) == {"summary", "description"}

    def test_fresh_copies(self) -> None:
        a = default_rules()
        a[0].labels["mutated"] = "yes"
        assert "mutated" not in default_rules()[0].labels
