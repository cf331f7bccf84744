"""Exception hierarchy for the alerting and health-monitoring core."""

from __future__ import annotations


class OpswatchError(Exception):
    """Base exception for all opswatch errors."""


class NotFoundError(OpswatchError):
    """An alert, rule or notifier id is not known."""


class LifecycleError(OpswatchError):
    """A component was started or stopped out of order."""


class AlreadyRunningError(LifecycleError):
    """Start was called on a component that is running (or was stopped)."""


class NotRunningError(LifecycleError):
    """Stop was called on a component that is not running."""


class DeliveryError(OpswatchError):
    """A notifier failed to deliver an alert to its channel."""

    def __init__(self, notifier: str, reason: str) -> None:
        super().__init__(f"{notifier}: {reason}")
        self.notifier = notifier
        self.reason = reason


class RecoveryError(OpswatchError):
    """A recovery action could not remediate the fault."""

    def __init__(self, action: str, reason: str) -> None:
        super().__init__(f"{action}: {reason}")
        self.action = action
        self.reason = reason


class ConfigError(OpswatchError):
    """Invalid or unsupported configuration."""
