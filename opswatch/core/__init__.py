"""Core module — config, logging, errors, metrics."""

from opswatch.core.config import (
    Settings,
    get_settings,
    load_settings,
    parse_duration,
    reset_settings,
)
from opswatch.core.exceptions import (
    AlreadyRunningError,
    ConfigError,
    DeliveryError,
    LifecycleError,
    NotFoundError,
    NotRunningError,
    OpswatchError,
    RecoveryError,
)
from opswatch.core.logging import setup_logging
from opswatch.core.metrics import AlertMetrics

__all__ = [
    "AlertMetrics",
    "AlreadyRunningError",
    "ConfigError",
    "DeliveryError",
    "LifecycleError",
    "NotFoundError",
    "NotRunningError",
    "OpswatchError",
    "RecoveryError",
    "Settings",
    "get_settings",
    "load_settings",
    "parse_duration",
    "reset_settings",
    "setup_logging",
]
