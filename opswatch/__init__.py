"""opswatch — alerting and health-monitoring core."""

__version__ = "0.1.0"
