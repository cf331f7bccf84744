"""Automated recovery actions triggered by failing health checks."""

from __future__ import annotations

import abc
import asyncio

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from opswatch.core.exceptions import RecoveryError
from opswatch.health.types import HealthCheck

logger = structlog.get_logger(__name__)


class RecoveryAction(abc.ABC):
    """Best-effort remediation for one probe.

    ``execute`` raises ``RecoveryError`` when the fault persists.
    """

    def __init__(self, name: str, enabled: bool = True) -> None:
        self._name = name
        self._enabled = enabled

    @property
    def name(self) -> str:
        return self._name

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled

    @abc.abstractmethod
    async def execute(self, check: HealthCheck) -> None:
        """Attempt to remediate the fault reported by *check*."""


class DatabaseRecoveryAction(RecoveryAction):
    """Drops pooled connections and verifies the database answers again."""

    def __init__(self, engine: AsyncEngine | None, ping_timeout: float = 5.0) -> None:
        super().__init__("database_recovery")
        self._engine = engine
        self._ping_timeout = ping_timeout

    async def execute(self, check: HealthCheck) -> None:
        if self._engine is None:
            raise RecoveryError(self._name, "database engine is not configured")

        logger.info(
            "database_recovery_started",
            check_name=check.name,
            check_status=check.status.value,
            pool_status=self._engine.pool.status(),
        )

        # Pooled connections are re-established lazily after dispose.
        await self._engine.dispose()

        try:
            async with asyncio.timeout(self._ping_timeout):
                async with self._engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
        except Exception as exc:
            raise RecoveryError(self._name, f"database still unreachable: {exc}") from exc

        logger.info("database_recovery_succeeded", check_name=check.name)
