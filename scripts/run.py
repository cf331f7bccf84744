#!/usr/bin/env python3
"""Alert system entrypoint — wires the alert core and management API.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Override log level
    python scripts/run.py --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog
from prometheus_client import CollectorRegistry
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from opswatch.alert.sources import RegistryValueSource
from opswatch.api.app import start_api_server
from opswatch.core.config import load_settings
from opswatch.core.exceptions import OpswatchError
from opswatch.core.logging import setup_logging
from opswatch.system import AlertSystem

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Start the alert system and run until interrupted."""
    settings = load_settings(args.config)
    setup_logging(settings.logging, level=args.log_level)

    logger.info(
        "alert_system_starting",
        store_backend=settings.alerts.store_backend,
        health_monitor=settings.alerts.enable_health_monitor,
        notifications=settings.alerts.enable_notifications,
        api=settings.api.enabled,
    )

    # ── Database handle for health probing ───────────────────────
    engine: AsyncEngine | None = None
    if settings.alerts.database_url:
        engine = create_async_engine(settings.alerts.database_url, pool_pre_ping=True)

    # ── Alert system ─────────────────────────────────────────────
    # Rules resolve their queries against the system's own registry.
    registry = CollectorRegistry()
    stop_event = asyncio.Event()
    system = AlertSystem(
        settings,
        db=engine,
        registry=registry,
        value_source=RegistryValueSource(registry),
    )
    try:
        await system.initialize()
        await system.start(stop_event)
    except OpswatchError as exc:
        logger.error("alert_system_start_failed", error=str(exc))
        print(f"Failed to start alert system: {exc}", file=sys.stderr)
        if engine is not None:
            await engine.dispose()
        return 1

    # ── Management API ───────────────────────────────────────────
    runner = None
    if settings.api.enabled:
        runner = await start_api_server(system, settings.api.host, settings.api.port)

    logger.info(
        "alert_system_running",
        rules=len(system.manager.get_rules()),
        notifiers=[n.name for n in system.notifiers],
        api_port=settings.api.port if runner else None,
    )

    # ── Wait for shutdown signal ─────────────────────────────────
    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("alert_system_shutting_down")

    if runner is not None:
        await runner.cleanup()

    await system.stop()

    if engine is not None:
        await engine.dispose()

    logger.info(
        "alert_system_exited",
        active_alerts=len(system.manager.get_active_alerts()),
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the alerting and health-monitoring service.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
