"""Built-in health probes.

Each probe is an async callable returning a ``HealthCheck``. Probes never
raise: faults are reported as an unhealthy check with the error in the
message.
"""

from __future__ import annotations

import asyncio
import gc
import os
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

import httpx
import psutil
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from opswatch.health.types import HealthCheck, HealthStatus

Probe = Callable[[], Awaitable[HealthCheck]]

# Memory classification, allocated MB.
MEMORY_DEGRADED_MB = 1024.0
MEMORY_UNHEALTHY_MB = 2048.0

# Live asyncio tasks.
TASKS_DEGRADED = 1000
TASKS_UNHEALTHY = 10000

# Process CPU percent.
CPU_DEGRADED_PCT = 80.0
CPU_UNHEALTHY_PCT = 95.0

_MB = 1024 * 1024

_process = psutil.Process(os.getpid())


def _finish(
    name: str,
    status: HealthStatus,
    message: str,
    started: float,
    details: dict[str, Any] | None = None,
) -> HealthCheck:
    return HealthCheck(
        name=name,
        status=status,
        message=message,
        duration=max(time.monotonic() - started, 0.0),
        last_check=time.time(),
        details=details or {},
    )


# ── Database ────────────────────────────────────────────────────


async def check_database(engine: AsyncEngine | None, timeout: float = 5.0) -> HealthCheck:
    """Ping the engine (connection acquisition), then run ``SELECT 1``.

    Unhealthy when there is no engine or no connection can be acquired;
    degraded when the connection works but the query fails.
    """
    started = time.monotonic()
    if engine is None:
        return _finish(
            "database", HealthStatus.UNHEALTHY,
            "database connection is not configured", started,
        )

    try:
        async with asyncio.timeout(timeout):
            conn = await engine.connect()
    except Exception as exc:
        return _finish(
            "database", HealthStatus.UNHEALTHY,
            f"database connection error: {exc}", started,
        )
    ping_ms = (time.monotonic() - started) * 1000

    try:
        async with asyncio.timeout(timeout):
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        return _finish(
            "database", HealthStatus.DEGRADED,
            f"database query error: {exc}", started,
            {"ping_ms": round(ping_ms, 3)},
        )
    finally:
        await conn.close()

    return _finish(
        "database", HealthStatus.HEALTHY, "database connection ok", started,
        {"ping_ms": round(ping_ms, 3)},
    )


# ── Memory ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class MemorySample:
    alloc_mb: float
    sys_mb: float
    gc_count: int


def sample_memory() -> MemorySample:
    """Resident (allocated) and virtual (system) size of this process."""
    info = _process.memory_info()
    return MemorySample(
        alloc_mb=info.rss / _MB,
        sys_mb=info.vms / _MB,
        gc_count=sum(gen["collections"] for gen in gc.get_stats()),
    )


async def check_memory(
    sampler: Callable[[], MemorySample] = sample_memory,
) -> HealthCheck:
    started = time.monotonic()
    try:
        sample = sampler()
    except Exception as exc:
        return _finish(
            "memory", HealthStatus.UNHEALTHY, f"memory sampling failed: {exc}", started,
        )

    if sample.alloc_mb > MEMORY_UNHEALTHY_MB:
        status = HealthStatus.UNHEALTHY
        message = f"memory usage too high: {sample.alloc_mb:.2f} MB"
    elif sample.alloc_mb > MEMORY_DEGRADED_MB:
        status = HealthStatus.DEGRADED
        message = f"memory usage elevated: {sample.alloc_mb:.2f} MB"
    else:
        status = HealthStatus.HEALTHY
        message = f"memory usage ok: {sample.alloc_mb:.2f} MB"

    return _finish("memory", status, message, started, {
        "alloc_mb": round(sample.alloc_mb, 2),
        "sys_mb": round(sample.sys_mb, 2),
        "gc_count": sample.gc_count,
        "tasks": _task_count(),
    })


# ── Concurrency ─────────────────────────────────────────────────


def _task_count() -> int:
    try:
        return len(asyncio.all_tasks())
    except RuntimeError:
        # No running loop.
        return 0


async def check_concurrency(counter: Callable[[], int] = _task_count) -> HealthCheck:
    started = time.monotonic()
    count = counter()

    if count > TASKS_UNHEALTHY:
        status = HealthStatus.UNHEALTHY
        message = f"task count abnormal: {count}"
    elif count > TASKS_DEGRADED:
        status = HealthStatus.DEGRADED
        message = f"task count elevated: {count}"
    else:
        status = HealthStatus.HEALTHY
        message = f"task count ok: {count}"

    return _finish("concurrency", status, message, started, {"tasks": count})


# ── CPU ─────────────────────────────────────────────────────────


def sample_cpu_percent() -> float:
    """Process CPU percent since the previous call (0.0 on the first)."""
    return _process.cpu_percent(interval=None)


async def check_cpu(sampler: Callable[[], float] = sample_cpu_percent) -> HealthCheck:
    started = time.monotonic()
    try:
        percent = sampler()
    except Exception as exc:
        return _finish("cpu", HealthStatus.UNHEALTHY, f"cpu sampling failed: {exc}", started)

    if percent > CPU_UNHEALTHY_PCT:
        status = HealthStatus.UNHEALTHY
        message = f"cpu usage too high: {percent:.1f}%"
    elif percent > CPU_DEGRADED_PCT:
        status = HealthStatus.DEGRADED
        message = f"cpu usage elevated: {percent:.1f}%"
    else:
        status = HealthStatus.HEALTHY
        message = f"cpu usage ok: {percent:.1f}%"

    return _finish("cpu", status, message, started, {
        "cpu_percent": round(percent, 2),
        "cpu_count": psutil.cpu_count() or 0,
    })


# ── HTTP endpoints ──────────────────────────────────────────────


async def check_http_endpoints(
    endpoints: Sequence[str],
    timeout: float = 10.0,
    client: httpx.AsyncClient | None = None,
) -> HealthCheck:
    """GET every liveness URL; only a 200 counts as healthy."""
    started = time.monotonic()
    if not endpoints:
        return _finish(
            "http_endpoints", HealthStatus.HEALTHY, "no endpoints configured", started,
        )

    own_client = client is None
    http = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
    details: dict[str, Any] = {}
    healthy = 0
    try:
        for url in endpoints:
            endpoint_started = time.monotonic()
            try:
                resp = await http.get(url)
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                details[url] = {"status": "error", "error": str(exc) or type(exc).__name__}
                continue

            elapsed_ms = round((time.monotonic() - endpoint_started) * 1000, 3)
            if resp.status_code == 200:
                healthy += 1
                details[url] = {"status": "healthy", "duration_ms": elapsed_ms}
            else:
                details[url] = {
                    "status": "unhealthy",
                    "status_code": resp.status_code,
                    "duration_ms": elapsed_ms,
                }
    finally:
        if own_client:
            await http.aclose()

    total = len(endpoints)
    if healthy == total:
        status = HealthStatus.HEALTHY
        message = "all endpoints healthy"
    elif healthy > 0:
        status = HealthStatus.DEGRADED
        message = f"some endpoints failing ({healthy}/{total} healthy)"
    else:
        status = HealthStatus.UNHEALTHY
        message = "all endpoints failing"

    return _finish("http_endpoints", status, message, started, details)


# ── Disk ────────────────────────────────────────────────────────


async def check_disk() -> HealthCheck:
    # TODO: classify with psutil.disk_usage against the disk threshold.
    started = time.monotonic()
    return _finish(
        "disk", HealthStatus.HEALTHY, "disk usage ok (stub check)", started,
        {"note": "stub implementation, disk usage is not measured"},
    )
