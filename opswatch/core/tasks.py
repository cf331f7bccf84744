"""Helpers shared by the periodic background loops."""

from __future__ import annotations

import asyncio


async def wait_tick(interval: float, shutdown: asyncio.Event | None = None) -> bool:
    """Sleep one tick. Returns False once *shutdown* is set."""
    if shutdown is None:
        await asyncio.sleep(interval)
        return True
    try:
        await asyncio.wait_for(shutdown.wait(), timeout=interval)
    except TimeoutError:
        return True
    return False
