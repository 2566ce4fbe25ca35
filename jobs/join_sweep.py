from __future__ import annotations

import asyncio
from typing import Awaitable, Callable


async def join_sweep_loop(
    *,
    deduplicator,
    interval_seconds: float = 15,
    sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    while True:
        await sleep_func(max(1.0, float(interval_seconds)))
        try:
            evicted = deduplicator.sweep()
            if evicted:
                print(f"[Welcome] sweep evicted={evicted} pending={deduplicator.pending_count()}")
        except Exception as e:
            print(f"[Welcome] sweep loop error: {e}")
