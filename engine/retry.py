"""
Bounded retry policy around :func:`probe_latency`.

Turns a flaky endpoint into a single ``(latency, responsive)`` verdict.  The
best (minimum) round trip is kept: one fast answer proves the path can be
fast.  An endpoint that never answers gets the unreachable sentinel latency
so it still sorts after every real measurement.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass

from .catalog import Endpoint
from .constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_RETRY_DELAY,
    UNREACHABLE_LATENCY_MS,
)
from .probe import probe_latency


@dataclass
class ProbeOutcome:
    latency_ms: float = UNREACHABLE_LATENCY_MS
    responsive: bool = False
    attempts: int = 0
    successes: int = 0

    def to_dict(self) -> dict:
        return {
            "latency_ms": round(self.latency_ms, 1),
            "responsive": self.responsive,
            "attempts": self.attempts,
            "successes": self.successes,
        }


async def probe_with_retries(
    transport,
    endpoint: Endpoint,
    max_retries: int = DEFAULT_MAX_RETRIES,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
    retry_delay: float = DEFAULT_RETRY_DELAY,
    unreachable_ms: float = UNREACHABLE_LATENCY_MS,
) -> ProbeOutcome:
    total = max(0, max_retries) + 1
    best = None
    successes = 0

    for attempt in range(total):
        result = await probe_latency(transport, endpoint, timeout)
        if result.success:
            successes += 1
            best = result.latency_ms if best is None else min(best, result.latency_ms)
        elif attempt < total - 1 and retry_delay > 0:
            await asyncio.sleep(retry_delay)

    return ProbeOutcome(
        latency_ms=min(best, unreachable_ms) if best is not None else unreachable_ms,
        responsive=successes > 0,
        attempts=total,
        successes=successes,
    )
