"""
HTTP round-trip latency against the selected endpoint.

Each sample is one HEAD request; a failed request counts towards packet
loss.  Reported latency is the minimum round trip, jitter is the mean
absolute difference between consecutive samples.
"""
from __future__ import annotations

import asyncio
import statistics
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .catalog import Endpoint
from .constants import DEFAULT_PING_COUNT, DEFAULT_PROBE_TIMEOUT, PING_INTERVAL
from .probe import probe_latency
from .stats import calculate_jitter, calculate_percentile


@dataclass
class LatencyResult:
    """Aggregated latency data for one endpoint."""

    endpoint: Endpoint
    pings: List[float] = field(default_factory=list)
    attempts: int = 0
    latency_ms: float = 0.0     # best (min) latency
    mean_ms: float = 0.0
    p95_ms: float = 0.0
    jitter_ms: float = 0.0
    packet_loss: float = 0.0    # percentage

    def calculate(self) -> None:
        if self.attempts > 0:
            self.packet_loss = (1 - len(self.pings) / self.attempts) * 100
        if self.pings:
            self.latency_ms = min(self.pings)
            self.mean_ms = statistics.mean(self.pings)
            self.p95_ms = calculate_percentile(self.pings, 95)
            self.jitter_ms = calculate_jitter(self.pings)

    @property
    def success(self) -> bool:
        return bool(self.pings)

    def to_dict(self) -> dict:
        return {
            "endpoint": self.endpoint.name,
            "pings": [round(p, 1) for p in self.pings],
            "attempts": self.attempts,
            "latency_ms": round(self.latency_ms, 1),
            "mean_ms": round(self.mean_ms, 1),
            "p95_ms": round(self.p95_ms, 1),
            "jitter_ms": round(self.jitter_ms, 3),
            "packet_loss": round(self.packet_loss, 1),
        }


class LatencyTester:
    """Sample HEAD round trips against one endpoint."""

    def __init__(
        self,
        ping_count: int = DEFAULT_PING_COUNT,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
        interval: float = PING_INTERVAL,
    ) -> None:
        self.ping_count = ping_count
        self.timeout = timeout
        self.interval = interval
        self.on_sample: Optional[Callable[[int, float], None]] = None

    async def test(self, transport, endpoint: Endpoint) -> LatencyResult:
        result = LatencyResult(endpoint=endpoint)

        for i in range(self.ping_count):
            pr = await probe_latency(transport, endpoint, self.timeout)
            result.attempts += 1
            if pr.success:
                result.pings.append(pr.latency_ms)
                if self.on_sample:
                    self.on_sample(i, pr.latency_ms)
            if self.interval > 0 and i < self.ping_count - 1:
                await asyncio.sleep(self.interval)

        result.calculate()
        return result
