"""
Common machinery for the throughput testers.

Workers push bytes through a shared ``aiohttp.ClientSession`` and bump a
shared byte counter.  A sampler coroutine records throughput every
``SAMPLE_INTERVAL`` seconds, discarding the first ``WARMUP_SECONDS``.  The
final speed is the interquartile mean of the post-warmup samples; the
progress callback receives an EMA-smoothed speed.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Optional

import aiohttp

from .catalog import Endpoint
from .constants import (
    COMMON_HEADERS,
    EMA_ALPHA,
    MAX_CONNECTIONS,
    MAX_REASONABLE_SPEED,
    MIN_CONNECTIONS,
    SAMPLE_INTERVAL,
    WARMUP_SECONDS,
)
from .stats import ConnectionStats, TransferResult, ema

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, float], None]


class TransferTester:
    """Base class; subclasses implement :meth:`_transfer`."""

    direction = "transfer"

    def __init__(self, duration_seconds: float = 10.0) -> None:
        self.duration_seconds = duration_seconds
        self.on_progress: Optional[ProgressCallback] = None
        self._total_bytes = 0
        self._stop = asyncio.Event()
        self._end_time = 0.0

    # -- Hooks for subclasses ----------------------------------------------

    def supports(self, endpoint: Endpoint) -> bool:
        raise NotImplementedError

    async def _transfer(
        self,
        session: aiohttp.ClientSession,
        endpoint: Endpoint,
        stats: ConnectionStats,
    ) -> None:
        """Move bytes for one request; call :meth:`_count` as they flow."""
        raise NotImplementedError

    def _session_headers(self) -> dict:
        return dict(COMMON_HEADERS)

    # -- Shared helpers ----------------------------------------------------

    def _count(self, stats: ConnectionStats, n: int) -> None:
        stats.bytes_transferred += n
        self._total_bytes += n

    def _running(self) -> bool:
        return not self._stop.is_set() and time.perf_counter() < self._end_time

    # -- Orchestration -----------------------------------------------------

    async def test(self, endpoint: Endpoint, connections: int = 4) -> TransferResult:
        if not self.supports(endpoint):
            logger.info("%s test skipped: %s does not support it", self.direction, endpoint.name)
            return TransferResult(skipped=True)

        connections = max(MIN_CONNECTIONS, min(connections, MAX_CONNECTIONS))

        self._total_bytes = 0
        self._stop = asyncio.Event()
        speed_samples: List[float] = []
        conn_stats: List[ConnectionStats] = []

        start_time = time.perf_counter()
        self._end_time = start_time + self.duration_seconds

        async def _worker(session: aiohttp.ClientSession, cid: int) -> None:
            stats = ConnectionStats(id=cid, endpoint=endpoint.name)
            conn_stats.append(stats)
            t0 = time.perf_counter()

            while self._running():
                try:
                    await self._transfer(session, endpoint, stats)
                except asyncio.CancelledError:
                    break
                except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
                    if self._stop.is_set():
                        break
                    logger.debug("%s worker %d error: %s", self.direction, cid, exc)
                    await asyncio.sleep(0.2)

            stats.duration_ms = (time.perf_counter() - t0) * 1000
            stats.calculate()

        async def _sampler() -> None:
            prev_bytes = 0
            prev_time = start_time
            smoothed = 0.0

            while self._running():
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=SAMPLE_INTERVAL)
                    break
                except asyncio.TimeoutError:
                    pass

                now = time.perf_counter()
                cur = self._total_bytes
                dt = now - prev_time

                if dt < 0.05 or cur <= prev_bytes:
                    continue

                mbps = ((cur - prev_bytes) * 8) / dt / 1_000_000
                prev_bytes = cur
                prev_time = now

                if mbps > MAX_REASONABLE_SPEED:
                    continue

                if now - start_time >= WARMUP_SECONDS:
                    speed_samples.append(mbps)

                smoothed = ema(smoothed, mbps, EMA_ALPHA)

                if self.on_progress:
                    prog = min((now - start_time) / self.duration_seconds, 1.0)
                    self.on_progress(prog, smoothed)

        connector = aiohttp.TCPConnector(
            limit=connections,
            limit_per_host=connections,
            enable_cleanup_closed=True,
        )
        timeout = aiohttp.ClientTimeout(total=None, connect=5, sock_read=5)

        async with aiohttp.ClientSession(
            headers=self._session_headers(),
            connector=connector,
            timeout=timeout,
        ) as session:
            workers = [asyncio.create_task(_worker(session, i)) for i in range(connections)]
            sampler = asyncio.create_task(_sampler())

            remaining = self._end_time - time.perf_counter()
            if remaining > 0:
                await asyncio.sleep(remaining)

            self._stop.set()
            for t in workers:
                t.cancel()
            sampler.cancel()

            await asyncio.gather(*workers, return_exceptions=True)
            await asyncio.gather(sampler, return_exceptions=True)

        result = TransferResult(
            duration_ms=(time.perf_counter() - start_time) * 1000,
            bytes_total=self._total_bytes,
            connections=conn_stats,
            samples=speed_samples,
        )
        result.calculate_from_samples()
        return result
