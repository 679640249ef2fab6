"""
Download speed test.

Each worker opens a long-running GET against the endpoint's download URL
and reads ``CHUNK_SIZE`` chunks in a loop until the test window closes.
"""
from __future__ import annotations

import asyncio

import aiohttp

from .catalog import Endpoint
from .constants import CHUNK_SIZE, DOWNLOAD_REQUEST_BYTES
from .stats import ConnectionStats
from .transfer import TransferTester


class DownloadTester(TransferTester):
    """Parallel download speed tester."""

    direction = "download"

    def supports(self, endpoint: Endpoint) -> bool:
        return endpoint.capabilities.supports_download

    def _session_headers(self) -> dict:
        # compressed bodies would under-report bytes on the wire
        return {**super()._session_headers(), "Accept-Encoding": "identity"}

    async def _transfer(
        self,
        session: aiohttp.ClientSession,
        endpoint: Endpoint,
        stats: ConnectionStats,
    ) -> None:
        async with session.get(endpoint.download_url(DOWNLOAD_REQUEST_BYTES)) as resp:
            resp.raise_for_status()
            while self._running():
                try:
                    chunk = await asyncio.wait_for(resp.content.read(CHUNK_SIZE), timeout=1.0)
                except asyncio.TimeoutError:
                    continue
                if not chunk:
                    break
                self._count(stats, len(chunk))
