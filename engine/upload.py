"""
Upload speed test.

Each worker streams POST bodies cut from a pre-generated random buffer to
the endpoint's upload URL.  Bytes are counted as they are handed to the
transport, so the shared counter tracks the wire closely.
"""
from __future__ import annotations

import asyncio
import os
from typing import AsyncIterator

import aiohttp

from .catalog import Endpoint
from .constants import CHUNK_SIZE, UPLOAD_BUFFER_SIZE, UPLOAD_REQUEST_BYTES
from .stats import ConnectionStats
from .transfer import TransferTester


class UploadTester(TransferTester):
    """Parallel upload speed tester."""

    direction = "upload"

    def __init__(self, duration_seconds: float = 10.0) -> None:
        super().__init__(duration_seconds)
        self._buffer = os.urandom(UPLOAD_BUFFER_SIZE)

    def supports(self, endpoint: Endpoint) -> bool:
        return endpoint.capabilities.supports_upload

    def _session_headers(self) -> dict:
        return {**super()._session_headers(), "Content-Type": "application/octet-stream"}

    async def _body(self, stats: ConnectionStats) -> AsyncIterator[bytes]:
        sent = 0
        pos = 0
        size = len(self._buffer)
        while self._running() and sent < UPLOAD_REQUEST_BYTES:
            end = pos + CHUNK_SIZE
            if end > size:
                chunk = self._buffer[pos:] + self._buffer[: end - size]
                pos = end - size
            else:
                chunk = self._buffer[pos:end]
                pos = end
            sent += len(chunk)
            self._count(stats, len(chunk))
            yield chunk
            await asyncio.sleep(0)

    async def _transfer(
        self,
        session: aiohttp.ClientSession,
        endpoint: Endpoint,
        stats: ConnectionStats,
    ) -> None:
        async with session.post(endpoint.upload_url, data=self._body(stats)) as resp:
            await resp.read()
