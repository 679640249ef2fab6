"""
HTTP probe transport.

A thin wrapper over ``aiohttp`` answering one question per call: "send this
request, how long did it take and what came back?"  Every transport-level
failure is normalised to :class:`TransportError` so callers only need to
handle one exception type.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Optional

import aiohttp

from .constants import CHUNK_SIZE, COMMON_HEADERS


class TransportError(Exception):
    """The request never produced an HTTP response (timeout, refused, DNS...)."""


@dataclass
class TransportResponse:
    status: int
    elapsed_ms: float
    size: int = 0

    @property
    def ok(self) -> bool:
        """2xx and 3xx both prove the path works."""
        return 200 <= self.status < 400


class HttpTransport:
    """Async context-manager owning one shared ``aiohttp.ClientSession``."""

    def __init__(self, limit: int = 32) -> None:
        self._limit = limit
        self._session: Optional[aiohttp.ClientSession] = None

    # -- Context manager ----------------------------------------------------

    async def __aenter__(self) -> HttpTransport:
        connector = aiohttp.TCPConnector(limit=self._limit, enable_cleanup_closed=True)
        self._session = aiohttp.ClientSession(headers=COMMON_HEADERS, connector=connector)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._session:
            await self._session.close()
            self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError(
                "HttpTransport must be used as an async context manager "
                "(async with HttpTransport() as transport: ...)"
            )
        return self._session

    # -- Public methods -----------------------------------------------------

    async def send(self, method: str, url: str, timeout: float) -> TransportResponse:
        """Issue one request; the body of a GET is drained before timing stops."""
        session = self._ensure_session()
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        size = 0

        start = time.perf_counter()
        try:
            async with session.request(
                method,
                url,
                timeout=client_timeout,
                allow_redirects=False,
            ) as resp:
                if method.upper() != "HEAD":
                    while True:
                        chunk = await resp.content.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        size += len(chunk)
                status = resp.status
        except asyncio.TimeoutError:
            raise TransportError(f"{method} {url}: timed out after {timeout:.1f}s") from None
        except (aiohttp.ClientError, OSError) as exc:
            raise TransportError(f"{method} {url}: {exc}") from exc

        elapsed_ms = (time.perf_counter() - start) * 1000
        return TransportResponse(status=status, elapsed_ms=elapsed_ms, size=size)
