"""
Single-shot endpoint probes.

Network failures are expected outcomes here, not exceptional ones: both
probes report failure through their return value and never raise for a
timeout or a refused connection.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .catalog import Endpoint
from .constants import CAPABILITY_PROBE_BYTES, DEFAULT_CAPABILITY_TIMEOUT, DEFAULT_PROBE_TIMEOUT
from .transport import TransportError

logger = logging.getLogger(__name__)

UNREACHABLE = "unreachable"

# download-capability signal levels
CAPABILITY_FULL = 1.0
CAPABILITY_EXISTS_ONLY = 0.5
CAPABILITY_BAD_STATUS = 0.3
CAPABILITY_NONE = 0.0


@dataclass
class ProbeResult:
    """One HEAD round-trip."""

    latency_ms: float = 0.0
    success: bool = True
    status: Optional[int] = None
    error: Optional[str] = None


async def probe_latency(
    transport,
    endpoint: Endpoint,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
) -> ProbeResult:
    try:
        resp = await transport.send("HEAD", endpoint.url, timeout)
    except TransportError as exc:
        logger.debug("latency probe %s failed: %s", endpoint.name, exc)
        return ProbeResult(success=False, error=UNREACHABLE)

    if not resp.ok:
        return ProbeResult(
            latency_ms=resp.elapsed_ms,
            success=False,
            status=resp.status,
            error=f"HTTP {resp.status}",
        )
    return ProbeResult(latency_ms=resp.elapsed_ms, status=resp.status)


async def probe_download_capability(
    transport,
    endpoint: Endpoint,
    timeout: float = DEFAULT_CAPABILITY_TIMEOUT,
) -> float:
    """Coarse [0, 1] capability gate; not a throughput measurement."""
    if not endpoint.capabilities.supports_download:
        return CAPABILITY_NONE

    url = endpoint.download_url(CAPABILITY_PROBE_BYTES)

    try:
        head = await transport.send("HEAD", url, timeout)
    except TransportError as exc:
        logger.debug("capability check %s failed: %s", endpoint.name, exc)
        return CAPABILITY_NONE

    if not head.ok:
        return CAPABILITY_BAD_STATUS

    try:
        fetch = await transport.send("GET", url, timeout)
    except TransportError as exc:
        logger.debug("capability fetch %s failed: %s", endpoint.name, exc)
        return CAPABILITY_EXISTS_ONLY

    return CAPABILITY_FULL if fetch.ok else CAPABILITY_EXISTS_ONLY
