"""
Adaptive endpoint selection.

One linear pass per request::

    IDLE -> FILTERING -> PROBING -> SCORING -> RANKING -> SELECTING -> DONE

Only individual probes retry (see :mod:`engine.retry`); the pipeline itself
runs exactly once.  Probe failures are absorbed and scored down; the single
error that leaves this module is :class:`NoResponsiveEndpoint`.

Catalog entries stay immutable.  Per-run measurements live in a map keyed
by catalog index, so concurrent probe tasks never share a slot.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .catalog import Endpoint, provider_label, validate_catalog
from .constants import (
    DEFAULT_CAPABILITY_TIMEOUT,
    DEFAULT_CONCURRENCY,
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_INTER_ENDPOINT_DELAY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_RETRY_DELAY,
    DEFAULT_SELECTION_DEADLINE,
    MAX_CONCURRENCY,
    UNREACHABLE_LATENCY_MS,
)
from .geolocation import LocationInfo
from .health import HealthRecord, HealthStore, InMemoryHealthStore, filter_endpoints
from .probe import CAPABILITY_NONE, probe_download_capability
from .retry import ProbeOutcome, probe_with_retries
from .scoring import score
from .transport import HttpTransport

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]

NO_RESPONSIVE_MESSAGE = "No responsive servers found. Check your internet connection."


class NoResponsiveEndpoint(RuntimeError):
    """No endpoint cleared any fallback tier.  Fatal to the test run."""

    def __init__(self, message: str = NO_RESPONSIVE_MESSAGE, ranked: Optional[list] = None) -> None:
        super().__init__(message)
        self.ranked = ranked or []


class SelectionState(enum.IntEnum):
    IDLE = 0
    FILTERING = 1
    PROBING = 2
    SCORING = 3
    RANKING = 4
    SELECTING = 5
    DONE = 6


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class SelectionConfig:
    """Tunables for one selection run.  Defaults are the production values."""

    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    capability_timeout: float = DEFAULT_CAPABILITY_TIMEOUT
    inter_endpoint_delay: float = DEFAULT_INTER_ENDPOINT_DELAY
    concurrency: int = DEFAULT_CONCURRENCY
    deadline: Optional[float] = DEFAULT_SELECTION_DEADLINE
    unreachable_latency_ms: float = UNREACHABLE_LATENCY_MS
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD

    tier1_min_score: float = 0.7
    tier1_max_latency_ms: float = 200.0
    tier2_max_latency_ms: float = 500.0
    tier3_max_latency_ms: float = 1000.0
    tier3_min_score: float = 0.2

    def validate(self) -> None:
        """Raise ``ValueError`` if any value is out of range."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        for name in ("retry_delay", "inter_endpoint_delay"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        for name in ("probe_timeout", "capability_timeout", "unreachable_latency_ms"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        if not 1 <= self.concurrency <= MAX_CONCURRENCY:
            raise ValueError(f"concurrency must be between 1 and {MAX_CONCURRENCY}")
        if self.deadline is not None and self.deadline <= 0:
            raise ValueError("deadline must be > 0 (or None for no deadline)")
        if self.failure_threshold < 0:
            raise ValueError("failure_threshold must be >= 0")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SelectionConfig:
        """Build from a mapping, ignoring keys that are not tunables.

        ``None`` is only meaningful for ``deadline`` (no outer deadline); for
        every other key it means "use the default".
        """
        known = {f.name for f in fields(cls)}
        return cls(**{
            k: v for k, v in data.items()
            if k in known and (v is not None or k == "deadline")
        })


# ---------------------------------------------------------------------------
# Per-run records
# ---------------------------------------------------------------------------

@dataclass
class Measurement:
    outcome: ProbeOutcome
    download_capability: float = CAPABILITY_NONE
    completed: bool = True


@dataclass
class ScoredEndpoint:
    endpoint: Endpoint
    index: int
    score: float
    latency_ms: float
    responsive: bool
    download_capability: float = 0.0

    def to_dict(self) -> dict:
        return {
            "name": self.endpoint.name,
            "url": self.endpoint.url,
            "provider": provider_label(self.endpoint.provider),
            "location": self.endpoint.location,
            "score": round(self.score, 4),
            "latency_ms": round(self.latency_ms, 1),
            "responsive": self.responsive,
            "download_capability": self.download_capability,
        }


@dataclass
class SelectionResult:
    chosen: ScoredEndpoint
    ranked: List[ScoredEndpoint] = field(default_factory=list)
    tier: int = 1
    timed_out: bool = False

    def to_dict(self) -> dict:
        return {
            "chosen": self.chosen.to_dict(),
            "tier": self.tier,
            "timed_out": self.timed_out,
            "ranked": [s.to_dict() for s in self.ranked],
        }


# ---------------------------------------------------------------------------
# Ranking and tiered fallback (pure)
# ---------------------------------------------------------------------------

def rank(scored: Iterable[ScoredEndpoint]) -> List[ScoredEndpoint]:
    """Score desc, then latency asc, then catalog order."""
    return sorted(scored, key=lambda s: (-s.score, s.latency_ms, s.index))


def choose(
    ranked: List[ScoredEndpoint],
    config: Optional[SelectionConfig] = None,
) -> Tuple[ScoredEndpoint, int]:
    """Return ``(endpoint, tier)`` for the first tier that accepts one."""
    cfg = config or SelectionConfig()

    if ranked:
        top = ranked[0]
        if (
            top.responsive
            and top.score > cfg.tier1_min_score
            and top.latency_ms < cfg.tier1_max_latency_ms
        ):
            return top, 1

    for s in ranked:
        if s.responsive and s.endpoint.is_top_tier and s.latency_ms < cfg.tier2_max_latency_ms:
            return s, 2

    for s in ranked:
        if s.responsive and s.latency_ms < cfg.tier3_max_latency_ms and s.score > cfg.tier3_min_score:
            return s, 3

    raise NoResponsiveEndpoint(ranked=ranked)


# ---------------------------------------------------------------------------
# Selector
# ---------------------------------------------------------------------------

class EndpointSelector:
    """Filter, probe, score, rank and commit to exactly one endpoint."""

    def __init__(
        self,
        transport,
        config: Optional[SelectionConfig] = None,
        health_store: Optional[HealthStore] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> None:
        self.transport = transport
        self.config = config or SelectionConfig()
        self.health_store = health_store if health_store is not None else InMemoryHealthStore()
        self.on_status = on_status
        self.state = SelectionState.IDLE
        self.transitions: List[SelectionState] = [SelectionState.IDLE]

    # -- Helpers ------------------------------------------------------------

    def _advance(self, state: SelectionState) -> None:
        if state <= self.state:
            raise RuntimeError(f"Illegal selector transition {self.state.name} -> {state.name}")
        self.state = state
        self.transitions.append(state)

    def _emit(self, message: str) -> None:
        logger.debug(message)
        if self.on_status:
            self.on_status(message)

    # -- Public -------------------------------------------------------------

    async def select(
        self,
        endpoints: Iterable[Endpoint],
        location: Optional[LocationInfo] = None,
    ) -> SelectionResult:
        cfg = self.config
        cfg.validate()
        self.state = SelectionState.IDLE
        self.transitions = [SelectionState.IDLE]

        # -- Filtering ------------------------------------------------------
        self._advance(SelectionState.FILTERING)
        endpoints = list(endpoints)
        validate_catalog(endpoints)

        latency_capable = [ep for ep in endpoints if ep.capabilities.supports_latency]
        healthy = filter_endpoints(latency_capable, self.health_store, cfg.failure_threshold)
        kept = {ep.name for ep in healthy}
        survivors = [(i, ep) for i, ep in enumerate(endpoints) if ep.name in kept]
        self._emit(f"{len(survivors)} of {len(endpoints)} endpoints eligible for probing")

        # -- Probing --------------------------------------------------------
        self._advance(SelectionState.PROBING)
        self._emit(f"Probing {len(survivors)} endpoints")
        measurements, timed_out = await self._probe_all(survivors)
        self._update_health(survivors, measurements)

        # -- Scoring --------------------------------------------------------
        self._advance(SelectionState.SCORING)
        scored = []
        for i, ep in survivors:
            m = measurements[i]
            scored.append(
                ScoredEndpoint(
                    endpoint=ep,
                    index=i,
                    score=score(ep, m.outcome, m.download_capability, location),
                    latency_ms=m.outcome.latency_ms,
                    responsive=m.outcome.responsive,
                    download_capability=m.download_capability,
                )
            )

        # -- Ranking --------------------------------------------------------
        self._advance(SelectionState.RANKING)
        ranked = rank(scored)

        # -- Selecting ------------------------------------------------------
        self._advance(SelectionState.SELECTING)
        try:
            chosen, tier = choose(ranked, cfg)
        except NoResponsiveEndpoint:
            self._emit("No endpoint passed any selection tier")
            raise

        self._emit(
            f"Selected {chosen.endpoint.name} (tier {tier}, score {chosen.score:.2f}, "
            f"{chosen.latency_ms:.0f} ms)"
        )
        self._advance(SelectionState.DONE)
        return SelectionResult(chosen=chosen, ranked=ranked, tier=tier, timed_out=timed_out)

    # -- Internals ----------------------------------------------------------

    async def _probe_one(self, endpoint: Endpoint) -> Measurement:
        cfg = self.config
        outcome = await probe_with_retries(
            self.transport,
            endpoint,
            max_retries=cfg.max_retries,
            timeout=cfg.probe_timeout,
            retry_delay=cfg.retry_delay,
            unreachable_ms=cfg.unreachable_latency_ms,
        )

        capability = CAPABILITY_NONE
        if outcome.responsive:
            try:
                capability = await asyncio.wait_for(
                    probe_download_capability(self.transport, endpoint, cfg.capability_timeout),
                    timeout=cfg.capability_timeout,
                )
            except asyncio.TimeoutError:
                logger.debug("capability check %s exceeded %.1fs", endpoint.name, cfg.capability_timeout)

        if outcome.responsive:
            self._emit(f"{endpoint.name}: {outcome.latency_ms:.0f} ms")
        else:
            self._emit(f"{endpoint.name}: unreachable")
        return Measurement(outcome=outcome, download_capability=capability)

    async def _probe_all(
        self,
        survivors: List[Tuple[int, Endpoint]],
    ) -> Tuple[Dict[int, Measurement], bool]:
        cfg = self.config
        sem = asyncio.Semaphore(cfg.concurrency)

        async def _guarded(order: int, index: int, ep: Endpoint) -> Tuple[int, Measurement]:
            # stagger launches so we never burst every connection at once
            if order and cfg.inter_endpoint_delay > 0:
                await asyncio.sleep(order * cfg.inter_endpoint_delay)
            async with sem:
                return index, await self._probe_one(ep)

        measurements: Dict[int, Measurement] = {}
        timed_out = False

        if survivors:
            tasks = [
                asyncio.ensure_future(_guarded(order, i, ep))
                for order, (i, ep) in enumerate(survivors)
            ]
            done, pending = await asyncio.wait(tasks, timeout=cfg.deadline)

            if pending:
                timed_out = True
                logger.warning(
                    "selection deadline of %.1fs hit; %d endpoints left unprobed",
                    cfg.deadline,
                    len(pending),
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

            for task in done:
                index, measurement = task.result()
                measurements[index] = measurement

        for i, _ in survivors:
            if i not in measurements:
                measurements[i] = Measurement(
                    outcome=ProbeOutcome(latency_ms=cfg.unreachable_latency_ms, responsive=False),
                    completed=False,
                )

        return measurements, timed_out

    def _update_health(
        self,
        survivors: List[Tuple[int, Endpoint]],
        measurements: Dict[int, Measurement],
    ) -> None:
        for i, ep in survivors:
            m = measurements[i]
            if not m.completed:
                continue
            record = self.health_store.get(ep.name) or HealthRecord()
            record.failure_threshold = self.config.failure_threshold
            record.record(m.outcome.responsive, m.outcome.latency_ms)
            self.health_store.put(ep.name, record)
        self.health_store.flush()


async def select_endpoint(
    endpoints: Iterable[Endpoint],
    location: Optional[LocationInfo] = None,
    config: Optional[SelectionConfig] = None,
    *,
    transport=None,
    health_store: Optional[HealthStore] = None,
    on_status: Optional[StatusCallback] = None,
) -> SelectionResult:
    """Pick the best endpoint; raises :class:`NoResponsiveEndpoint` if none qualifies."""
    if transport is None:
        async with HttpTransport() as http:
            selector = EndpointSelector(http, config, health_store, on_status)
            return await selector.select(endpoints, location)

    selector = EndpointSelector(transport, config, health_store, on_status)
    return await selector.select(endpoints, location)
