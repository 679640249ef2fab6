"""
Endpoint quality scoring.

Pure functions -- no I/O, no side effects.  The order of operations is
fixed so scores stay comparable between runs:

    weighted sum / 100  ->  unresponsive override  ->  latency penalty  ->  clamp
"""
from __future__ import annotations

from typing import Optional

from .catalog import CustomProvider, Endpoint, KnownProvider, Provider
from .constants import UNRESPONSIVE_SCORE
from .geolocation import LocationInfo
from .retry import ProbeOutcome


# ---------------------------------------------------------------------------
# Weights (points out of 100)
# ---------------------------------------------------------------------------

_LATENCY_TIERS = [
    (20.0, 40.0),
    (50.0, 35.0),
    (100.0, 25.0),
    (200.0, 15.0),
]
_LATENCY_FLOOR = 5.0

CAPABILITY_WEIGHT = 30.0
GEOGRAPHIC_WEIGHT = 20.0
PROXIMITY_BONUS = 5.0

_PROVIDER_RELIABILITY = {
    KnownProvider.CLOUDFLARE: 10.0,
    KnownProvider.GOOGLE: 9.0,
    KnownProvider.AKAMAI: 8.0,
    KnownProvider.FASTLY: 8.0,
    KnownProvider.AMAZON: 8.0,
    KnownProvider.MICROSOFT: 7.0,
}
DEFAULT_RELIABILITY = 5.0


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------

def latency_points(latency_ms: float) -> float:
    for limit, points in _LATENCY_TIERS:
        if latency_ms < limit:
            return points
    return _LATENCY_FLOOR


def provider_reliability(provider: Provider) -> float:
    if isinstance(provider, CustomProvider):
        return DEFAULT_RELIABILITY
    return _PROVIDER_RELIABILITY.get(provider, DEFAULT_RELIABILITY)


def proximity_bonus(endpoint: Endpoint, location: Optional[LocationInfo]) -> float:
    """+5 when the client's country code appears in the endpoint's."""
    if location is None or not location.country_code or not endpoint.country_code:
        return 0.0
    if location.country_code.lower() in endpoint.country_code.lower():
        return PROXIMITY_BONUS
    return 0.0


def apply_latency_penalty(score: float, latency_ms: float) -> float:
    if latency_ms > 300.0:
        return score * 0.5
    if latency_ms > 150.0:
        return score * 0.8
    return score


def weighted_sum(
    endpoint: Endpoint,
    latency_ms: float,
    download_capability: float,
    location: Optional[LocationInfo],
) -> float:
    """Unadjusted score in points (0..105)."""
    return (
        latency_points(latency_ms)
        + download_capability * CAPABILITY_WEIGHT
        + endpoint.capabilities.geographic_weight * GEOGRAPHIC_WEIGHT
        + provider_reliability(endpoint.provider)
        + proximity_bonus(endpoint, location)
    )


# ---------------------------------------------------------------------------
# Score
# ---------------------------------------------------------------------------

def score(
    endpoint: Endpoint,
    outcome: ProbeOutcome,
    download_capability: float,
    location: Optional[LocationInfo] = None,
) -> float:
    """Normalised quality score in [0, 1]."""
    raw = weighted_sum(endpoint, outcome.latency_ms, download_capability, location) / 100.0

    if not outcome.responsive:
        return UNRESPONSIVE_SCORE

    adjusted = apply_latency_penalty(raw, outcome.latency_ms)
    return max(0.0, min(1.0, adjusted))
