"""
Measurement statistics.

Pure functions and lightweight dataclasses -- no I/O, no side effects.
"""
from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from typing import List


@dataclass
class ConnectionStats:
    """Per-connection counters collected by download / upload workers."""

    id: int = 0
    endpoint: str = ""
    bytes_transferred: int = 0
    duration_ms: float = 0.0
    speed_mbps: float = 0.0

    def calculate(self) -> None:
        if self.duration_ms > 0:
            self.speed_mbps = (
                (self.bytes_transferred * 8) / (self.duration_ms / 1000) / 1_000_000
            )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "endpoint": self.endpoint,
            "bytes": self.bytes_transferred,
            "duration_ms": round(self.duration_ms, 2),
            "speed_mbps": round(self.speed_mbps, 2),
        }


@dataclass
class TransferResult:
    """Outcome of a download or upload test."""

    speed_bps: float = 0.0
    speed_mbps: float = 0.0
    bytes_total: int = 0
    duration_ms: float = 0.0
    connections: List[ConnectionStats] = field(default_factory=list)
    samples: List[float] = field(default_factory=list)
    skipped: bool = False

    def calculate(self) -> None:
        """Derive speed from total bytes and wall-clock duration."""
        if self.duration_ms > 0:
            self.speed_bps = (self.bytes_total * 8) / (self.duration_ms / 1000)
            self.speed_mbps = self.speed_bps / 1_000_000

    def calculate_from_samples(self) -> None:
        """Prefer the interquartile mean of post-warmup samples."""
        if not self.samples:
            self.calculate()
            return

        trimmed = calculate_iqm(self.samples)
        if trimmed > 0:
            self.speed_mbps = trimmed
            self.speed_bps = trimmed * 1_000_000

    def to_dict(self) -> dict:
        return {
            "speed_bps": round(self.speed_bps, 2),
            "speed_mbps": round(self.speed_mbps, 2),
            "bytes_total": self.bytes_total,
            "duration_ms": round(self.duration_ms, 2),
            "connections": [c.to_dict() for c in self.connections],
            "samples": [round(s, 2) for s in self.samples],
            "skipped": self.skipped,
        }


# ---------------------------------------------------------------------------
# Pure helper functions
# ---------------------------------------------------------------------------

def calculate_jitter(samples: List[float]) -> float:
    """Mean absolute difference between consecutive samples."""
    if len(samples) < 2:
        return 0.0
    return statistics.mean(abs(b - a) for a, b in zip(samples, samples[1:]))


def calculate_iqm(samples: List[float]) -> float:
    """Interquartile mean -- mean of values between Q1 and Q3."""
    if not samples:
        return 0.0
    if len(samples) < 4:
        return statistics.mean(samples)

    ordered = sorted(samples)
    n = len(ordered)
    middle = ordered[n // 4 : (3 * n) // 4]
    return statistics.mean(middle) if middle else statistics.mean(samples)


def calculate_percentile(samples: List[float], percentile: float) -> float:
    """Linear-interpolation percentile."""
    if not samples:
        return 0.0

    ordered = sorted(samples)
    idx = (percentile / 100) * (len(ordered) - 1)
    lower = int(idx)
    upper = min(lower + 1, len(ordered) - 1)
    weight = idx - lower
    return ordered[lower] * (1 - weight) + ordered[upper] * weight


def blend(previous: float, value: float, alpha: float) -> float:
    """One exponential smoothing step."""
    return alpha * value + (1 - alpha) * previous


def ema(previous: float, value: float, alpha: float) -> float:
    """Exponential moving average step; a zero *previous* means unseeded."""
    return value if previous == 0.0 else blend(previous, value, alpha)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def format_speed(speed_mbps: float) -> str:
    if speed_mbps >= 1000:
        return f"{speed_mbps / 1000:.2f} Gbps"
    return f"{speed_mbps:.2f} Mbps"


def format_latency(latency_ms: float) -> str:
    if latency_ms >= 1000:
        return f"{latency_ms / 1000:.2f} s"
    return f"{latency_ms:.1f} ms"
