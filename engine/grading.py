"""
Connection rating, plan grading and comparison helpers.
"""
from __future__ import annotations

import enum
from typing import Any, Dict, List, Optional, Tuple


# ---------------------------------------------------------------------------
# Overall quality
# ---------------------------------------------------------------------------

class ConnectionQuality(enum.Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    AVERAGE = "Average"
    POOR = "Poor"
    VERY_POOR = "Very Poor"
    FAILED = "Failed"

    @property
    def color(self) -> str:
        return _QUALITY_COLORS[self]


_QUALITY_COLORS = {
    ConnectionQuality.EXCELLENT: "green",
    ConnectionQuality.GOOD: "green",
    ConnectionQuality.AVERAGE: "yellow",
    ConnectionQuality.POOR: "yellow",
    ConnectionQuality.VERY_POOR: "red",
    ConnectionQuality.FAILED: "red",
}

# (min download, min upload, max ping exclusive, rating)
_QUALITY_THRESHOLDS = [
    (100.0, 20.0, 20.0, ConnectionQuality.EXCELLENT),
    (50.0, 10.0, 50.0, ConnectionQuality.GOOD),
    (25.0, 5.0, 100.0, ConnectionQuality.AVERAGE),
    (10.0, 2.0, 150.0, ConnectionQuality.POOR),
]


def rate_connection(
    download_mbps: float,
    upload_mbps: Optional[float],
    ping_ms: float,
) -> ConnectionQuality:
    """Overall rating; ``upload_mbps=None`` means upload was not measured."""
    for min_dl, min_ul, max_ping, quality in _QUALITY_THRESHOLDS:
        ul_ok = upload_mbps is None or upload_mbps >= min_ul
        if download_mbps >= min_dl and ul_ok and ping_ms < max_ping:
            return quality
    if download_mbps > 0 and (upload_mbps is None or upload_mbps > 0):
        return ConnectionQuality.VERY_POOR
    return ConnectionQuality.FAILED


# ---------------------------------------------------------------------------
# Grading vs plan speed
# ---------------------------------------------------------------------------

_THRESHOLDS = [
    (0.95, "A+", "green"),
    (0.85, "A",  "green"),
    (0.75, "B",  "yellow"),
    (0.60, "C",  "yellow"),
    (0.40, "D",  "red"),
    (0.00, "F",  "red"),
]


def grade_speed(measured_mbps: float, plan_mbps: float) -> Tuple[str, str, float]:
    """
    Return (grade, color, fraction) for *measured_mbps* vs *plan_mbps*.
    """
    if plan_mbps <= 0:
        return ("?", "dim", 0.0)

    pct = measured_mbps / plan_mbps
    for threshold, letter, color in _THRESHOLDS:
        if pct >= threshold:
            return (letter, color, pct)
    return ("F", "red", pct)


# ---------------------------------------------------------------------------
# Delta comparison
# ---------------------------------------------------------------------------

def _metric(entry: Dict[str, Any], section: str, key: str) -> float:
    value = entry.get(section, {})
    if isinstance(value, dict):
        return float(value.get(key, 0) or 0)
    return 0.0


def compare_with_previous(
    current: Dict[str, Any],
    history: List[Dict[str, Any]],
) -> Optional[Dict[str, float]]:
    """
    Deltas between *current* and the newest entry in *history*, or None.
    """
    if not history:
        return None

    prev = history[-1]
    return {
        "ping_delta": _metric(current, "latency", "latency_ms") - _metric(prev, "latency", "latency_ms"),
        "download_delta": _metric(current, "download", "speed_mbps") - _metric(prev, "download", "speed_mbps"),
        "upload_delta": _metric(current, "upload", "speed_mbps") - _metric(prev, "upload", "speed_mbps"),
    }


def format_delta(value: float, unit: str, invert: bool = False) -> str:
    """
    Rich-markup delta with sign; *invert* for metrics where lower is better.
    """
    if abs(value) < 0.01:
        return "[dim](same)[/dim]"

    sign = "+" if value > 0 else ""
    is_good = (value < 0) if invert else (value > 0)
    color = "green" if is_good else "red"
    return f"[{color}]{sign}{value:.1f} {unit}[/{color}]"
