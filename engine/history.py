"""
Test history persistence.

Results are stored as JSON-lines in ``~/.netspeed/history.jsonl``.  Each line
is a self-contained JSON object keyed by its ISO timestamp, so the file is
append-only: adding a record never rewrites earlier ones.
"""
from __future__ import annotations

import json
import logging
import os
import statistics
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .constants import APP_DIR_NAME

logger = logging.getLogger(__name__)

_DEFAULT_FILE = "history.jsonl"
_MAX_DISPLAY = 20


def _history_path() -> str:
    return os.path.join(Path.home(), APP_DIR_NAME, _DEFAULT_FILE)


def _parse_ts(raw: Any) -> Optional[datetime]:
    try:
        ts = datetime.fromisoformat(raw)
    except (ValueError, TypeError):
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


# ---------------------------------------------------------------------------
# Write
# ---------------------------------------------------------------------------

def save_result(result: Dict[str, Any]) -> str:
    """Append *result* as one JSON line; the caller's dict is not modified."""
    path = _history_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)

    record = dict(result)
    record.setdefault("timestamp", datetime.now(timezone.utc).isoformat())

    with open(path, "a", encoding="utf-8") as fh:
        fh.write(json.dumps(record, ensure_ascii=False) + "\n")

    return path


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

def _read_all() -> List[Dict[str, Any]]:
    path = _history_path()
    if not os.path.isfile(path):
        return []

    entries: List[Dict[str, Any]] = []
    with open(path, encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, 1):
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                logger.debug("skipping corrupt history line %d", lineno)
    return entries


def load_history(limit: int = _MAX_DISPLAY) -> List[Dict[str, Any]]:
    """Return the most recent *limit* results, newest last."""
    return _read_all()[-limit:] if limit > 0 else []


def query_history(
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Entries whose timestamp lies in ``[since, until)``; undated ones are skipped."""
    out = []
    for e in _read_all():
        ts = _parse_ts(e.get("timestamp"))
        if ts is None:
            continue
        if since is not None and ts < _aware(since):
            continue
        if until is not None and ts >= _aware(until):
            continue
        out.append(e)
    return out


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def _get(entry: Dict[str, Any], section: str, key: str) -> float:
    block = entry.get(section, {})
    if isinstance(block, dict):
        return float(block.get(key, 0) or 0)
    return 0.0


def _values(entries: List[Dict[str, Any]], section: str, key: str) -> List[float]:
    return [v for v in (_get(e, section, key) for e in entries) if v > 0]


def summarize_history(entries: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Count plus avg/min/max for download, upload and ping."""
    summary: Dict[str, Any] = {"count": len(entries)}
    for label, section, key in (
        ("download", "download", "speed_mbps"),
        ("upload", "upload", "speed_mbps"),
        ("ping", "latency", "latency_ms"),
    ):
        vals = _values(entries, section, key)
        summary[label] = {
            "avg": statistics.mean(vals) if vals else 0.0,
            "min": min(vals) if vals else 0.0,
            "max": max(vals) if vals else 0.0,
        }
    return summary


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------

def format_history_table(entries: List[Dict[str, Any]]) -> List[dict]:
    """Flatten raw entries into rows: timestamp, server, ping, download, upload."""
    rows = []
    for e in entries:
        ts = _parse_ts(e.get("timestamp"))
        raw = e.get("timestamp") or ""
        server = e.get("server", {})
        rows.append({
            "timestamp": ts.strftime("%Y-%m-%d %H:%M") if ts else (raw[:16] or "?"),
            "server": server.get("name", "?") if isinstance(server, dict) else "?",
            "ping": _get(e, "latency", "latency_ms"),
            "download": _get(e, "download", "speed_mbps"),
            "upload": _get(e, "upload", "speed_mbps"),
            "quality": e.get("quality", ""),
        })
    return rows


def sparkline(values: List[float]) -> str:
    """Single-line Unicode sparkline chart."""
    if not values:
        return ""
    bars = "▁▂▃▄▅▆▇█"
    lo, hi = min(values), max(values)
    span = hi - lo if hi > lo else 1.0
    return "".join(
        bars[min(int((v - lo) / span * (len(bars) - 1)), len(bars) - 1)]
        for v in values
    )
