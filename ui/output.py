"""
Output formatting -- JSON export, plain text, and CSV.
"""
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_CSV_COLUMNS = (
    "timestamp",
    "server",
    "provider",
    "isp",
    "ping_ms",
    "jitter_ms",
    "packet_loss",
    "download_mbps",
    "upload_mbps",
    "quality",
)


def create_result_json(
    location: Dict[str, Any],
    selection: Dict[str, Any],
    latency: Dict[str, Any],
    download: Dict[str, Any],
    upload: Dict[str, Any],
    quality: str,
    timestamp: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the record that is printed, saved and appended to history."""
    chosen = selection.get("chosen", {})
    return {
        "timestamp": timestamp or datetime.now(timezone.utc).isoformat(),
        "client": location,
        "server": {
            "name": chosen.get("name", ""),
            "url": chosen.get("url", ""),
            "provider": chosen.get("provider", ""),
            "location": chosen.get("location", ""),
            "score": chosen.get("score", 0.0),
            "tier": selection.get("tier"),
        },
        "latency": latency,
        "download": download,
        "upload": upload,
        "quality": quality,
        "serverSelection": selection.get("ranked", []),
    }


def save_json(result: Dict[str, Any], filepath: str) -> None:
    """Write *result* to *filepath* atomically (write-tmp then rename)."""
    dir_path = os.path.dirname(filepath) or "."
    tmp = os.path.join(dir_path, f".tmp_{os.path.basename(filepath)}")

    try:
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(result, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, filepath)
    except (IOError, OSError) as exc:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise IOError(f"Failed to save JSON to {filepath}: {exc}") from exc


# ---------------------------------------------------------------------------
# Plain-text / CSV helpers
# ---------------------------------------------------------------------------

def format_text_result(result: Dict[str, Any]) -> str:
    latency = result.get("latency", {})
    sep = "=" * 50
    mid = "-" * 50
    lines = [
        sep,
        "Speed Test Results",
        sep,
        f"Server: {result.get('server', {}).get('name', '?')}",
        f"ISP: {result.get('client', {}).get('isp') or 'Unknown'}",
        mid,
        f"Ping: {latency.get('latency_ms', 0):.1f} ms (jitter: {latency.get('jitter_ms', 0):.2f} ms)",
        f"Download: {_speed(result, 'download')}",
        f"Upload: {_speed(result, 'upload')}",
        f"Quality: {result.get('quality', '')}",
        sep,
    ]
    return "\n".join(lines)


def _speed(result: Dict[str, Any], section: str) -> str:
    block = result.get(section, {})
    if block.get("skipped"):
        return "n/a"
    return f"{block.get('speed_mbps', 0):.2f} Mbps"


def _csv_escape(value: str) -> str:
    if any(c in value for c in (",", '"', "\n", "\r")):
        return '"' + value.replace('"', '""') + '"'
    return value


def format_csv_header() -> str:
    return ",".join(_CSV_COLUMNS)


def format_csv_row(result: Dict[str, Any]) -> str:
    latency = result.get("latency", {})
    fields = [
        result.get("timestamp") or datetime.now(timezone.utc).isoformat(),
        result.get("server", {}).get("name", ""),
        result.get("server", {}).get("provider", ""),
        result.get("client", {}).get("isp") or "",
        f"{latency.get('latency_ms', 0):.1f}",
        f"{latency.get('jitter_ms', 0):.2f}",
        f"{latency.get('packet_loss', 0):.1f}",
        f"{result.get('download', {}).get('speed_mbps', 0):.2f}",
        f"{result.get('upload', {}).get('speed_mbps', 0):.2f}",
        result.get("quality", ""),
    ]
    return ",".join(_csv_escape(str(f)) for f in fields)
