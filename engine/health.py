"""
Per-endpoint health tracking.

A :class:`HealthRecord` holds rolling reliability state for one endpoint,
keyed by endpoint name.  Records live in a :class:`HealthStore`: the
in-memory store lasts for one process, :class:`JsonHealthStore` persists
them to ``~/.netspeed/health.json`` between runs.
"""
from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .catalog import Endpoint
from .constants import APP_DIR_NAME, DEFAULT_FAILURE_THRESHOLD
from .stats import blend, ema

logger = logging.getLogger(__name__)

_SMOOTHING = 0.2


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------

@dataclass
class HealthRecord:
    last_probed: float = 0.0
    success_rate: float = 1.0
    avg_latency_ms: float = 0.0
    consecutive_failures: int = 0
    total_probes: int = 0
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD

    @property
    def is_healthy(self) -> bool:
        return self.healthy_at(self.failure_threshold)

    def healthy_at(self, threshold: int) -> bool:
        return self.consecutive_failures <= threshold

    def record(self, success: bool, latency_ms: float = 0.0, now: Optional[float] = None) -> None:
        """Fold one probe cycle into the rolling state."""
        self.last_probed = time.time() if now is None else now
        sample = 1.0 if success else 0.0

        if self.total_probes == 0:
            self.success_rate = sample
        else:
            self.success_rate = blend(self.success_rate, sample, _SMOOTHING)
        self.total_probes += 1

        if success:
            self.consecutive_failures = 0
            self.avg_latency_ms = ema(self.avg_latency_ms, latency_ms, _SMOOTHING)
        else:
            self.consecutive_failures += 1

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> HealthRecord:
        return cls(
            last_probed=float(data.get("last_probed", 0.0)),
            success_rate=float(data.get("success_rate", 1.0)),
            avg_latency_ms=float(data.get("avg_latency_ms", 0.0)),
            consecutive_failures=int(data.get("consecutive_failures", 0)),
            total_probes=int(data.get("total_probes", 0)),
            failure_threshold=int(data.get("failure_threshold", DEFAULT_FAILURE_THRESHOLD)),
        )


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class HealthStore:
    """Interface: ``get(name)`` / ``put(name, record)`` / ``flush()``."""

    def get(self, name: str) -> Optional[HealthRecord]:
        raise NotImplementedError

    def put(self, name: str, record: HealthRecord) -> None:
        raise NotImplementedError

    def flush(self) -> None:
        """Persist pending records; a no-op for stores without backing storage."""


class InMemoryHealthStore(HealthStore):
    def __init__(self) -> None:
        self._records: Dict[str, HealthRecord] = {}

    def get(self, name: str) -> Optional[HealthRecord]:
        return self._records.get(name)

    def put(self, name: str, record: HealthRecord) -> None:
        self._records[name] = record

    def __len__(self) -> int:
        return len(self._records)


def _default_health_path() -> str:
    return os.path.join(Path.home(), APP_DIR_NAME, "health.json")


class JsonHealthStore(InMemoryHealthStore):
    """Loads on construction; ``flush`` rewrites the file atomically.

    A failed write is logged at WARNING and the in-memory records are kept.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        super().__init__()
        self.path = path or _default_health_path()
        self._load()

    def _load(self) -> None:
        if not os.path.isfile(self.path):
            return
        try:
            with open(self.path, encoding="utf-8") as fh:
                raw = json.load(fh)
        except (json.JSONDecodeError, IOError) as exc:
            logger.warning("ignoring unreadable health file %s: %s", self.path, exc)
            return
        if not isinstance(raw, dict):
            return
        for name, data in raw.items():
            if isinstance(data, dict):
                self._records[name] = HealthRecord.from_dict(data)

    def flush(self) -> None:
        tmp = self.path + ".tmp"
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as fh:
                json.dump({k: v.to_dict() for k, v in self._records.items()}, fh, indent=2)
            os.replace(tmp, self.path)
        except OSError as exc:
            logger.warning("could not save health file %s: %s", self.path, exc)
            try:
                os.unlink(tmp)
            except OSError:
                pass


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------

def filter_endpoints(
    endpoints: Iterable[Endpoint],
    store: HealthStore,
    failure_threshold: Optional[int] = None,
) -> List[Endpoint]:
    """Drop unhealthy endpoints, except top-tier backups (the last safety net).

    *failure_threshold* overrides the threshold stored on each record.
    """
    kept = []
    for ep in endpoints:
        record = store.get(ep.name)
        if record is None:
            kept.append(ep)
            continue
        threshold = record.failure_threshold if failure_threshold is None else failure_threshold
        if record.healthy_at(threshold):
            kept.append(ep)
        elif ep.is_backup and ep.is_top_tier:
            logger.debug("keeping unhealthy backup %s", ep.name)
            kept.append(ep)
        else:
            logger.debug(
                "skipping %s: %d consecutive failures",
                ep.name,
                record.consecutive_failures,
            )
    return kept
