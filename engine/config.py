"""
User configuration file support.

Reads/writes ``~/.netspeed/config.json``.

Supported keys::

    server = "Cloudflare Global"   # pin an endpoint by name
    plan = 100                     # plan speed in Mbps
    connections = 4
    ping_count = 10
    download_duration = 10.0
    upload_duration = 10.0
    alert_below = 0.0              # alert threshold in Mbps
    csv_file = ""                  # auto-append CSV path
    persist_health = true          # keep endpoint health between runs

plus every endpoint-selection tunable (``max_retries``, ``probe_timeout``,
``concurrency``, ``deadline``, ``tier1_min_score``, ...).
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict

from .constants import (
    APP_DIR_NAME,
    DEFAULT_CONNECTIONS,
    DEFAULT_DURATION,
    DEFAULT_PING_COUNT,
)
from .selector import SelectionConfig

logger = logging.getLogger(__name__)

_CONFIG_FILE = "config.json"


def _config_path() -> str:
    return os.path.join(Path.home(), APP_DIR_NAME, _CONFIG_FILE)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULTS: Dict[str, Any] = {
    "server": None,
    "plan": 0.0,
    "connections": DEFAULT_CONNECTIONS,
    "ping_count": DEFAULT_PING_COUNT,
    "download_duration": DEFAULT_DURATION,
    "upload_duration": DEFAULT_DURATION,
    "alert_below": 0.0,
    "csv_file": "",
    "persist_health": True,
    **asdict(SelectionConfig()),
}


# ---------------------------------------------------------------------------
# Read / Write
# ---------------------------------------------------------------------------

def load_config() -> Dict[str, Any]:
    """Load config from disk, returning defaults for missing keys."""
    path = _config_path()
    config = dict(DEFAULTS)

    if not os.path.isfile(path):
        return config

    try:
        with open(path, encoding="utf-8") as fh:
            user = json.load(fh)
        if isinstance(user, dict):
            config.update(user)
    except (json.JSONDecodeError, IOError) as exc:
        logger.warning("ignoring unreadable config %s: %s", path, exc)

    return config


def save_config(config: Dict[str, Any]) -> str:
    """Write *config* to disk.  Returns the file path."""
    path = _config_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)

    with open(path, "w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2, ensure_ascii=False)

    return path


def get_config_value(key: str) -> Any:
    return load_config().get(key, DEFAULTS.get(key))


def set_config_value(key: str, value: Any) -> str:
    """Set a single config value and persist.  Returns file path."""
    config = load_config()
    config[key] = value
    return save_config(config)


def config_path() -> str:
    return _config_path()


def selection_config(config: Dict[str, Any]) -> SelectionConfig:
    """Build and validate a :class:`SelectionConfig` from a loaded config dict."""
    cfg = SelectionConfig.from_dict(config)
    cfg.validate()
    return cfg
