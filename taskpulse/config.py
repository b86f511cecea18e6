"""
Configuration — JSON file merged over built-in defaults.

The file lives at config/taskpulse.json unless TASKPULSE_CONFIG points
elsewhere. A missing file means defaults; a malformed one is logged and
ignored.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from datetime import timezone, tzinfo
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "taskpulse.json"
CONFIG_ENV_VAR = "TASKPULSE_CONFIG"

DEFAULT_CONFIG = {
    "db_path": "taskpulse.db",
    "log_file": "taskpulse.log",
    "log_level": "INFO",
    # Calendar days for streaks and weekday buckets are taken in this zone
    "timezone": "UTC",
    "http": {
        "host": "127.0.0.1",
        "port": 8000,
    },
    "realtime": {
        "host": "127.0.0.1",
        "port": 8765,
        "join_secret": "",
        "join_token_ttl_s": 300,
    },
}


def config_path(path: Optional[Path] = None) -> Path:
    if path is not None:
        return Path(path)
    env = os.environ.get(CONFIG_ENV_VAR)
    return Path(env) if env else CONFIG_PATH


def load_config(path: Optional[Path] = None) -> dict:
    merged = copy.deepcopy(DEFAULT_CONFIG)
    path = config_path(path)
    if not path.exists():
        return merged
    try:
        with open(path, encoding="utf-8") as f:
            cfg = json.load(f)
        if not isinstance(cfg, dict):
            raise ValueError("top level must be an object")
    except (json.JSONDecodeError, ValueError):
        logger.warning("Bad config at %s, using defaults.", path)
        return merged
    for key, value in cfg.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def save_config(config: dict, path: Optional[Path] = None) -> None:
    path = config_path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)


def resolve_timezone(name: str) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, falling back to UTC.", name)
        return timezone.utc
