from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_WS_URL_ENV = "LIVE_WS_URL"
_API_TOKEN_ENV = "LIVE_API_TOKEN"
_RECONNECT_INTERVAL_ENV = "LIVE_RECONNECT_INTERVAL"
_MAX_RECONNECT_ENV = "LIVE_MAX_RECONNECT_ATTEMPTS"
_AUTH_TIMEOUT_ENV = "LIVE_AUTH_TIMEOUT"
_HISTORY_LIMIT_ENV = "LIVE_HISTORY_LIMIT"
_STORE_PATH_ENV = "MAPPING_STORE_PATH"
_LOG_LEVEL_ENV = "LOG_LEVEL"

MAX_HISTORY_LIMIT = 5000


@dataclass(frozen=True)
class Settings:
    ws_url: str
    api_token: Optional[str]
    reconnect_interval: float
    max_reconnect_attempts: Optional[int]
    auth_timeout: float
    history_limit: int
    mapping_store_path: Optional[str]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_history_limit(default: int) -> int:
    value = os.getenv(_HISTORY_LIMIT_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    if parsed <= 0:
        return default
    return min(parsed, MAX_HISTORY_LIMIT)


def _read_max_reconnect_attempts() -> Optional[int]:
    """Negative values (the default ``-1``) mean "retry forever"."""
    value = os.getenv(_MAX_RECONNECT_ENV)
    if value is None:
        return None
    candidate = value.strip()
    if not candidate:
        return None
    try:
        parsed = int(candidate)
    except ValueError:
        return None
    return parsed if parsed >= 0 else None


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        ws_url=_read_str_env(_WS_URL_ENV, "ws://localhost:3001"),
        api_token=_read_optional_env(_API_TOKEN_ENV, None),
        reconnect_interval=_read_positive_float(_RECONNECT_INTERVAL_ENV, 3.0),
        max_reconnect_attempts=_read_max_reconnect_attempts(),
        auth_timeout=_read_positive_float(_AUTH_TIMEOUT_ENV, 10.0),
        history_limit=_read_history_limit(1000),
        mapping_store_path=_read_optional_env(_STORE_PATH_ENV, "./tmp/mappings.json"),
        log_level=_read_log_level("INFO"),
    )
