from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from settings import get_settings

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_SAMPLE_TIMEOUT = 30.0

_BASE_URL_ENV = "API_BASE_URL"
_SAMPLE_TIMEOUT_ENV = "CLI_SAMPLE_TIMEOUT"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    ws_url: str = "ws://localhost:3001"
    token: Optional[str] = None
    sample_timeout: float = DEFAULT_SAMPLE_TIMEOUT


def _read_float(value: Optional[str], default: float) -> float:
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


def load_config(
    base_url: Optional[str] = None,
    ws_url: Optional[str] = None,
    token: Optional[str] = None,
    sample_timeout: Optional[float] = None,
) -> CLIConfig:
    settings = get_settings()
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    if sample_timeout is None:
        sample_timeout = _read_float(os.getenv(_SAMPLE_TIMEOUT_ENV), DEFAULT_SAMPLE_TIMEOUT)
    return CLIConfig(
        base_url=url.rstrip("/"),
        ws_url=ws_url or settings.ws_url,
        token=token or settings.api_token,
        sample_timeout=sample_timeout,
    )
