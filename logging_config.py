from __future__ import annotations

import logging
import time
from enum import Enum
from logging.config import dictConfig
from typing import Iterable, Sequence

from settings import get_settings

_DEFAULT_EXTRA_KEYS = (
    "dataset_id",
    "status",
    "message_type",
    "point_id",
    "close_code",
    "attempt",
    "path",
    "reason",
    "error_count",
)

# Client libraries that log every frame or request at INFO/DEBUG.
_LIBRARY_LOGGERS = ("websockets", "httpx", "httpcore")

_configured = False


class ContextualFormatter(logging.Formatter):
    """Append ``key=value`` pairs for known ``extra=`` keys; timestamps are UTC."""

    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    @staticmethod
    def _render(value: object) -> str:
        if isinstance(value, Enum):
            value = value.value
        text = str(value)
        if not text or any(char.isspace() for char in text):
            return repr(text)
        return text

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context_parts: list[str] = []
        for key in self._extra_keys:
            value = getattr(record, key, None)
            if value is None:
                continue
            context_parts.append(f"{key}={self._render(value)}")
        if context_parts:
            return f"{message} | {' '.join(context_parts)}"
        return message


def _library_level(level: str | int) -> str | int:
    numeric = level if isinstance(level, int) else logging.getLevelName(str(level).upper())
    if isinstance(numeric, int) and numeric <= logging.DEBUG:
        return level
    return "WARNING"


def configure_logging(level: str | int | None = None) -> None:
    """Configure process-wide logging with contextual formatting.

    Later calls with an explicit ``level`` only adjust the levels.
    """
    global _configured
    if _configured:
        if level is not None:
            logging.getLogger().setLevel(level)
            for name in _LIBRARY_LOGGERS:
                logging.getLogger(name).setLevel(_library_level(level))
        return

    settings = get_settings()
    log_level = level if level is not None else settings.log_level

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": "logging_config.ContextualFormatter",
                    "fmt": "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "style": "%",
                    "extra_keys": list(_DEFAULT_EXTRA_KEYS),
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "contextual",
                }
            },
            "loggers": {name: {"level": _library_level(log_level)} for name in _LIBRARY_LOGGERS},
            "root": {"handlers": ["default"], "level": log_level},
        }
    )

    _configured = True
