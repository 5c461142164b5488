"""Collaborators injected into the live transport client."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[Optional[str]]]


def static_token_provider(token: Optional[str]) -> TokenProvider:
    async def provide() -> Optional[str]:
        return token

    return provide


class Notifier(Protocol):
    """Fire-and-forget sink for user-facing messages."""

    def warning(self, title: str, description: str) -> None: ...

    def error(self, title: str, description: str) -> None: ...


class LoggingNotifier:
    """Used when no notification sink is configured."""

    def warning(self, title: str, description: str) -> None:
        logger.warning("%s: %s", title, description)

    def error(self, title: str, description: str) -> None:
        logger.error("%s: %s", title, description)
