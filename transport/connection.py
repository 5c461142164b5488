"""Connection abstraction over the websocket library."""

from __future__ import annotations

from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from transport.errors import TransportClosedError

NORMAL_CLOSURE = 1000
GOING_AWAY = 1001
ABNORMAL_CLOSURE = 1006
AUTH_REJECTED = 4001
TOKEN_ERROR = 4002
DATASET_FORBIDDEN = 4004
AUTH_TIMEOUT = 4008


class TransportConnection(Protocol):
    """One open, bidirectional text-frame connection."""

    @property
    def close_code(self) -> Optional[int]: ...

    async def send(self, frame: str) -> None: ...

    def messages(self) -> AsyncIterator[str]: ...

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None: ...


Connector = Callable[[str], Awaitable[TransportConnection]]


class WebSocketConnection:
    """Adapts a ``websockets`` client connection to :class:`TransportConnection`."""

    def __init__(self, connection: ClientConnection) -> None:
        self._connection = connection

    @property
    def close_code(self) -> Optional[int]:
        return self._connection.close_code

    async def send(self, frame: str) -> None:
        try:
            await self._connection.send(frame)
        except ConnectionClosed as exc:
            raise TransportClosedError("Connection closed while sending", self.close_code) from exc

    async def messages(self) -> AsyncIterator[str]:
        try:
            async for frame in self._connection:
                if isinstance(frame, bytes):
                    frame = frame.decode("utf-8", errors="replace")
                yield frame
        except ConnectionClosed:
            return

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        await self._connection.close(code=code, reason=reason)


async def websocket_connector(url: str) -> TransportConnection:
    try:
        connection = await connect(url)
    except (OSError, TimeoutError, WebSocketException) as exc:
        raise TransportClosedError(f"Could not connect to {url}: {exc}", ABNORMAL_CLOSURE) from exc
    return WebSocketConnection(connection)
