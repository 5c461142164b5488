from __future__ import annotations

import asyncio
import json
from typing import Any, List, Optional, Tuple, Union

import pytest

from transport.errors import TransportClosedError


class FakeTransport:
    """In-memory connection; the test plays the server side."""

    def __init__(self) -> None:
        self.sent: List[dict] = []
        self.close_calls: List[Tuple[int, str]] = []
        self._inbox: asyncio.Queue[Union[str, int, None]] = asyncio.Queue()
        self._close_code: Optional[int] = None

    @property
    def close_code(self) -> Optional[int]:
        return self._close_code

    async def send(self, frame: str) -> None:
        if self._close_code is not None:
            raise TransportClosedError("closed", self._close_code)
        self.sent.append(json.loads(frame))

    async def messages(self):
        while True:
            frame = await self._inbox.get()
            if frame is None:
                return
            if isinstance(frame, int):
                if self._close_code is None:
                    self._close_code = frame
                return
            yield frame

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls.append((code, reason))
        if self._close_code is None:
            self._close_code = code
            self._inbox.put_nowait(None)

    def push(self, message: Any) -> None:
        self._inbox.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def drop(self, code: int) -> None:
        """Server-initiated close, seen once the frames queued before it are read."""
        self._inbox.put_nowait(code)

    def sent_types(self) -> List[str]:
        return [frame["type"] for frame in self.sent]


class FakeServer:
    def __init__(self) -> None:
        self.transports: List[FakeTransport] = []
        self.urls: List[str] = []
        self.failures = 0
        # Frames (or int close codes) queued on every new connection.
        self.script: List[Any] = []

    async def connect(self, url: str) -> FakeTransport:
        self.urls.append(url)
        if self.failures:
            self.failures -= 1
            raise TransportClosedError(f"Could not connect to {url}", 1006)
        transport = FakeTransport()
        for item in self.script:
            if isinstance(item, int):
                transport.drop(item)
            else:
                transport.push(item)
        self.transports.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.transports[-1]

    @staticmethod
    async def settle(rounds: int = 10) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    async def handshake(self, client, dataset_id: str = "ds-1") -> FakeTransport:
        """Connect ``client`` and walk it to the subscribed state."""
        await client.connect()
        await self.settle()
        transport = self.latest
        transport.push({"type": "connected", "message": "hello"})
        transport.push({"type": "auth_success", "userId": "user-1", "datasets": [dataset_id]})
        await self.settle()
        transport.push({"type": "subscribed", "datasetId": dataset_id, "broker": "mqtt"})
        await self.settle()
        return transport


class RecordingNotifier:
    def __init__(self) -> None:
        self.warnings: List[Tuple[str, str]] = []
        self.errors: List[Tuple[str, str]] = []

    def warning(self, title: str, description: str) -> None:
        self.warnings.append((title, description))

    def error(self, title: str, description: str) -> None:
        self.errors.append((title, description))


@pytest.fixture()
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
