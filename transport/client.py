"""Live transport client: connection lifecycle, auth, subscription and dispatch."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import uuid4

from models.points import Alert, DataPoint, MappingConfiguration
from services.aggregator import Aggregator, BufferStats
from services.buffer import AlertBuffer, PointBuffer, PointFilters
from services.normalizer import normalize
from settings import get_settings
from transport.connection import (
    ABNORMAL_CLOSURE,
    AUTH_REJECTED,
    AUTH_TIMEOUT,
    DATASET_FORBIDDEN,
    GOING_AWAY,
    NORMAL_CLOSURE,
    TOKEN_ERROR,
    Connector,
    TransportConnection,
    websocket_connector,
)
from transport.errors import MalformedMessageError, TransportClosedError
from transport.messages import (
    AlertMessage,
    AuthRequest,
    AuthSuccessMessage,
    ConnectedMessage,
    DatapointMessage,
    DatapointRawMessage,
    ErrorMessage,
    HistoryMessage,
    HistoryRequest,
    SubscribedMessage,
    SubscribeRequest,
    UnsubscribedMessage,
    parse_inbound,
)
from transport.notifications import LoggingNotifier, Notifier, TokenProvider, static_token_provider

logger = logging.getLogger(__name__)

AUTH_FAILURE_CODES = frozenset({AUTH_REJECTED, TOKEN_ERROR, DATASET_FORBIDDEN})
NO_RECONNECT_CODES = frozenset({NORMAL_CLOSURE, GOING_AWAY}) | AUTH_FAILURE_CODES


class ConnectionStatus(str, Enum):
    disconnected = "disconnected"
    connecting = "connecting"
    connected = "connected"
    authenticating = "authenticating"
    authenticated = "authenticated"
    subscribed = "subscribed"
    error = "error"


@dataclass
class TransportListeners:
    on_point: Optional[Callable[[DataPoint], None]] = None
    on_raw: Optional[Callable[[Any], None]] = None
    on_alert: Optional[Callable[[Alert], None]] = None
    on_error: Optional[Callable[[str], None]] = None
    on_status: Optional[Callable[[ConnectionStatus], None]] = None


@dataclass
class StreamMetadata:
    count: int = 0
    limit: int = 1000
    has_more: bool = False


class ConnectionSession:
    """State owned by exactly one connection attempt; discarded on close."""

    def __init__(self) -> None:
        self.transport: Optional[TransportConnection] = None
        self.subscribed = False
        self.closed = False
        self.auth_timer: Optional[asyncio.Task[None]] = None
        self.reader: Optional[asyncio.Task[None]] = None

    def cancel_auth_timer(self) -> None:
        timer = self.auth_timer
        self.auth_timer = None
        if timer is not None and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()


class LiveTransportClient:
    """Keeps one dataset subscription alive and maintains its point window.

    Inbound frames are handled one at a time, in arrival order, by a single
    reader task per connection.
    """

    def __init__(
        self,
        dataset_id: str,
        token_provider: TokenProvider,
        *,
        url: str = "ws://localhost:3001",
        connector: Connector = websocket_connector,
        notifier: Optional[Notifier] = None,
        listeners: Optional[TransportListeners] = None,
        limit: int = 1000,
        filters: Optional[PointFilters] = None,
        mapping: Optional[MappingConfiguration] = None,
        reconnect_interval: float = 3.0,
        max_reconnect_attempts: Optional[int] = None,
        auth_timeout: float = 10.0,
        silent_errors: bool = False,
        aggregator: Optional[Aggregator] = None,
    ) -> None:
        self.dataset_id = dataset_id
        self.url = url
        self.listeners = listeners or TransportListeners()
        self.mapping = mapping
        self.reconnect_interval = reconnect_interval
        self.max_reconnect_attempts = max_reconnect_attempts
        self.auth_timeout = auth_timeout
        self.silent_errors = silent_errors

        self._token_provider = token_provider
        self._connector = connector
        self._notifier: Notifier = notifier or LoggingNotifier()
        self._aggregator = aggregator or Aggregator()
        self._points = PointBuffer(limit=limit, filters=filters)
        self._alerts = AlertBuffer()
        self._session: Optional[ConnectionSession] = None
        self._reconnect_task: Optional[asyncio.Task[None]] = None
        self._reconnect_attempts = 0

        self.status = ConnectionStatus.disconnected
        self.error: Optional[str] = None
        self.auth_rejected = False
        self.last_close_code: Optional[int] = None
        self.is_loading = False
        self.is_empty = False
        self.metadata = StreamMetadata(limit=self._points.limit)

        self._handlers: Dict[str, Callable[[ConnectionSession, Any], Awaitable[None]]] = {
            "connected": self._on_connected,
            "auth_success": self._on_auth_success,
            "subscribed": self._on_subscribed,
            "unsubscribed": self._on_unsubscribed,
            "datapoint": self._on_datapoint,
            "datapoint_raw": self._on_datapoint_raw,
            "alert": self._on_alert,
            "history": self._on_history,
            "error": self._on_error,
        }

    # -- exposed state ---------------------------------------------------

    @property
    def points(self) -> List[DataPoint]:
        return self._points.items()

    @property
    def alerts(self) -> List[Alert]:
        return self._alerts.items()

    @property
    def filters(self) -> PointFilters:
        return self._points.filters

    @property
    def limit(self) -> int:
        return self._points.limit

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def is_connected(self) -> bool:
        return self.status is ConnectionStatus.subscribed

    @property
    def is_authenticated(self) -> bool:
        return self.status in (ConnectionStatus.authenticated, ConnectionStatus.subscribed)

    @property
    def has_stopped(self) -> bool:
        """True once a connection closed and no reconnect is pending."""
        return (
            self._session is None
            and self._reconnect_task is None
            and self.last_close_code is not None
        )

    def stats(self) -> BufferStats:
        return self._aggregator.aggregate(self._points.items())

    def points_by_sensor_type(self, sensor_type: str) -> List[DataPoint]:
        return self._points.by_sensor_type(sensor_type)

    def points_by_sensor_id(self, sensor_id: str) -> List[DataPoint]:
        return self._points.by_sensor_id(sensor_id)

    # -- lifecycle -------------------------------------------------------

    async def __aenter__(self) -> "LiveTransportClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

    async def connect(self) -> None:
        if self._session is not None:
            logger.debug(
                "Connection already open or in progress",
                extra={"dataset_id": self.dataset_id, "status": self.status.value},
            )
            return

        self._cancel_reconnect()
        session = ConnectionSession()
        self._session = session
        self.error = None
        self.auth_rejected = False
        self.is_loading = True
        self._set_status(ConnectionStatus.connecting)

        try:
            transport = await self._connector(self.url)
        except TransportClosedError as exc:
            logger.warning("Connection attempt failed", extra={"dataset_id": self.dataset_id, "reason": str(exc)})
            self._report_error(str(exc))
            self._handle_close(session, exc.code or ABNORMAL_CLOSURE)
            return

        if session.closed:
            await transport.close(NORMAL_CLOSURE, "Client disconnect")
            return

        session.transport = transport
        self._reconnect_attempts = 0
        logger.info("Transport connected", extra={"dataset_id": self.dataset_id})
        self._set_status(ConnectionStatus.connected)
        session.reader = asyncio.create_task(self._run(session))

    async def disconnect(self) -> None:
        self._cancel_reconnect()
        session = self._session
        self._session = None
        if session is not None:
            await self._teardown(session)
        self.is_loading = False
        self._set_status(ConnectionStatus.disconnected)

    async def reconnect(self) -> None:
        await self.disconnect()
        self._reconnect_attempts = 0
        await self.connect()

    async def _teardown(self, session: ConnectionSession) -> None:
        session.closed = True
        session.subscribed = False
        session.cancel_auth_timer()
        if session.transport is not None:
            await session.transport.close(NORMAL_CLOSURE, "Client disconnect")
        reader = session.reader
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

    async def _run(self, session: ConnectionSession) -> None:
        transport = session.transport
        assert transport is not None
        try:
            if not await self._authenticate(session):
                self._handle_close(session, transport.close_code or TOKEN_ERROR)
                return
            async for frame in transport.messages():
                if session.closed:
                    break
                await self._handle_frame(session, frame)
        except TransportClosedError as exc:
            logger.info("Transport closed while sending", extra={"dataset_id": self.dataset_id, "reason": str(exc)})
        self._handle_close(session, transport.close_code)

    async def _authenticate(self, session: ConnectionSession) -> bool:
        transport = session.transport
        assert transport is not None
        self._set_status(ConnectionStatus.authenticating)

        try:
            token = await self._token_provider()
        except Exception as exc:  # noqa: BLE001 - any provider failure aborts the attempt
            logger.error("Token provider failed", extra={"dataset_id": self.dataset_id, "reason": repr(exc)})
            token = None

        if session.closed:
            return True
        if not token:
            self._report_error("Failed to get authentication token")
            await transport.close(TOKEN_ERROR, "Token error")
            return False

        await transport.send(AuthRequest(token=token).to_json())
        session.auth_timer = asyncio.create_task(self._auth_deadline(session))
        return True

    async def _auth_deadline(self, session: ConnectionSession) -> None:
        await asyncio.sleep(self.auth_timeout)
        if session.closed or self._session is not session:
            return
        if self.status in (ConnectionStatus.authenticated, ConnectionStatus.subscribed):
            return
        session.auth_timer = None
        logger.error("Authentication timed out", extra={"dataset_id": self.dataset_id})
        self.error = "Authentication timeout"
        if session.transport is not None:
            await session.transport.close(AUTH_TIMEOUT, "Authentication timeout")

    def _handle_close(self, session: ConnectionSession, code: Optional[int]) -> None:
        session.closed = True
        session.subscribed = False
        session.cancel_auth_timer()
        if self._session is not session:
            return

        close_code = code if code is not None else ABNORMAL_CLOSURE
        self._session = None
        self.last_close_code = close_code
        self.is_loading = False
        logger.info("Transport closed", extra={"dataset_id": self.dataset_id, "close_code": close_code})
        self._set_status(ConnectionStatus.disconnected)

        if close_code in AUTH_FAILURE_CODES:
            self.auth_rejected = True
            if not self.error:
                self.error = "Authentication rejected by server"

        if self._should_reconnect(close_code):
            self._schedule_reconnect()

    def _should_reconnect(self, code: int) -> bool:
        if code in NO_RECONNECT_CODES:
            return False
        if self.max_reconnect_attempts is None:
            return True
        return self._reconnect_attempts < self.max_reconnect_attempts

    def _schedule_reconnect(self) -> None:
        self._reconnect_attempts += 1
        logger.info(
            "Scheduling reconnect in %.1fs",
            self.reconnect_interval,
            extra={"dataset_id": self.dataset_id, "attempt": self._reconnect_attempts},
        )
        self._reconnect_task = asyncio.create_task(self._reconnect_later())

    async def _reconnect_later(self) -> None:
        await asyncio.sleep(self.reconnect_interval)
        self._reconnect_task = None
        await self.connect()

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # -- inbound dispatch ------------------------------------------------

    async def _handle_frame(self, session: ConnectionSession, frame: str) -> None:
        try:
            message = parse_inbound(frame)
        except MalformedMessageError as exc:
            logger.warning(
                "Dropping malformed inbound message",
                extra={"dataset_id": self.dataset_id, "reason": str(exc)},
            )
            return
        try:
            await self._handlers[message.type](session, message)
        except TransportClosedError:
            raise
        except Exception:  # noqa: BLE001 - one bad frame must not stop the reader
            logger.exception(
                "Dropping inbound message after handler failure",
                extra={"dataset_id": self.dataset_id, "message_type": message.type},
            )

    async def _on_connected(self, session: ConnectionSession, message: ConnectedMessage) -> None:
        logger.info("Server greeting: %s", message.message, extra={"dataset_id": self.dataset_id})

    async def _on_auth_success(self, session: ConnectionSession, message: AuthSuccessMessage) -> None:
        session.cancel_auth_timer()
        logger.info(
            "Authenticated as %s with %d datasets",
            message.user_id,
            len(message.datasets),
            extra={"dataset_id": self.dataset_id},
        )
        self._set_status(ConnectionStatus.authenticated)
        if not session.subscribed and session.transport is not None:
            await session.transport.send(SubscribeRequest(dataset_id=self.dataset_id).to_json())

    async def _on_subscribed(self, session: ConnectionSession, message: SubscribedMessage) -> None:
        session.subscribed = True
        self.is_loading = False
        self._set_status(ConnectionStatus.subscribed)
        await self._send_history_request(session)

    async def _on_unsubscribed(self, session: ConnectionSession, message: UnsubscribedMessage) -> None:
        session.subscribed = False

    async def _on_datapoint(self, session: ConnectionSession, message: DatapointMessage) -> None:
        self._accept_point(message.data.to_data_point(self.dataset_id))

    async def _on_datapoint_raw(self, session: ConnectionSession, message: DatapointRawMessage) -> None:
        self._emit(self.listeners.on_raw, message.data)

        mapping = self.mapping
        if mapping is None:
            return
        normalized = normalize(message.data, mapping)
        if normalized is None or not normalized.is_valid:
            logger.debug("Raw payload rejected by mapping", extra={"dataset_id": self.dataset_id})
            return
        raw_id = message.data.get("id") if isinstance(message.data, dict) else None
        point_id = str(raw_id) if raw_id is not None else uuid4().hex
        self._accept_point(DataPoint(id=point_id, dataset_id=self.dataset_id, point=normalized))

    async def _on_alert(self, session: ConnectionSession, message: AlertMessage) -> None:
        alert = message.alert.to_alert(self.dataset_id)
        if not self._alerts.insert(alert):
            return
        logger.info("Alert received: %s", alert.message, extra={"dataset_id": self.dataset_id})
        self._emit(self.listeners.on_alert, alert)
        if not self.silent_errors:
            self._notify(self._notifier.warning, "New alert", alert.message)

    async def _on_history(self, session: ConnectionSession, message: HistoryMessage) -> None:
        points = [item.to_data_point(self.dataset_id) for item in message.data]
        self._points.replace(points)
        self.is_empty = not points
        self.metadata.count = message.count
        self.metadata.has_more = message.count >= self._points.limit
        logger.info("Received %d historical points", message.count, extra={"dataset_id": self.dataset_id})

    async def _on_error(self, session: ConnectionSession, message: ErrorMessage) -> None:
        logger.error("Server error: %s", message.message, extra={"dataset_id": self.dataset_id})
        self.error = message.message
        if not self.silent_errors:
            self._emit(self.listeners.on_error, message.message)
            self._notify(self._notifier.error, "Server error", message.message)

    def _accept_point(self, point: DataPoint) -> None:
        if not self._points.insert(point):
            return
        self.is_empty = False
        self.metadata.count += 1
        self._emit(self.listeners.on_point, point)

    # -- actions ---------------------------------------------------------

    async def get_history(
        self,
        limit: Optional[int] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> bool:
        session = self._session
        if session is None or session.transport is None or not session.subscribed:
            return False
        await self._send_history_request(session, limit, start_date, end_date)
        return True

    async def _send_history_request(
        self,
        session: ConnectionSession,
        limit: Optional[int] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> None:
        if session.transport is None:
            return
        filters = self._points.filters
        request = HistoryRequest(
            dataset_id=self.dataset_id,
            limit=limit or self._points.limit,
            sensor_type=filters.sensor_type,
            sensor_id=filters.sensor_id,
            start_date=start_date,
            end_date=end_date,
        )
        await session.transport.send(request.to_json())

    async def update_filters(self, **changes: Optional[str]) -> PointFilters:
        filters = replace(self._points.filters, **changes)
        self._points.set_filters(filters)
        await self.get_history()
        return filters

    async def clear_filters(self) -> None:
        self._points.set_filters(PointFilters())
        await self.get_history()

    async def update_limit(self, limit: int) -> int:
        clamped = self._points.set_limit(limit)
        self.metadata.limit = clamped
        await self.get_history(limit=clamped)
        return clamped

    def clear_data(self) -> None:
        self._points.clear()
        self._alerts.clear()
        self.metadata = StreamMetadata(limit=self._points.limit)
        self.is_empty = False

    # -- helpers ---------------------------------------------------------

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self.status:
            return
        self.status = status
        logger.debug("Status changed", extra={"dataset_id": self.dataset_id, "status": status.value})
        self._emit(self.listeners.on_status, status)

    def _report_error(self, message: str) -> None:
        self.error = message
        self._set_status(ConnectionStatus.error)
        if not self.silent_errors:
            self._emit(self.listeners.on_error, message)

    def _emit(self, callback: Optional[Callable[..., None]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:  # noqa: BLE001 - a faulty listener must not stop the reader
            logger.exception("Listener raised", extra={"dataset_id": self.dataset_id})

    def _notify(self, sink: Callable[[str, str], None], title: str, description: str) -> None:
        try:
            sink(title, description)
        except Exception:  # noqa: BLE001 - notifications are fire-and-forget
            logger.exception("Notifier raised", extra={"dataset_id": self.dataset_id, "reason": title})


def build_live_client(
    dataset_id: str,
    token_provider: Optional[TokenProvider] = None,
    **overrides: Any,
) -> LiveTransportClient:
    """Factory that wires a client from environment settings."""
    settings = get_settings()
    options: Dict[str, Any] = {
        "url": settings.ws_url,
        "limit": settings.history_limit,
        "reconnect_interval": settings.reconnect_interval,
        "max_reconnect_attempts": settings.max_reconnect_attempts,
        "auth_timeout": settings.auth_timeout,
    }
    options.update(overrides)
    provider = token_provider or static_token_provider(settings.api_token)
    return LiveTransportClient(dataset_id, provider, **options)
