"""Wire schemas for the live transport protocol."""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from models.points import Alert, DataPoint, NormalizedPoint
from services.normalizer import to_number
from transport.errors import MalformedMessageError


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


class WirePoint(_WireModel):
    """A server-normalized point; spatial and descriptive fields live in ``metadata``."""

    id: str
    dataset_id: Optional[str] = None
    value: Any = None
    sensor_id: Optional[str] = None
    timestamp: Any = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def _meta_number(self, key: str) -> Optional[float]:
        raw = self.metadata.get(key)
        return None if raw is None else to_number(raw)

    def _meta_text(self, key: str) -> Optional[str]:
        raw = self.metadata.get(key)
        return None if raw is None else str(raw)

    def to_data_point(self, dataset_id: str) -> DataPoint:
        point = NormalizedPoint(
            value=to_number(self.value),
            timestamp=self.timestamp,
            x=self._meta_number("x"),
            y=self._meta_number("y"),
            z=self._meta_number("z"),
            sensor_id=self.sensor_id,
            sensor_type=self._meta_text("sensorType"),
            unit=self._meta_text("unit"),
        )
        return DataPoint(id=self.id, dataset_id=self.dataset_id or dataset_id, point=point)


class WireAlert(_WireModel):
    id: str
    dataset_id: Optional[str] = None
    name: Optional[str] = None
    condition: Optional[str] = None
    threshold_value: Optional[float] = None
    current_value: Optional[float] = None
    severity: str = "info"
    status: str = "active"
    message: str = ""
    triggered_at: Any = None

    def to_alert(self, dataset_id: str) -> Alert:
        return Alert(
            id=self.id,
            dataset_id=self.dataset_id or dataset_id,
            message=self.message,
            severity=self.severity,
            status=self.status,
            name=self.name,
            condition=self.condition,
            threshold_value=self.threshold_value,
            current_value=self.current_value,
            triggered_at=self.triggered_at,
        )


class ConnectedMessage(_WireModel):
    type: Literal["connected"]
    message: str = ""


class AuthSuccessMessage(_WireModel):
    type: Literal["auth_success"]
    user_id: Optional[str] = None
    datasets: List[Any] = Field(default_factory=list)


class SubscribedMessage(_WireModel):
    type: Literal["subscribed"]
    dataset_id: str
    message: str = ""
    broker: Optional[str] = None


class UnsubscribedMessage(_WireModel):
    type: Literal["unsubscribed"]
    dataset_id: str


class DatapointMessage(_WireModel):
    type: Literal["datapoint"]
    dataset_id: str
    data: WirePoint


class DatapointRawMessage(_WireModel):
    type: Literal["datapoint_raw"]
    dataset_id: str
    data: Any


class AlertMessage(_WireModel):
    type: Literal["alert"]
    dataset_id: str
    alert: WireAlert


class HistoryMessage(_WireModel):
    type: Literal["history"]
    dataset_id: str
    data: List[WirePoint] = Field(default_factory=list)
    count: int = 0


class ErrorMessage(_WireModel):
    type: Literal["error"]
    message: str = "Unknown server error"


InboundMessage = Annotated[
    Union[
        ConnectedMessage,
        AuthSuccessMessage,
        SubscribedMessage,
        UnsubscribedMessage,
        DatapointMessage,
        DatapointRawMessage,
        AlertMessage,
        HistoryMessage,
        ErrorMessage,
    ],
    Field(discriminator="type"),
]

_INBOUND_ADAPTER: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)


def parse_inbound(frame: str | bytes) -> InboundMessage:
    try:
        return _INBOUND_ADAPTER.validate_json(frame)
    except ValidationError as exc:
        raise MalformedMessageError(f"Invalid inbound message: {exc.errors()[0]['msg']}") from exc


class _Outbound(_WireModel):
    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class AuthRequest(_Outbound):
    type: Literal["auth"] = "auth"
    token: str


class SubscribeRequest(_Outbound):
    type: Literal["subscribe"] = "subscribe"
    dataset_id: str


class HistoryRequest(_Outbound):
    type: Literal["get_history"] = "get_history"
    dataset_id: str
    limit: int
    sensor_type: Optional[str] = None
    sensor_id: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
