"""Domain models shared across the mapping pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union

# Whatever the source produced; resolved lazily by consumers.
Timestamp = Union[str, int, float, datetime, None]

MAPPING_FIELDS = (
    "value_path",
    "timestamp_path",
    "x_path",
    "y_path",
    "z_path",
    "sensor_id_path",
    "sensor_type_path",
    "unit_path",
)

_WIRE_NAMES = {
    "value_path": "valuePath",
    "timestamp_path": "timestampPath",
    "x_path": "xPath",
    "y_path": "yPath",
    "z_path": "zPath",
    "sensor_id_path": "sensorIdPath",
    "sensor_type_path": "sensorTypePath",
    "unit_path": "unitPath",
}


@dataclass(frozen=True, slots=True)
class MappingConfiguration:
    """Field -> dot-path associations used to extract a point from a raw message.

    Instances are immutable: edits produce a new configuration, so a reader
    holding a reference never sees half of an update.
    """

    value_path: Optional[str] = None
    timestamp_path: Optional[str] = None
    x_path: Optional[str] = None
    y_path: Optional[str] = None
    z_path: Optional[str] = None
    sensor_id_path: Optional[str] = None
    sensor_type_path: Optional[str] = None
    unit_path: Optional[str] = None

    def with_paths(self, **changes: Optional[str]) -> "MappingConfiguration":
        unknown = set(changes) - set(MAPPING_FIELDS)
        if unknown:
            raise ValueError(f"Unknown mapping fields: {', '.join(sorted(unknown))}")
        cleaned = {name: (path or None) for name, path in changes.items()}
        return replace(self, **cleaned)

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in MAPPING_FIELDS)

    def has_required_paths(self) -> bool:
        return bool(self.value_path) and bool(self.timestamp_path)

    def to_dict(self, wire: bool = False) -> Dict[str, Optional[str]]:
        if wire:
            return {_WIRE_NAMES[name]: getattr(self, name) for name in MAPPING_FIELDS}
        return {name: getattr(self, name) for name in MAPPING_FIELDS}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MappingConfiguration":
        """Accept both snake_case and camelCase keys; unknown keys are ignored."""
        values: Dict[str, Optional[str]] = {}
        for name in MAPPING_FIELDS:
            raw = data.get(name, data.get(_WIRE_NAMES[name]))
            values[name] = str(raw) if raw else None
        return cls(**values)


DEFAULT_MAPPING = MappingConfiguration(
    value_path="value",
    timestamp_path="timestamp",
    x_path="x",
    y_path="y",
    z_path="z",
    sensor_id_path="sensorId",
    sensor_type_path="sensorType",
    unit_path="unit",
)


def coerce_timestamp(value: Timestamp) -> Optional[datetime]:
    """Best-effort conversion of a pass-through timestamp to an aware datetime.

    Strings are read as ISO-8601 (a trailing ``Z`` is accepted), numbers as
    epoch milliseconds. Returns ``None`` for anything else.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            return None
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


@dataclass(frozen=True, slots=True)
class NormalizedPoint:
    """Fixed-shape result of applying a mapping to one raw message.

    ``None`` coordinates mean "not configured or not resolvable", which is
    different from ``0``. ``value`` may be NaN when coercion failed; use
    :attr:`is_valid` before plotting.
    """

    value: float
    timestamp: Timestamp
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None
    sensor_id: Optional[str] = None
    sensor_type: Optional[str] = None
    unit: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return not math.isnan(self.value)

    def timestamp_as_datetime(self) -> Optional[datetime]:
        return coerce_timestamp(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        if isinstance(self.timestamp, datetime):
            data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass(frozen=True, slots=True)
class DataPoint:
    """A normalized point together with its identity inside a dataset buffer."""

    id: str
    dataset_id: str
    point: NormalizedPoint

    @property
    def value(self) -> float:
        return self.point.value

    @property
    def sensor_id(self) -> Optional[str]:
        return self.point.sensor_id

    @property
    def sensor_type(self) -> Optional[str]:
        return self.point.sensor_type

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "dataset_id": self.dataset_id, **self.point.to_dict()}


@dataclass(frozen=True, slots=True)
class Alert:
    """A threshold alert pushed by the server for a dataset."""

    id: str
    dataset_id: str
    message: str
    severity: str = "info"
    status: str = "active"
    name: Optional[str] = None
    condition: Optional[str] = None
    threshold_value: Optional[float] = None
    current_value: Optional[float] = None
    triggered_at: Timestamp = None
