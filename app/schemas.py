"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models.points import MappingConfiguration, NormalizedPoint
from services.aggregator import AxisRange, PreviewRanges


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MappingPayload(_CamelModel):
    """Dot-separated source paths for each normalized field."""

    value_path: Optional[str] = Field(default=None, description="Path to the numeric reading.")
    timestamp_path: Optional[str] = Field(default=None, description="Path to the reading time.")
    x_path: Optional[str] = None
    y_path: Optional[str] = None
    z_path: Optional[str] = None
    sensor_id_path: Optional[str] = None
    sensor_type_path: Optional[str] = None
    unit_path: Optional[str] = None

    def to_configuration(self) -> MappingConfiguration:
        return MappingConfiguration.from_dict(self.model_dump())

    @classmethod
    def from_configuration(cls, config: MappingConfiguration) -> "MappingPayload":
        return cls(**config.to_dict())


class MappingRecord(BaseModel):
    """Stored mapping for one dataset."""

    dataset_id: str
    mapping: MappingPayload
    updated_at: datetime


class MappingResponse(_CamelModel):
    dataset_id: str
    mapping: MappingPayload
    updated_at: datetime

    @classmethod
    def from_record(cls, record: MappingRecord) -> "MappingResponse":
        return cls(dataset_id=record.dataset_id, mapping=record.mapping, updated_at=record.updated_at)


class DetectRequest(_CamelModel):
    payload: Optional[Dict[str, Any]] = Field(default=None, description="Sample raw message.")
    apply_to_dataset: bool = Field(
        default=False, description="Persist the detected mapping for the dataset."
    )


class DetectResponse(_CamelModel):
    detected: Dict[str, str]
    mapping: MappingPayload
    applied: bool = False


class PreviewRequest(_CamelModel):
    messages: List[Any] = Field(default_factory=list, description="Raw messages to normalize.")
    mapping: Optional[MappingPayload] = Field(
        default=None, description="Mapping to apply; the stored one is used when omitted."
    )


class PreviewPoint(_CamelModel):
    # NaN is not valid JSON, so an uncoercible value is reported as null.
    value: Optional[float] = None
    valid: bool
    timestamp: Any = None
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None
    sensor_id: Optional[str] = None
    sensor_type: Optional[str] = None
    unit: Optional[str] = None

    @classmethod
    def from_point(cls, point: NormalizedPoint) -> "PreviewPoint":
        return cls(
            value=_finite_or_none(point.value),
            valid=point.is_valid and math.isfinite(point.value),
            timestamp=point.timestamp,
            x=_finite_or_none(point.x),
            y=_finite_or_none(point.y),
            z=_finite_or_none(point.z),
            sensor_id=point.sensor_id,
            sensor_type=point.sensor_type,
            unit=point.unit,
        )


class RangeModel(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None

    @classmethod
    def from_range(cls, axis: AxisRange) -> "RangeModel":
        return cls(min=_finite_or_none(axis.min), max=_finite_or_none(axis.max))


class PreviewRangesModel(BaseModel):
    x: RangeModel = Field(default_factory=RangeModel)
    y: RangeModel = Field(default_factory=RangeModel)
    z: RangeModel = Field(default_factory=RangeModel)
    value: RangeModel = Field(default_factory=RangeModel)

    @classmethod
    def from_ranges(cls, ranges: PreviewRanges) -> "PreviewRangesModel":
        return cls(
            x=RangeModel.from_range(ranges.x),
            y=RangeModel.from_range(ranges.y),
            z=RangeModel.from_range(ranges.z),
            value=RangeModel.from_range(ranges.value),
        )


class PreviewResponse(_CamelModel):
    points: List[PreviewPoint] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    ranges: PreviewRangesModel = Field(default_factory=PreviewRangesModel)
    skipped: int = Field(default=0, ge=0, description="Messages the mapping could not extract.")


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return value
