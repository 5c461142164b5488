"""Aggregation logic for buffered points."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, Optional, Set, Tuple

from models.points import DataPoint, NormalizedPoint


@dataclass
class SensorTypeStats:
    count: int = 0
    total: float = 0.0
    min_value: float | None = None
    max_value: float | None = None

    @property
    def avg_value(self) -> float | None:
        return self.total / self.count if self.count else None

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        if self.min_value is None or value < self.min_value:
            self.min_value = value
        if self.max_value is None or value > self.max_value:
            self.max_value = value


@dataclass
class BufferStats:
    """Computed statistics for the current buffer contents."""

    count: int = 0
    min_value: float | None = None
    max_value: float | None = None
    avg_value: float | None = None
    per_sensor_type: Dict[str, SensorTypeStats] = field(default_factory=dict)
    sensor_type_count: int = 0
    sensor_id_count: int = 0
    earliest: datetime | None = None
    latest: datetime | None = None

    @property
    def value_range(self) -> Tuple[float, float] | None:
        if self.min_value is None or self.max_value is None:
            return None
        return self.min_value, self.max_value


@dataclass
class AxisRange:
    min: float | None = None
    max: float | None = None

    def add(self, value: Optional[float]) -> None:
        if value is None or math.isnan(value):
            return
        if self.min is None or value < self.min:
            self.min = value
        if self.max is None or value > self.max:
            self.max = value


@dataclass
class PreviewRanges:
    x: AxisRange = field(default_factory=AxisRange)
    y: AxisRange = field(default_factory=AxisRange)
    z: AxisRange = field(default_factory=AxisRange)
    value: AxisRange = field(default_factory=AxisRange)


class Aggregator:
    """Pure aggregation component; everything is recomputed on each call."""

    def aggregate(self, points: Iterable[DataPoint]) -> BufferStats:
        stats = BufferStats()
        overall = SensorTypeStats()
        sensor_ids: Set[str] = set()

        for point in points:
            # NaN values are rejected points and never enter the numbers.
            if not point.point.is_valid:
                continue
            overall.add(point.value)

            if point.sensor_type:
                stats.per_sensor_type.setdefault(point.sensor_type, SensorTypeStats()).add(
                    point.value
                )
            if point.sensor_id:
                sensor_ids.add(point.sensor_id)

            moment = point.point.timestamp_as_datetime()
            if moment is not None:
                if stats.earliest is None or moment < stats.earliest:
                    stats.earliest = moment
                if stats.latest is None or moment > stats.latest:
                    stats.latest = moment

        stats.count = overall.count
        stats.min_value = overall.min_value
        stats.max_value = overall.max_value
        stats.avg_value = overall.avg_value
        stats.sensor_type_count = len(stats.per_sensor_type)
        stats.sensor_id_count = len(sensor_ids)
        return stats

    def value_ranges(self, points: Iterable[NormalizedPoint]) -> PreviewRanges:
        ranges = PreviewRanges()
        for point in points:
            ranges.x.add(point.x)
            ranges.y.add(point.y)
            ranges.z.add(point.z)
            ranges.value.add(point.value)
        return ranges


def scale_value(value: float, value_range: AxisRange) -> float | None:
    """Position of ``value`` inside ``value_range`` as a 0..1 fraction for colour ramps."""
    if value_range.min is None or value_range.max is None or math.isnan(value):
        return None
    span = value_range.max - value_range.min
    if span == 0:
        return 0.0
    return min(1.0, max(0.0, (value - value_range.min) / span))
