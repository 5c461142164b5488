"""Unit tests for the aggregation logic."""

from __future__ import annotations

import math
from datetime import datetime, timezone

from models.points import DataPoint, NormalizedPoint
from services.aggregator import Aggregator, AxisRange, scale_value


def _point(point_id: str, value: float, sensor_type: str | None = None, sensor_id: str | None = None, timestamp=None) -> DataPoint:
    """Helper to build deterministic buffered points."""

    return DataPoint(
        id=point_id,
        dataset_id="ds-1",
        point=NormalizedPoint(
            value=value,
            timestamp=timestamp,
            sensor_type=sensor_type,
            sensor_id=sensor_id,
        ),
    )


def test_aggregate_empty_iterable_returns_default_summary() -> None:
    aggregator = Aggregator()

    stats = aggregator.aggregate([])

    assert stats.count == 0
    assert stats.min_value is None
    assert stats.max_value is None
    assert stats.avg_value is None
    assert stats.per_sensor_type == {}
    assert stats.value_range is None


def test_aggregate_computes_statistics() -> None:
    aggregator = Aggregator()
    points = [
        _point("1", 10.0, "temp", "s1", "2024-01-01T00:00:00Z"),
        _point("2", 30.0, "hum", "s2", 1704067260000),
        _point("3", 20.0, "temp", "s1", "not a date"),
    ]

    stats = aggregator.aggregate(points)

    assert stats.count == 3
    assert stats.min_value == 10.0
    assert stats.max_value == 30.0
    assert stats.avg_value == 20.0
    assert stats.value_range == (10.0, 30.0)
    assert stats.sensor_type_count == 2
    assert stats.sensor_id_count == 2
    assert stats.per_sensor_type["temp"].count == 2
    assert stats.per_sensor_type["temp"].avg_value == 15.0
    assert stats.earliest == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert stats.latest == datetime(2024, 1, 1, 0, 1, tzinfo=timezone.utc)


def test_aggregate_skips_nan_values() -> None:
    aggregator = Aggregator()

    stats = aggregator.aggregate([_point("1", math.nan, "temp"), _point("2", 4.0)])

    assert stats.count == 1
    assert stats.avg_value == 4.0
    assert stats.per_sensor_type == {}


def test_value_ranges_ignore_missing_and_nan() -> None:
    points = [
        NormalizedPoint(value=1.0, timestamp=None, x=5.0, y=None, z=math.nan),
        NormalizedPoint(value=math.nan, timestamp=None, x=-1.0, y=2.0),
        NormalizedPoint(value=9.0, timestamp=None),
    ]

    ranges = Aggregator().value_ranges(points)

    assert (ranges.value.min, ranges.value.max) == (1.0, 9.0)
    assert (ranges.x.min, ranges.x.max) == (-1.0, 5.0)
    assert (ranges.y.min, ranges.y.max) == (2.0, 2.0)
    assert ranges.z.min is None and ranges.z.max is None


def test_scale_value_positions_within_range() -> None:
    assert scale_value(15.0, AxisRange(min=10.0, max=20.0)) == 0.5
    assert scale_value(5.0, AxisRange(min=10.0, max=20.0)) == 0.0
    assert scale_value(7.0, AxisRange(min=7.0, max=7.0)) == 0.0
    assert scale_value(1.0, AxisRange()) is None
    assert scale_value(math.nan, AxisRange(min=0.0, max=1.0)) is None
