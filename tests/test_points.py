from __future__ import annotations

from datetime import datetime, timezone

import pytest

from models.points import DEFAULT_MAPPING, MappingConfiguration, NormalizedPoint, coerce_timestamp


def test_mapping_round_trips_between_naming_styles() -> None:
    config = MappingConfiguration(value_path="a.b", timestamp_path="ts", sensor_id_path="id")

    wire = config.to_dict(wire=True)

    assert wire["valuePath"] == "a.b"
    assert wire["sensorIdPath"] == "id"
    assert wire["xPath"] is None
    assert MappingConfiguration.from_dict(wire) == config
    assert MappingConfiguration.from_dict(config.to_dict()) == config


def test_with_paths_returns_new_instance_and_clears_empty_strings() -> None:
    updated = DEFAULT_MAPPING.with_paths(x_path="", value_path="reading")

    assert updated.x_path is None
    assert updated.value_path == "reading"
    assert DEFAULT_MAPPING.x_path == "x"

    with pytest.raises(ValueError):
        DEFAULT_MAPPING.with_paths(colour="red")


def test_empty_and_required_checks() -> None:
    assert MappingConfiguration().is_empty()
    assert not MappingConfiguration(unit_path="u").has_required_paths()
    assert DEFAULT_MAPPING.has_required_paths()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2024-01-01T00:00:00Z", datetime(2024, 1, 1, tzinfo=timezone.utc)),
        ("2024-01-01T02:00:00+02:00", datetime(2024, 1, 1, tzinfo=timezone.utc)),
        (1704067200000, datetime(2024, 1, 1, tzinfo=timezone.utc)),
        (datetime(2024, 1, 1), datetime(2024, 1, 1, tzinfo=timezone.utc)),
        ("yesterday", None),
        (True, None),
        (None, None),
    ],
)
def test_coerce_timestamp(raw, expected) -> None:
    assert coerce_timestamp(raw) == expected


def test_point_to_dict_serializes_datetimes() -> None:
    moment = datetime(2024, 1, 1, tzinfo=timezone.utc)
    point = NormalizedPoint(value=1.0, timestamp=moment, x=2.0)

    data = point.to_dict()

    assert data["timestamp"] == "2024-01-01T00:00:00+00:00"
    assert data["x"] == 2.0
    assert point.timestamp_as_datetime() == moment
