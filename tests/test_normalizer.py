"""Unit tests for payload normalization."""

from __future__ import annotations

import math

from models.points import MappingConfiguration, NormalizedPoint
from services.normalizer import normalize, normalize_many, to_number, validate_mapping


def test_minimal_mapping_produces_point_with_empty_optionals() -> None:
    config = MappingConfiguration(value_path="v", timestamp_path="t")

    point = normalize({"v": "42", "t": "2025-01-01"}, config)

    assert point == NormalizedPoint(value=42.0, timestamp="2025-01-01")
    assert point.to_dict() == {
        "value": 42.0,
        "timestamp": "2025-01-01",
        "x": None,
        "y": None,
        "z": None,
        "sensor_id": None,
        "sensor_type": None,
        "unit": None,
    }


def test_unresolved_required_path_returns_none() -> None:
    config = MappingConfiguration(value_path="missing", timestamp_path="t")

    assert normalize({"t": "2025-01-01"}, config) is None
    assert normalize({"missing": 1}, MappingConfiguration(value_path="missing", timestamp_path="t")) is None


def test_unconfigured_required_path_returns_none() -> None:
    assert normalize({"v": 1}, MappingConfiguration(value_path="v")) is None
    assert normalize({"t": 1}, MappingConfiguration(timestamp_path="t")) is None


def test_full_mapping_extracts_every_field() -> None:
    config = MappingConfiguration(
        value_path="reading.temp",
        timestamp_path="ts",
        x_path="pos.lat",
        y_path="pos.lng",
        z_path="pos.alt",
        sensor_id_path="device.id",
        sensor_type_path="device.kind",
        unit_path="reading.unit",
    )
    raw = {
        "reading": {"temp": 21.5, "unit": "C"},
        "ts": 1714557600000,
        "pos": {"lat": "40.1", "lng": -3.5, "alt": 0},
        "device": {"id": 7, "kind": "thermo"},
    }

    point = normalize(raw, config)

    assert point is not None
    assert point.value == 21.5
    assert point.timestamp == 1714557600000
    assert (point.x, point.y, point.z) == (40.1, -3.5, 0.0)
    assert point.sensor_id == "7"
    assert point.sensor_type == "thermo"
    assert point.unit == "C"


def test_optional_paths_that_do_not_resolve_are_none() -> None:
    config = MappingConfiguration(value_path="v", timestamp_path="t", x_path="pos.x", unit_path="u")

    point = normalize({"v": 1, "t": 2, "u": None}, config)

    assert point is not None
    assert point.x is None
    assert point.unit is None


def test_uncoercible_value_is_kept_as_nan() -> None:
    config = MappingConfiguration(value_path="v", timestamp_path="t", x_path="x")

    point = normalize({"v": "n/a", "t": "2025-01-01", "x": "east"}, config)

    assert point is not None
    assert math.isnan(point.value)
    assert math.isnan(point.x)
    assert point.is_valid is False


def test_null_required_value_is_present_but_nan() -> None:
    config = MappingConfiguration(value_path="v", timestamp_path="t")

    point = normalize({"v": None, "t": None}, config)

    assert point is not None
    assert math.isnan(point.value)
    assert point.timestamp is None


def test_non_object_payload_returns_none() -> None:
    config = MappingConfiguration(value_path="v", timestamp_path="t")

    assert normalize(None, config) is None
    assert normalize([1, 2], config) is None
    assert normalize("v=1", config) is None


def test_to_number_rules() -> None:
    assert to_number(3) == 3.0
    assert to_number(" 2.5 ") == 2.5
    assert to_number("1e3") == 1000.0
    assert math.isnan(to_number(True))
    assert math.isnan(to_number("abc"))
    assert math.isnan(to_number(None))
    assert math.isnan(to_number({"a": 1}))


def test_to_number_turns_oversized_integers_into_nan() -> None:
    assert math.isnan(to_number(10**400))
    assert math.isnan(to_number(-(10**400)))


def test_normalize_many_skips_unmappable_and_honours_limit() -> None:
    config = MappingConfiguration(value_path="v", timestamp_path="t")
    messages = [{"v": 1, "t": 1}, {"t": 2}, {"v": 3, "t": 3}, {"v": 4, "t": 4}]

    assert [p.value for p in normalize_many(messages, config)] == [1.0, 3.0, 4.0]
    assert [p.value for p in normalize_many(messages, config, limit=3)] == [1.0, 3.0]


def test_validate_mapping_requires_value_and_timestamp() -> None:
    errors = validate_mapping(MappingConfiguration())

    assert errors == ['The "value" field is required.', 'The "timestamp" field is required.']


def test_validate_mapping_checks_paths_against_sample() -> None:
    config = MappingConfiguration(value_path="v", timestamp_path="meta.ts")

    assert validate_mapping(config, {"v": 1, "meta": {"ts": 2}}) == []
    assert validate_mapping(config, {"v": 1}) == ['Path "meta.ts" was not found in the sample.']
