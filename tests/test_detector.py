from __future__ import annotations

from services.detector import detect


def test_detects_nested_temperature_payload() -> None:
    sample = {
        "temperature": {"value": 25.5, "unit": "°C"},
        "meta": {"ts": "2025-10-15T10:00:00Z", "id": "sensor_1"},
    }

    assert detect(sample) == {
        "value_path": "temperature.value",
        "unit_path": "temperature.unit",
        "timestamp_path": "meta.ts",
        "sensor_id_path": "meta.id",
    }


def test_detects_flat_payload_with_coordinates() -> None:
    sample = {
        "deviceId": "dev-1",
        "deviceType": "thermo",
        "humidity": 41,
        "latitude": 40.4,
        "longitude": -3.7,
        "altitude": 650,
        "createdAt": 1700000000000,
    }

    detected = detect(sample)

    assert detected["sensor_id_path"] == "deviceId"
    assert detected["sensor_type_path"] == "deviceType"
    assert detected["value_path"] == "humidity"
    assert detected["x_path"] == "latitude"
    assert detected["y_path"] == "longitude"
    assert detected["z_path"] == "altitude"
    assert detected["timestamp_path"] == "createdAt"


def test_first_matching_path_wins() -> None:
    sample = {"timestamp": "2025-01-01", "date": "2025-01-02", "x": 1, "coordX": 2}

    detected = detect(sample)

    assert detected["timestamp_path"] == "timestamp"
    assert detected["x_path"] == "x"


def test_matching_is_case_insensitive() -> None:
    detected = detect({"Sensor_ID": "a", "TEMP": 20, "Fecha": "hoy", "Unidad": "C"})

    assert detected == {
        "sensor_id_path": "Sensor_ID",
        "value_path": "TEMP",
        "timestamp_path": "Fecha",
        "unit_path": "Unidad",
    }


def test_unmatched_fields_are_omitted() -> None:
    assert detect({"foo": 1, "bar": {"baz": 2}}) == {}


def test_non_object_sample_detects_nothing() -> None:
    assert detect(None) == {}
    assert detect([{"value": 1}]) == {}


def test_short_tokens_match_whole_last_segment_only() -> None:
    assert detect({"max": 1, "width": 2}) == {}
    assert detect({"pos": {"x": 1}, "device": {"id": "d1"}}) == {
        "x_path": "pos.x",
        "sensor_id_path": "device.id",
    }
