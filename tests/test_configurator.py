from __future__ import annotations

import asyncio
from typing import List

import pytest

from models.points import MappingConfiguration
from services.configurator import ConfiguratorState, MappingConfigurator, unwrap_payload


SAMPLE = {
    "temperature": {"value": 25.5, "unit": "C"},
    "meta": {"ts": "2025-10-15T10:00:00Z", "id": "sensor_1"},
}


class SaveRecorder:
    def __init__(self, result: bool = True, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.saved: List[MappingConfiguration] = []

    async def __call__(self, config: MappingConfiguration) -> bool:
        self.saved.append(config)
        if self.error is not None:
            raise self.error
        return self.result


def test_first_sample_triggers_auto_detect_and_preview() -> None:
    configurator = MappingConfigurator(SaveRecorder())
    assert configurator.state is ConfiguratorState.waiting_for_samples

    configurator.add_sample(SAMPLE)

    assert configurator.state is ConfiguratorState.editing
    assert configurator.config == MappingConfiguration(
        value_path="temperature.value",
        timestamp_path="meta.ts",
        sensor_id_path="meta.id",
        unit_path="temperature.unit",
    )
    assert len(configurator.preview.points) == 1
    assert configurator.preview.ranges.value.min == 25.5
    assert configurator.available_paths == [
        "temperature",
        "temperature.value",
        "temperature.unit",
        "meta",
        "meta.ts",
        "meta.id",
    ]


def test_existing_mapping_is_not_overwritten_by_auto_detect() -> None:
    initial = MappingConfiguration(value_path="v", timestamp_path="t")
    configurator = MappingConfigurator(SaveRecorder(), initial=initial)

    configurator.add_sample({"v": 1, "t": 2, "temperature": 3})

    assert configurator.config == initial


def test_auto_detect_runs_only_once() -> None:
    configurator = MappingConfigurator(SaveRecorder())
    configurator.add_sample({"foo": 1})
    assert configurator.config.is_empty()

    configurator.add_sample(SAMPLE)

    assert configurator.config.is_empty()
    assert configurator.auto_detect().value_path == "temperature.value"


def test_auto_detect_replaces_the_whole_configuration() -> None:
    configurator = MappingConfigurator(SaveRecorder())
    configurator.add_sample(SAMPLE)
    configurator.set_path("x_path", "temperature.value")

    configurator.auto_detect()

    assert configurator.config.x_path is None


def test_samples_are_newest_first_and_selectable() -> None:
    configurator = MappingConfigurator(SaveRecorder(), initial=MappingConfiguration(value_path="v", timestamp_path="t"))
    configurator.add_sample({"v": 1, "t": 1})
    configurator.add_sample({"v": 2, "t": 2, "extra": True})

    assert configurator.sample_message == {"v": 2, "t": 2, "extra": True}
    configurator.select_sample(1)
    assert configurator.sample_message == {"v": 1, "t": 1}
    assert [p.value for p in configurator.preview.points] == [2.0, 1.0]

    with pytest.raises(IndexError):
        configurator.select_sample(5)


def test_normalized_messages_are_unwrapped_to_original_payload() -> None:
    wrapped = {"id": "p1", "value": 1, "metadata": {"originalPayload": SAMPLE}}

    assert unwrap_payload(wrapped) is SAMPLE
    assert unwrap_payload(SAMPLE) is SAMPLE

    configurator = MappingConfigurator(SaveRecorder())
    configurator.add_sample(wrapped)
    assert configurator.config.value_path == "temperature.value"


def test_edits_refresh_preview_and_validation() -> None:
    configurator = MappingConfigurator(SaveRecorder())
    configurator.add_sample(SAMPLE)

    configurator.update(value_path="", timestamp_path="meta.missing")

    assert configurator.preview.points == []
    assert configurator.is_valid is False
    assert configurator.validation_errors == [
        'The "value" field is required.',
        'Path "meta.missing" was not found in the sample.',
    ]
    assert configurator.can_save is False

    with pytest.raises(ValueError):
        configurator.set_path("colour_path", "x")


def test_save_blocked_by_validation_does_not_call_callback() -> None:
    recorder = SaveRecorder()
    configurator = MappingConfigurator(recorder)

    saved = asyncio.run(configurator.save())

    assert saved is False
    assert recorder.saved == []
    assert "No sample message has been received yet." in configurator.errors
    assert 'The "value" field is required.' in configurator.error


def test_successful_save_closes_session() -> None:
    recorder = SaveRecorder()
    closed: List[bool] = []
    configurator = MappingConfigurator(recorder, on_close=lambda: closed.append(True))
    configurator.add_sample(SAMPLE)

    saved = asyncio.run(configurator.save())

    assert saved is True
    assert recorder.saved[0].value_path == "temperature.value"
    assert configurator.state is ConfiguratorState.closed
    assert configurator.samples == []
    assert closed == [True]
    assert asyncio.run(configurator.save()) is False


def test_failed_save_keeps_session_open() -> None:
    configurator = MappingConfigurator(SaveRecorder(result=False))
    configurator.add_sample(SAMPLE)

    assert asyncio.run(configurator.save()) is False
    assert configurator.state is ConfiguratorState.editing
    assert configurator.error == "Failed to save the mapping configuration."


def test_save_error_is_surfaced() -> None:
    configurator = MappingConfigurator(SaveRecorder(error=RuntimeError("backend down")))
    configurator.add_sample(SAMPLE)

    assert asyncio.run(configurator.save()) is False
    assert configurator.state is ConfiguratorState.editing
    assert configurator.error == "backend down"


def test_concurrent_save_is_rejected() -> None:
    async def scenario() -> List[bool]:
        release = asyncio.Event()

        async def slow_save(config: MappingConfiguration) -> bool:
            await release.wait()
            return True

        configurator = MappingConfigurator(slow_save)
        configurator.add_sample(SAMPLE)
        first = asyncio.create_task(configurator.save())
        await asyncio.sleep(0)
        assert configurator.state is ConfiguratorState.saving
        second = await configurator.save()
        release.set()
        return [await first, second]

    assert asyncio.run(scenario()) == [True, False]
