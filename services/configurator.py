"""Interactive mapping configuration session with live preview."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

from models.points import MappingConfiguration, NormalizedPoint
from services.aggregator import Aggregator, PreviewRanges
from services.buffer import RAW_SAMPLE_LIMIT, RawSampleBuffer
from services.detector import detect
from services.normalizer import normalize_many, validate_mapping
from services.paths import flatten_paths

logger = logging.getLogger(__name__)

PREVIEW_LIMIT = 50

SaveMapping = Callable[[MappingConfiguration], Awaitable[bool]]


class ConfiguratorState(str, Enum):
    waiting_for_samples = "waiting_for_samples"
    editing = "editing"
    saving = "saving"
    closed = "closed"


@dataclass
class Preview:
    points: List[NormalizedPoint] = field(default_factory=list)
    ranges: PreviewRanges = field(default_factory=PreviewRanges)


def unwrap_payload(message: Any) -> Any:
    """Return the original payload when ``message`` is an already-normalized point."""
    if isinstance(message, dict):
        metadata = message.get("metadata")
        if isinstance(metadata, dict) and metadata.get("originalPayload") is not None:
            return metadata["originalPayload"]
    return message


class MappingConfigurator:
    """Drives one editing session from first sample to a saved configuration.

    All methods are meant to be called from a single event loop; ``save`` is
    the only coroutine.
    """

    def __init__(
        self,
        save_mapping: SaveMapping,
        initial: Optional[MappingConfiguration] = None,
        on_close: Optional[Callable[[], None]] = None,
        sample_limit: int = RAW_SAMPLE_LIMIT,
        aggregator: Optional[Aggregator] = None,
    ) -> None:
        self._save_mapping = save_mapping
        self._on_close = on_close
        self._aggregator = aggregator or Aggregator()
        self._samples = RawSampleBuffer(sample_limit)
        self._selected_index = 0
        self._auto_detected = False

        self.config = initial or MappingConfiguration()
        self.state = ConfiguratorState.waiting_for_samples
        self.error: Optional[str] = None
        self.errors: List[str] = []
        self.preview = Preview()

    # -- samples ---------------------------------------------------------

    @property
    def samples(self) -> List[Any]:
        return self._samples.items()

    @property
    def selected_index(self) -> int:
        return self._selected_index

    @property
    def sample_message(self) -> Any:
        if not len(self._samples):
            return None
        index = min(self._selected_index, len(self._samples) - 1)
        return unwrap_payload(self._samples[index])

    @property
    def available_paths(self) -> List[str]:
        return flatten_paths(self.sample_message, include_branches=True)

    def add_sample(self, message: Any) -> None:
        if self.state is ConfiguratorState.closed:
            return
        self._samples.add(message)
        if self.state is ConfiguratorState.waiting_for_samples:
            self.state = ConfiguratorState.editing

        if not self._auto_detected and self.config.is_empty():
            self._auto_detected = True
            self.config = MappingConfiguration(**detect(self.sample_message))
            logger.info(
                "Auto-detected mapping from first sample",
                extra={"path": self.config.value_path},
            )
        self._refresh()

    def select_sample(self, index: int) -> None:
        if not 0 <= index < len(self._samples):
            raise IndexError(f"No sample at index {index}.")
        self._selected_index = index
        self._refresh()

    # -- editing ---------------------------------------------------------

    def set_path(self, field_name: str, path: Optional[str]) -> None:
        self.update(**{field_name: path})

    def update(self, **paths: Optional[str]) -> None:
        self.config = self.config.with_paths(**paths)
        self._refresh()

    def auto_detect(self) -> MappingConfiguration:
        """Replace the whole configuration with what the selected sample suggests."""
        sample = self.sample_message
        if sample is None:
            return self.config
        self._auto_detected = True
        self.config = MappingConfiguration(**detect(sample))
        self._refresh()
        return self.config

    @property
    def validation_errors(self) -> List[str]:
        return validate_mapping(self.config, self.sample_message)

    @property
    def is_valid(self) -> bool:
        return not self.validation_errors

    @property
    def can_save(self) -> bool:
        return self.state is ConfiguratorState.editing and self.is_valid

    def _refresh(self) -> None:
        if not self.config.has_required_paths():
            self.preview = Preview()
            return
        payloads = [unwrap_payload(message) for message in self._samples.items()]
        points = normalize_many(payloads, self.config, limit=PREVIEW_LIMIT)
        self.preview = Preview(points=points, ranges=self._aggregator.value_ranges(points))

    # -- persistence -----------------------------------------------------

    async def save(self) -> bool:
        if self.state is ConfiguratorState.saving:
            logger.warning("Ignoring save while another save is in flight")
            return False
        if self.state is ConfiguratorState.closed:
            return False

        errors = self.validation_errors
        if self.sample_message is None:
            errors.append("No sample message has been received yet.")
        if errors:
            self.errors = errors
            self.error = "; ".join(errors)
            logger.info("Mapping save blocked by validation", extra={"error_count": len(errors)})
            return False

        self.state = ConfiguratorState.saving
        self.errors = []
        self.error = None
        snapshot = self.config
        try:
            saved = await self._save_mapping(snapshot)
        except Exception as exc:  # noqa: BLE001 - surfaced to the user instead
            logger.warning("Mapping save failed", extra={"reason": str(exc)})
            self.error = str(exc) or "Unknown error while saving the mapping."
            self.state = ConfiguratorState.editing
            return False

        if not saved:
            self.error = "Failed to save the mapping configuration."
            self.state = ConfiguratorState.editing
            return False

        self.close()
        return True

    def close(self) -> None:
        if self.state is ConfiguratorState.closed:
            return
        self.state = ConfiguratorState.closed
        self._samples.clear()
        self.preview = Preview()
        if self._on_close is not None:
            self._on_close()

