"""Stored per-dataset mappings and the operations the API and CLI expose."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Sequence

from app.schemas import MappingPayload, MappingRecord
from datastore.mapping_store import MappingStore, build_default_store
from models.points import DEFAULT_MAPPING, MappingConfiguration, NormalizedPoint
from services.aggregator import Aggregator, PreviewRanges
from services.configurator import PREVIEW_LIMIT, SaveMapping, unwrap_payload
from services.detector import detect
from services.normalizer import normalize, validate_mapping

logger = logging.getLogger(__name__)


class InvalidMappingError(ValueError):
    """Raised when a mapping cannot be stored or a sample cannot be analysed."""


@dataclass
class DetectionResult:
    detected: Dict[str, str]
    mapping: MappingConfiguration
    applied: bool = False


@dataclass
class PreviewResult:
    points: List[NormalizedPoint] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    ranges: PreviewRanges = field(default_factory=PreviewRanges)
    skipped: int = 0


class MappingService:
    """Reads and writes dataset mappings through the store."""

    def __init__(self, store: MappingStore, aggregator: Optional[Aggregator] = None) -> None:
        self.store = store
        self.aggregator = aggregator or Aggregator()

    def get_mapping(self, dataset_id: str) -> MappingRecord:
        record = self.store.get(dataset_id)
        if record is None:
            record = self._write(dataset_id, DEFAULT_MAPPING)
            logger.info("Created default mapping", extra={"dataset_id": dataset_id})
        return record

    def get_configuration(self, dataset_id: str) -> MappingConfiguration:
        return self.get_mapping(dataset_id).mapping.to_configuration()

    def update_mapping(self, dataset_id: str, config: MappingConfiguration) -> MappingRecord:
        errors = validate_mapping(config)
        if errors:
            logger.info(
                "Rejected mapping update",
                extra={"dataset_id": dataset_id, "error_count": len(errors)},
            )
            raise InvalidMappingError(" ".join(errors))
        record = self._write(dataset_id, config)
        logger.info("Mapping updated", extra={"dataset_id": dataset_id, "path": config.value_path})
        return record

    def reset_mapping(self, dataset_id: str) -> MappingRecord:
        record = self._write(dataset_id, DEFAULT_MAPPING)
        logger.info("Mapping reset to defaults", extra={"dataset_id": dataset_id})
        return record

    def detect_mapping(self, dataset_id: str, payload: Any, apply: bool = False) -> DetectionResult:
        """Suggest a mapping for ``payload`` and optionally store it.

        The stored mapping is replaced only when the suggestion carries both
        required paths.
        """
        if not isinstance(payload, Mapping):
            raise InvalidMappingError("A JSON object payload is required.")

        detected = detect(unwrap_payload(payload))
        config = MappingConfiguration(**detected)
        applied = False
        if apply:
            if config.has_required_paths():
                self._write(dataset_id, config)
                applied = True
            else:
                logger.info(
                    "Detected mapping lacks required paths; not applied",
                    extra={"dataset_id": dataset_id},
                )
        return DetectionResult(detected=detected, mapping=config, applied=applied)

    def preview(self, config: MappingConfiguration, messages: Sequence[Any]) -> PreviewResult:
        payloads = [unwrap_payload(message) for message in messages[:PREVIEW_LIMIT]]
        sample = payloads[0] if payloads else None
        errors = validate_mapping(config, sample)

        points: List[NormalizedPoint] = []
        for payload in payloads:
            point = normalize(payload, config)
            if point is not None:
                points.append(point)
        return PreviewResult(
            points=points,
            errors=errors,
            ranges=self.aggregator.value_ranges(points),
            skipped=len(payloads) - len(points),
        )

    def save_callback(self, dataset_id: str) -> SaveMapping:
        """Adapt :meth:`update_mapping` to the configurator's persistence hook."""

        async def save(config: MappingConfiguration) -> bool:
            try:
                self.update_mapping(dataset_id, config)
            except InvalidMappingError as exc:
                logger.warning("Rejected mapping save", extra={"dataset_id": dataset_id, "reason": str(exc)})
                return False
            return True

        return save

    def _write(self, dataset_id: str, config: MappingConfiguration) -> MappingRecord:
        record = MappingRecord(
            dataset_id=dataset_id,
            mapping=MappingPayload.from_configuration(config),
            updated_at=datetime.now(timezone.utc),
        )
        self.store.put(record)
        return record


@lru_cache
def build_default_mapping_service() -> MappingService:
    """Factory that wires the service with the default store."""
    return MappingService(store=build_default_store(), aggregator=Aggregator())
