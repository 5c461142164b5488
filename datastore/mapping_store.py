from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Optional

from pydantic import ValidationError

from app.schemas import MappingRecord
from settings import get_settings

logger = logging.getLogger(__name__)


class MappingStore:
    """Per-dataset mapping records, optionally mirrored to a JSON file."""

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._items: Dict[str, MappingRecord] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put(self, record: MappingRecord) -> None:
        with self._lock:
            self._items[record.dataset_id] = record.model_copy(deep=True)
            self._persist()

    def get(self, dataset_id: str) -> Optional[MappingRecord]:
        with self._lock:
            record = self._items.get(dataset_id)
            if record is None:
                return None
            return record.model_copy(deep=True)

    def scan(self) -> list[MappingRecord]:
        """Return deep copies of all stored mappings."""

        with self._lock:
            return [record.model_copy(deep=True) for record in self._items.values()]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            dataset_id: record.model_dump(mode="json")
            for dataset_id, record in self._items.items()
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(
                "Ignoring unreadable mapping store",
                extra={"path": str(self.persistence_path), "reason": str(exc)},
            )
            return

        if not isinstance(data, dict):
            logger.warning(
                "Ignoring mapping store that is not keyed by dataset",
                extra={"path": str(self.persistence_path), "reason": type(data).__name__},
            )
            return

        for dataset_id, payload in data.items():
            try:
                record = MappingRecord.model_validate(payload)
            except ValidationError as exc:
                logger.warning(
                    "Skipping invalid mapping record",
                    extra={"dataset_id": dataset_id, "error_count": exc.error_count()},
                )
                continue
            if record.dataset_id != dataset_id:
                logger.warning(
                    "Skipping mapping record stored under another dataset",
                    extra={"dataset_id": dataset_id, "reason": record.dataset_id},
                )
                continue
            self._items[dataset_id] = record


@lru_cache
def build_default_store(path: Optional[str] = None) -> MappingStore:
    settings = get_settings()
    store_path = settings.mapping_store_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return MappingStore(persistence_path=persistence)
