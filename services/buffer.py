"""Bounded, most-recent-first collections backing a live dataset view."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Generic, Iterable, Iterator, List, Optional, Set, TypeVar

from models.points import Alert, DataPoint

DEFAULT_POINT_LIMIT = 1000
MAX_POINT_LIMIT = 5000
ALERT_LIMIT = 50
RAW_SAMPLE_LIMIT = 20

T = TypeVar("T", DataPoint, Alert)


@dataclass(frozen=True)
class PointFilters:
    """Equality filters applied before insertion; ``None`` disables a filter."""

    sensor_type: Optional[str] = None
    sensor_id: Optional[str] = None

    def matches(self, point: DataPoint) -> bool:
        if self.sensor_type and point.sensor_type != self.sensor_type:
            return False
        if self.sensor_id and point.sensor_id != self.sensor_id:
            return False
        return True

    @property
    def active(self) -> bool:
        return bool(self.sensor_type or self.sensor_id)


class _IdentifiedBuffer(Generic[T]):
    """Capped deque keyed by ``item.id``; newest at index 0."""

    def __init__(self, limit: int) -> None:
        self._items: Deque[T] = deque()
        self._ids: Set[str] = set()
        self._limit = limit

    @property
    def limit(self) -> int:
        return self._limit

    def _prepend(self, item: T) -> bool:
        if item.id in self._ids:
            return False
        self._items.appendleft(item)
        self._ids.add(item.id)
        self._truncate()
        return True

    def _truncate(self) -> None:
        while len(self._items) > self._limit:
            evicted = self._items.pop()
            self._ids.discard(evicted.id)

    def clear(self) -> None:
        self._items.clear()
        self._ids.clear()

    def items(self) -> List[T]:
        return list(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._ids

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))


class PointBuffer(_IdentifiedBuffer[DataPoint]):
    """Most-recent-first point window with dedupe, filtering and eviction."""

    def __init__(
        self,
        limit: int = DEFAULT_POINT_LIMIT,
        filters: Optional[PointFilters] = None,
        max_limit: int = MAX_POINT_LIMIT,
    ) -> None:
        self._max_limit = max_limit
        super().__init__(self._clamp(limit))
        self._filters = filters or PointFilters()

    def _clamp(self, limit: int) -> int:
        return max(1, min(int(limit), self._max_limit))

    @property
    def filters(self) -> PointFilters:
        return self._filters

    def set_filters(self, filters: PointFilters) -> None:
        """Only affects future inserts; callers refresh history to re-filter."""
        self._filters = filters

    def set_limit(self, limit: int) -> int:
        self._limit = self._clamp(limit)
        self._truncate()
        return self._limit

    def insert(self, point: DataPoint) -> bool:
        """Prepend ``point``; returns False when it was a duplicate or filtered out."""
        if point.id in self._ids:
            return False
        if self._filters.active and not self._filters.matches(point):
            return False
        return self._prepend(point)

    def replace(self, points: Iterable[DataPoint]) -> None:
        """Swap in a history snapshot, already ordered newest first."""
        self.clear()
        for point in points:
            if point.id in self._ids:
                continue
            self._items.append(point)
            self._ids.add(point.id)
        self._truncate()

    def by_sensor_type(self, sensor_type: str) -> List[DataPoint]:
        return [point for point in self._items if point.sensor_type == sensor_type]

    def by_sensor_id(self, sensor_id: str) -> List[DataPoint]:
        return [point for point in self._items if point.sensor_id == sensor_id]


class AlertBuffer(_IdentifiedBuffer[Alert]):

    def __init__(self, limit: int = ALERT_LIMIT) -> None:
        super().__init__(limit)

    def insert(self, alert: Alert) -> bool:
        return self._prepend(alert)


class RawSampleBuffer:
    """Last few raw messages, newest first, stored by reference."""

    def __init__(self, limit: int = RAW_SAMPLE_LIMIT) -> None:
        self._items: Deque[Any] = deque(maxlen=limit)

    def add(self, message: Any) -> None:
        self._items.appendleft(message)

    def clear(self) -> None:
        self._items.clear()

    def items(self) -> List[Any]:
        return list(self._items)

    def __getitem__(self, index: int) -> Any:
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)
