"""Apply a mapping configuration to raw payloads."""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, List, Optional

from models.points import MappingConfiguration, NormalizedPoint
from services.paths import MISSING, is_missing, resolve

logger = logging.getLogger(__name__)


def to_number(value: Any) -> float:
    """Numeric coercion that never raises; failures become NaN.

    Booleans are deliberately not treated as numbers.
    """
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        try:
            return float(value)
        except OverflowError:
            return math.nan
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return math.nan
    return math.nan


def _optional_number(raw: Any, path: Optional[str]) -> Optional[float]:
    if not path:
        return None
    value = resolve(raw, path)
    if value is MISSING or value is None:
        return None
    return to_number(value)


def _optional_text(raw: Any, path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    value = resolve(raw, path)
    if value is MISSING or value is None:
        return None
    return str(value)


def normalize(raw: Any, config: MappingConfiguration) -> Optional[NormalizedPoint]:
    """Build a :class:`NormalizedPoint` from ``raw`` or return ``None``.

    ``None`` means the message cannot be mapped: a required path is not
    configured or does not resolve. NaN values are returned as-is and must be
    filtered by the caller.
    """
    if not config.value_path or not config.timestamp_path:
        return None

    try:
        value = resolve(raw, config.value_path)
        timestamp = resolve(raw, config.timestamp_path)
        if value is MISSING or timestamp is MISSING:
            return None

        return NormalizedPoint(
            value=to_number(value),
            timestamp=timestamp,
            x=_optional_number(raw, config.x_path),
            y=_optional_number(raw, config.y_path),
            z=_optional_number(raw, config.z_path),
            sensor_id=_optional_text(raw, config.sensor_id_path),
            sensor_type=_optional_text(raw, config.sensor_type_path),
            unit=_optional_text(raw, config.unit_path),
        )
    except Exception as exc:  # noqa: BLE001 - one bad message must not escape
        logger.debug("Dropping payload that failed normalization", extra={"reason": repr(exc)})
        return None


def normalize_many(
    messages: Iterable[Any],
    config: MappingConfiguration,
    limit: Optional[int] = None,
) -> List[NormalizedPoint]:
    points: List[NormalizedPoint] = []
    for index, message in enumerate(messages):
        if limit is not None and index >= limit:
            break
        point = normalize(message, config)
        if point is not None:
            points.append(point)
    return points


def validate_mapping(config: MappingConfiguration, sample: Any = None) -> List[str]:
    """Collect every reason ``config`` cannot be saved, checked against ``sample``."""
    errors: List[str] = []
    if not config.value_path:
        errors.append('The "value" field is required.')
    if not config.timestamp_path:
        errors.append('The "timestamp" field is required.')

    if sample is not None:
        if config.value_path and is_missing(resolve(sample, config.value_path)):
            errors.append(f'Path "{config.value_path}" was not found in the sample.')
        if config.timestamp_path and is_missing(resolve(sample, config.timestamp_path)):
            errors.append(f'Path "{config.timestamp_path}" was not found in the sample.')
    return errors
