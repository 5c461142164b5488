"""Heuristic mapping suggestions from a sample payload."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Tuple

from services.paths import flatten_paths

# Evaluation order is irrelevant; each field independently takes the first
# matching path in flattening order.
FIELD_PATTERNS: Tuple[Tuple[str, re.Pattern[str]], ...] = (
    ("timestamp_path", re.compile(r"time|date|timestamp|ts|created|fecha", re.IGNORECASE)),
    (
        "value_path",
        re.compile(
            r"(^|\.)value$|(^|\.)val$|temperatura|temperature|temp|humedad|humidity|speed|velocidad",
            re.IGNORECASE,
        ),
    ),
    # Single-letter and "id" tokens only match a whole last segment, so "x"
    # does not hit "max" and "id" does not hit "width". See
    # tests/test_detector.py::test_short_tokens_match_whole_last_segment_only.
    ("x_path", re.compile(r"(^|\.)x$|latitude|lat|coordX", re.IGNORECASE)),
    ("y_path", re.compile(r"(^|\.)y$|longitude|lng|lon|coordY", re.IGNORECASE)),
    ("z_path", re.compile(r"(^|\.)z$|altitude|alt|elevation|coordZ", re.IGNORECASE)),
    ("sensor_id_path", re.compile(r"sensor.*id|id.*sensor|deviceId|(^|\.)id$", re.IGNORECASE)),
    ("sensor_type_path", re.compile(r"sensor.*type|type.*sensor|deviceType", re.IGNORECASE)),
    ("unit_path", re.compile(r"unit|unidad|measure", re.IGNORECASE)),
)


def detect(sample: Any) -> Dict[str, str]:
    """Propose mapping paths for ``sample``; fields without a match are omitted."""
    candidates: List[str] = flatten_paths(sample)
    detected: Dict[str, str] = {}
    for field_name, pattern in FIELD_PATTERNS:
        for path in candidates:
            if pattern.search(path):
                detected[field_name] = path
                break
    return detected
