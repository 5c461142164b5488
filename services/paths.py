"""Dot-path resolution over schema-less JSON payloads."""

from __future__ import annotations

from typing import Any, List, Mapping


class _Missing:
    """Sentinel for "nothing at this path", distinct from a JSON ``null``."""

    _instance = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def is_missing(value: Any) -> bool:
    return value is MISSING


def resolve(root: Any, path: Any) -> Any:
    """Return the value at ``path`` inside ``root`` or :data:`MISSING`.

    Only plain object keys are supported; ``readings[0].value`` is looked up
    as the literal key ``"readings[0]"`` and will normally be missing.
    """
    if not isinstance(root, Mapping):
        return MISSING
    if not isinstance(path, str) or not path:
        return MISSING

    current: Any = root
    for key in path.split("."):
        if not isinstance(current, Mapping):
            return MISSING
        try:
            current = current[key]
        except (KeyError, TypeError):
            return MISSING
    return current


def flatten_paths(payload: Any, include_branches: bool = False) -> List[str]:
    """List every dot-path of ``payload`` in insertion order.

    Lists are leaves. With ``include_branches`` the paths of nested objects
    are listed too, each before its children.
    """
    paths: List[str] = []
    if isinstance(payload, Mapping):
        _collect(payload, "", paths, include_branches)
    return paths


def _collect(node: Mapping, prefix: str, out: List[str], include_branches: bool) -> None:
    for key, value in node.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            if include_branches:
                out.append(path)
            _collect(value, path, out, include_branches)
        else:
            out.append(path)
