from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional

import typer

from models.points import MAPPING_FIELDS, DataPoint, MappingConfiguration, NormalizedPoint
from services.aggregator import AxisRange, BufferStats, PreviewRanges, scale_value


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _fmt(value: Optional[float]) -> str:
    if value is None:
        return "-"
    if math.isnan(value):
        return "NaN"
    return f"{value:g}"


def render_configuration(config: MappingConfiguration, title: str = "Mapping") -> None:
    echo_heading(title)
    echo_key_values((name, getattr(config, name) or "-") for name in MAPPING_FIELDS)


def render_mapping(payload: Dict[str, Any]) -> None:
    """Print a mapping as returned by the API."""
    mapping = MappingConfiguration.from_dict(payload.get("mapping") or {})
    render_configuration(mapping, title=f"Mapping for {payload.get('datasetId', '?')}")
    updated_at = payload.get("updatedAt")
    if updated_at:
        typer.echo(f"updated_at: {updated_at}")


def render_detection(detected: Mapping[str, str]) -> None:
    echo_heading("Detected fields")
    if not detected:
        typer.echo("No fields could be detected.")
        return
    echo_key_values(detected.items())


def render_point(
    point: NormalizedPoint, prefix: str = "", value_range: Optional[AxisRange] = None
) -> None:
    parts = [f"value={_fmt(point.value)}", f"timestamp={point.timestamp}"]
    coords = [("x", point.x), ("y", point.y), ("z", point.z)]
    parts.extend(f"{name}={_fmt(value)}" for name, value in coords if value is not None)
    for name, text in (("sensor", point.sensor_id), ("type", point.sensor_type), ("unit", point.unit)):
        if text is not None:
            parts.append(f"{name}={text}")
    if value_range is not None:
        level = scale_value(point.value, value_range)
        if level is not None:
            parts.append(f"level={level:.2f}")
    typer.echo(f"{prefix}{' '.join(parts)}")


def render_data_point(point: DataPoint) -> None:
    render_point(point.point, prefix=f"[{point.id}] ")


def render_points(
    points: List[NormalizedPoint], skipped: int = 0, value_range: Optional[AxisRange] = None
) -> None:
    echo_heading(f"Normalized points ({len(points)})")
    if not points:
        typer.echo("No messages could be mapped.")
    for point in points:
        render_point(point, prefix="  - ", value_range=value_range)
    if skipped:
        typer.secho(f"{skipped} message(s) skipped.", fg=typer.colors.YELLOW)


def _range_pairs(ranges: PreviewRanges) -> List[tuple[str, str]]:
    pairs: List[tuple[str, str]] = []
    for name in ("value", "x", "y", "z"):
        axis: AxisRange = getattr(ranges, name)
        if axis.min is None:
            continue
        pairs.append((name, f"{_fmt(axis.min)} .. {_fmt(axis.max)}"))
    return pairs


def render_preview(
    points: List[NormalizedPoint],
    ranges: PreviewRanges,
    errors: List[str],
    skipped: int = 0,
) -> None:
    render_points(points, skipped=skipped, value_range=ranges.value)
    pairs = _range_pairs(ranges)
    if pairs:
        typer.echo()
        echo_heading("Ranges")
        echo_key_values(pairs)
    render_errors(errors)


def render_errors(errors: List[str]) -> None:
    if not errors:
        return
    typer.echo()
    echo_heading("Validation errors")
    for error in errors:
        typer.secho(f"  - {error}", fg=typer.colors.RED)


def render_stats(stats: BufferStats) -> None:
    echo_heading("Statistics")
    echo_key_values(
        [
            ("count", stats.count),
            ("min_value", _fmt(stats.min_value)),
            ("max_value", _fmt(stats.max_value)),
            ("avg_value", _fmt(stats.avg_value)),
            ("sensor_ids", stats.sensor_id_count),
            ("sensor_types", stats.sensor_type_count),
            ("earliest", stats.earliest.isoformat() if stats.earliest else "-"),
            ("latest", stats.latest.isoformat() if stats.latest else "-"),
        ]
    )
    if stats.per_sensor_type:
        typer.echo("per_sensor_type:")
        for sensor_type, entry in stats.per_sensor_type.items():
            typer.echo(
                f"  - {sensor_type}: count={entry.count} avg={_fmt(entry.avg_value)} "
                f"min={_fmt(entry.min_value)} max={_fmt(entry.max_value)}"
            )
