from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import (
    echo_heading,
    render_configuration,
    render_data_point,
    render_detection,
    render_errors,
    render_mapping,
    render_preview,
    render_stats,
)
from logging_config import configure_logging
from models.points import MAPPING_FIELDS, MappingConfiguration
from services.aggregator import Aggregator
from services.buffer import PointFilters
from services.configurator import MappingConfigurator, unwrap_payload
from services.detector import detect
from services.normalizer import normalize_many, validate_mapping
from transport.client import LiveTransportClient, TransportListeners, build_live_client
from transport.notifications import static_token_provider


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for mapping raw telemetry payloads and watching live datasets.",
    context_settings={"help_option_names": ["-h", "--help"]},
)
mapping_app = typer.Typer(help="Inspect and edit the stored mapping of a dataset.")
app.add_typer(mapping_app, name="mapping")


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


def _field_aliases() -> Dict[str, str]:
    aliases: Dict[str, str] = {}
    wire_names = MappingConfiguration().to_dict(wire=True)
    for name, wire in zip(MAPPING_FIELDS, wire_names):
        aliases[name] = name
        aliases[wire] = name
        aliases[name[: -len("_path")]] = name
        aliases[wire[: -len("Path")]] = name
    return aliases


_FIELD_ALIASES = _field_aliases()


def _parse_overrides(items: List[str]) -> Dict[str, Optional[str]]:
    """Turn ``field=path`` arguments into mapping changes; an empty path clears the field."""
    changes: Dict[str, Optional[str]] = {}
    for item in items:
        key, sep, path = item.partition("=")
        if not sep:
            raise typer.BadParameter(f"Expected FIELD=PATH, got {item!r}.", param_hint="--set")
        field_name = _FIELD_ALIASES.get(key.strip())
        if field_name is None:
            raise typer.BadParameter(f"Unknown mapping field {key!r}.", param_hint="--set")
        changes[field_name] = path.strip() or None
    return changes


def _load_messages(path: Path) -> List[Any]:
    """Read a JSON document (object or array) or newline-delimited JSON."""
    text = path.read_text()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        messages: List[Any] = []
        for number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                messages.append(json.loads(line))
            except json.JSONDecodeError as exc:
                raise typer.BadParameter(f"Line {number} of {path} is not valid JSON.") from exc
        return messages
    return data if isinstance(data, list) else [data]


def _require_token(config: CLIConfig) -> str:
    if not config.token:
        typer.secho(
            "No API token configured (use --token or LIVE_API_TOKEN).",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)
    return config.token


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Mapping API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    ws_url: Optional[str] = typer.Option(
        None,
        "--ws-url",
        help="Live transport URL (defaults to LIVE_WS_URL env or ws://localhost:3001).",
    ),
    token: Optional[str] = typer.Option(
        None,
        "--token",
        help="Bearer token for the live transport (defaults to LIVE_API_TOKEN env).",
    ),
    sample_timeout: Optional[float] = typer.Option(
        None,
        "--sample-timeout",
        help="Maximum seconds to wait for live samples when configuring.",
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level for diagnostics."),
) -> None:
    """Entry point for the CLI."""
    configure_logging(log_level.upper())
    config = load_config(
        base_url=base_url,
        ws_url=ws_url,
        token=token,
        sample_timeout=sample_timeout,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("detect")
def detect_command(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="JSON sample file."),
    dataset: Optional[str] = typer.Option(
        None,
        "--dataset",
        "-d",
        help="Run detection through the API for this dataset instead of locally.",
    ),
    apply: bool = typer.Option(False, "--apply", help="Store the detected mapping for --dataset."),
) -> None:
    """Suggest mapping paths from the first message in FILE."""
    messages = _load_messages(file)
    if not messages:
        raise typer.BadParameter(f"{file} contains no messages.")
    sample = unwrap_payload(messages[0])

    if dataset is None:
        if apply:
            raise typer.BadParameter("--apply requires --dataset.")
        render_detection(detect(sample))
        return

    state = _get_state(ctx)
    result = state.client.detect_mapping(dataset, sample, apply=apply)
    render_detection(result.get("detected") or {})
    if result.get("applied"):
        typer.secho(f"Mapping applied to dataset {dataset}.", fg=typer.colors.GREEN)
    elif apply:
        typer.secho(
            "Detected mapping lacks a value or timestamp path; not applied.",
            fg=typer.colors.YELLOW,
        )


@app.command("normalize")
def normalize_command(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="JSON or NDJSON messages."),
    value_path: Optional[str] = typer.Option(None, "--value-path"),
    timestamp_path: Optional[str] = typer.Option(None, "--timestamp-path"),
    x_path: Optional[str] = typer.Option(None, "--x-path"),
    y_path: Optional[str] = typer.Option(None, "--y-path"),
    z_path: Optional[str] = typer.Option(None, "--z-path"),
    sensor_id_path: Optional[str] = typer.Option(None, "--sensor-id-path"),
    sensor_type_path: Optional[str] = typer.Option(None, "--sensor-type-path"),
    unit_path: Optional[str] = typer.Option(None, "--unit-path"),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Only normalize the first N messages."),
) -> None:
    """Apply a mapping to every message in FILE; auto-detects when no path is given."""
    messages = [unwrap_payload(message) for message in _load_messages(file)]
    if not messages:
        raise typer.BadParameter(f"{file} contains no messages.")

    config = MappingConfiguration().with_paths(
        value_path=value_path,
        timestamp_path=timestamp_path,
        x_path=x_path,
        y_path=y_path,
        z_path=z_path,
        sensor_id_path=sensor_id_path,
        sensor_type_path=sensor_type_path,
        unit_path=unit_path,
    )
    if config.is_empty():
        config = MappingConfiguration(**detect(messages[0]))
        render_configuration(config, title="Auto-detected mapping")
        typer.echo()

    errors = validate_mapping(config, messages[0])
    if not config.has_required_paths():
        render_errors(errors)
        raise typer.Exit(code=1)

    considered = messages if limit is None else messages[:limit]
    points = normalize_many(considered, config)
    ranges = Aggregator().value_ranges(points)
    render_preview(points, ranges, errors, skipped=len(considered) - len(points))


@mapping_app.command("show")
def mapping_show(
    ctx: typer.Context,
    dataset: str = typer.Argument(..., help="Dataset identifier."),
) -> None:
    """Print the stored mapping of DATASET."""
    state = _get_state(ctx)
    render_mapping(state.client.get_mapping(dataset))


@mapping_app.command("set")
def mapping_set(
    ctx: typer.Context,
    dataset: str = typer.Argument(..., help="Dataset identifier."),
    overrides: List[str] = typer.Argument(..., help="FIELD=PATH pairs; an empty PATH clears the field."),
) -> None:
    """Change individual paths of the stored mapping of DATASET."""
    state = _get_state(ctx)
    changes = _parse_overrides(overrides)
    current = MappingConfiguration.from_dict(state.client.get_mapping(dataset).get("mapping") or {})
    updated = current.with_paths(**changes)
    payload = state.client.update_mapping(dataset, updated.to_dict(wire=True))
    typer.secho("Mapping updated.", fg=typer.colors.GREEN)
    render_mapping(payload)


@mapping_app.command("reset")
def mapping_reset(
    ctx: typer.Context,
    dataset: str = typer.Argument(..., help="Dataset identifier."),
) -> None:
    """Restore the default mapping of DATASET."""
    state = _get_state(ctx)
    payload = state.client.reset_mapping(dataset)
    typer.secho("Mapping reset to defaults.", fg=typer.colors.GREEN)
    render_mapping(payload)


async def _watch(client: LiveTransportClient, duration: Optional[float]) -> None:
    loop = asyncio.get_running_loop()
    deadline = None if duration is None else loop.time() + duration
    async with client:
        while deadline is None or loop.time() < deadline:
            if client.has_stopped:
                break
            await asyncio.sleep(0.1)


@app.command("watch")
def watch_command(
    ctx: typer.Context,
    dataset: str = typer.Argument(..., help="Dataset identifier."),
    mapped: bool = typer.Option(
        False,
        "--mapped/--no-mapped",
        help="Normalize raw payloads locally with the stored mapping.",
    ),
    sensor_type: Optional[str] = typer.Option(None, "--sensor-type"),
    sensor_id: Optional[str] = typer.Option(None, "--sensor-id"),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Point window size."),
    duration: Optional[float] = typer.Option(
        None,
        "--duration",
        min=0,
        help="Stop after this many seconds (default: until interrupted).",
    ),
) -> None:
    """Stream live points for DATASET and print statistics on exit."""
    state = _get_state(ctx)
    token = _require_token(state.config)
    mapping = None
    if mapped:
        mapping = MappingConfiguration.from_dict(state.client.get_mapping(dataset).get("mapping") or {})

    listeners = TransportListeners(
        on_point=render_data_point,
        on_alert=lambda alert: typer.secho(
            f"ALERT [{alert.severity}] {alert.message}", fg=typer.colors.YELLOW
        ),
        on_status=lambda status: typer.echo(f"status: {status.value}", err=True),
    )
    overrides: Dict[str, Any] = {"url": state.config.ws_url}
    if limit is not None:
        overrides["limit"] = limit
    client = build_live_client(
        dataset,
        static_token_provider(token),
        listeners=listeners,
        mapping=mapping,
        filters=PointFilters(sensor_type=sensor_type, sensor_id=sensor_id),
        **overrides,
    )
    if client.filters.active:
        typer.echo(
            f"filters: sensor_type={client.filters.sensor_type or '*'} sensor_id={client.filters.sensor_id or '*'}",
            err=True,
        )

    try:
        asyncio.run(_watch(client, duration))
    except KeyboardInterrupt:
        typer.echo("Interrupted.", err=True)

    typer.echo()
    render_stats(client.stats())
    if client.error:
        typer.secho(f"Last error: {client.error}", fg=typer.colors.RED, err=True)
    if client.auth_rejected:
        raise typer.Exit(code=1)


async def _collect_samples(config: CLIConfig, token: str, dataset_id: str, count: int) -> List[Any]:
    received: List[Any] = []
    enough = asyncio.Event()

    def on_raw(message: Any) -> None:
        received.append(message)
        if len(received) >= count:
            enough.set()

    client = build_live_client(
        dataset_id,
        static_token_provider(token),
        url=config.ws_url,
        listeners=TransportListeners(on_raw=on_raw),
    )
    async with client:
        try:
            await asyncio.wait_for(enough.wait(), timeout=config.sample_timeout)
        except asyncio.TimeoutError:
            typer.echo(f"Collected {len(received)} sample(s) before timing out.", err=True)
    return received


@app.command("configure")
def configure_command(
    ctx: typer.Context,
    dataset: str = typer.Argument(..., help="Dataset identifier."),
    samples: int = typer.Option(5, "--samples", min=1, help="Live samples to collect."),
    samples_file: Optional[Path] = typer.Option(
        None,
        "--samples-file",
        exists=True,
        dir_okay=False,
        readable=True,
        help="Read samples from a file instead of the live transport.",
    ),
    overrides: Optional[List[str]] = typer.Option(
        None,
        "--set",
        help="Override a detected path as FIELD=PATH. Repeatable.",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Save without asking for confirmation."),
) -> None:
    """Build a mapping for DATASET from sample messages and save it."""
    state = _get_state(ctx)
    if samples_file is not None:
        messages = _load_messages(samples_file)
    else:
        token = _require_token(state.config)
        typer.echo(f"Waiting for up to {samples} sample(s) from {state.config.ws_url} ...")
        messages = asyncio.run(_collect_samples(state.config, token, dataset, samples))
    if not messages:
        typer.secho("No sample messages received.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    saved: Dict[str, Any] = {}

    async def save_mapping(config: MappingConfiguration) -> bool:
        saved.update(state.client.update_mapping(dataset, config.to_dict(wire=True)))
        return True

    configurator = MappingConfigurator(save_mapping)
    for message in messages:
        configurator.add_sample(message)
    if overrides:
        configurator.update(**_parse_overrides(overrides))

    render_configuration(configurator.config)
    typer.echo()
    preview = configurator.preview
    render_preview(preview.points, preview.ranges, configurator.validation_errors)

    if not configurator.can_save:
        typer.secho("Mapping is not valid; nothing was saved.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    if not yes and not typer.confirm(f"Save this mapping for dataset {dataset}?"):
        configurator.close()
        typer.echo("Aborted.")
        return

    if not asyncio.run(configurator.save()):
        typer.secho(configurator.error or "Save failed.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo()
    echo_heading("Saved")
    render_mapping(saved)
