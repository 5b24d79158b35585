from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

_STATUS_COLORS = {
    "compliant": typer.colors.GREEN,
    "violation": typer.colors.RED,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def _format_value(value: Any, unit: str = "") -> str:
    if value is None:
        return "no data"
    return f"{value} {unit}".strip()


def render_current(sensors: Iterable[Dict[str, Any]]) -> None:
    echo_heading("Current Readings")
    for sensor in sensors:
        status = sensor.get("status")
        threshold = (sensor.get("threshold") or {}).get("label", "N/A")
        line = (
            f"{sensor.get('name')}: {_format_value(sensor.get('value'), sensor.get('unit', ''))}"
            f" (limit {threshold})"
        )
        typer.echo(line, nl=False)
        if status:
            typer.secho(f" [{status}]", fg=_STATUS_COLORS.get(status))
        else:
            typer.echo(" [awaiting data]")


def render_history(points: List[Dict[str, Any]]) -> None:
    echo_heading("Historical Data")
    if not points:
        typer.echo("No readings in the selected window.")
        return
    typer.echo(f"buckets: {len(points)}")
    typer.echo(f"first: {points[0].get('timestamp')}")
    typer.echo(f"last: {points[-1].get('timestamp')}")
    for point in points:
        values = " ".join(
            f"{key}={value}" for key, value in point.items() if key != "timestamp" and value is not None
        )
        typer.echo(f"  - {point.get('timestamp')}: {values}")


def render_annotations(annotations: Iterable[Any]) -> None:
    items = list(annotations)
    if not items:
        return
    typer.echo()
    echo_heading("Highlighted Sensors")
    for annotation in items:
        action = "action required" if annotation.action_required else "no action"
        typer.echo(f"  - {annotation.active_sensor_id}: {annotation.severity} ({action})")
