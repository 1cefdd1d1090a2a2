from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_devices(devices: List[Dict[str, Any]]) -> None:
    echo_heading("Devices")
    if not devices:
        typer.echo("No devices registered.")
        return
    for device in devices:
        last = device.get("lastReading") or {}
        latest = (
            f"{last.get('temperature')}°C / {last.get('humidity')}% at {last.get('timestamp')}"
            if last
            else "no readings"
        )
        typer.echo(
            f"  - [{device.get('id')}] {device.get('name')} "
            f"({device.get('serialNumber')}, {device.get('status')}): {latest}"
        )


def render_chart(payload: Dict[str, Any]) -> None:
    echo_heading(f"Chart ({payload.get('metric')}, {payload.get('timezone')})")
    stats = payload.get("stats") or {}
    echo_key_values(
        [
            ("points", stats.get("count")),
            ("min", stats.get("min")),
            ("max", stats.get("max")),
            ("avg", stats.get("avg")),
            ("x_domain", " .. ".join(payload.get("x_domain_labels") or []) or None),
            ("zoomed", payload.get("zoomed")),
        ]
    )

    typer.echo()
    echo_heading("Series")
    legend = payload.get("legend") or []
    if not legend:
        typer.echo("No series available.")
        return
    points_by_device = {
        series.get("device_id"): len(series.get("points") or [])
        for series in payload.get("series") or []
    }
    for series in legend:
        device_id = series.get("device_id")
        marker = "x" if series.get("visible") else " "
        count = points_by_device.get(device_id, 0)
        if not series.get("visible"):
            summary = "hidden"
        elif count:
            summary = f"min={series.get('min')} max={series.get('max')} avg={series.get('avg')} points={count}"
        else:
            summary = "no data"
        typer.echo(f"  [{marker}] {series.get('label')} {series.get('color')}: {summary}")


def render_stats(payload: Dict[str, Any]) -> None:
    echo_heading(f"Device {payload.get('device_id')} ({payload.get('period')})")
    echo_key_values(
        [
            ("start", payload.get("start")),
            ("end", payload.get("end")),
            ("reading_count", payload.get("reading_count")),
            ("first_reading", payload.get("first_reading")),
            ("last_reading", payload.get("last_reading")),
        ]
    )
    for metric in ("temperature", "humidity"):
        values = payload.get(metric) or {}
        typer.echo(
            f"{metric}: min={values.get('min')} max={values.get('max')} avg={values.get('avg')}"
        )
