from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_chart, render_devices, render_stats


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for querying sensor telemetry charts and reports.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("devices")
def devices_command(ctx: typer.Context) -> None:
    """List devices and their latest reading."""
    state = _get_state(ctx)
    render_devices(state.client.list_devices())


@app.command("chart")
def chart_command(
    ctx: typer.Context,
    device_ids: List[int] = typer.Argument(..., help="Device ids to plot."),
    metric: str = typer.Option("temperature", "--metric", "-m", help="temperature or humidity."),
    mode: str = typer.Option("latest", "--mode", help="latest, daily or range."),
    limit: Optional[int] = typer.Option(None, "--limit", help="Readings per device in latest mode."),
    day: Optional[str] = typer.Option(None, "--day", help="UTC day (YYYY-MM-DD) for daily mode."),
    start: Optional[str] = typer.Option(None, "--start", help="Range start for range mode."),
    end: Optional[str] = typer.Option(None, "--end", help="Range end for range mode."),
    hidden: List[int] = typer.Option([], "--hide", help="Device ids to hide from the chart."),
) -> None:
    """Summarise a multi-device chart for one metric."""
    state = _get_state(ctx)
    params: Dict[str, Any] = {"device_id": device_ids, "metric": metric, "mode": mode}
    optional = {"limit": limit, "day": day, "start": start, "end": end}
    params.update({key: value for key, value in optional.items() if value is not None})
    if hidden:
        params["hidden"] = hidden
    render_chart(state.client.get_chart(params))


@app.command("stats")
def stats_command(
    ctx: typer.Context,
    device_id: int = typer.Argument(..., help="Device id."),
    period: str = typer.Option("day", "--period", "-p", help="day, week or month."),
) -> None:
    """Show temperature and humidity statistics for a device."""
    state = _get_state(ctx)
    render_stats(state.client.get_stats(device_id, period))


@app.command("report")
def report_command(
    ctx: typer.Context,
    device_id: int = typer.Argument(..., help="Device id."),
    start: str = typer.Option(..., "--start", help="First day, YYYY-MM-DD."),
    end: str = typer.Option(..., "--end", help="Last day, YYYY-MM-DD."),
    interval: str = typer.Option("raw", "--interval", help="raw, hourly or daily."),
    timezone: Optional[str] = typer.Option(None, "--timezone", help="IANA timezone for timestamps."),
    output_dir: Path = typer.Option(
        Path("."), "--output-dir", "-o", file_okay=False, help="Directory for the CSV file."
    ),
) -> None:
    """Download a CSV report for a device."""
    state = _get_state(ctx)
    params: Dict[str, Any] = {"start": start, "end": end, "interval": interval}
    if timezone:
        params["timezone"] = timezone
    filename, content = state.client.get_report(device_id, params)
    output_dir.mkdir(parents=True, exist_ok=True)
    target = output_dir / filename
    target.write_bytes(content)
    typer.secho(f"Report saved to {target}", fg=typer.colors.GREEN)
