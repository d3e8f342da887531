from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_alerts, render_assessment, render_insight, render_thresholds

_TIERS = ("CRITICAL", "HIGH", "MEDIUM", "LOW")


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for operating the GLOF Watch service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
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
        help="Request timeout in seconds (defaults to CLI_TIMEOUT env or 30).",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("send")
def send_command(
    ctx: typer.Context,
    node_id: str = typer.Argument(..., help="Monitoring node identifier."),
    temperature: float = typer.Option(..., "--temperature", "-t", help="Temperature in °C."),
    seismic: float = typer.Option(..., "--seismic", "-s", min=0, help="Seismic activity."),
    water_level: float = typer.Option(..., "--water-level", "-w", help="Water level in cm."),
) -> None:
    """Send one reading and show the resulting assessment."""
    state = _get_state(ctx)
    payload = state.client.send_reading(
        {
            "node_id": node_id,
            "temperature": temperature,
            "seismic_activity": seismic,
            "water_level": water_level,
        }
    )
    typer.secho(payload.get("message", "Sensor data received"), fg=typer.colors.GREEN)
    typer.echo()
    render_assessment(payload.get("assessment") or {})


@app.command("assessment")
def assessment_command(
    ctx: typer.Context,
    node_id: str = typer.Argument(..., help="Monitoring node identifier."),
) -> None:
    """Show the latest rule-based assessment for a node."""
    state = _get_state(ctx)
    render_assessment(state.client.get_assessment(node_id))


@app.command("insights")
def insights_command(
    ctx: typer.Context,
    node_id: str = typer.Argument(..., help="Monitoring node identifier."),
    window_size: Optional[int] = typer.Option(
        None,
        "--window-size",
        "-n",
        min=3,
        max=500,
        help="Number of recent readings to analyse.",
    ),
) -> None:
    """Show statistical insights for a node."""
    state = _get_state(ctx)
    render_insight(state.client.get_insights(node_id, window_size=window_size))


@app.command("alerts")
def alerts_command(
    ctx: typer.Context,
    tier: Optional[str] = typer.Option(None, "--tier", help="Only show alerts of this tier."),
    limit: int = typer.Option(50, "--limit", min=1, max=500, help="Maximum alerts to show."),
) -> None:
    """List recorded alerts, newest first."""
    state = _get_state(ctx)
    if tier is not None and tier.upper() not in _TIERS:
        raise typer.BadParameter(f"Tier must be one of {', '.join(_TIERS)}.", param_hint="--tier")
    render_alerts(state.client.list_alerts(risk_tier=tier.upper() if tier else None, limit=limit))


@app.command("thresholds")
def thresholds_command(
    ctx: typer.Context,
    temperature: Optional[float] = typer.Option(None, "--temperature", help="New temperature threshold."),
    seismic: Optional[float] = typer.Option(None, "--seismic", min=0, help="New seismic threshold."),
    water_level_pct: Optional[float] = typer.Option(
        None,
        "--water-level-pct",
        help="New water level increase threshold in percent.",
    ),
) -> None:
    """Show thresholds, or update the ones given."""
    state = _get_state(ctx)
    changes: Dict[str, float] = {}
    if temperature is not None:
        changes["temperature"] = temperature
    if seismic is not None:
        changes["seismic"] = seismic
    if water_level_pct is not None:
        changes["water_level_increase_pct"] = water_level_pct

    if changes:
        payload = state.client.update_thresholds(changes)
        typer.secho("Thresholds updated.", fg=typer.colors.GREEN)
    else:
        payload = state.client.get_thresholds()
    render_thresholds(payload)


@app.command("reset")
def reset_command(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Clear every reading, assessment and alert on the server."""
    state = _get_state(ctx)
    if not yes:
        typer.confirm("This deletes all sensor data and alerts. Continue?", abort=True)
    payload = state.client.reset()
    typer.secho(payload.get("message", "Reset complete."), fg=typer.colors.GREEN)
