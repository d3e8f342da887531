from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

_TIER_COLORS = {
    "CRITICAL": typer.colors.RED,
    "HIGH": typer.colors.MAGENTA,
    "MEDIUM": typer.colors.YELLOW,
    "LOW": typer.colors.GREEN,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def echo_tier(tier: Any) -> None:
    label = str(tier)
    typer.secho(f"risk_tier: {label}", fg=_TIER_COLORS.get(label), bold=label == "CRITICAL")


def render_assessment(payload: Dict[str, Any]) -> None:
    echo_heading("Risk Assessment")
    echo_key_values(
        [
            ("node_id", payload.get("node_id")),
            ("timestamp", payload.get("timestamp")),
        ]
    )
    echo_tier(payload.get("risk_tier"))
    echo_key_values(
        [
            ("risk_score", payload.get("risk_score")),
            ("should_alert", payload.get("should_alert")),
            ("message", payload.get("alert_message")),
        ]
    )

    metrics = payload.get("metrics") or {}
    if metrics:
        typer.echo()
        echo_heading("Metrics")
        echo_key_values(metrics.items())

    factors = payload.get("risk_factors") or []
    typer.echo()
    echo_heading("Risk Factors")
    if factors:
        for factor in factors:
            typer.echo(f"  - {factor}")
    else:
        typer.echo("No risk factors.")


def render_insight(payload: Dict[str, Any]) -> None:
    echo_heading("ML Insight")
    echo_key_values(
        [
            ("node_id", payload.get("node_id")),
            ("data_points", payload.get("data_points")),
        ]
    )
    echo_tier(payload.get("risk_tier"))
    echo_key_values(
        [
            ("risk_score", payload.get("risk_score")),
            ("recommendation", payload.get("recommendation")),
        ]
    )
    if not payload.get("sufficient_data"):
        typer.echo(payload.get("message") or "Insufficient data for analysis.")
        return

    anomaly = payload.get("anomaly_detection") or {}
    typer.echo()
    echo_heading("Anomaly Detection")
    echo_key_values(
        [
            ("is_anomaly", anomaly.get("is_anomaly")),
            ("confidence", anomaly.get("confidence")),
            ("details", anomaly.get("details")),
        ]
    )

    trends = payload.get("trends") or {}
    if trends:
        typer.echo()
        echo_heading("Trends")
        for name, trend in trends.items():
            typer.echo(f"  - {name}: {trend.get('trend')} (slope={trend.get('slope')})")

    factors = payload.get("factors") or []
    typer.echo()
    echo_heading("Factors")
    if factors:
        for factor in factors:
            typer.echo(f"  - {factor.get('name')} (+{factor.get('impact')}): {factor.get('description')}")
    else:
        typer.echo("No risk factors.")


def render_alerts(alerts: List[Dict[str, Any]]) -> None:
    echo_heading("Alerts")
    if not alerts:
        typer.echo("No alerts recorded.")
        return
    for alert in alerts:
        assessment = alert.get("assessment") or {}
        tier = str(assessment.get("risk_tier"))
        typer.secho(
            f"  - [{tier}] {alert.get('created_at')} {assessment.get('alert_message')}",
            fg=_TIER_COLORS.get(tier),
        )


def render_thresholds(payload: Dict[str, Any]) -> None:
    echo_heading("Thresholds")
    echo_key_values(
        [
            ("temperature", payload.get("temperature")),
            ("seismic", payload.get("seismic")),
            ("water_level_increase_pct", payload.get("water_level_increase_pct")),
        ]
    )
