from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        if value is None:
            continue
        typer.echo(f"{key}: {value}")


def render_ingest(payload: Dict[str, Any]) -> None:
    echo_heading("Ingestion Result")
    recipients = payload.get("recipients")
    echo_key_values(
        [
            ("stored", payload.get("stored")),
            ("sent", payload.get("sent")),
            ("severity", payload.get("severity")),
            ("reason", payload.get("reason")),
            ("created_at", payload.get("created_at")),
            ("recipients", ", ".join(recipients) if recipients else None),
            ("delivery_id", payload.get("delivery_id")),
            ("cooldown_remaining_ms", payload.get("cooldown_remaining_ms")),
        ]
    )
    error = payload.get("error")
    if error:
        code = payload.get("error_code")
        suffix = f" ({code})" if code else ""
        typer.secho(f"error: {error}{suffix}", fg=typer.colors.RED)


def render_history(alerts: List[Dict[str, Any]]) -> None:
    echo_heading("Alert History")
    if not alerts:
        typer.echo("No alerts recorded.")
        return
    for alert in alerts:
        typer.echo(
            f"  - [{alert.get('severity')}] {alert.get('created_at')} "
            f"reading={alert.get('reading_id')}: {alert.get('message')}"
        )
