from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_history, render_ingest


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for operating the sensor alert service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Alert API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
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


@app.command("ingest")
def ingest_command(
    ctx: typer.Context,
    reading_id: str = typer.Argument(..., help="Stable identifier of the reading."),
    temperature: float = typer.Option(..., "--temperature", "-t", help="Degrees Celsius."),
    humidity: float = typer.Option(..., "--humidity", "-u", help="Relative humidity in percent."),
    pressure: float = typer.Option(..., "--pressure", "-p", help="Pressure in hPa."),
    observed_at: Optional[str] = typer.Option(
        None, "--observed-at", help="ISO-8601 time the reading was taken."
    ),
    notify: bool = typer.Option(
        False,
        "--notify/--no-notify",
        help="Request an e-mail notification for a breach.",
    ),
) -> None:
    """Submit a single reading."""
    state = _get_state(ctx)
    payload = state.client.ingest(
        reading_id=reading_id,
        temperature=temperature,
        humidity=humidity,
        pressure=pressure,
        notify=notify,
        observed_at=observed_at,
    )
    render_ingest(payload)
    if payload.get("error"):
        raise typer.Exit(code=1)


@app.command("history")
def history_command(
    ctx: typer.Context,
    limit: int = typer.Option(10, "--limit", "-n", min=1, max=100, help="Number of alerts to show."),
) -> None:
    """Show the most recent alerts."""
    state = _get_state(ctx)
    render_history(state.client.history(limit))


@app.command("config-set")
def config_set_command(
    ctx: typer.Context,
    sender: str = typer.Option(..., "--sender", "-s", help="Sender address."),
    recipients: List[str] = typer.Option(
        ..., "--recipient", "-r", help="Recipient address; repeat for several."
    ),
) -> None:
    """Replace the notification sender and recipients."""
    state = _get_state(ctx)
    state.client.set_config(sender, recipients)
    typer.secho(
        f"Notification config saved ({len(recipients)} recipient(s)).",
        fg=typer.colors.GREEN,
    )


@app.command("config-show")
def config_show_command(ctx: typer.Context) -> None:
    """Report whether a notification config is present."""
    state = _get_state(ctx)
    payload = state.client.get_config()
    typer.echo(f"has_config: {payload.get('has_config')}")


@app.command("reset")
def reset_command(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Clear alert history and the notification cooldown."""
    state = _get_state(ctx)
    if not yes:
        typer.confirm("Delete all stored alerts and reset the cooldown?", abort=True)
    payload = state.client.reset()
    typer.secho(
        f"history_cleared={payload.get('history_cleared')} "
        f"cooldown_reset={payload.get('cooldown_reset')}",
        fg=typer.colors.GREEN,
    )
