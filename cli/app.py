from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_annotations, render_current, render_history
from logging_config import configure_logging
from services.explainer import extract_annotations, strip_annotations
from services.simulator import SimulatorState, generate_readings


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the GreenThread monitoring service.",
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
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    secret: Optional[str] = typer.Option(
        None,
        "--secret",
        help="Webhook shared secret (defaults to WEBHOOK_SECRET env).",
    ),
) -> None:
    """Entry point for the CLI."""
    configure_logging()
    config = load_config(base_url=base_url, webhook_secret=secret)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("current")
def current_command(ctx: typer.Context) -> None:
    """Show the latest reading and compliance status of every sensor."""
    state = _get_state(ctx)
    render_current(state.client.current())


@app.command("history")
def history_command(
    ctx: typer.Context,
    days: int = typer.Option(7, "--days", "-d", min=1, help="Lookback window in days."),
) -> None:
    """Show readings bucketed by timestamp for the last N days."""
    state = _get_state(ctx)
    render_history(state.client.history(days))


@app.command("send")
def send_command(
    ctx: typer.Context,
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="JSON file with one reading or a list."
    ),
) -> None:
    """Post readings from a JSON file to the ingestion webhook."""
    state = _get_state(ctx)
    result = state.client.send_file(file)
    typer.secho(f"Stored {result.get('count')} reading(s).", fg=typer.colors.GREEN)


@app.command("simulate")
def simulate_command(
    ctx: typer.Context,
    count: int = typer.Option(1, "--count", "-n", min=1, help="Number of batches to send."),
    interval: Optional[float] = typer.Option(
        None,
        "--interval",
        help="Seconds between batches (defaults to CLI_SIMULATE_INTERVAL env or 60).",
    ),
) -> None:
    """Generate drifting mock readings and send them to the webhook."""
    state = _get_state(ctx)
    delay = interval if interval is not None else state.config.simulate_interval
    simulator = SimulatorState()
    for batch_number in range(1, count + 1):
        batch = generate_readings(simulator)
        result = state.client.send_readings(batch)
        typer.echo(f"Batch {batch_number}/{count}: stored {result.get('count')} reading(s).")
        if batch_number < count:
            time.sleep(delay)


@app.command("explain")
def explain_command(
    ctx: typer.Context,
    question: str = typer.Argument(..., help="Question for the wastewater analyst."),
) -> None:
    """Ask the AI analyst about the current sensor state."""
    state = _get_state(ctx)
    answer = "".join(state.client.explain(question))
    typer.echo(strip_annotations(answer).strip())
    render_annotations(extract_annotations(answer))
