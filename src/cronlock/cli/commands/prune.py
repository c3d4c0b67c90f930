"""Event retention command for cronlock CLI."""

from datetime import UTC, datetime, timedelta

import typer

from cronlock.cli import app, console
from cronlock.cli.utils import load_settings, open_store
from cronlock.errors import StoreError


@app.command()
def prune(
    days: int | None = typer.Option(
        None,
        "--days",
        "-d",
        min=1,
        help="Keep events from the last N days (defaults to event_retention_days)",
    ),
) -> None:
    """Delete fired-event records older than the retention window.

    Examples:
        cronlock prune --days 7
    """
    settings = load_settings()
    keep_days = days or settings.event_retention_days
    cutoff = datetime.now(UTC) - timedelta(days=keep_days)

    store = open_store(settings)
    try:
        with store.locked():
            count = store.delete_events(cutoff)
    except StoreError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓[/] Deleted {count} events older than {keep_days} days")
