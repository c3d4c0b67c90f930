"""Entry management commands for cronlock CLI."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table

from cronlock.cli import app, console
from cronlock.cli.utils import load_settings, open_store
from cronlock.errors import CronParseError, StoreError
from cronlock.jobs import JobFileError, load_jobs
from cronlock.parser import Entry, parse


def _parse_or_exit(expression: str, timezone: str, name: str, meta: str | None = None) -> Entry:
    try:
        return parse(expression, timezone, name, meta=meta)
    except CronParseError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)


@app.command()
def validate(
    expression: str = typer.Argument(..., help="Cron expression (quote it)"),
    timezone: str = typer.Option("local", "--tz", help="Timezone for the schedule"),
) -> None:
    """Validate a cron expression and show its canonical form.

    Examples:
        cronlock validate "*/15 9-17 * * 1-5" --tz Europe/Berlin
    """
    entry = _parse_or_exit(expression, timezone, "")
    console.print(f"[green]✓[/] Valid: [cyan]{entry.format()}[/] ({entry.location})")


@app.command()
def add(
    name: str = typer.Argument(..., help="Entry name"),
    expression: str = typer.Argument(..., help="Cron expression (quote it)"),
    timezone: str = typer.Option("local", "--tz", help="Timezone for the schedule"),
    meta: str | None = typer.Option(None, "--meta", help="Free-text metadata"),
) -> None:
    """Register a cron entry in the shared store.

    Examples:
        cronlock add nightly-report "0 2 * * *" --tz UTC
    """
    entry = _parse_or_exit(expression, timezone, name, meta)
    store = open_store(load_settings())

    try:
        with store.locked():
            store.add_entry(entry)
    except StoreError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓[/] Added [cyan]{name}[/]: {entry.expression} ({entry.location})")


@app.command()
def remove(
    name: str = typer.Argument(..., help="Entry name"),
    expression: str = typer.Argument(..., help="Cron expression the entry was added with"),
) -> None:
    """Delete a cron entry by name and expression."""
    entry = _parse_or_exit(expression, "UTC", name)
    store = open_store(load_settings())

    try:
        with store.locked():
            store.delete_entry(entry)
    except StoreError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓[/] Removed [cyan]{name}[/]: {entry.expression}")


@app.command("set-active")
def set_active(
    name: str = typer.Argument(..., help="Entry name"),
    active: bool = typer.Option(True, "--active/--inactive", help="Schedule or pause the entry"),
) -> None:
    """Pause or resume every entry with a name without deleting it."""
    store = open_store(load_settings())

    try:
        with store.locked():
            count = store.set_active(name, active)
    except StoreError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    if count == 0:
        console.print(f"[yellow]![/] No entry named [cyan]{name}[/]")
        raise typer.Exit(1)

    state = "active" if active else "inactive"
    console.print(f"[green]✓[/] Marked {count} entr{'y' if count == 1 else 'ies'} {state}")


@app.command("list")
def list_entries(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    all_entries: bool = typer.Option(False, "--all", help="Include paused entries"),
) -> None:
    """List active cron entries.

    Examples:
        cronlock list
        cronlock list --all --json
    """
    store = open_store(load_settings())

    try:
        if all_entries:
            rows = store.get_all_entries()
        else:
            rows = [(entry, True) for entry in store.get_entries()]
    except StoreError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    if json_output:
        data = []
        for entry, active in rows:
            item: dict[str, object] = {
                "name": entry.name,
                "expression": entry.expression,
                "schedule": entry.format(),
                "location": entry.location,
                "meta": entry.meta,
            }
            if all_entries:
                item["active"] = active
            data.append(item)
        console.print_json(data=data)
        return

    if not rows:
        console.print("[yellow]No entries registered.[/]")
        return

    table = Table(title="Cron Entries")
    table.add_column("Name", style="cyan")
    table.add_column("Expression")
    table.add_column("Timezone")
    if all_entries:
        table.add_column("Active")
    table.add_column("Meta", style="dim")

    for entry, active in rows:
        cells = [entry.name, entry.expression, entry.location]
        if all_entries:
            cells.append("[green]yes[/]" if active else "[yellow]paused[/]")
        cells.append(entry.meta or "")
        table.add_row(*cells)

    console.print(table)


@app.command()
def sync(
    jobs_file: Path = typer.Argument(..., help="YAML file of job definitions"),
) -> None:
    """Register every job of a job file as a cron entry."""
    try:
        jobs = load_jobs(jobs_file)
    except (FileNotFoundError, JobFileError) as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    store = open_store(load_settings())
    try:
        with store.locked():
            for job in jobs.jobs:
                store.add_entry(job.to_entry())
    except StoreError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓[/] Registered {len(jobs.jobs)} jobs from {jobs_file}")
