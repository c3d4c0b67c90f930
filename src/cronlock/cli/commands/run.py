"""Run command for cronlock CLI.

Runs the scheduling loop in the foreground until SIGINT or SIGTERM.
"""

from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from typing import TYPE_CHECKING

import typer

from cronlock.cli import app, console
from cronlock.cli.utils import load_settings, open_store, setup_logging
from cronlock.errors import StoreError, StoreInitializationError
from cronlock.jobs import JobFileError, load_jobs
from cronlock.models import JobsFile
from cronlock.runner import CommandRunner
from cronlock.scheduler import Scheduler

if TYPE_CHECKING:
    from types import FrameType

logger = logging.getLogger(__name__)


def install_signal_handlers(stop: threading.Event) -> None:
    """Set the stop event on SIGINT and SIGTERM.

    Args:
        stop: Event the scheduler loop waits on.
    """

    def handle_signal(signum: int, frame: FrameType | None) -> None:
        logger.info(f"Received signal {signum}, shutting down...")
        stop.set()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)


@app.command("run")
def run_scheduler(
    jobs_file: Path | None = typer.Option(
        None,
        "--jobs",
        "-j",
        help="YAML job file (defaults to jobs_file from config)",
    ),
    register: bool = typer.Option(
        True,
        "--register/--no-register",
        help="Register the job file's entries before starting",
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    """Run the scheduler in the foreground.

    Any number of processes may run against the same database; each
    occurrence fires on exactly one of them.

    Examples:
        cronlock run --jobs jobs.yaml
    """
    settings = load_settings()
    setup_logging(settings.log_level, debug)

    path = jobs_file or settings.jobs_file
    jobs = JobsFile()
    if path is not None:
        try:
            jobs = load_jobs(path)
        except (FileNotFoundError, JobFileError) as e:
            console.print(f"[red]Error:[/] {e}")
            raise typer.Exit(1)
    else:
        console.print("[yellow]![/] No job file configured; fired entries will have no command")

    try:
        store = open_store(settings)
        if register and jobs.jobs:
            with store.locked():
                for job in jobs.jobs:
                    store.add_entry(job.to_entry())
    except (StoreError, StoreInitializationError) as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    scheduler = Scheduler(CommandRunner(jobs, timeout=settings.command_timeout), store)
    stop = threading.Event()
    install_signal_handlers(stop)

    console.print(f"[green]✓[/] Scheduler running with {len(jobs.jobs)} jobs (Ctrl+C to stop)")
    try:
        scheduler.run(stop)
    except StoreInitializationError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    console.print("Scheduler stopped")
