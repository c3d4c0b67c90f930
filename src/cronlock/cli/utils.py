"""Utility functions for cronlock CLI."""

from __future__ import annotations

import logging

import typer

from cronlock.cli import console
from cronlock.config import CronlockSettings, get_settings
from cronlock.errors import ConfigError
from cronlock.storage import Database, SQLStore


def load_settings() -> CronlockSettings:
    """Load settings, exiting with a message if they are invalid.

    Raises:
        typer.Exit: If the configuration cannot be loaded.
    """
    try:
        return get_settings()
    except ConfigError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)


def open_store(settings: CronlockSettings) -> SQLStore:
    """Open and initialize the configured durable store.

    Args:
        settings: Settings naming the database.

    Returns:
        An initialized SQLStore.
    """
    store = SQLStore(Database(settings.database_url))
    store.initialize()
    return store


def setup_logging(level: str = "INFO", debug: bool = False) -> None:
    """Set up logging for the scheduler process.

    Args:
        level: Log level name from settings.
        debug: Force debug logging.
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else getattr(logging, level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
