"""CLI commands for cronlock."""

# Import command modules to register them with the app
# These imports have side effects (register commands via @app.command())
from cronlock.cli.commands import entries, prune, run

__all__ = ["entries", "prune", "run"]
