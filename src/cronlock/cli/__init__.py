"""cronlock CLI interface."""

import typer
from rich.console import Console

# CLI App
app = typer.Typer(
    name="cronlock",
    help="Cron scheduling that fires each occurrence exactly once across processes.",
    no_args_is_help=True,
)

# Console for rich output
console = Console()

# Import commands to register them
from cronlock.cli.commands import entries, prune, run  # noqa: E402, F401


@app.command()
def version() -> None:
    """Show cronlock version."""
    from cronlock import __version__

    console.print(f"cronlock v{__version__}")


if __name__ == "__main__":
    app()
