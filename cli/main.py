#!/usr/bin/env python3
"""
MDIB History CLI - Offline reconstruction of captured MDIB histories

Main entrypoint for the mdib-history command-line tool.
"""

import os

import typer
from rich.console import Console
from rich.table import Table

from cli.commands import archive, replay
from mdib_history.logging_config import setup_logging
from mdib_history.metrics import start_metrics_server

# Initialize Typer app
app = typer.Typer(
    name="mdib-history",
    help="Offline reconstruction of captured MDIB histories",
    add_completion=False,
)

console = Console()

app.command("sessions")(archive.sessions_command)
app.command("verify")(archive.verify_command)
app.command("replay")(replay.replay_command)
app.command("reports")(replay.reports_command)


@app.callback()
def setup():
    """Configure logging and metrics from the environment."""
    setup_logging()
    start_metrics_server(
        enabled=os.getenv("MDIB_HISTORY_METRICS_ENABLED", "false").lower() == "true",
        port=int(os.getenv("MDIB_HISTORY_METRICS_PORT", "8080")),
    )


@app.command()
def version():
    """Show version information."""
    from cli import __version__
    from mdib_history import __version__ as engine_version

    table = Table(show_header=False, box=None)
    table.add_row("[bold]MDIB History CLI[/bold]", f"v{__version__}")
    table.add_row("Engine", f"mdib_history v{engine_version}")

    console.print(table)


def main():
    """Main entrypoint."""
    app()


if __name__ == "__main__":
    main()
