"""
Archive commands: sessions, verify
"""

import dataclasses
import json
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from mdib_history.archive import FileMessageArchive, open_archive
from mdib_history.config import HistorianConfig
from mdib_history.core import HistorianError, TestRunObserver
from mdib_history.replay import Historian

console = Console()


def config_for(archive_path: Optional[str]) -> HistorianConfig:
    config = HistorianConfig.from_env()
    if archive_path:
        # An explicit file wins over a configured bucket
        return dataclasses.replace(config, archive_path=archive_path, s3_bucket=None)
    return config


def sessions_command(
    archive_path: Optional[str] = typer.Option(
        None, "--archive", "-a", help="Path to JSONL archive (default: MDIB_HISTORY_ARCHIVE)"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    List sequence ids known to the archive.

    Examples:
        mdib-history sessions
        mdib-history sessions --archive capture.jsonl --json
    """
    try:
        config = config_for(archive_path)
        historian = Historian(open_archive(config), TestRunObserver(), config=config)
        sessions = list(historian.list_known_sessions())

        if json_output:
            print(json.dumps({"sessions": sessions, "count": len(sessions)}, indent=2))
        elif not sessions:
            console.print("[yellow]Archive holds no sequence ids[/yellow]")
        else:
            table = Table(title="Sequence IDs")
            table.add_column("#", style="cyan", justify="right")
            table.add_column("Sequence ID", style="green")
            for idx, session in enumerate(sessions):
                table.add_row(str(idx), session)
            console.print(table)

    except (HistorianError, OSError) as e:
        if json_output:
            print(json.dumps({"error": str(e)}))
        else:
            console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)


def verify_command(
    archive_path: Optional[str] = typer.Option(
        None, "--archive", "-a", help="Path to JSONL archive (default: MDIB_HISTORY_ARCHIVE)"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Verify the hash chain of the archive.

    Exit codes: 0 valid, 1 chain broken, 2 archive unreadable.

    Examples:
        mdib-history verify
        mdib-history verify --archive capture.jsonl
    """
    try:
        archive = open_archive(config_for(archive_path))
        result = archive.verify()
    except (HistorianError, OSError) as e:
        if json_output:
            print(json.dumps({"error": str(e)}))
        else:
            console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)

    if json_output:
        print(
            json.dumps(
                {
                    "valid": result.valid,
                    "checked": result.checked,
                    "error": result.error,
                    "mismatch_seq": result.mismatch_seq,
                },
                indent=2,
            )
        )
    elif result.valid:
        where = archive.path if isinstance(archive, FileMessageArchive) else "S3"
        console.print(f"[green]✓ Hash chain valid[/green] ({result.checked} records, {where})")
    else:
        console.print(f"[red]✗ Hash chain broken at record {result.mismatch_seq}:[/red] {result.error}")

    if not result.valid:
        raise typer.Exit(1)
