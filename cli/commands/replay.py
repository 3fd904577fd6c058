"""
Replay commands: replay, reports
"""

import json
from typing import Optional

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from mdib_history.archive import open_archive
from mdib_history.core import HistorianError, TestRunObserver
from mdib_history.core.canonical import payload_digest
from mdib_history.replay import Historian
from cli.commands.archive import config_for

console = Console()


def replay_command(
    session: str = typer.Option(..., "--session", "-s", help="Sequence id to replay"),
    archive_path: Optional[str] = typer.Option(
        None, "--archive", "-a", help="Path to JSONL archive (default: MDIB_HISTORY_ARCHIVE)"
    ),
    dedup: Optional[bool] = typer.Option(
        None, "--dedup/--no-dedup", help="Collapse retransmitted reports (default: MDIB_HISTORY_DEDUPLICATE)"
    ),
    until: Optional[int] = typer.Option(
        None, "--until", "-u", help="Only reports that arrived before this time (ns since epoch, implies --dedup)"
    ),
    show_state: bool = typer.Option(False, "--show-state", help="Show final MDIB"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Replay the MDIB history of a sequence id and report invalidations.

    Exit codes: 0 valid run, 1 test run invalidated, 2 replay failed.

    Examples:
        mdib-history replay --session urn:uuid:1234
        mdib-history replay --session urn:uuid:1234 --dedup
        mdib-history replay --session urn:uuid:1234 --until 1700000000000000000 --json
    """
    observer = TestRunObserver()
    steps = []
    try:
        config = config_for(archive_path)
        historian = Historian(open_archive(config), observer, config=config)

        if until is not None:
            history = historian.replay_history_until(session, until)
        else:
            history = historian.replay_history(session, deduplicate=dedup)

        final = None
        with history:
            for cursor in history:
                steps.append(
                    {
                        "mdib_version": cursor.mdib_version,
                        "descriptors": len(cursor.descriptors),
                        "states": len(cursor.states),
                    }
                )
                final = cursor

    except (HistorianError, OSError) as e:
        if json_output:
            print(json.dumps({"error": str(e), "steps": len(steps), "invalidations": observer.reasons}))
        else:
            console.print(f"[red]Error after {len(steps)} steps:[/red] {e}")
        raise typer.Exit(2)

    if json_output:
        output = {
            "session": session,
            "steps": steps,
            "invalid": observer.is_invalid,
            "invalidations": observer.reasons,
        }
        if show_state and final is not None:
            output["mdib"] = final.to_dict()
        print(json.dumps(output, indent=2, default=str))
    else:
        table = Table(title=f"History of {session}")
        table.add_column("Step", style="cyan", justify="right")
        table.add_column("MDIB Version", style="green", justify="right")
        table.add_column("Descriptors", justify="right")
        table.add_column("States", justify="right")
        for idx, step in enumerate(steps):
            table.add_row(str(idx), str(step["mdib_version"]), str(step["descriptors"]), str(step["states"]))
        console.print(table)

        if observer.is_invalid:
            console.print("[red]✗ Test run invalidated:[/red]")
            for reason in observer.reasons:
                console.print(f"  - {reason}")
        else:
            console.print(f"[green]✓ Replayed {len(steps) - 1} reports without invalidation[/green]")

        if show_state and final is not None:
            console.print("\n[bold]Final MDIB:[/bold]")
            console.print(Syntax(json.dumps(final.to_dict(), indent=2, default=str), "json", theme="monokai"))

    if observer.is_invalid:
        raise typer.Exit(1)


def reports_command(
    session: str = typer.Option(..., "--session", "-s", help="Sequence id"),
    archive_path: Optional[str] = typer.Option(
        None, "--archive", "-a", help="Path to JSONL archive (default: MDIB_HISTORY_ARCHIVE)"
    ),
    min_version: Optional[int] = typer.Option(None, "--min-version", help="Only reports with at least this mdib version"),
    max_version: Optional[int] = typer.Option(None, "--before-version", help="Only reports below this mdib version"),
    unique: bool = typer.Option(False, "--unique", help="Collapse retransmitted reports"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    List archived reports of a sequence id in arrival order.

    Version bounds and --unique combine. Exit codes: 0 listed, 1 test run
    invalidated by conflicting retransmissions, 2 archive unreadable.

    Examples:
        mdib-history reports --session urn:uuid:1234
        mdib-history reports --session urn:uuid:1234 --min-version 10 --unique
        mdib-history reports --session urn:uuid:1234 --min-version 3 --before-version 10 --unique --json
    """
    observer = TestRunObserver()
    try:
        config = config_for(archive_path)
        historian = Historian(open_archive(config), observer, config=config)

        if unique:
            reports = historian.all_unique_reports(session, min_version)
        elif max_version is not None:
            reports = historian.all_reports_before(session, max_version)
        else:
            reports = historian.all_reports(session, min_version)
        # Bounds combine: [min_version, max_version)
        reports = [
            r
            for r in reports
            if (min_version is None or r.version >= min_version)
            and (max_version is None or r.version < max_version)
        ]

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
                    "reports": [dict(r.to_dict(), origin_id=r.origin_id) for r in reports],
                    "count": len(reports),
                    "invalidations": observer.reasons,
                },
                indent=2,
                default=str,
            )
        )
    elif not reports:
        console.print(f"[yellow]No reports for {session}[/yellow]")
    else:
        table = Table(title=f"Reports of {session}")
        table.add_column("MDIB Version", style="green", justify="right")
        table.add_column("Type", style="cyan")
        table.add_column("Arrival (ns)", justify="right")
        table.add_column("Payload (digest)", style="yellow")
        table.add_column("Origin (prefix)", style="dim")
        for report in reports:
            table.add_row(
                str(report.version),
                report.kind.value,
                str(report.timestamp),
                payload_digest(report.payload)[:12],
                report.origin_id[:16] + "...",
            )
        console.print(table)

    if observer.is_invalid:
        if not json_output:
            console.print("[red]✗ Test run invalidated:[/red]")
            for reason in observer.reasons:
                console.print(f"  - {reason}")
        raise typer.Exit(1)
