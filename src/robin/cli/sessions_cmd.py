"""CLI commands for browsing and pruning recorded sessions."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from robin.exceptions import SessionTransferError

sessions_app = typer.Typer(help="Browse and prune recorded run sessions.")
console = Console()


def _fmt_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _recorder():
    from robin.sessions import build_session_recorder
    from robin.settings import get_settings

    if get_settings().sessions.backend == "memory":
        console.print("[yellow]Session backend is 'memory'; nothing persists between commands.[/yellow]")
    return build_session_recorder()


@sessions_app.command("list")
def list_sessions(
    limit: int = typer.Option(10, "--limit", "-n", min=1, help="Maximum sessions to show."),
) -> None:
    """List finished sessions, newest first."""
    history = _recorder().session_history(limit)
    if not history:
        console.print("No finished sessions.")
        return

    table = Table(title="Sessions")
    table.add_column("Session")
    table.add_column("Status")
    table.add_column("Created (UTC)")
    table.add_column("Actions", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Instruction")
    for session in history:
        stats = session.stats()
        table.add_row(
            session.id,
            session.status.value,
            _fmt_ms(session.created_at),
            str(stats["total_actions"]),
            f"{stats['success_rate']:.0%}",
            escape(session.instruction[:60]),
        )
    console.print(table)


@sessions_app.command("show")
def show_session(session_id: str = typer.Argument(..., help="Session id.")) -> None:
    """Print one session with all its results as JSON."""
    session = _recorder().get_session(session_id)
    if session is None:
        console.print(f"[red]Session not found:[/red] {escape(session_id)}")
        raise typer.Exit(code=1)
    console.print_json(json.dumps({**session.to_dict(), "stats": session.stats()}, default=str))


@sessions_app.command("prune")
def prune_sessions(
    older_than_hours: float = typer.Option(24.0, "--older-than-hours", min=0, help="Age threshold."),
) -> None:
    """Delete finished sessions older than the threshold."""
    removed = _recorder().prune_older_than(int(older_than_hours * 3_600_000))
    console.print(f"[green]✓[/green] Removed {removed} session(s).")


@sessions_app.command("export")
def export_session_cmd(
    session_id: str = typer.Argument(..., help="Session id."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to this file instead of stdout."),
) -> None:
    """Export one session as JSON."""
    from robin.sessions import export_session

    try:
        payload = export_session(_recorder(), session_id)
    except SessionTransferError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    if output is None:
        typer.echo(payload)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(payload, encoding="utf-8")
    console.print(f"[green]✓[/green] Exported {escape(session_id)} to {escape(str(output))}")


@sessions_app.command("import")
def import_session_cmd(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Exported session JSON."),
) -> None:
    """Import an exported session under a new id."""
    from robin.sessions import import_session

    try:
        new_id = import_session(_recorder(), path.read_text(encoding="utf-8"))
    except SessionTransferError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Imported as {new_id}")
