"""Unified CLI entry point for Robin.

Config precedence: settings.default.toml -> settings.<env>.toml -> settings.local.toml -> env vars (ROBIN_* with double underscores) -> CLI flags.
"""

from __future__ import annotations

import typer

from robin import __version__ as VERSION
from robin.cli.run import run_command
from robin.cli.sessions_cmd import sessions_app
from robin.cli.settings_cmd import settings_app

APP_HELP = (
    "robin: vision-model driven UI automation. "
    "Config precedence: settings.default.toml -> settings.local.toml -> env vars (ROBIN_* with __) -> CLI flags."
)

app = typer.Typer(add_completion=True, help=APP_HELP)

app.command("run")(run_command)
app.add_typer(sessions_app, name="sessions")
app.add_typer(settings_app, name="settings")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context, version: bool = typer.Option(False, "--version", help="Show version and exit.")) -> None:
    """Show help when no subcommand is provided."""
    if version:
        typer.echo(f"robin {VERSION}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


if __name__ == "__main__":
    app()
