"""CLI commands for inspecting and validating Robin settings."""

from __future__ import annotations

import json

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from robin.exceptions import InitializationError

settings_app = typer.Typer(help="Inspect and validate Robin configuration.")
console = Console()


@settings_app.command("show")
def show_settings() -> None:
    """Display the currently resolved settings (API key redacted)."""
    from robin.settings import get_settings

    data = get_settings().model_dump(mode="json")
    if data.get("llm", {}).get("api_key"):
        data["llm"]["api_key"] = "***"
    console.print_json(json.dumps(data, indent=2, default=str))


@settings_app.command("validate")
def validate_settings() -> None:
    """Validate settings and report any issues."""
    from robin.settings import get_settings

    try:
        settings = get_settings()
        config = settings.to_agent_config()
    except (ValidationError, InitializationError, ValueError) as e:
        console.print(f"[red]✗[/red] Settings validation failed: {escape(str(e))}")
        raise typer.Exit(code=1)

    console.print("[green]✓[/green] Settings are valid.")
    console.print(f"  Environment: {settings.env}")
    console.print(f"  Model: {config.model.provider.value}/{config.model.name}")
    console.print(f"  Operator: {config.operator.type.value}")
    console.print(f"  Max iterations: {config.settings.max_iterations}")
    console.print(f"  Session backend: {settings.sessions.backend}")
