"""``robin run``: drive one instruction through the execution engine."""

from __future__ import annotations

import asyncio
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from robin.exceptions import EngineError, InitializationError, RunFailure
from robin.models import ActionResult, AgentConfig, ModelProvider, OperatorType, RunReport

console = Console()


def _apply_overrides(
    config: AgentConfig,
    *,
    operator: Optional[OperatorType],
    provider: Optional[ModelProvider],
    model: Optional[str],
    max_iterations: Optional[int],
) -> AgentConfig:
    updates = {}
    if operator is not None:
        updates["operator"] = config.operator.model_copy(update={"type": operator})
    if provider is not None or model:
        model_update = {}
        if provider is not None:
            model_update["provider"] = provider
        if model:
            model_update["name"] = model
        updates["model"] = config.model.model_copy(update=model_update)
    if max_iterations is not None:
        updates["settings"] = config.settings.model_copy(update={"max_iterations": max_iterations})
    return config.model_copy(update=updates) if updates else config


def _results_table(results: list[ActionResult]) -> Table:
    table = Table(title="Results")
    table.add_column("#", justify="right")
    table.add_column("Kind")
    table.add_column("Iter", justify="right")
    table.add_column("OK")
    table.add_column("Detail")
    for idx, result in enumerate(results, 1):
        detail = result.error or ""
        if not detail:
            if "reasoning" in result.data:
                detail = str(result.data["reasoning"])
            elif "url" in result.data:
                detail = str(result.data["url"])
        table.add_row(
            str(idx),
            result.kind or "-",
            str(result.iteration if result.iteration is not None else "-"),
            "[green]✓[/green]" if result.success else "[red]✗[/red]",
            escape(detail[:80]),
        )
    return table


def _summary_panel(report: RunReport) -> Panel:
    color = "green" if report.succeeded else "yellow"
    body = (
        f"[bold]State:[/bold] {report.state.value}\n"
        f"[bold]Reason:[/bold] {report.stop_reason.value}\n"
        f"[bold]Iterations:[/bold] {report.iterations}\n"
        f"[bold]Actions:[/bold] {len(report.real_results)}\n"
        f"[bold]Session:[/bold] {report.session_id}"
    )
    if report.error:
        body += f"\n[bold]Error:[/bold] {escape(report.error)}"
    return Panel(body, title="Run Summary", border_style=color)


async def _run(instruction: str, config: AgentConfig, events_jsonl: bool) -> RunReport | None:
    from robin.engine import ExecutionEngine
    from robin.monitoring import EventBus, JsonlSink, LoggingSink
    from robin.sessions import build_session_recorder

    bus = EventBus()
    bus.add_sink(LoggingSink())
    if events_jsonl:
        bus.add_sink(JsonlSink(sys.stderr))

    engine = ExecutionEngine(recorder=build_session_recorder(), event_bus=bus)
    async with engine:
        await engine.initialize(config)
        await engine.execute(instruction)
    return engine.last_run


def run_command(
    instruction: str = typer.Argument(..., help="Natural-language instruction to carry out."),
    operator: Optional[OperatorType] = typer.Option(None, "--operator", help="Operator type override."),
    provider: Optional[ModelProvider] = typer.Option(None, "--provider", help="Model provider override."),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name override."),
    max_iterations: Optional[int] = typer.Option(None, "--max-iterations", min=1, help="Iteration cap override."),
    plugin: Optional[list[str]] = typer.Option(
        None, "--plugin", "-p", help="Module to import before the run (registers drivers/backends). Repeatable."
    ),
    events_jsonl: bool = typer.Option(False, "--events-jsonl", help="Stream engine events as JSON lines to stderr."),
) -> None:
    """Run a single instruction until it completes, stalls, or exhausts its iterations."""
    from robin.logging_config import configure_logging
    from robin.plugins import import_plugins
    from robin.settings import get_settings

    settings = get_settings()
    configure_logging(settings.logging.level, settings.logging.json_format)

    try:
        import_plugins(plugin or [])
        config = _apply_overrides(
            settings.to_agent_config(),
            operator=operator,
            provider=provider,
            model=model,
            max_iterations=max_iterations,
        )
        report = asyncio.run(_run(instruction, config, events_jsonl))
    except InitializationError as e:
        console.print(f"[red]✗[/red] Initialization failed: {escape(str(e))}")
        raise typer.Exit(code=2)
    except RunFailure as e:
        console.print(_results_table(e.results))
        console.print(f"[red]✗[/red] {escape(str(e))} (session {e.session_id})")
        raise typer.Exit(code=1)
    except EngineError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    if report is None:
        return
    console.print(_results_table(report.results))
    console.print(_summary_panel(report))
    if not report.succeeded:
        raise typer.Exit(code=1)
