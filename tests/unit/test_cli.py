"""CLI tests via typer.testing.CliRunner.

The ``run`` command is exercised end to end with an in-process browser
driver and LLM backend registered the same way a plugin module would.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import pytest
from typer.testing import CliRunner

from robin.cli.app import app
from robin.llm.base import LLMProvider, LLMResult, VisionRequest
from robin.llm.factory import register_llm_backend, unregister_llm_backend
from robin.models import ModelProvider
from robin.operators.drivers import register_driver, unregister_driver


class PageDriver:
    def __init__(self) -> None:
        self.url = ""

    async def launch(self, settings: dict[str, Any]) -> None:
        pass

    async def goto(self, url: str, timeout_ms: int) -> str:
        self.url = url
        return url

    async def click(self, *, selector=None, x=None, y=None) -> None:
        pass

    async def type_text(self, text: str, *, selector=None) -> None:
        pass

    async def press_key(self, key: str) -> None:
        pass

    async def scroll(self, direction: str, amount: int) -> None:
        pass

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        pass

    async def screenshot(self) -> bytes:
        return b"png"

    def viewport(self) -> tuple[int, int]:
        return (1024, 768)

    async def current_url(self) -> str:
        return self.url

    async def title(self) -> str:
        return "Example Domain"

    async def close(self) -> None:
        pass


class DoneBackend(LLMProvider):
    """Replies 'task complete' to every vision request."""

    reply = json.dumps({"reasoning": "The page is loaded", "confidence": 0.95, "isComplete": True, "actions": []})

    def __init__(self, config) -> None:
        self.config = config

    def complete(self, request: VisionRequest) -> LLMResult:
        return LLMResult(content=self.reply)


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """The run command reconfigures root logging against the runner's streams."""
    handlers, level = logging.root.handlers[:], logging.root.level
    yield
    logging.root.handlers[:] = handlers
    logging.root.setLevel(level)


@pytest.fixture()
def fake_stack(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Register a driver and backend, and point sessions at a temp SQLite file."""
    register_driver("cli-test-page", PageDriver)
    register_llm_backend(ModelProvider.OPENAI, DoneBackend)
    monkeypatch.setenv("ROBIN_OPERATOR__BROWSER_DRIVER", "cli-test-page")
    monkeypatch.setenv("ROBIN_AGENT__ITERATION_DELAY_MS", "0")
    monkeypatch.setenv("ROBIN_AGENT__ACTION_DELAY_MS", "0")
    monkeypatch.setenv("ROBIN_SESSIONS__BACKEND", "sqlite")
    monkeypatch.setenv("ROBIN_SESSIONS__SQLITE_PATH", str(tmp_path / "sessions.db"))
    yield
    unregister_driver("cli-test-page")
    unregister_llm_backend(ModelProvider.OPENAI)


class TestApp:
    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.startswith("robin ")

    def test_no_args_shows_help(self, runner: CliRunner) -> None:
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "run" in result.output
        assert "sessions" in result.output


class TestSettingsCommands:
    def test_show_redacts_api_key(self, runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ROBIN_LLM__API_KEY", "sk-hidden")
        result = runner.invoke(app, ["settings", "show"])
        assert result.exit_code == 0
        assert "sk-hidden" not in result.output
        assert "gpt-4o" in result.output

    def test_validate_ok(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["settings", "validate"])
        assert result.exit_code == 0
        assert "Settings are valid" in result.output

    def test_validate_failure(self, runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ROBIN_AGENT__MAX_ITERATIONS", "0")
        result = runner.invoke(app, ["settings", "validate"])
        assert result.exit_code == 1
        assert "validation failed" in result.output


class TestRunCommand:
    def test_run_completes_and_records_session(self, runner: CliRunner, fake_stack) -> None:
        result = runner.invoke(app, ["run", "go to https://example.com and check the title"])
        assert result.exit_code == 0, result.output
        assert "COMPLETED" in result.output

        listing = runner.invoke(app, ["sessions", "list"])
        assert listing.exit_code == 0
        assert "No finished sessions" not in listing.output

    def test_run_without_driver_fails_initialization(
        self, runner: CliRunner, fake_stack, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("ROBIN_OPERATOR__BROWSER_DRIVER", "")
        result = runner.invoke(app, ["run", "anything"])
        assert result.exit_code == 2
        assert "Initialization failed" in result.output

    def test_run_with_unknown_plugin(self, runner: CliRunner, fake_stack) -> None:
        result = runner.invoke(app, ["run", "anything", "--plugin", "no_such_plugin_module_xyz"])
        assert result.exit_code == 2

    def test_run_max_iterations_override(self, runner: CliRunner, fake_stack, monkeypatch) -> None:
        monkeypatch.setattr(
            DoneBackend,
            "reply",
            json.dumps({"reasoning": "keep going", "confidence": 0.9, "actions": [{"type": "SCROLL"}]}),
        )
        result = runner.invoke(app, ["run", "scroll forever", "--max-iterations", "2"])
        assert result.exit_code == 1
        assert "EXHAUSTED" in result.output


class TestSessionsCommands:
    def test_show_missing_session(self, runner: CliRunner, fake_stack) -> None:
        result = runner.invoke(app, ["sessions", "show", "session-nope"])
        assert result.exit_code == 1
        assert "Session not found" in result.output

    def test_prune(self, runner: CliRunner, fake_stack) -> None:
        runner.invoke(app, ["run", "go to https://example.com"])
        result = runner.invoke(app, ["sessions", "prune", "--older-than-hours", "0"])
        assert result.exit_code == 0
        assert "Removed" in result.output

    def test_empty_history(self, runner: CliRunner, fake_stack) -> None:
        result = runner.invoke(app, ["sessions", "list"])
        assert result.exit_code == 0
        assert "No finished sessions" in result.output

    def test_export_and_import_round_trip(self, runner: CliRunner, fake_stack, tmp_path) -> None:
        runner.invoke(app, ["run", "go to https://example.com"])
        from robin.sessions import build_session_recorder

        (session,) = build_session_recorder().session_history(1)
        target = tmp_path / "exports" / "run.json"

        exported = runner.invoke(app, ["sessions", "export", session.id, "--output", str(target)])
        assert exported.exit_code == 0, exported.output
        assert json.loads(target.read_text())["instruction"] == "go to https://example.com"

        imported = runner.invoke(app, ["sessions", "import", str(target)])
        assert imported.exit_code == 0, imported.output
        assert "Imported as imported-" in imported.output
        assert len(build_session_recorder().session_history(10)) == 2

    def test_export_missing_session(self, runner: CliRunner, fake_stack) -> None:
        result = runner.invoke(app, ["sessions", "export", "session-nope"])
        assert result.exit_code == 1
        assert "Session not found" in result.output

    def test_import_invalid_file(self, runner: CliRunner, fake_stack, tmp_path) -> None:
        bad = tmp_path / "bad.json"
        bad.write_text("{broken")
        result = runner.invoke(app, ["sessions", "import", str(bad)])
        assert result.exit_code == 1
        assert "Failed to import session" in result.output
