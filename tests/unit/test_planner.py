"""Unit tests for the vision planner, reply parsing and the provider-keyed factories."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from robin.exceptions import InitializationError, PlannerError
from robin.llm.base import LLMProvider, LLMResult, VisionRequest
from robin.llm.factory import create_llm_provider, register_llm_backend, unregister_llm_backend
from robin.llm.retry import RetryingLLMProvider
from robin.models import ActionResult, ActionType, ModelConfig, ModelProvider, Screenshot
from robin.planner import VisionPlanner, create_planner
from robin.planner.factory import PROVIDER_CAPABILITIES, capabilities_for
from robin.planner.vision import (
    FALLBACK_CONFIDENCE,
    build_prompt,
    extract_json,
    normalize_action,
    parse_analysis,
    summarize_prior_results,
)


def _reply(**overrides) -> str:
    body = {"reasoning": "I see a login form", "confidence": 0.8, "isComplete": False, "actions": []}
    body.update(overrides)
    return json.dumps(body)


@pytest.fixture()
def screenshot() -> Screenshot:
    return Screenshot(width=800, height=600, image_data=b"png-bytes")


@pytest.fixture()
def mock_llm() -> MagicMock:
    mock = MagicMock(spec=LLMProvider)
    mock.supports_vision = True
    mock.complete.return_value = LLMResult(content=_reply(), model="mock")
    return mock


class _StubBackend(LLMProvider):
    """Text-only backend."""

    supports_vision = False

    def __init__(self, config: ModelConfig) -> None:
        self.config = config

    def complete(self, request: VisionRequest) -> LLMResult:
        return LLMResult(content="{}")


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


class TestPrompt:
    def test_summarize_only_real_results(self) -> None:
        results = [
            ActionResult(id="1", success=True, data={"action": "screenshot"}),
            ActionResult(id="2", success=True, data={"action": "click"}),
            ActionResult(id="3", success=False, data={"action": "type"}),
            ActionResult(id="4", success=True),
        ]
        assert summarize_prior_results(results) == "- click: SUCCESS\n- type: FAILED"

    def test_summary_when_empty(self) -> None:
        assert summarize_prior_results([]) == "None"

    def test_build_prompt(self) -> None:
        prompt = build_prompt("log in", 2, [], max_actions=4)
        assert "TASK: log in" in prompt
        assert "ITERATION: 2" in prompt
        assert "Maximum 4 actions per iteration" in prompt
        assert '"isComplete": false' in prompt


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestExtractJson:
    def test_plain(self) -> None:
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_markdown_fence(self) -> None:
        assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_surrounding_prose(self) -> None:
        assert extract_json('Sure! Here it is: {"a": {"b": 2}} Hope that helps.') == {"a": {"b": 2}}

    def test_no_json(self) -> None:
        with pytest.raises(ValueError):
            extract_json("I cannot help with that")


class TestNormalizeAction:
    def test_coordinates_fold_into_parameters(self) -> None:
        action = normalize_action({"type": "CLICK", "coordinates": {"x": 5, "y": 6}, "reasoning": "button"})
        assert action.type is ActionType.CLICK
        assert action.parameters == {"x": 5, "y": 6}
        assert action.reasoning == "button"

    def test_top_level_parameter_keys(self) -> None:
        action = normalize_action({"type": "type", "text": "hello", "selector": "#q"})
        assert action.parameters == {"text": "hello", "selector": "#q"}

    def test_explicit_parameters_win(self) -> None:
        action = normalize_action({"type": "navigate", "parameters": {"url": "https://a.com"}, "url": "https://b.com"})
        assert action.parameters["url"] == "https://a.com"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("double-click", ActionType.DOUBLE_CLICK), ("GOTO", ActionType.NAVIGATE), ("hotkey", ActionType.KEY)],
    )
    def test_type_aliases(self, raw: str, expected: ActionType) -> None:
        assert normalize_action({"type": raw}).type is expected

    def test_unknown_type(self) -> None:
        assert normalize_action({"type": "teleport"}) is None
        assert normalize_action({}) is None


class TestParseAnalysis:
    def test_well_formed_reply(self) -> None:
        raw = _reply(
            actions=[{"type": "CLICK", "coordinates": {"x": 1, "y": 2}}],
            nextSteps=["type the password"],
        )
        analysis = parse_analysis(raw)
        assert analysis.reasoning == "I see a login form"
        assert analysis.confidence == 0.8
        assert not analysis.is_complete
        assert [a.type for a in analysis.actions] == [ActionType.CLICK]
        assert analysis.next_steps == ("type the password",)

    def test_finished_action_marks_complete(self) -> None:
        analysis = parse_analysis(_reply(actions=[{"type": "FINISHED"}]))
        assert analysis.is_complete
        assert analysis.actions == ()

    def test_call_user_becomes_error(self) -> None:
        analysis = parse_analysis(_reply(actions=[{"type": "CALL_USER", "reasoning": "captcha"}]))
        assert analysis.actions == ()
        assert any("captcha" in e for e in analysis.errors)

    def test_actions_are_capped(self) -> None:
        raw = _reply(actions=[{"type": "WAIT", "duration": 10}] * 5)
        assert len(parse_analysis(raw, max_actions=3).actions) == 3

    def test_unknown_actions_are_skipped(self) -> None:
        raw = _reply(actions=[{"type": "teleport"}, "junk", {"type": "KEY", "key": "enter"}])
        assert [a.type for a in parse_analysis(raw).actions] == [ActionType.KEY]

    def test_confidence_clamped(self) -> None:
        assert parse_analysis(_reply(confidence=3)).confidence == 1.0

    @pytest.mark.parametrize(
        "raw",
        [
            "no json here",
            _reply(reasoning=""),
            _reply(confidence="high"),
            _reply(actions={"type": "CLICK"}),
            json.dumps({"confidence": 0.5}),
            '{"reasoning": "unsure", "confidence": NaN, "actions": [{"type": "CLICK", "x": 1, "y": 2}]}',
            _reply(confidence=float("inf")),
        ],
    )
    def test_unusable_reply_falls_back(self, raw: str) -> None:
        analysis = parse_analysis(raw)
        assert analysis.confidence == FALLBACK_CONFIDENCE
        assert analysis.actions == ()
        assert not analysis.is_complete
        assert analysis.errors == ("Failed to parse AI response",)


# ---------------------------------------------------------------------------
# VisionPlanner
# ---------------------------------------------------------------------------


class TestVisionPlanner:
    @pytest.mark.anyio
    async def test_sends_prompt_and_image(self, mock_llm: MagicMock, screenshot: Screenshot) -> None:
        planner = VisionPlanner(mock_llm, json_mode=True, max_tokens=512, temperature=0.2)

        analysis = await planner.analyze_screenshot(screenshot, "log in", 1, [])

        assert analysis.reasoning == "I see a login form"
        (request,), _ = mock_llm.complete.call_args
        assert "TASK: log in" in request.prompt
        assert (request.image_b64, request.media_type) == (screenshot.to_base64(), "image/png")
        assert (request.temperature, request.max_tokens, request.json_mode) == (0.2, 512, True)
        parts = request.to_messages()[0]["content"]
        assert parts[1] == {"type": "image", "media_type": "image/png", "data": screenshot.to_base64()}

    @pytest.mark.anyio
    async def test_empty_reply_falls_back(self, mock_llm: MagicMock, screenshot: Screenshot) -> None:
        mock_llm.complete.return_value = LLMResult(content="   ")
        analysis = await VisionPlanner(mock_llm).analyze_screenshot(screenshot, "x", 1, [])
        assert analysis.confidence == FALLBACK_CONFIDENCE

    @pytest.mark.anyio
    async def test_transport_error_is_planner_error(self, mock_llm: MagicMock, screenshot: Screenshot) -> None:
        mock_llm.complete.side_effect = RuntimeError("401 Unauthorized")
        with pytest.raises(PlannerError, match="401"):
            await VisionPlanner(mock_llm).analyze_screenshot(screenshot, "x", 1, [])

    @pytest.mark.anyio
    async def test_backend_without_vision(self, screenshot: Screenshot) -> None:
        planner = VisionPlanner(_StubBackend(ModelConfig(provider="local", name="text-only")))
        with pytest.raises(PlannerError, match="does not support vision"):
            await planner.analyze_screenshot(screenshot, "x", 1, [])

    @pytest.mark.anyio
    async def test_cleanup_closes_backend_once(self, mock_llm: MagicMock, screenshot: Screenshot) -> None:
        planner = VisionPlanner(mock_llm)
        await planner.cleanup()
        await planner.cleanup()
        mock_llm.close.assert_called_once()
        with pytest.raises(PlannerError):
            await planner.analyze_screenshot(screenshot, "x", 1, [])


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


class TestFactories:
    def test_every_provider_has_capabilities(self) -> None:
        assert set(PROVIDER_CAPABILITIES) == set(ModelProvider)

    def test_unknown_provider(self) -> None:
        with pytest.raises(InitializationError, match="Unsupported model provider"):
            capabilities_for("acme")

    def test_no_backend_registered(self) -> None:
        with pytest.raises(InitializationError, match="No LLM backend registered"):
            create_llm_provider(ModelConfig(provider="custom", name="x"))

    def test_registered_backend_is_wrapped_with_retry(self) -> None:
        register_llm_backend(ModelProvider.LOCAL, _StubBackend)
        try:
            provider = create_llm_provider(ModelConfig(provider="local", name="llava", parameters={"max_retries": 1}))
        finally:
            unregister_llm_backend(ModelProvider.LOCAL)
        assert isinstance(provider, RetryingLLMProvider)
        assert isinstance(provider.delegate, _StubBackend)
        assert provider.delegate.config.name == "llava"

    def test_backend_from_settings_import_path(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from robin.settings.config import Settings

        settings = Settings(llm={"backends": {"custom": f"{__name__}:_StubBackend"}})
        monkeypatch.setattr("robin.settings.get_settings", lambda: settings)
        provider = create_llm_provider(ModelConfig(provider="custom", name="mine"))
        assert isinstance(provider.delegate, _StubBackend)

    def test_backend_constructor_failure(self) -> None:
        def broken(config: ModelConfig) -> LLMProvider:
            raise RuntimeError("missing API key")

        register_llm_backend("anthropic", broken)
        try:
            with pytest.raises(InitializationError, match="missing API key"):
                create_llm_provider(ModelConfig(provider="anthropic", name="claude"))
        finally:
            unregister_llm_backend("anthropic")

    def test_backend_must_return_provider(self) -> None:
        register_llm_backend("google", lambda cfg: object())
        try:
            with pytest.raises(InitializationError, match="expected an LLMProvider"):
                create_llm_provider(ModelConfig(provider="google", name="gemini"))
        finally:
            unregister_llm_backend("google")

    def test_create_planner_uses_capabilities(self, mock_llm: MagicMock) -> None:
        planner = create_planner(
            ModelConfig(provider="openai", name="gpt-4o", parameters={"max_tokens": 777}), llm=mock_llm
        )
        assert isinstance(planner, VisionPlanner)
        assert planner.llm is mock_llm
        assert planner._json_mode is True
        assert planner._max_tokens == 777
