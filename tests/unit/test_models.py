"""Unit tests for the shared data models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from robin.models import (
    Action,
    ActionResult,
    ActionType,
    AgentConfig,
    AgentSettings,
    Analysis,
    EngineState,
    ModelConfig,
    ModelProvider,
    OperatorConfig,
    OperatorType,
    RunReport,
    Screenshot,
    Session,
    SessionStatus,
    StopReason,
    is_real_result,
)
from robin.models.states import STATE_TRANSITIONS, TERMINAL_STATES, can_transition


def _result(kind: str | None, success: bool = True, **data) -> ActionResult:
    if kind is not None:
        data["action"] = kind
    return ActionResult(id="r", success=success, data=data)


class TestAction:
    def test_defaults(self) -> None:
        action = Action(type=ActionType.CLICK, parameters={"x": 1, "y": 2})
        assert action.id
        assert action.timestamp > 0
        assert action.description == ""

    def test_ids_are_unique(self) -> None:
        assert Action(type=ActionType.WAIT).id != Action(type=ActionType.WAIT).id

    def test_frozen(self) -> None:
        action = Action(type=ActionType.CLICK)
        with pytest.raises(ValidationError):
            action.type = ActionType.TYPE  # type: ignore[misc]

    def test_type_from_string(self) -> None:
        assert Action(type="navigate").type is ActionType.NAVIGATE

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Action(type="teleport")

    def test_summary(self) -> None:
        action = Action(id="a1", type=ActionType.KEY, reasoning="submit")
        assert action.summary() == {"id": "a1", "type": "key", "reasoning": "submit"}


class TestActionResult:
    def test_kind_and_iteration(self) -> None:
        result = _result("click", iteration=3)
        assert result.kind == "click"
        assert result.iteration == 3
        assert not result.is_bookkeeping

    def test_untagged_result(self) -> None:
        result = _result(None)
        assert result.kind == ""
        assert result.iteration is None
        assert not is_real_result(result)

    @pytest.mark.parametrize("kind", ["screenshot", "ai_analysis", "task_complete"])
    def test_bookkeeping_kinds_are_not_real(self, kind: str) -> None:
        result = _result(kind)
        assert result.is_bookkeeping
        assert not is_real_result(result)

    def test_with_data_merges_and_extra_wins(self) -> None:
        original = _result("click", x=1)
        tagged = original.with_data(x=5, iteration=2)
        assert tagged.data == {"action": "click", "x": 5, "iteration": 2}
        assert original.data == {"action": "click", "x": 1}

    def test_to_dict_omits_empty_optionals(self) -> None:
        result = ActionResult(id="r1", success=True, timestamp=5)
        assert result.to_dict() == {"id": "r1", "success": True, "timestamp": 5}

    def test_to_dict_includes_error_and_data(self) -> None:
        result = ActionResult(id="r1", success=False, error="boom", data={"action": "type"}, timestamp=5)
        out = result.to_dict()
        assert out["error"] == "boom"
        assert out["data"] == {"action": "type"}


class TestScreenshot:
    def test_base64_and_media_type(self) -> None:
        shot = Screenshot(width=10, height=20, image_data=b"abc", format="jpeg", timestamp=7)
        assert shot.to_base64() == "YWJj"
        assert shot.media_type == "image/jpeg"
        assert shot.metadata() == {"width": 10, "height": 20, "timestamp": 7}

    def test_repr_hides_image_bytes(self) -> None:
        shot = Screenshot(width=1, height=1, image_data=b"secret-bytes")
        assert "secret-bytes" not in repr(shot)


class TestAnalysis:
    def test_confidence_is_clamped(self) -> None:
        assert Analysis(reasoning="r", confidence=1.7).confidence == 1.0
        assert Analysis(reasoning="r", confidence=-0.4).confidence == 0.0

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_confidence_rejected(self, value: float) -> None:
        with pytest.raises(ValidationError):
            Analysis(reasoning="r", confidence=value)

    def test_wire_names_accepted(self) -> None:
        analysis = Analysis.model_validate(
            {"reasoning": "r", "confidence": 0.5, "isComplete": True, "nextSteps": ["submit"]}
        )
        assert analysis.is_complete
        assert analysis.next_steps == ("submit",)

    def test_unknown_keys_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Analysis.model_validate({"reasoning": "r", "confidence": 0.5, "done": True})

    def test_defaults(self) -> None:
        analysis = Analysis(reasoning="r", confidence=0.5)
        assert analysis.is_complete is False
        assert analysis.actions == ()
        assert analysis.errors == ()


class TestStates:
    def test_iterating_reaches_every_terminal_state(self) -> None:
        for state in TERMINAL_STATES:
            assert can_transition(EngineState.ITERATING, state)

    def test_terminal_states_restart_iterating(self) -> None:
        for state in TERMINAL_STATES:
            assert STATE_TRANSITIONS[state] == [EngineState.ITERATING]

    def test_illegal_transitions(self) -> None:
        assert not can_transition(EngineState.INITIALIZING, EngineState.COMPLETED)
        assert not can_transition(EngineState.COMPLETED, EngineState.FAILED)
        assert not can_transition(EngineState.ITERATING, EngineState.INITIALIZING)


class TestSession:
    def test_stats_count_only_real_results(self) -> None:
        session = Session(
            id="s1",
            instruction="do it",
            results=(
                _result("screenshot"),
                _result("click"),
                _result("type", success=False),
                _result("ai_analysis"),
                _result(None),
            ),
            created_at=1000,
            updated_at=1500,
        )
        stats = session.stats()
        assert stats == {
            "duration_ms": 500,
            "total_actions": 2,
            "successful_actions": 1,
            "failed_actions": 1,
            "success_rate": 0.5,
        }

    def test_stats_empty_session(self) -> None:
        assert Session(id="s", instruction="x").stats()["success_rate"] == 0.0

    def test_to_dict(self) -> None:
        session = Session(id="s", instruction="x", status=SessionStatus.COMPLETED, metadata={"k": 1})
        out = session.to_dict()
        assert out["status"] == "completed"
        assert out["metadata"] == {"k": 1}
        assert out["results"] == []

    def test_run_report(self) -> None:
        report = RunReport(
            session_id="s",
            state=EngineState.COMPLETED,
            iterations=2,
            stop_reason=StopReason.TASK_COMPLETE,
            results=[_result("click"), _result("task_complete")],
        )
        assert report.succeeded
        assert [r.kind for r in report.real_results] == ["click"]


class TestConfig:
    def test_agent_settings_defaults(self) -> None:
        settings = AgentSettings()
        assert settings.max_iterations == 15
        assert settings.iteration_delay_ms == 2000
        assert settings.action_delay_ms == 1000
        assert settings.release_on_exit is True

    def test_max_iterations_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            AgentSettings(max_iterations=0)

    def test_api_key_hidden_from_repr(self) -> None:
        model = ModelConfig(provider=ModelProvider.OPENAI, name="gpt-4o", api_key="sk-secret")
        assert "sk-secret" not in repr(model)

    def test_agent_config_default_settings(self) -> None:
        config = AgentConfig(
            model=ModelConfig(provider="anthropic", name="claude"),
            operator=OperatorConfig(type="desktop"),
        )
        assert config.operator.type is OperatorType.DESKTOP
        assert config.settings == AgentSettings()
