"""Data models shared across the engine, operators, planner, and recorders."""

from robin.models.action import (
    BOOKKEEPING_KINDS,
    Action,
    ActionResult,
    ActionType,
    ResultKind,
    Screenshot,
    is_real_result,
)
from robin.models.analysis import Analysis
from robin.models.config import (
    AgentConfig,
    AgentSettings,
    ModelConfig,
    ModelProvider,
    OperatorConfig,
    OperatorType,
)
from robin.models.session import RunReport, Session
from robin.models.states import EngineState, SessionStatus, StopReason

__all__ = [
    "BOOKKEEPING_KINDS",
    "Action",
    "ActionResult",
    "ActionType",
    "AgentConfig",
    "AgentSettings",
    "Analysis",
    "EngineState",
    "ModelConfig",
    "ModelProvider",
    "OperatorConfig",
    "OperatorType",
    "ResultKind",
    "RunReport",
    "Screenshot",
    "Session",
    "SessionStatus",
    "StopReason",
    "is_real_result",
]
