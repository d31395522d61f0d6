"""Action, result, and screenshot models shared by operators, planner, and engine.

``Action`` is produced by the planner and consumed by an operator;
``ActionResult`` is what the engine appends to the session.  Both are frozen
once created.
"""

from __future__ import annotations

import base64
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class ActionType(str, Enum):
    """UI actions the planner may propose."""

    CLICK = "click"
    DOUBLE_CLICK = "double_click"
    RIGHT_CLICK = "right_click"
    DRAG = "drag"
    TYPE = "type"
    KEY = "key"
    SCROLL = "scroll"
    WAIT = "wait"
    SCREENSHOT = "screenshot"
    NAVIGATE = "navigate"
    FINISHED = "finished"
    CALL_USER = "call_user"


class ResultKind(str, Enum):
    """Kind tags for engine bookkeeping artifacts."""

    SCREENSHOT = "screenshot"
    AI_ANALYSIS = "ai_analysis"
    TASK_COMPLETE = "task_complete"


BOOKKEEPING_KINDS = frozenset(kind.value for kind in ResultKind)


def _new_id() -> str:
    return uuid4().hex


def _now_ms() -> int:
    return int(time.time() * 1000)


class Action(BaseModel):
    """A single proposed UI step."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    type: ActionType
    parameters: dict[str, Any] = Field(default_factory=dict)
    timestamp: int = Field(default_factory=_now_ms)
    description: str = ""
    reasoning: str = ""

    def summary(self) -> dict[str, Any]:
        """Compact form used in event payloads and analysis artifacts."""
        return {"id": self.id, "type": self.type.value, "reasoning": self.reasoning}


class ActionResult(BaseModel):
    """Outcome of an action or an engine bookkeeping step.

    ``data`` is an open map: consumers must ignore keys they do not know.
    ``data["action"]`` is the kind tag that separates bookkeeping artifacts
    (screenshot, ai_analysis, task_complete) from real automation steps.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    success: bool
    error: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: int = Field(default_factory=_now_ms)

    @property
    def kind(self) -> str:
        """Kind tag, or an empty string when the result is untagged."""
        return str(self.data.get("action") or "")

    @property
    def is_bookkeeping(self) -> bool:
        return self.kind in BOOKKEEPING_KINDS

    @property
    def iteration(self) -> int | None:
        return self.data.get("iteration")

    def with_data(self, **extra: Any) -> ActionResult:
        """Return a copy whose ``data`` is merged with *extra* (extra wins)."""
        return self.model_copy(update={"data": {**self.data, **extra}})

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape ``{id, success, error?, data?, timestamp}``."""
        out: dict[str, Any] = {"id": self.id, "success": self.success, "timestamp": self.timestamp}
        if self.error is not None:
            out["error"] = self.error
        if self.data:
            out["data"] = self.data
        return out


def is_real_result(result: ActionResult) -> bool:
    """True for results of actual automation steps (not bookkeeping, not untagged)."""
    return bool(result.kind) and not result.is_bookkeeping


@dataclass(frozen=True)
class Screenshot:
    """Visual state of the automation surface at capture time."""

    width: int
    height: int
    image_data: bytes = field(repr=False)
    format: str = "png"
    timestamp: int = field(default_factory=_now_ms)

    def to_base64(self) -> str:
        return base64.b64encode(self.image_data).decode("ascii")

    @property
    def media_type(self) -> str:
        return f"image/{self.format}"

    def metadata(self) -> dict[str, int]:
        """Dimensions and timestamp only; image bytes are never persisted."""
        return {"width": self.width, "height": self.height, "timestamp": self.timestamp}
