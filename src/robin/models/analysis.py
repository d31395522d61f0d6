"""Planner output for one iteration."""

from __future__ import annotations

import math

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from robin.models.action import Action


class Analysis(BaseModel):
    """One planning result: reasoning, confidence, completion flag, proposed actions.

    Produced fresh every iteration and never persisted; only the results
    derived from acting on it are recorded.  Validating a planner's dict
    accepts the camelCase wire names (``isComplete``, ``nextSteps``) and
    rejects unknown keys.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    reasoning: str
    confidence: float
    is_complete: bool = Field(default=False, validation_alias=AliasChoices("is_complete", "isComplete"))
    actions: tuple[Action, ...] = ()
    next_steps: tuple[str, ...] = Field(default=(), validation_alias=AliasChoices("next_steps", "nextSteps"))
    errors: tuple[str, ...] = Field(default=())

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, v: float) -> float:
        """Clamp confidence to [0.0, 1.0]; NaN and infinities are rejected."""
        if not math.isfinite(v):
            raise ValueError(f"confidence must be a finite number, got {v}")
        return max(0.0, min(1.0, v))
