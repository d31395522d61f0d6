"""Construction input for the execution engine.

These models are what a host (CLI, UI bridge, test) hands to
``ExecutionEngine.initialize``.  ``Settings.to_agent_config()`` builds one
from the layered configuration.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ModelProvider(str, Enum):
    """Vision model providers a planner can be built for."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    LOCAL = "local"
    CUSTOM = "custom"


class OperatorType(str, Enum):
    """Automation surfaces an operator can drive."""

    DESKTOP = "desktop"
    BROWSER = "browser"
    HYBRID = "hybrid"


class ModelConfig(BaseModel):
    """Which vision model the planner talks to."""

    provider: ModelProvider
    name: str
    api_key: str = Field(default="", repr=False)
    base_url: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)


class OperatorConfig(BaseModel):
    """Which surface to automate, plus driver-level settings."""

    type: OperatorType
    settings: dict[str, Any] = Field(default_factory=dict)


class AgentSettings(BaseModel):
    """Loop bounds and pacing."""

    max_iterations: int = Field(default=15, ge=1)
    iteration_delay_ms: int = Field(default=2000, ge=0)
    action_delay_ms: int = Field(default=1000, ge=0)
    release_on_exit: bool = True
    session_retention_ms: int = Field(default=24 * 60 * 60 * 1000, ge=0)


class AgentConfig(BaseModel):
    """Complete engine construction input."""

    model: ModelConfig
    operator: OperatorConfig
    settings: AgentSettings = Field(default_factory=AgentSettings)
