"""Configuration loader for Robin using Pydantic settings.

Config precedence (highest wins):
  1. CLI flags (where applicable)
  2. Environment variables (ROBIN_* with __ for nesting)
  3. settings.local.toml
  4. settings.<env>.toml
  5. settings.default.toml
"""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from robin.models.config import (
    AgentConfig,
    AgentSettings,
    ModelConfig,
    ModelProvider,
    OperatorConfig,
    OperatorType,
)

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = Path(os.getenv("ROBIN_PROJECT_ROOT", _THIS_DIR.parents[2]))
CONFIG_DIR = PROJECT_ROOT / "config"

ENV_VAR_NAME = "ROBIN_ENV"
DEFAULT_ENV = "local"


def _resolve_env() -> str:
    return (os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()


def _load_toml(path: Path) -> dict[str, Any]:
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class LLMSettings(BaseSettings):
    """Vision model configuration.

    ``backends`` maps a provider name to a ``module:attr`` import path of a
    callable ``(ModelConfig) -> LLMProvider``; it is consulted when no
    backend was registered in-process for that provider.
    """

    model_config = SettingsConfigDict(env_prefix="ROBIN_LLM__")

    provider: ModelProvider = ModelProvider.OPENAI
    model: str = "gpt-4o"
    api_key: str = Field(default="", repr=False)
    base_url: str = ""
    temperature: float = 0.1
    max_tokens: int = 2000
    max_retries: int = 3
    backends: dict[str, str] = Field(default_factory=dict)


class OperatorSettings(BaseSettings):
    """Automation surface settings passed through to the operator."""

    model_config = SettingsConfigDict(env_prefix="ROBIN_OPERATOR__")

    type: OperatorType = OperatorType.BROWSER
    headless: bool = True
    width: int = 1280
    height: int = 720
    user_agent: str = ""
    executable_path: str = ""
    browser_driver: str = ""
    desktop_driver: str = ""
    navigation_timeout_ms: int = 30_000


class AgentLoopSettings(BaseSettings):
    """Iteration bounds and pacing."""

    model_config = SettingsConfigDict(env_prefix="ROBIN_AGENT__")

    max_iterations: int = Field(default=15, ge=1)
    iteration_delay_ms: int = 2000
    action_delay_ms: int = 1000
    release_on_exit: bool = True
    session_retention_hours: float = 24.0


class SessionStoreSettings(BaseSettings):
    """Session recorder backend."""

    model_config = SettingsConfigDict(env_prefix="ROBIN_SESSIONS__")

    backend: str = "memory"  # memory | sqlite
    sqlite_path: str = "data/sessions.db"


class LoggingSettings(BaseSettings):
    """Log level and format."""

    model_config = SettingsConfigDict(env_prefix="ROBIN_LOGGING__")

    level: str = "INFO"
    json_format: bool = False


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Root Robin settings with nested sections."""

    model_config = SettingsConfigDict(
        env_prefix="ROBIN_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    env: str = Field(default_factory=_resolve_env)
    project_root: Path = Field(default=PROJECT_ROOT)
    debug: bool = False

    llm: LLMSettings = Field(default_factory=LLMSettings)
    operator: OperatorSettings = Field(default_factory=OperatorSettings)
    agent: AgentLoopSettings = Field(default_factory=AgentLoopSettings)
    sessions: SessionStoreSettings = Field(default_factory=SessionStoreSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="before")
    @classmethod
    def _merge_toml_files(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Layer TOML config files before env var overrides."""
        defaults = _load_toml(CONFIG_DIR / "settings.default.toml")
        env_name = (values.get("env") or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()
        env_overrides = _load_toml(CONFIG_DIR / f"settings.{env_name}.toml")
        local_overrides = _load_toml(CONFIG_DIR / "settings.local.toml")

        # Merge: defaults < env-specific < local < explicit values
        merged: dict[str, Any] = {}
        for layer in (defaults, env_overrides, local_overrides, values):
            for key, val in layer.items():
                if isinstance(val, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **val}
                else:
                    merged[key] = val
        return merged

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Normalize relative paths against project_root."""
        if not Path(self.sessions.sqlite_path).is_absolute():
            self.sessions.sqlite_path = str(self.project_root / self.sessions.sqlite_path)
        return self

    def to_agent_config(self) -> AgentConfig:
        """Build the engine construction input from these settings."""
        model = ModelConfig(
            provider=self.llm.provider,
            name=self.llm.model,
            api_key=self.llm.api_key,
            base_url=self.llm.base_url or None,
            parameters={
                "temperature": self.llm.temperature,
                "max_tokens": self.llm.max_tokens,
                "max_retries": self.llm.max_retries,
            },
        )
        operator = OperatorConfig(
            type=self.operator.type,
            settings=self.operator.model_dump(exclude={"type"}),
        )
        agent = AgentSettings(
            max_iterations=self.agent.max_iterations,
            iteration_delay_ms=self.agent.iteration_delay_ms,
            action_delay_ms=self.agent.action_delay_ms,
            release_on_exit=self.agent.release_on_exit,
            session_retention_ms=int(self.agent.session_retention_hours * 3_600_000),
        )
        return AgentConfig(model=model, operator=operator, settings=agent)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton settings instance (cached)."""
    return Settings()
