"""Provider-keyed planner factory.

Each ``ModelProvider`` carries a capability tag that tunes the vision
planner; selection happens once, at construction, so an unknown provider
or a provider without a backend fails before any run starts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from robin.exceptions import InitializationError
from robin.llm.base import LLMProvider
from robin.models.config import ModelConfig, ModelProvider
from robin.planner.base import Planner
from robin.planner.vision import DEFAULT_MAX_ACTIONS, VisionPlanner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannerCapabilities:
    """Per-provider planner tuning."""

    json_mode: bool = False
    max_actions: int = DEFAULT_MAX_ACTIONS
    max_tokens: int = 2000


PROVIDER_CAPABILITIES: dict[ModelProvider, PlannerCapabilities] = {
    ModelProvider.OPENAI: PlannerCapabilities(json_mode=True),
    ModelProvider.ANTHROPIC: PlannerCapabilities(json_mode=False),
    ModelProvider.GOOGLE: PlannerCapabilities(json_mode=True, max_tokens=2048),
    ModelProvider.LOCAL: PlannerCapabilities(json_mode=False, max_tokens=1024),
    ModelProvider.CUSTOM: PlannerCapabilities(json_mode=False),
}


def capabilities_for(provider: ModelProvider | str) -> PlannerCapabilities:
    """Return the capability tag for *provider*.

    Raises:
        InitializationError: If the provider is unknown.
    """
    try:
        key = ModelProvider(provider)
    except ValueError as exc:
        raise InitializationError(f"Unsupported model provider: {provider!r}") from exc
    caps = PROVIDER_CAPABILITIES.get(key)
    if caps is None:
        raise InitializationError(f"Unsupported model provider: {key.value!r}")
    return caps


def create_planner(config: ModelConfig, llm: LLMProvider | None = None) -> Planner:
    """Build the planner for ``config.provider``.

    Args:
        config: Model selection and parameters (``temperature``,
            ``max_tokens``, ``max_retries``).
        llm: Backend to use instead of the registered one.

    Raises:
        InitializationError: Unknown provider, or no backend available.
    """
    caps = capabilities_for(config.provider)
    if llm is None:
        from robin.llm.factory import create_llm_provider

        llm = create_llm_provider(config)

    params = config.parameters
    planner = VisionPlanner(
        llm,
        max_actions=int(params.get("max_actions", caps.max_actions)),
        max_tokens=int(params.get("max_tokens", caps.max_tokens)),
        temperature=params.get("temperature", 0.1),
        json_mode=caps.json_mode,
    )
    logger.info("Created planner: provider=%s model=%s", config.provider.value, config.name)
    return planner
