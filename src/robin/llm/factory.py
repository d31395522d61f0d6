"""Provider-keyed registry of vision-model backends.

Robin ships no HTTP clients of its own.  A host registers one callable per
``ModelProvider``::

    from robin.llm.factory import register_llm_backend

    register_llm_backend(ModelProvider.OPENAI, lambda cfg: MyOpenAIBackend(cfg.name, cfg.api_key))

or names it in settings (``[llm.backends] openai = "pkg.mod:factory"``).
``create_llm_provider`` resolves the backend and wraps it in
``RetryingLLMProvider``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from robin.exceptions import InitializationError
from robin.llm.base import LLMProvider
from robin.llm.retry import RetryingLLMProvider, RetryPolicy
from robin.models.config import ModelConfig, ModelProvider

logger = logging.getLogger(__name__)

BackendFactory = Callable[[ModelConfig], LLMProvider]

_BACKENDS: dict[ModelProvider, BackendFactory] = {}


def register_llm_backend(provider: ModelProvider | str, factory: BackendFactory) -> None:
    """Register *factory* as the backend constructor for *provider*."""
    _BACKENDS[ModelProvider(provider)] = factory
    logger.debug("Registered LLM backend for %s", ModelProvider(provider).value)


def unregister_llm_backend(provider: ModelProvider | str) -> None:
    _BACKENDS.pop(ModelProvider(provider), None)


def registered_backends() -> list[ModelProvider]:
    return sorted(_BACKENDS, key=lambda p: p.value)


def _resolve_backend_factory(provider: ModelProvider) -> BackendFactory:
    factory = _BACKENDS.get(provider)
    if factory is not None:
        return factory

    from robin.plugins import load_object
    from robin.settings import get_settings

    path = get_settings().llm.backends.get(provider.value, "")
    if not path:
        raise InitializationError(
            f"No LLM backend registered for provider {provider.value!r}. "
            f"Register one with register_llm_backend() or set llm.backends.{provider.value}",
            details={"provider": provider.value},
        )
    loaded = load_object(path)
    if not callable(loaded):
        raise InitializationError(f"LLM backend {path!r} is not callable")
    return loaded


def create_llm_provider(config: ModelConfig) -> LLMProvider:
    """Create a backend for *config*, wrapped with retry logic.

    Raises:
        InitializationError: If no backend is available for the provider or
            its constructor fails.
    """
    factory = _resolve_backend_factory(config.provider)
    try:
        base = factory(config)
    except InitializationError:
        raise
    except Exception as exc:
        raise InitializationError(
            f"LLM backend for {config.provider.value!r} failed to start: {exc}",
            details={"provider": config.provider.value, "model": config.name},
        ) from exc

    if not isinstance(base, LLMProvider):
        raise InitializationError(
            f"LLM backend for {config.provider.value!r} returned {type(base).__name__}, "
            "expected an LLMProvider"
        )

    logger.info("Created LLM backend: provider=%s model=%s", config.provider.value, config.name)
    policy = RetryPolicy(max_retries=int(config.parameters.get("max_retries", 3)))
    return RetryingLLMProvider(base, policy)
