"""Vision-model backend abstraction.

Backends are host-supplied and registered per ``ModelProvider``.
"""

from robin.llm.base import LLMProvider, LLMResult, VisionRequest
from robin.llm.factory import create_llm_provider, register_llm_backend
from robin.llm.retry import RetryingLLMProvider, RetryPolicy

__all__ = [
    "LLMProvider",
    "LLMResult",
    "RetryPolicy",
    "RetryingLLMProvider",
    "VisionRequest",
    "create_llm_provider",
    "register_llm_backend",
]
