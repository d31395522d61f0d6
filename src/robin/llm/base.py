"""Vision-model backend interface.

Concrete backends (OpenAI, Anthropic, Gemini, a local server, ...) are
supplied by the host and registered with ``robin.llm.factory``.  The planner
hands a backend one ``VisionRequest`` per iteration, a prompt plus the
current screenshot, and reads the reply text from the ``LLMResult``.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class VisionRequest:
    """One screenshot-plus-prompt call.

    Attributes:
        prompt: Full planner prompt (task, history, schema, rules).
        image_b64: Base64-encoded screenshot.
        media_type: MIME type of the screenshot.
        temperature: Sampling temperature, or None for the backend default.
        max_tokens: Output token cap.
        json_mode: Ask for JSON-only output where the backend supports it.
    """

    prompt: str
    image_b64: str
    media_type: str = "image/png"
    temperature: float | None = None
    max_tokens: int = 2000
    json_mode: bool = False

    def to_messages(self) -> list[dict[str, Any]]:
        """Render as neutral chat messages for chat-style backends::

            [{"role": "user", "content": [
                {"type": "text", "text": "..."},
                {"type": "image", "media_type": "image/png", "data": "<base64>"},
            ]}]
        """
        return [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": self.prompt},
                    {"type": "image", "media_type": self.media_type, "data": self.image_b64},
                ],
            }
        ]


@dataclass(frozen=True)
class LLMResult:
    """Reply text plus call metrics."""

    content: str = ""
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: float = 0.0
    attempts: int = 1


class LLMProvider(abc.ABC):
    """A backend that can answer a ``VisionRequest``.

    Backends that cannot read images set ``supports_vision = False``; the
    planner refuses them with ``PlannerError`` instead of sending a request.
    ``complete`` is called from a worker thread and may block.
    """

    supports_vision: bool = True

    @abc.abstractmethod
    def complete(self, request: VisionRequest) -> LLMResult:
        """Send *request* and return the model's reply."""

    def close(self) -> None:
        """Release clients or connections. Override if needed."""
