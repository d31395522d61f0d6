"""Vision planner: asks a multimodal model what to do next on the current screen.

The planner sends one screenshot plus a text prompt per iteration and
parses the JSON reply into an ``Analysis``.  Replies are normalised
leniently (markdown fences, surrounding prose, lower-case action types,
``coordinates`` objects) but a reply that is not usable at all becomes a
low-confidence fallback with no actions, which makes the engine stop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import re
from collections.abc import Sequence
from typing import Any

from robin.exceptions import PlannerError
from robin.llm.base import LLMProvider, LLMResult, VisionRequest
from robin.models.action import Action, ActionResult, ActionType, Screenshot, is_real_result
from robin.models.analysis import Analysis
from robin.planner.base import Planner

logger = logging.getLogger(__name__)

DEFAULT_MAX_ACTIONS = 3
FALLBACK_CONFIDENCE = 0.1

# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

PROMPT_TEMPLATE = """\
You are Robin, an automation agent that can see and control a computer screen.

TASK: {instruction}
ITERATION: {iteration}
PREVIOUS ACTIONS:
{previous}

Analyze the screenshot and determine the next actions needed to complete the task.

AVAILABLE ACTIONS:
- CLICK: Click at coordinates {{x, y}} or on a CSS "selector"
- DOUBLE_CLICK: Double-click at coordinates
- RIGHT_CLICK: Right-click at coordinates
- TYPE: Type "text" into the focused element (optionally a "selector")
- KEY: Press keyboard keys, combinations like "ctrl+c"
- SCROLL: Scroll {{"direction": "up"|"down", "amount": number}}
- WAIT: Wait for "duration" milliseconds
- DRAG: Drag from one point to another {{"from": {{x, y}}, "to": {{x, y}}}}
- NAVIGATE: Open a "url" in the browser
- FINISHED: The task is complete

RESPONSE FORMAT (JSON):
{{
  "reasoning": "What you see and why you are taking these actions",
  "confidence": 0.95,
  "isComplete": false,
  "actions": [
    {{
      "type": "CLICK",
      "coordinates": {{"x": 100, "y": 200}},
      "reasoning": "Clicking the submit button to proceed"
    }}
  ],
  "nextSteps": ["Optional list of planned future steps"]
}}

IMPORTANT RULES:
1. Always explain your reasoning
2. Set isComplete=true only when the task is fully accomplished
3. Use precise coordinates based on what you see in the screenshot
4. If you cannot see the target element, scroll or look for it
5. If the task seems impossible, explain why and return no actions
6. Maximum {max_actions} actions per iteration
7. Consider the previous actions to avoid repeating a failing step

Respond with the JSON format above only."""

# Keys that may appear at the top level of a model-proposed action and belong in parameters.
_PARAMETER_KEYS = (
    "text", "url", "key", "selector", "direction", "amount", "duration",
    "timeout", "from", "to", "modifiers", "x", "y",
)

_TYPE_ALIASES = {
    "LEFT_CLICK": ActionType.CLICK,
    "DOUBLECLICK": ActionType.DOUBLE_CLICK,
    "RIGHTCLICK": ActionType.RIGHT_CLICK,
    "GOTO": ActionType.NAVIGATE,
    "OPEN_URL": ActionType.NAVIGATE,
    "PRESS": ActionType.KEY,
    "HOTKEY": ActionType.KEY,
    "DONE": ActionType.FINISHED,
    "COMPLETE": ActionType.FINISHED,
}

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def summarize_prior_results(prior_results: Sequence[ActionResult]) -> str:
    """One ``- kind: SUCCESS|FAILED`` line per real result."""
    lines = [
        f"- {r.kind}: {'SUCCESS' if r.success else 'FAILED'}"
        for r in prior_results
        if is_real_result(r)
    ]
    return "\n".join(lines) or "None"


def build_prompt(
    instruction: str,
    iteration: int,
    prior_results: Sequence[ActionResult],
    max_actions: int = DEFAULT_MAX_ACTIONS,
) -> str:
    return PROMPT_TEMPLATE.format(
        instruction=instruction,
        iteration=iteration,
        previous=summarize_prior_results(prior_results),
        max_actions=max_actions,
    )


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------


def extract_json(raw_text: str) -> dict[str, Any]:
    """Pull the JSON object out of a model reply.

    Raises:
        ValueError: If no JSON object can be decoded.
    """
    text = raw_text.strip()
    if text.startswith("```"):
        text = text.split("```")[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()

    match = _JSON_OBJECT.search(text)
    if not match:
        raise ValueError("No JSON found in response")
    parsed = json.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise ValueError("Response JSON is not an object")
    return parsed


def _coerce_action_type(value: Any) -> ActionType | None:
    if not isinstance(value, str) or not value.strip():
        return None
    name = value.strip().upper().replace("-", "_").replace(" ", "_")
    if name in _TYPE_ALIASES:
        return _TYPE_ALIASES[name]
    try:
        return ActionType(name.lower())
    except ValueError:
        return None


def normalize_action(raw: dict[str, Any]) -> Action | None:
    """Build an ``Action`` from one model-proposed entry, or None if unusable."""
    action_type = _coerce_action_type(raw.get("type") or raw.get("action"))
    if action_type is None:
        logger.warning("Skipping action with unknown type: %r", raw.get("type") or raw.get("action"))
        return None

    params: dict[str, Any] = {}
    if isinstance(raw.get("parameters"), dict):
        params.update(raw["parameters"])
    for key in _PARAMETER_KEYS:
        if key in raw and key not in params:
            params[key] = raw[key]
    coords = raw.get("coordinates")
    if isinstance(coords, dict):
        params.setdefault("x", coords.get("x"))
        params.setdefault("y", coords.get("y"))

    return Action(
        type=action_type,
        parameters=params,
        description=str(raw.get("description") or ""),
        reasoning=str(raw.get("reasoning") or ""),
    )


def parse_analysis(raw_text: str, max_actions: int = DEFAULT_MAX_ACTIONS) -> Analysis:
    """Parse a model reply; fall back to a low-confidence empty Analysis."""
    try:
        parsed = extract_json(raw_text)
        reasoning = parsed.get("reasoning")
        confidence = parsed.get("confidence")
        if not isinstance(reasoning, str) or not reasoning.strip():
            raise ValueError("Missing reasoning")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            raise ValueError("Missing or non-numeric confidence")
        if not math.isfinite(confidence):
            raise ValueError(f"Non-finite confidence: {confidence}")
        raw_actions = parsed.get("actions") or []
        if not isinstance(raw_actions, list):
            raise ValueError("'actions' is not a list")
    except ValueError as exc:
        logger.error("Failed to parse planner response: %s", exc)
        logger.debug("Raw response: %s", raw_text[:500])
        return fallback_analysis(f"Failed to parse AI response: {exc}. Raw response: {raw_text[:200]}")

    is_complete = bool(parsed.get("isComplete", parsed.get("is_complete", False)))
    errors = [str(e) for e in parsed.get("errors") or [] if e]
    actions: list[Action] = []
    for entry in raw_actions:
        if not isinstance(entry, dict):
            continue
        action = normalize_action(entry)
        if action is None:
            continue
        if action.type == ActionType.FINISHED:
            is_complete = True
            continue
        if action.type == ActionType.CALL_USER:
            errors.append(f"User assistance requested: {action.reasoning or 'no reason given'}")
            continue
        actions.append(action)

    if len(actions) > max_actions:
        logger.info("Planner proposed %d actions, keeping the first %d", len(actions), max_actions)
        actions = actions[:max_actions]

    next_steps = parsed.get("nextSteps") or parsed.get("next_steps") or []
    return Analysis(
        reasoning=reasoning,
        confidence=float(confidence),
        is_complete=is_complete,
        actions=tuple(actions),
        next_steps=tuple(str(s) for s in next_steps if s) if isinstance(next_steps, list) else (),
        errors=tuple(errors),
    )


def fallback_analysis(reasoning: str) -> Analysis:
    return Analysis(
        reasoning=reasoning,
        confidence=FALLBACK_CONFIDENCE,
        is_complete=False,
        actions=(),
        errors=("Failed to parse AI response",),
    )


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------


class VisionPlanner(Planner):
    """Planner backed by a multimodal ``LLMProvider``.

    Args:
        llm: Backend with ``supports_vision`` set.
        max_actions: Cap on actions kept from one reply.
        max_tokens: Max output tokens per call.
        temperature: Sampling temperature, or None for the backend default.
        json_mode: Ask the backend for JSON-only output.
    """

    def __init__(
        self,
        llm: LLMProvider,
        *,
        max_actions: int = DEFAULT_MAX_ACTIONS,
        max_tokens: int = 2000,
        temperature: float | None = 0.1,
        json_mode: bool = False,
    ) -> None:
        self._llm = llm
        self._max_actions = max_actions
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._json_mode = json_mode
        self._closed = False
        self.last_call_result: LLMResult | None = None

    @property
    def llm(self) -> LLMProvider:
        return self._llm

    async def analyze_screenshot(
        self,
        screenshot: Screenshot,
        instruction: str,
        iteration: int,
        prior_results: Sequence[ActionResult],
    ) -> Analysis:
        if self._closed:
            raise PlannerError("Planner has been cleaned up")

        if not self._llm.supports_vision:
            raise PlannerError(f"{type(self._llm).__name__} does not support vision input")

        request = VisionRequest(
            prompt=build_prompt(instruction, iteration, prior_results, self._max_actions),
            image_b64=screenshot.to_base64(),
            media_type=screenshot.media_type,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            json_mode=self._json_mode,
        )

        try:
            result = await asyncio.to_thread(self._llm.complete, request)
        except Exception as exc:
            raise PlannerError(f"AI analysis failed: {exc}", details={"iteration": iteration}) from exc

        self.last_call_result = result
        logger.debug(
            "LLM call: model=%s in=%d out=%d latency=%.0fms attempts=%d",
            result.model or "?",
            result.input_tokens,
            result.output_tokens,
            result.latency_ms,
            result.attempts,
        )

        raw_text = (result.content or "").strip()
        if not raw_text:
            logger.error("LLM returned empty response")
            return fallback_analysis("LLM returned empty response")

        analysis = parse_analysis(raw_text, self._max_actions)
        logger.info(
            "Iteration %d analysis: confidence=%.2f complete=%s actions=%s",
            iteration,
            analysis.confidence,
            analysis.is_complete,
            [a.type.value for a in analysis.actions],
        )
        return analysis

    async def cleanup(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._llm.close()
        except Exception as exc:
            logger.warning("Error closing LLM backend: %s", exc)
