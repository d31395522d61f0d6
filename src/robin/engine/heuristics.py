"""Stopping heuristic evaluated after every action batch.

Only real results count: screenshot, analysis and completion artifacts are
ignored.  The thresholds are fixed; a false stop is cheaper than driving a
real surface through another unproductive iteration.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from robin.models.action import ActionResult, is_real_result
from robin.models.states import StopReason

SUCCESS_WINDOW = 3
MIN_SUCCESS_RATE = 0.3
MIN_CONFIDENCE = 0.2
FAILURE_WINDOW = 5
MAX_FAILURES_IN_WINDOW = 4


@dataclass(frozen=True)
class HeuristicDecision:
    stop: bool
    reason: StopReason | None = None
    detail: str = ""


CONTINUE = HeuristicDecision(stop=False)


def real_results(results: Sequence[ActionResult]) -> list[ActionResult]:
    return [r for r in results if is_real_result(r)]


def evaluate(results: Sequence[ActionResult], confidence: float) -> HeuristicDecision:
    """Decide whether the run should stop after the current batch.

    Args:
        results: Every result of the run so far, in order.
        confidence: The current iteration's planner confidence.
    """
    real = real_results(results)

    if len(real) >= SUCCESS_WINDOW:
        recent = real[-SUCCESS_WINDOW:]
        rate = sum(1 for r in recent if r.success) / len(recent)
        if rate < MIN_SUCCESS_RATE:
            return HeuristicDecision(
                True,
                StopReason.LOW_SUCCESS_RATE,
                f"success rate {rate:.2f} over the last {SUCCESS_WINDOW} actions",
            )

    if confidence < MIN_CONFIDENCE:
        return HeuristicDecision(True, StopReason.LOW_CONFIDENCE, f"planner confidence {confidence:.2f}")

    failures = sum(1 for r in real[-FAILURE_WINDOW:] if not r.success)
    if failures >= MAX_FAILURES_IN_WINDOW:
        return HeuristicDecision(
            True,
            StopReason.REPEATED_FAILURES,
            f"{failures} failures in the last {FAILURE_WINDOW} actions",
        )

    return CONTINUE
