"""Back-off for transient vision-backend failures.

A rate limit or dropped connection in the middle of a run should cost a
delay, not the run.  ``RetryingLLMProvider`` re-sends the same
``VisionRequest`` under a ``RetryPolicy``; authorization and validation
errors pass through on the first attempt and become ``PlannerError`` in the
planner.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Callable

from robin.llm.base import LLMProvider, LLMResult, VisionRequest

logger = logging.getLogger(__name__)

# Matched by class name so backends need not share an exception hierarchy.
TRANSIENT_ERROR_NAMES = frozenset({
    "ConnectionError",
    "TimeoutError",
    "ReadTimeout",
    "ConnectTimeout",
    "APIConnectionError",
    "APITimeoutError",
    "RateLimitError",
    "RemoteProtocolError",
    "ServiceUnavailable",
    "TooManyRequests",
    "InternalServerError",
})

TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


def is_transient(exc: BaseException) -> bool:
    """True for rate limits, timeouts, dropped connections and 5xx replies."""
    if type(exc).__name__ in TRANSIENT_ERROR_NAMES:
        return True
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(getattr(exc, "response", None), "status_code", None)
    return status in TRANSIENT_STATUS_CODES


@dataclasses.dataclass(frozen=True)
class RetryPolicy:
    """How often and how long to wait between attempts.

    Attributes:
        max_retries: Attempts after the first one; 0 disables retrying.
        base_delay: Seconds before the first retry; doubles per retry.
        max_delay: Upper bound on any single wait.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    @property
    def attempts(self) -> int:
        return max(0, self.max_retries) + 1

    def delay(self, retry: int) -> float:
        """Wait before retry number *retry* (1-based)."""
        return min(self.base_delay * 2 ** (retry - 1), self.max_delay)


class RetryingLLMProvider(LLMProvider):
    """Wraps a backend so transient failures are retried under *policy*.

    The returned ``LLMResult`` reports how many attempts the call took.
    """

    def __init__(
        self,
        delegate: LLMProvider,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._delegate = delegate
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def delegate(self) -> LLMProvider:
        return self._delegate

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def supports_vision(self) -> bool:
        return self._delegate.supports_vision

    def complete(self, request: VisionRequest) -> LLMResult:
        attempts = self._policy.attempts
        attempt = 1
        while True:
            try:
                result = self._delegate.complete(request)
            except Exception as exc:
                if attempt >= attempts or not is_transient(exc):
                    raise
                wait = self._policy.delay(attempt)
                logger.warning(
                    "Vision backend %s failed (attempt %d/%d): %s, retrying in %.1fs",
                    type(self._delegate).__name__,
                    attempt,
                    attempts,
                    type(exc).__name__,
                    wait,
                )
                self._sleep(wait)
                attempt += 1
                continue
            return dataclasses.replace(result, attempts=attempt)

    def close(self) -> None:
        self._delegate.close()
