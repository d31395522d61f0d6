"""Tests for the retry policy and the retrying backend wrapper."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from robin.llm.base import LLMProvider, LLMResult, VisionRequest
from robin.llm.retry import RetryingLLMProvider, RetryPolicy, is_transient


class RateLimitError(Exception):
    """Stand-in for an SDK rate-limit exception (matched by name)."""


class StatusError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


REQUEST = VisionRequest(prompt="what is on screen?", image_b64="aGVsbG8=", max_tokens=10)


@pytest.fixture()
def delegate() -> MagicMock:
    mock = MagicMock(spec=LLMProvider)
    mock.supports_vision = True
    return mock


@pytest.fixture()
def sleeps() -> list[float]:
    return []


def _wrap(delegate: MagicMock, sleeps: list[float], **policy) -> RetryingLLMProvider:
    return RetryingLLMProvider(delegate, RetryPolicy(**policy), sleep=sleeps.append)


class TestIsTransient:
    @pytest.mark.parametrize(
        "exc",
        [RateLimitError("slow down"), ConnectionError("reset"), TimeoutError(), StatusError(503), StatusError(429)],
    )
    def test_transient(self, exc: Exception) -> None:
        assert is_transient(exc)

    @pytest.mark.parametrize("exc", [ValueError("bad"), StatusError(401), StatusError(400)])
    def test_permanent(self, exc: Exception) -> None:
        assert not is_transient(exc)

    def test_status_on_response(self) -> None:
        exc = Exception("wrapped")
        exc.response = MagicMock(status_code=502)
        assert is_transient(exc)


class TestRetryPolicy:
    def test_delays_double_and_cap(self) -> None:
        policy = RetryPolicy(max_retries=4, base_delay=10, max_delay=15)
        assert [policy.delay(n) for n in range(1, 5)] == [10, 15, 15, 15]
        assert policy.attempts == 5

    def test_negative_retries_mean_single_attempt(self) -> None:
        assert RetryPolicy(max_retries=-2).attempts == 1


class TestRetryingLLMProvider:
    def test_success_first_try(self, delegate: MagicMock, sleeps: list[float]) -> None:
        delegate.complete.return_value = LLMResult(content="ok")
        result = _wrap(delegate, sleeps).complete(REQUEST)
        assert result.content == "ok"
        assert result.attempts == 1
        assert sleeps == []
        delegate.complete.assert_called_once_with(REQUEST)

    def test_retries_then_succeeds(self, delegate: MagicMock, sleeps: list[float]) -> None:
        delegate.complete.side_effect = [RateLimitError("429"), ConnectionError("reset"), LLMResult(content="ok")]
        result = _wrap(delegate, sleeps, base_delay=0.5).complete(REQUEST)
        assert result.content == "ok"
        assert result.attempts == 3
        assert sleeps == [0.5, 1.0]

    def test_gives_up_after_max_retries(self, delegate: MagicMock, sleeps: list[float]) -> None:
        delegate.complete.side_effect = RateLimitError("429")
        with pytest.raises(RateLimitError):
            _wrap(delegate, sleeps, max_retries=2).complete(REQUEST)
        assert delegate.complete.call_count == 3
        assert len(sleeps) == 2

    def test_permanent_error_not_retried(self, delegate: MagicMock, sleeps: list[float]) -> None:
        delegate.complete.side_effect = StatusError(401)
        with pytest.raises(StatusError):
            _wrap(delegate, sleeps).complete(REQUEST)
        assert delegate.complete.call_count == 1

    def test_zero_retries_pass_through(self, delegate: MagicMock, sleeps: list[float]) -> None:
        delegate.complete.side_effect = ConnectionError("reset")
        with pytest.raises(ConnectionError):
            _wrap(delegate, sleeps, max_retries=0).complete(REQUEST)
        assert delegate.complete.call_count == 1

    def test_vision_support_and_close_delegate(self, delegate: MagicMock, sleeps: list[float]) -> None:
        delegate.supports_vision = False
        wrapper = _wrap(delegate, sleeps)
        assert wrapper.supports_vision is False
        wrapper.close()
        delegate.close.assert_called_once()


class TestVisionRequest:
    def test_to_messages(self) -> None:
        (message,) = REQUEST.to_messages()
        assert message["role"] == "user"
        assert message["content"] == [
            {"type": "text", "text": "what is on screen?"},
            {"type": "image", "media_type": "image/png", "data": "aGVsbG8="},
        ]
