"""Robin exception hierarchy."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from robin.models.action import ActionResult


class RobinError(Exception):
    """Base exception for all Robin-specific errors.

    Attributes:
        details: Free-form diagnostic context attached by the raiser.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class InitializationError(RobinError):
    """Raised when an operator, planner, or LLM backend cannot be set up.

    The run never starts; the caller sees this immediately.
    """


class OperatorError(RobinError):
    """Operator-level fault: crashed driver, lost connection, use before init."""


class ActionFailed(RobinError):
    """Expected automation failure raised by a driver (element missing, bad target).

    Operators convert this into a failed ``ActionResult``; it never
    escapes ``Operator.execute``.
    """


class PlannerError(RobinError):
    """Planner fault: transport/authorization failure or inconsistent output."""


class EngineError(RobinError):
    """Misuse of the engine API (execute before initialize, concurrent runs)."""


class SessionTransferError(RobinError):
    """A session could not be exported (unknown id) or imported (bad payload)."""


class RunFailure(RobinError):
    """A run aborted by a planner or loop-control fault.

    Carries everything needed for a postmortem; the session entries already
    appended are left in place.

    Attributes:
        iteration: Iteration counter when the fault occurred.
        results: Results collected before the fault, in order.
        session_id: Recorder session holding the same results.
    """

    def __init__(
        self,
        message: str,
        *,
        iteration: int,
        results: list[ActionResult],
        session_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.iteration = iteration
        self.results = results
        self.session_id = session_id
