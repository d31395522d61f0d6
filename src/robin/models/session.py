"""Session snapshots and run reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from robin.models.action import ActionResult, is_real_result
from robin.models.states import EngineState, SessionStatus, StopReason


@dataclass(frozen=True)
class Session:
    """Read-only snapshot of one run's recorded results.

    Recorders own the live, append-only log; callers only ever see these
    snapshots.
    """

    id: str
    instruction: str
    results: tuple[ActionResult, ...] = ()
    created_at: int = 0
    updated_at: int = 0
    status: SessionStatus = SessionStatus.RUNNING
    error: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_running(self) -> bool:
        return self.status == SessionStatus.RUNNING

    @property
    def real_results(self) -> list[ActionResult]:
        return [r for r in self.results if is_real_result(r)]

    def stats(self) -> dict[str, Any]:
        """Duration and success counts over real results."""
        real = self.real_results
        succeeded = sum(1 for r in real if r.success)
        return {
            "duration_ms": max(0, self.updated_at - self.created_at),
            "total_actions": len(real),
            "successful_actions": succeeded,
            "failed_actions": len(real) - succeeded,
            "success_rate": succeeded / len(real) if real else 0.0,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "instruction": self.instruction,
            "status": self.status.value,
            "error": self.error,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "metadata": dict(self.metadata),
            "results": [r.to_dict() for r in self.results],
        }

    @classmethod
    def from_dict(cls, data: Any) -> Session:
        """Rebuild a snapshot from ``to_dict`` output.

        Raises:
            ValueError: If required keys are missing or malformed.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Session data must be an object, got {type(data).__name__}")
        instruction = data.get("instruction")
        if not isinstance(instruction, str):
            raise ValueError("Session data has no instruction")
        raw_results = data.get("results") or []
        if not isinstance(raw_results, list):
            raise ValueError("Session results must be a list")
        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValueError("Session metadata must be an object")
        return cls(
            id=str(data.get("id") or ""),
            instruction=instruction,
            results=tuple(ActionResult.model_validate(r) for r in raw_results),
            created_at=int(data.get("created_at") or 0),
            updated_at=int(data.get("updated_at") or 0),
            status=SessionStatus(data.get("status", SessionStatus.COMPLETED.value)),
            error=str(data.get("error") or ""),
            metadata=metadata,
        )


@dataclass
class RunReport:
    """Outcome of the most recent ``execute`` call on an engine."""

    session_id: str
    state: EngineState
    iterations: int
    stop_reason: StopReason
    results: list[ActionResult] = field(default_factory=list)
    error: str = ""

    @property
    def real_results(self) -> list[ActionResult]:
        return [r for r in self.results if is_real_result(r)]

    @property
    def succeeded(self) -> bool:
        return self.state == EngineState.COMPLETED
