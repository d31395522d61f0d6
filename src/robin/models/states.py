"""Execution engine state machine definitions."""

from enum import Enum


class EngineState(str, Enum):
    """Lifecycle states of one execution engine."""

    INITIALIZING = "INITIALIZING"
    ITERATING = "ITERATING"
    COMPLETED = "COMPLETED"
    EXHAUSTED = "EXHAUSTED"
    ABORTED = "ABORTED"
    FAILED = "FAILED"


class StopReason(str, Enum):
    """Why the last run left the ITERATING state."""

    TASK_COMPLETE = "task_complete"
    NO_ACTIONS = "no_actions"
    LOW_SUCCESS_RATE = "low_success_rate"
    LOW_CONFIDENCE = "low_confidence"
    REPEATED_FAILURES = "repeated_failures"
    MAX_ITERATIONS = "max_iterations"
    STOPPED = "stopped"
    ERROR = "error"


class SessionStatus(str, Enum):
    """Recorder-side status of a run's session."""

    RUNNING = "running"
    COMPLETED = "completed"
    EXHAUSTED = "exhausted"
    ABORTED = "aborted"
    FAILED = "failed"


# A terminal state ends the run; a new run re-enters ITERATING from it.
TERMINAL_STATES = {
    EngineState.COMPLETED,
    EngineState.EXHAUSTED,
    EngineState.ABORTED,
    EngineState.FAILED,
}

STATE_TRANSITIONS: dict[EngineState, list[EngineState]] = {
    EngineState.INITIALIZING: [EngineState.ITERATING],
    EngineState.ITERATING: sorted(TERMINAL_STATES, key=lambda s: s.value),
    EngineState.COMPLETED: [EngineState.ITERATING],
    EngineState.EXHAUSTED: [EngineState.ITERATING],
    EngineState.ABORTED: [EngineState.ITERATING],
    EngineState.FAILED: [EngineState.ITERATING],
}

# Terminal engine state -> session status recorded for the run
SESSION_STATUS_FOR_STATE: dict[EngineState, SessionStatus] = {
    EngineState.COMPLETED: SessionStatus.COMPLETED,
    EngineState.EXHAUSTED: SessionStatus.EXHAUSTED,
    EngineState.ABORTED: SessionStatus.ABORTED,
    EngineState.FAILED: SessionStatus.FAILED,
}


def can_transition(current: EngineState, target: EngineState) -> bool:
    """Return True if *target* is a legal successor of *current*."""
    return target in STATE_TRANSITIONS.get(current, [])
