"""Event bus: decouples the execution engine from observers (CLI, UI bridge, logs).

* Type-safe event types via ``EventType``.
* Multiple sink pattern: one bus emits to every registered ``EventSink``
  (JSONL stream, logger, in-memory buffer).
* Delivery is best-effort: a failing sink is logged and skipped, and
  nothing the bus does can change the engine's control flow.
* Snapshot caching so a late observer can read the latest url, state and
  iteration without replaying events.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------


class EventType(str, Enum):
    """All event types emitted during a run."""

    # Lifecycle
    EXECUTION_STARTED = "execution-started"
    EXECUTION_COMPLETED = "execution-completed"
    EXECUTION_FAILED = "execution-failed"
    STATE_CHANGED = "state-changed"

    # Loop
    ITERATION_STARTED = "iteration-started"
    SCREENSHOT_CAPTURED = "screenshot-captured"
    ANALYSIS_COMPLETED = "analysis-completed"
    ACTION_STARTED = "action-started"
    ACTION_COMPLETED = "action-completed"
    NAVIGATION_COMPLETED = "navigation-completed"

    # External control
    AGENT_PAUSED = "agent-paused"
    AGENT_RESUMED = "agent-resumed"
    AGENT_STOPPED = "agent-stopped"

    # Catch-all for unrecognised names
    LOG = "log"


# ---------------------------------------------------------------------------
# Event payload model
# ---------------------------------------------------------------------------


class Event(BaseModel):
    """Structured event emitted by the event bus."""

    event_type: EventType
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    session_id: str = ""
    data: dict[str, Any] = Field(default_factory=dict)

    def to_jsonl(self) -> str:
        """Serialize to a single JSON line (no trailing newline)."""
        return self.model_dump_json()


# ---------------------------------------------------------------------------
# Sink protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class EventSink(Protocol):
    """Protocol for event consumers."""

    async def handle_event(self, event: Event) -> None:
        """Process a single event."""
        ...


# ---------------------------------------------------------------------------
# Built-in sinks
# ---------------------------------------------------------------------------


class LoggingSink:
    """Emit events to the Python logger at DEBUG level."""

    def __init__(self, logger_name: str = "robin.events") -> None:
        self._logger = logging.getLogger(logger_name)

    async def handle_event(self, event: Event) -> None:
        self._logger.debug(
            "[%s] %s: %s",
            event.session_id or "?",
            event.event_type.value,
            json.dumps(event.data, default=str)[:200],
        )


class InMemorySink:
    """Collect events in a list, mostly for tests."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    async def handle_event(self, event: Event) -> None:
        self.events.append(event)

    def clear(self) -> None:
        self.events.clear()

    def of_type(self, event_type: EventType) -> list[Event]:
        return [e for e in self.events if e.event_type == event_type]

    @property
    def count(self) -> int:
        return len(self.events)


class JsonlSink:
    """Write events as JSONL lines to a file-like object.

    Works with ``sys.stdout``, ``sys.stderr``, or an open file handle.
    """

    def __init__(self, stream: Any) -> None:
        self._stream = stream

    async def handle_event(self, event: Event) -> None:
        self._stream.write(event.to_jsonl() + "\n")
        if hasattr(self._stream, "flush"):
            self._stream.flush()


# ---------------------------------------------------------------------------
# Event bus
# ---------------------------------------------------------------------------


class EventBus:
    """Central event dispatcher for engine-to-observer communication.

    Args:
        session_id: Optional default session ID attached to all events.
    """

    def __init__(self, session_id: str = "") -> None:
        self._session_id = session_id
        self._sinks: list[EventSink] = []

        # Snapshot for late observers
        self._latest_state: str = ""
        self._latest_url: str = ""
        self._latest_iteration: int = 0
        self._started_at: float = time.monotonic()

    @property
    def session_id(self) -> str:
        return self._session_id

    @session_id.setter
    def session_id(self, value: str) -> None:
        self._session_id = value

    # ------------------------------------------------------------------
    # Sink management
    # ------------------------------------------------------------------

    def add_sink(self, sink: EventSink) -> None:
        """Register an event sink."""
        self._sinks.append(sink)

    def remove_sink(self, sink: EventSink) -> None:
        """Remove a previously registered sink."""
        self._sinks = [s for s in self._sinks if s is not sink]

    @property
    def sink_count(self) -> int:
        return len(self._sinks)

    # ------------------------------------------------------------------
    # Emit
    # ------------------------------------------------------------------

    async def emit(self, event_type: EventType | str, data: dict[str, Any] | None = None) -> None:
        """Emit an event to all registered sinks.

        Args:
            event_type: The event type (``EventType`` enum or raw string).
            data: Optional payload data.
        """
        if isinstance(event_type, str) and not isinstance(event_type, EventType):
            try:
                event_type = EventType(event_type)
            except ValueError:
                event_type = EventType.LOG

        payload = data or {}
        self._update_snapshot(event_type, payload)

        event = Event(event_type=event_type, session_id=self._session_id, data=payload)

        for sink in self._sinks:
            try:
                await sink.handle_event(event)
            except Exception as exc:
                logger.warning("EventBus sink error (%s): %s", type(sink).__name__, exc)

    def _update_snapshot(self, event_type: EventType, data: dict[str, Any]) -> None:
        if event_type == EventType.STATE_CHANGED:
            self._latest_state = data.get("new_state", self._latest_state)
        elif event_type == EventType.EXECUTION_STARTED:
            self._latest_iteration = 0
            self._started_at = time.monotonic()
        elif event_type == EventType.ITERATION_STARTED:
            self._latest_iteration = data.get("iteration", self._latest_iteration)
        if data.get("url"):
            self._latest_url = data["url"]

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def get_snapshot(self) -> dict[str, Any]:
        """Return the latest state for a newly attached observer."""
        return {
            "session_id": self._session_id,
            "state": self._latest_state,
            "url": self._latest_url,
            "iteration": self._latest_iteration,
            "uptime_sec": round(time.monotonic() - self._started_at, 1),
        }
