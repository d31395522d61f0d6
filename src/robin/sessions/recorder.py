"""Session recorder protocol and the in-memory implementation.

A recorder keeps one append-only result log per run.  The engine creates a
session at the start of each run, appends every result it produces
(bookkeeping and real), finishes the session with a terminal status, and
prunes old sessions when it shuts down.  Readers always get ``Session``
snapshots, never the live log.
"""

from __future__ import annotations

import itertools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable
from uuid import uuid4

from robin.models.action import ActionResult
from robin.models.session import Session
from robin.models.states import SessionStatus

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_session_id(now_ms: int) -> str:
    return f"session-{now_ms}-{uuid4().hex[:9]}"


def new_imported_id(now_ms: int) -> str:
    return f"imported-{now_ms}-{uuid4().hex[:9]}"


def imported_status(session: Session) -> SessionStatus:
    """Imported sessions are never live; a running one is stored as aborted."""
    return SessionStatus.ABORTED if session.is_running else session.status


@runtime_checkable
class SessionRecorder(Protocol):
    """Append-only per-run result log with retention pruning."""

    def create_session(self, instruction: str, metadata: dict[str, Any] | None = None) -> str:
        ...

    def append(self, session_id: str, result: ActionResult) -> None:
        ...

    def finish_session(self, session_id: str, status: SessionStatus, error: str = "") -> None:
        ...

    def import_session(self, session: Session) -> str:
        """Store a copy of *session* under a fresh id and return that id."""
        ...

    def prune_older_than(self, duration_ms: int) -> int:
        """Delete finished sessions created more than *duration_ms* ago; return the count."""
        ...

    def get_session(self, session_id: str) -> Session | None:
        ...

    def current_session(self) -> Session | None:
        ...

    def session_history(self, limit: int = DEFAULT_HISTORY_LIMIT) -> list[Session]:
        """Finished sessions, newest first."""
        ...


@dataclass
class _SessionRecord:
    id: str
    instruction: str
    created_at: int
    updated_at: int
    status: SessionStatus = SessionStatus.RUNNING
    error: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    results: list[ActionResult] = field(default_factory=list)
    seq: int = 0

    def snapshot(self) -> Session:
        return Session(
            id=self.id,
            instruction=self.instruction,
            results=tuple(self.results),
            created_at=self.created_at,
            updated_at=self.updated_at,
            status=self.status,
            error=self.error,
            metadata=dict(self.metadata),
        )


class InMemorySessionRecorder:
    """Process-local recorder; sessions vanish with the process.

    Args:
        clock: Millisecond clock, replaceable in tests.
    """

    def __init__(self, clock: Callable[[], int] = _now_ms) -> None:
        self._clock = clock
        self._sessions: dict[str, _SessionRecord] = {}
        self._current_id: str | None = None
        self._seq = itertools.count()

    def create_session(self, instruction: str, metadata: dict[str, Any] | None = None) -> str:
        now = self._clock()
        session_id = new_session_id(now)
        self._sessions[session_id] = _SessionRecord(
            id=session_id,
            instruction=instruction,
            created_at=now,
            updated_at=now,
            metadata=dict(metadata or {}),
            seq=next(self._seq),
        )
        self._current_id = session_id
        logger.debug("Created session %s", session_id)
        return session_id

    def append(self, session_id: str, result: ActionResult) -> None:
        record = self._sessions.get(session_id)
        if record is None:
            logger.warning("Session not found: %s", session_id)
            return
        record.results.append(result)
        record.updated_at = self._clock()

    def finish_session(self, session_id: str, status: SessionStatus, error: str = "") -> None:
        record = self._sessions.get(session_id)
        if record is None:
            logger.warning("Session not found: %s", session_id)
            return
        if record.status != SessionStatus.RUNNING:
            logger.debug("Session %s already finished as %s", session_id, record.status.value)
            return
        record.status = SessionStatus(status)
        record.error = error
        record.updated_at = self._clock()
        if self._current_id == session_id:
            self._current_id = None
        logger.info("Session %s finished: %s", session_id, record.status.value)

    def import_session(self, session: Session) -> str:
        session_id = new_imported_id(self._clock())
        self._sessions[session_id] = _SessionRecord(
            id=session_id,
            instruction=session.instruction,
            created_at=session.created_at,
            updated_at=session.updated_at,
            status=imported_status(session),
            error=session.error,
            metadata=dict(session.metadata),
            results=list(session.results),
            seq=next(self._seq),
        )
        logger.info("Imported session %s as %s", session.id or "?", session_id)
        return session_id

    def prune_older_than(self, duration_ms: int) -> int:
        cutoff = self._clock() - duration_ms
        stale = [
            sid
            for sid, record in self._sessions.items()
            if record.created_at < cutoff and record.status != SessionStatus.RUNNING
        ]
        for sid in stale:
            del self._sessions[sid]
        logger.info("Cleared %d old sessions", len(stale))
        return len(stale)

    def get_session(self, session_id: str) -> Session | None:
        record = self._sessions.get(session_id)
        return record.snapshot() if record else None

    def current_session(self) -> Session | None:
        if self._current_id is None:
            return None
        return self.get_session(self._current_id)

    def session_history(self, limit: int = DEFAULT_HISTORY_LIMIT) -> list[Session]:
        finished = [r for r in self._sessions.values() if r.status != SessionStatus.RUNNING]
        finished.sort(key=lambda r: (r.created_at, r.seq), reverse=True)
        return [r.snapshot() for r in finished[: max(0, limit)]]

    def summary(self) -> dict[str, int]:
        """Session counts by status plus a total."""
        counts = {status.value: 0 for status in SessionStatus}
        for record in self._sessions.values():
            counts[record.status.value] += 1
        counts["total"] = len(self._sessions)
        return counts
