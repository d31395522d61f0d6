"""SQL-backed session recorder.

Follows the store pattern used elsewhere: accept an optional *db_path* for
a local SQLite file or a pre-built *session_factory* for a shared engine,
and create the schema on construction.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import sqlalchemy as sa
from sqlalchemy.orm import sessionmaker

from robin.models.action import ActionResult
from robin.models.session import Session
from robin.models.states import SessionStatus
from robin.sessions import sql as sql_schema
from robin.sessions.recorder import (
    DEFAULT_HISTORY_LIMIT,
    _now_ms,
    imported_status,
    new_imported_id,
    new_session_id,
)
from robin.sessions.sql import METADATA, build_session_factory

logger = logging.getLogger(__name__)


class SqlSessionRecorder:
    """Persist run sessions and their results through SQLAlchemy Core.

    Args:
        db_path: Convenience path for a local SQLite file.  Mutually
            exclusive with *session_factory*.
        session_factory: Pre-configured ``sessionmaker``.
        clock: Millisecond clock, replaceable in tests.
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        *,
        session_factory: sessionmaker | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        if session_factory is not None:
            self._session_factory = session_factory
        else:
            self._session_factory = build_session_factory(db_path=db_path)
        self._clock = clock
        self._current_id: str | None = None

        with self._session_factory() as session:
            METADATA.create_all(session.connection())
            session.commit()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_session(self, instruction: str, metadata: dict[str, Any] | None = None) -> str:
        now = self._clock()
        session_id = new_session_id(now)
        with self._session_factory() as session:
            session.execute(
                sa.insert(sql_schema.run_sessions).values(
                    session_id=session_id,
                    instruction=instruction,
                    status=SessionStatus.RUNNING.value,
                    error="",
                    metadata=metadata or {},
                    created_at=now,
                    updated_at=now,
                )
            )
            session.commit()
        self._current_id = session_id
        logger.debug("Created session %s", session_id)
        return session_id

    def append(self, session_id: str, result: ActionResult) -> None:
        runs = sql_schema.run_sessions
        rows = sql_schema.session_results
        with self._session_factory() as session:
            exists = session.execute(
                sa.select(runs.c.session_id).where(runs.c.session_id == session_id)
            ).first()
            if exists is None:
                logger.warning("Session not found: %s", session_id)
                return
            seq = session.execute(
                sa.select(sa.func.count()).select_from(rows).where(rows.c.session_id == session_id)
            ).scalar_one()
            session.execute(
                sa.insert(rows).values(
                    session_id=session_id,
                    seq=seq,
                    result_id=result.id,
                    success=result.success,
                    error=result.error,
                    data=result.data,
                    timestamp=result.timestamp,
                )
            )
            session.execute(
                sa.update(runs).where(runs.c.session_id == session_id).values(updated_at=self._clock())
            )
            session.commit()

    def finish_session(self, session_id: str, status: SessionStatus, error: str = "") -> None:
        runs = sql_schema.run_sessions
        with self._session_factory() as session:
            updated = session.execute(
                sa.update(runs)
                .where(runs.c.session_id == session_id)
                .where(runs.c.status == SessionStatus.RUNNING.value)
                .values(status=SessionStatus(status).value, error=error, updated_at=self._clock())
            ).rowcount
            session.commit()
        if self._current_id == session_id:
            self._current_id = None
        if updated:
            logger.info("Session %s finished: %s", session_id, SessionStatus(status).value)
        else:
            logger.debug("Session %s not running or missing; status unchanged", session_id)

    def import_session(self, imported: Session) -> str:
        session_id = new_imported_id(self._clock())
        with self._session_factory() as session:
            session.execute(
                sa.insert(sql_schema.run_sessions).values(
                    session_id=session_id,
                    instruction=imported.instruction,
                    status=imported_status(imported).value,
                    error=imported.error,
                    metadata=dict(imported.metadata),
                    created_at=imported.created_at,
                    updated_at=imported.updated_at,
                )
            )
            if imported.results:
                session.execute(
                    sa.insert(sql_schema.session_results),
                    [
                        {
                            "session_id": session_id,
                            "seq": seq,
                            "result_id": r.id,
                            "success": r.success,
                            "error": r.error,
                            "data": r.data,
                            "timestamp": r.timestamp,
                        }
                        for seq, r in enumerate(imported.results)
                    ],
                )
            session.commit()
        logger.info("Imported session %s as %s", imported.id or "?", session_id)
        return session_id

    def prune_older_than(self, duration_ms: int) -> int:
        runs = sql_schema.run_sessions
        rows = sql_schema.session_results
        cutoff = self._clock() - duration_ms
        with self._session_factory() as session:
            stale = [
                r.session_id
                for r in session.execute(
                    sa.select(runs.c.session_id)
                    .where(runs.c.created_at < cutoff)
                    .where(runs.c.status != SessionStatus.RUNNING.value)
                ).all()
            ]
            if stale:
                session.execute(sa.delete(rows).where(rows.c.session_id.in_(stale)))
                session.execute(sa.delete(runs).where(runs.c.session_id.in_(stale)))
            session.commit()
        logger.info("Cleared %d old sessions", len(stale))
        return len(stale)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Session | None:
        runs = sql_schema.run_sessions
        with self._session_factory() as session:
            row = session.execute(sa.select(runs).where(runs.c.session_id == session_id)).first()
            if row is None:
                return None
            return self._to_session(session, dict(row._mapping))

    def current_session(self) -> Session | None:
        if self._current_id is None:
            return None
        return self.get_session(self._current_id)

    def session_history(self, limit: int = DEFAULT_HISTORY_LIMIT) -> list[Session]:
        runs = sql_schema.run_sessions
        stmt = (
            sa.select(runs)
            .where(runs.c.status != SessionStatus.RUNNING.value)
            .order_by(runs.c.created_at.desc(), runs.c.session_id.desc())
            .limit(max(0, limit))
        )
        with self._session_factory() as session:
            rows = session.execute(stmt).all()
            return [self._to_session(session, dict(r._mapping)) for r in rows]

    def summary(self) -> dict[str, int]:
        """Session counts by status plus a total."""
        runs = sql_schema.run_sessions
        counts = {status.value: 0 for status in SessionStatus}
        with self._session_factory() as session:
            for status, count in session.execute(
                sa.select(runs.c.status, sa.func.count()).group_by(runs.c.status)
            ).all():
                counts[status] = count
        counts["total"] = sum(counts.values())
        return counts

    @staticmethod
    def _to_session(session: Any, row: dict[str, Any]) -> Session:
        rows = sql_schema.session_results
        result_rows = session.execute(
            sa.select(rows).where(rows.c.session_id == row["session_id"]).order_by(rows.c.seq)
        ).all()
        results = tuple(
            ActionResult(
                id=r.result_id,
                success=r.success,
                error=r.error,
                data=r.data or {},
                timestamp=r.timestamp,
            )
            for r in result_rows
        )
        return Session(
            id=row["session_id"],
            instruction=row["instruction"],
            results=results,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            status=SessionStatus(row["status"]),
            error=row["error"] or "",
            metadata=row["metadata"] or {},
        )
