"""SQLAlchemy table definitions for persisted run sessions.

Timestamps are epoch milliseconds, matching ``ActionResult.timestamp`` and
``Session.created_at``.  Result rows keep the full ``data`` map as JSON so
unknown keys survive a round trip.
"""

from __future__ import annotations

from pathlib import Path

import sqlalchemy as sa
from sqlalchemy.orm import sessionmaker

METADATA = sa.MetaData()

# ---------------------------------------------------------------------------
# run_sessions: one row per engine run
# ---------------------------------------------------------------------------

run_sessions = sa.Table(
    "run_sessions",
    METADATA,
    sa.Column("session_id", sa.String(length=64), primary_key=True),
    sa.Column("instruction", sa.Text(), nullable=False),
    sa.Column("status", sa.Text(), nullable=False, server_default="running"),
    sa.Column("error", sa.Text(), nullable=False, server_default=""),
    sa.Column("metadata", sa.JSON(), nullable=True),
    sa.Column("created_at", sa.BigInteger(), nullable=False),
    sa.Column("updated_at", sa.BigInteger(), nullable=False),
)
sa.Index("idx_run_sessions_status", run_sessions.c.status)
sa.Index("idx_run_sessions_created_at", run_sessions.c.created_at)

# ---------------------------------------------------------------------------
# session_results: ordered, append-only result log per session
# ---------------------------------------------------------------------------

session_results = sa.Table(
    "session_results",
    METADATA,
    sa.Column("row_id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column(
        "session_id",
        sa.String(length=64),
        sa.ForeignKey("run_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
    ),
    sa.Column("seq", sa.Integer(), nullable=False),
    sa.Column("result_id", sa.Text(), nullable=False),
    sa.Column("success", sa.Boolean(), nullable=False),
    sa.Column("error", sa.Text(), nullable=True),
    sa.Column("data", sa.JSON(), nullable=True),
    sa.Column("timestamp", sa.BigInteger(), nullable=False),
)
sa.Index("idx_session_results_session_seq", session_results.c.session_id, session_results.c.seq)


# ---------------------------------------------------------------------------
# Engine / session helpers
# ---------------------------------------------------------------------------


def build_engine(*, db_path: str | Path | None = None, echo: bool = False) -> sa.Engine:
    """Create a SQLite engine at *db_path* (default: ``sessions.sqlite_path``)."""
    if db_path is None:
        from robin.settings import get_settings

        db_path = get_settings().sessions.sqlite_path

    resolved = Path(db_path)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    url = f"sqlite:///{resolved.as_posix()}"
    return sa.create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        connect_args={"check_same_thread": False, "timeout": 30},
    )


def build_session_factory(*, db_path: str | Path | None = None) -> sessionmaker:
    """Return a ``sessionmaker`` bound to the session database."""
    engine = build_engine(db_path=db_path)
    return sessionmaker(bind=engine, autoflush=False)
