"""Session recorders: per-run append-only result logs.

``build_session_recorder`` honours ``sessions.backend`` (``memory`` or
``sqlite``) from settings.
"""

from __future__ import annotations

from pathlib import Path

from robin.sessions.recorder import InMemorySessionRecorder, SessionRecorder
from robin.sessions.transfer import export_session, import_session


def build_session_recorder(backend: str | None = None, db_path: str | Path | None = None) -> SessionRecorder:
    """Factory: return the recorder configured in settings.

    Args:
        backend: Override ``sessions.backend``.
        db_path: Override ``sessions.sqlite_path`` for the SQLite backend.

    Raises:
        ValueError: If the backend name is not recognized.
    """
    from robin.settings import get_settings

    name = (backend or get_settings().sessions.backend).lower().strip()
    if name == "memory":
        return InMemorySessionRecorder()
    if name == "sqlite":
        from robin.sessions.sql_recorder import SqlSessionRecorder

        return SqlSessionRecorder(db_path=db_path)
    raise ValueError(f"Unknown session backend: {name!r}. Supported: memory, sqlite")

__all__ = [
    "InMemorySessionRecorder",
    "SessionRecorder",
    "build_session_recorder",
    "export_session",
    "import_session",
]
