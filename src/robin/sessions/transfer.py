"""JSON export and import of recorded sessions.

An exported session is ``Session.to_dict()`` as indented JSON.  Importing
stores a copy under a fresh ``imported-...`` id so it never collides with
the recorder's own sessions.
"""

from __future__ import annotations

import json

from robin.exceptions import SessionTransferError
from robin.models.session import Session
from robin.sessions.recorder import SessionRecorder


def export_session(recorder: SessionRecorder, session_id: str) -> str:
    session = recorder.get_session(session_id)
    if session is None:
        raise SessionTransferError(f"Session not found: {session_id}", details={"session_id": session_id})
    return json.dumps(session.to_dict(), indent=2, default=str)


def import_session(recorder: SessionRecorder, payload: str) -> str:
    """Parse an exported session and store it; return the new id.

    Raises:
        SessionTransferError: If *payload* is not a valid exported session.
    """
    try:
        session = Session.from_dict(json.loads(payload))
    except (ValueError, TypeError) as exc:
        raise SessionTransferError(f"Failed to import session: {exc}") from exc
    return recorder.import_session(session)
