# File: quiz_session/services/session_registry.py
"""
Live Session Registry
=====================
Keeps in-memory ``QuizSession`` objects alive between HTTP calls.

Sessions are never written to the database while running; only the final
results are persisted. Abandoned sessions are dropped immediately and
finished ones are pruned after a retention period.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from quizhub_app.core.error_handlers import NotFoundError
from quizhub_app.utils.time_utils import utcnow

from ..schemas import SessionStatus


class SessionRegistry:
    """Thread-safe map of ``session_id`` to live ``QuizSession``."""

    def __init__(self):
        self._sessions: Dict[str, object] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id) -> bool:
        return session_id in self._sessions

    def add(self, session) -> None:
        with self._lock:
            self._sessions[session.session_id] = session

    def get(self, session_id: str):
        """
        Return a live session.

        Raises:
            NotFoundError: unknown, abandoned or pruned session.
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f'Quiz session {session_id} not found', resource='quiz_session')
        return session

    def discard(self, session_id: str) -> Optional[object]:
        with self._lock:
            return self._sessions.pop(session_id, None)

    def expired(self, now: Optional[datetime] = None) -> List[object]:
        """Running timed sessions whose deadline has passed."""
        now = now or utcnow()
        with self._lock:
            return [
                session for session in self._sessions.values()
                if session.status is SessionStatus.IN_PROGRESS
                and session.deadline is not None
                and session.deadline <= now
            ]

    def prune(self, retention_seconds: int, now: Optional[datetime] = None) -> int:
        """Drop sessions that ended more than ``retention_seconds`` ago."""
        cutoff = (now or utcnow()) - timedelta(seconds=retention_seconds)
        with self._lock:
            stale = [
                session_id for session_id, session in self._sessions.items()
                if session.status in (SessionStatus.EMPTY, SessionStatus.ABANDONED)
                or (session.finalized_at is not None and session.finalized_at <= cutoff)
            ]
            for session_id in stale:
                del self._sessions[session_id]
        return len(stale)
