"""
Session registry for the remote CDM service.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from easycdm.common.exceptions import InvalidSession, TooManySessions

if TYPE_CHECKING:
    from easycdm.common.interfaces import Cdm


@dataclass
class ManagedSession:
    """A CDM session owned by one secret."""

    secret: str
    session_id: str
    client: str
    cdm: Cdm


class SessionManager:
    """Thread-safe map of "secret:session_id" to live CDM sessions."""

    def __init__(self, max_sessions_per_secret: int) -> None:
        self.max_sessions_per_secret = max_sessions_per_secret
        self.sessions: dict[str, ManagedSession] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(secret: str, session_id: str) -> str:
        return f"{secret}:{session_id}"

    def count(self, secret: str) -> int:
        """Number of sessions held by a secret."""
        with self._lock:
            return sum(1 for s in self.sessions.values() if s.secret == secret)

    def add_session(self, session: ManagedSession) -> None:
        with self._lock:
            held = sum(1 for s in self.sessions.values() if s.secret == session.secret)
            if held >= self.max_sessions_per_secret:
                msg = f"At most {self.max_sessions_per_secret} sessions per user"
                raise TooManySessions(msg)
            self.sessions[self._key(session.secret, session.session_id)] = session

    def get_session(self, secret: str, session_id: str) -> ManagedSession:
        with self._lock:
            session = self.sessions.get(self._key(secret, session_id))
        if session is None:
            msg = f"Session {session_id} not found"
            raise InvalidSession(msg)
        return session

    def remove_session(self, secret: str, session_id: str) -> ManagedSession:
        with self._lock:
            session = self.sessions.pop(self._key(secret, session_id), None)
        if session is None:
            msg = f"Session {session_id} not found"
            raise InvalidSession(msg)
        return session
