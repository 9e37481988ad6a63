"""
PlayReady content decryption module.
"""

from __future__ import annotations

import logging

from easycdm.common.exceptions import InvalidSession, TooManySessions
from easycdm.common.models import Key, KeyMessage, SessionType
from easycdm.playready.device import Device
from easycdm.playready.session import DEFAULT_CLIENT_VERSION, Session

logger = logging.getLogger(__name__)

KEY_SYSTEM = "com.microsoft.playready.recommendation"


class PlayReadyCdm:
    """Manages PlayReady sessions for one device."""

    key_system = KEY_SYSTEM
    MAX_NUM_OF_SESSIONS = 16

    def __init__(self, device: Device, client_version: str = DEFAULT_CLIENT_VERSION) -> None:
        self.device = device
        self.client_version = client_version
        self.sessions: dict[str, Session] = {}
        self._removed: set[str] = set()

    def _session(self, session_id: str) -> Session:
        session = self.sessions.get(session_id)
        if session is None:
            msg = f"Session {session_id} not found"
            raise InvalidSession(msg)
        return session

    def _register(self, session: Session) -> str:
        open_sessions = sum(not s.closed for s in self.sessions.values())
        if open_sessions >= self.MAX_NUM_OF_SESSIONS:
            msg = f"Too many sessions open ({self.MAX_NUM_OF_SESSIONS})"
            raise TooManySessions(msg)
        self.sessions[session.session_id] = session
        return session.session_id

    def create_session(self, session_type: SessionType = "temporary") -> str:
        return self._register(Session(self.device, session_type, self.client_version))

    def generate_request(
        self, session_id: str, init_data: bytes, init_data_type: str = "cenc"
    ) -> KeyMessage:
        return self._session(session_id).generate_request(init_data_type, init_data)

    def update_session(self, session_id: str, response: bytes) -> KeyMessage | None:
        return self._session(session_id).update(response)

    def get_keys(self, session_id: str) -> list[Key]:
        return list(self._session(session_id).keys)

    def close_session(self, session_id: str) -> None:
        if session_id in self._removed:
            return
        self._session(session_id).close()

    def remove_session(self, session_id: str) -> None:
        if session_id in self._removed:
            return
        self._session(session_id).remove()
        del self.sessions[session_id]
        self._removed.add(session_id)

    def pause_session(self, session_id: str) -> str:
        return self._session(session_id).pause()

    def resume_session(self, state: str) -> str:
        session = Session.resume(state, self.device, self.client_version)
        self._removed.discard(session.session_id)
        logger.debug("Resumed session %s", session.session_id)
        return self._register(session)
