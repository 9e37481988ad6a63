"""
Widevine content decryption module.
"""

from __future__ import annotations

import logging

from easycdm.common.exceptions import InvalidSession, TooManySessions
from easycdm.common.models import Key, KeyMessage, SessionType
from easycdm.widevine.device import WidevineClient
from easycdm.widevine.session import Session

logger = logging.getLogger(__name__)

KEY_SYSTEM = "com.widevine.alpha"


class WidevineCdm:
    """Manages Widevine sessions for one client identity."""

    key_system = KEY_SYSTEM
    MAX_NUM_OF_SESSIONS = 16

    def __init__(
        self,
        client: WidevineClient,
        privacy_mode: bool = False,  # noqa: FBT001, FBT002
    ) -> None:
        self.client = client
        self.privacy_mode = privacy_mode
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
        return self._register(Session(self.client, session_type, self.privacy_mode))

    def generate_request(
        self, session_id: str, init_data: bytes, init_data_type: str = "cenc"
    ) -> KeyMessage:
        return self._session(session_id).generate_request(init_data_type, init_data)

    def update_session(self, session_id: str, response: bytes) -> KeyMessage | None:
        return self._session(session_id).update(response)

    def set_service_certificate(self, session_id: str, certificate: bytes | str) -> str:
        return self._session(session_id).set_service_certificate(certificate)

    def get_keys(self, session_id: str) -> list[Key]:
        return list(self._session(session_id).keys.values())

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
        """Restore a paused session into this CDM and return its id."""
        session = Session.resume(state, self.client, self.privacy_mode)
        self._removed.discard(session.session_id)
        logger.debug("Resumed session %s", session.session_id)
        return self._register(session)
