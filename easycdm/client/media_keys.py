"""
EME style consumer API over a CDM.

Mirrors requestMediaKeySystemAccess / MediaKeys / MediaKeySession, except
that messages are returned and queued explicitly instead of dispatched to
event listeners.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from easycdm.common.exceptions import (
    InvalidSession,
    UnsupportedError,
    UnsupportedKeySystem,
)
from easycdm.common.interfaces import PausableCdm

if TYPE_CHECKING:
    from easycdm.common.interfaces import Cdm
    from easycdm.common.models import Key, KeyMessage, SessionType

logger = logging.getLogger(__name__)

WIDEVINE_KEY_SYSTEM = "com.widevine.alpha"
PLAYREADY_KEY_SYSTEM = "com.microsoft.playready.recommendation"
SUPPORTED_KEY_SYSTEMS = frozenset({WIDEVINE_KEY_SYSTEM, PLAYREADY_KEY_SYSTEM})


def request_media_key_system_access(key_system: str, cdm: Cdm) -> MediaKeySystemAccess:
    if key_system not in SUPPORTED_KEY_SYSTEMS:
        msg = f"Unsupported media key system: {key_system}"
        raise UnsupportedKeySystem(msg)
    return MediaKeySystemAccess(key_system, cdm)


class MediaKeySystemAccess:
    def __init__(self, key_system: str, cdm: Cdm) -> None:
        self.key_system = key_system
        self.cdm = cdm

    def create_media_keys(self) -> MediaKeys:
        return MediaKeys(self.cdm)

    def get_configuration(self) -> dict[str, str]:
        return {"keySystem": self.key_system}


class MediaKeys:
    def __init__(self, cdm: Cdm) -> None:
        self.cdm = cdm
        self.server_certificate: bytes | None = None

    def create_session(self, session_type: SessionType = "temporary") -> MediaKeySession:
        session = MediaKeySession(self.cdm, session_type)
        if self.server_certificate is not None:
            session.set_server_certificate(self.server_certificate)
        return session

    def set_server_certificate(self, certificate: bytes) -> bool:
        """Remember a service certificate for every session created afterwards."""
        self.server_certificate = certificate
        return True


class MediaKeySession:
    """
    A single key session driven by one caller.

    generate_request() and update() return the message the license server
    should receive next; the same messages are queued so that
    wait_for_license_request() can pick them up later.
    """

    def __init__(self, cdm: Cdm, session_type: SessionType = "temporary") -> None:
        self.cdm = cdm
        self.session_type: SessionType = session_type
        self.session_id = cdm.create_session(session_type)
        self.keys: list[Key] = []
        self.key_statuses: dict[str, str] = {}
        self.closed = False
        self._messages: deque[KeyMessage] = deque()

    def _check_open(self) -> None:
        if self.closed:
            msg = f"Session {self.session_id} is closed"
            raise InvalidSession(msg, 400)

    def set_server_certificate(self, certificate: bytes) -> None:
        set_certificate = getattr(self.cdm, "set_service_certificate", None)
        if set_certificate is None:
            msg = "This CDM does not accept service certificates"
            raise UnsupportedError(msg)
        set_certificate(self.session_id, certificate)

    def generate_request(self, init_data_type: str, init_data: bytes) -> KeyMessage:
        self._check_open()
        message = self.cdm.generate_request(self.session_id, init_data, init_data_type)
        self._messages.append(message)
        logger.debug("Session %s: %s queued", self.session_id, message.message_type)
        return message

    def next_message(self) -> KeyMessage | None:
        return self._messages.popleft() if self._messages else None

    def wait_for_license_request(self) -> bytes:
        """
        Return the pending license request.

        Raises:
            InvalidSession: nothing was requested yet, or the pending message
                is an individualization request that must be answered first
        """
        for message in list(self._messages):
            if message.message_type == "license-request":
                self._messages.remove(message)
                return message.message
        msg = f"No license request pending for session {self.session_id}"
        raise InvalidSession(msg, 400)

    def update(self, response: bytes) -> KeyMessage | None:
        self._check_open()
        follow_up = self.cdm.update_session(self.session_id, response)
        if follow_up is not None:
            self._messages.append(follow_up)
            return follow_up
        keys = self.cdm.get_keys(self.session_id)
        if keys:
            self.keys = keys
            self.key_statuses = {key.key_id: "usable" for key in keys}
        return None

    def wait_for_key_statuses_change(self) -> list[Key]:
        """Return the recovered keys, failing if the session has none yet."""
        if self.keys:
            return self.keys
        msg = f"No keys available for session {self.session_id}"
        raise InvalidSession(msg, 400)

    def close(self) -> None:
        if self.closed:
            return
        self.cdm.close_session(self.session_id)
        self.closed = True

    def remove(self) -> None:
        self.cdm.remove_session(self.session_id)
        self.keys = []
        self.key_statuses = {}
        self._messages.clear()
        self.closed = True

    def pause(self) -> str:
        if not isinstance(self.cdm, PausableCdm):
            msg = "This CDM cannot pause sessions"
            raise UnsupportedError(msg)
        return self.cdm.pause_session(self.session_id)

    def load(self, state: str) -> bool:
        """Replace this session with one resumed from a paused state."""
        if not isinstance(self.cdm, PausableCdm):
            msg = "This CDM cannot resume sessions"
            raise UnsupportedError(msg)
        previous = self.session_id
        self.session_id = self.cdm.resume_session(state)
        if previous != self.session_id:
            self.cdm.remove_session(previous)
        self.keys = self.cdm.get_keys(self.session_id)
        self.key_statuses = {key.key_id: "usable" for key in self.keys}
        self._messages.clear()
        self.closed = False
        return True
