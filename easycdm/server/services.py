"""Business logic for the remote CDM service.
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
from typing import TYPE_CHECKING, Any

from easycdm.client.loader import create_cdm
from easycdm.common.exceptions import (
    AccessDenied,
    InvalidInitData,
    InvalidLicenseMessage,
    MalformedInputError,
)
from easycdm.common.models import (
    CreateSessionRequest,
    CreateSessionResponse,
    GenerateRequestRequest,
    LicenseRequestResponse,
    UpdateRequest,
    UpdateResponse,
)
from easycdm.server.session_manager import ManagedSession, SessionManager

if TYPE_CHECKING:
    from easycdm.client.loader import Identity
    from easycdm.common.models import ServerConfig, UserConfig

logger = logging.getLogger(__name__)


def _b64decode(value: str, error: type[MalformedInputError], what: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as err:
        msg = f"{what} is not valid base64"
        raise error(msg) from err


class SessionService:
    """Authorizes callers and drives their CDM sessions."""

    def __init__(
        self,
        server_config: ServerConfig,
        identities: dict[str, Identity],
        session_manager: SessionManager,
        force_privacy_mode: bool = False,  # noqa: FBT001, FBT002
    ) -> None:
        self.server_config = server_config
        self.identities = identities
        self.session_manager = session_manager
        self.privacy_mode = force_privacy_mode or server_config.force_privacy_mode

    def health(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": int(time.time()),
            "clients": sorted(self.identities),
        }

    def _user(self, secret: str | None) -> UserConfig:
        user = self.server_config.users.get(secret) if secret else None
        if user is None:
            msg = "Missing or unknown secret key"
            raise AccessDenied(msg)
        return user

    def authorize(self, secret: str | None, client: str | None) -> str:
        """Return the client name the secret may use, defaulting to its first."""
        user = self._user(secret)
        name = client or next(iter(user.clients), None)
        if name is None or name not in user.clients or name not in self.identities:
            msg = "Client is not found or you are not authorized to use it."
            raise AccessDenied(msg)
        return name

    def create_session(
        self, secret: str | None, req: CreateSessionRequest
    ) -> CreateSessionResponse:
        name = self.authorize(secret, req.client)
        cdm = create_cdm(self.identities[name], privacy_mode=self.privacy_mode)
        session_id = cdm.create_session(req.session_type)
        self.session_manager.add_session(
            ManagedSession(secret=secret, session_id=session_id, client=name, cdm=cdm)
        )
        logger.info("Session %s created on client %s", session_id, name)
        return CreateSessionResponse(id=session_id)

    def _session(self, secret: str | None, session_id: str) -> ManagedSession:
        self._user(secret)
        return self.session_manager.get_session(secret, session_id)

    def generate_request(
        self, secret: str | None, session_id: str, req: GenerateRequestRequest
    ) -> LicenseRequestResponse:
        session = self._session(secret, session_id)
        init_data = _b64decode(req.init_data, InvalidInitData, "initData")
        message = session.cdm.generate_request(session_id, init_data, req.init_data_type)
        return LicenseRequestResponse(
            license_request=base64.b64encode(message.message).decode(),
            message_type=message.message_type,
        )

    def update(
        self, secret: str | None, session_id: str, req: UpdateRequest
    ) -> UpdateResponse:
        session = self._session(secret, session_id)
        response = _b64decode(req.response, InvalidLicenseMessage, "response")
        follow_up = session.cdm.update_session(session_id, response)
        if follow_up is None:
            return UpdateResponse()
        return UpdateResponse(
            license_request=base64.b64encode(follow_up.message).decode(),
            message_type=follow_up.message_type,
        )

    def get_keys(self, secret: str | None, session_id: str) -> list[dict]:
        session = self._session(secret, session_id)
        return [key.to_json() for key in session.cdm.get_keys(session_id)]

    def close(self, secret: str | None, session_id: str) -> dict[str, str]:
        session = self._session(secret, session_id)
        session.cdm.close_session(session_id)
        return {"id": session_id}

    def remove(self, secret: str | None, session_id: str) -> dict[str, str]:
        self._session(secret, session_id)
        session = self.session_manager.remove_session(secret, session_id)
        session.cdm.remove_session(session_id)
        logger.info("Session %s removed", session_id)
        return {"id": session_id}
