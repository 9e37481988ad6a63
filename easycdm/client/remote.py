"""
CDM proxy for a remote easycdm service.
"""

from __future__ import annotations

import base64
import logging
from typing import Any

import requests

from easycdm.common.config import Config
from easycdm.common.exceptions import RemoteCdmError
from easycdm.common.models import (
    CreateSessionResponse,
    Key,
    KeyMessage,
    LicenseRequestResponse,
    SessionType,
    UpdateResponse,
)

logger = logging.getLogger(__name__)

HTTP_OK_MIN = 200
HTTP_OK_MAX = 299


class RemoteCdm:
    """
    Implements the Cdm capability over the remote CDM HTTP protocol.

    http may be any requests-compatible client; the service's test client
    works as well as a requests.Session.
    """

    def __init__(  # noqa: PLR0913
        self,
        base_url: str,
        secret: str,
        client: str | None = None,
        key_system: str = "com.widevine.alpha",
        http: Any = None,
        timeout: float | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.secret = secret
        self.client = client
        self.key_system = key_system
        self.http = http or requests.Session()
        self.timeout = timeout if timeout is not None else Config().REQUEST_TIMEOUT

    def _request(self, method: str, route: str, body: dict | None = None) -> Any:
        url = f"{self.base_url}{route}"
        kwargs: dict[str, Any] = {
            "headers": {"x-secret-key": self.secret},
            "timeout": self.timeout,
        }
        if body is not None:
            kwargs["json"] = body
        try:
            response = self.http.request(method, url, **kwargs)
        except requests.RequestException as err:
            msg = f"Remote CDM request {method} {route} failed: {err}"
            raise RemoteCdmError(msg, 502) from err

        if not HTTP_OK_MIN <= response.status_code <= HTTP_OK_MAX:
            try:
                error = response.json().get("error", response.text)
            except ValueError:
                error = response.text
            msg = f"Remote CDM error on {method} {route}: {error}"
            raise RemoteCdmError(msg, response.status_code)
        if not response.content:
            return None
        return response.json()

    def create_session(self, session_type: SessionType = "temporary") -> str:
        data = self._request(
            "POST", "/sessions", {"sessionType": session_type, "client": self.client}
        )
        return CreateSessionResponse.model_validate(data).id

    def generate_request(
        self, session_id: str, init_data: bytes, init_data_type: str = "cenc"
    ) -> KeyMessage:
        data = self._request(
            "POST",
            f"/sessions/{session_id}/generate-request",
            {
                "initDataType": init_data_type,
                "initData": base64.b64encode(init_data).decode(),
            },
        )
        result = LicenseRequestResponse.model_validate(data)
        return KeyMessage(
            message_type=result.message_type,
            message=base64.b64decode(result.license_request),
        )

    def update_session(self, session_id: str, response: bytes) -> KeyMessage | None:
        data = self._request(
            "POST",
            f"/sessions/{session_id}/update",
            {"response": base64.b64encode(response).decode()},
        )
        if not data:
            return None
        result = UpdateResponse.model_validate(data)
        if result.license_request is None:
            return None
        return KeyMessage(
            message_type=result.message_type or "license-request",
            message=base64.b64decode(result.license_request),
        )

    def get_keys(self, session_id: str) -> list[Key]:
        data = self._request("GET", f"/sessions/{session_id}/keys")
        return [Key.model_validate(item) for item in data or []]

    def close_session(self, session_id: str) -> None:
        self._request("POST", f"/sessions/{session_id}/close")

    def remove_session(self, session_id: str) -> None:
        self._request("DELETE", f"/sessions/{session_id}")
