"""
Routes for the remote CDM service.
"""

from typing import Any

from fastapi import FastAPI, Header, HTTPException

from easycdm.common.exceptions import CdmError
from easycdm.common.models import (
    CreateSessionRequest,
    CreateSessionResponse,
    GenerateRequestRequest,
    LicenseRequestResponse,
    UpdateRequest,
    UpdateResponse,
)

from .services import SessionService


class SessionRoutes:
    """Handles FastAPI routes for the remote CDM service."""

    def __init__(self, service: SessionService):
        self.service = service

    def setup_routes(self, app: FastAPI) -> None:
        """Setup API routes on the FastAPI app."""

        app.get("/health")(self.health)
        app.post("/sessions")(self.create_session)
        app.post("/sessions/{session_id}/generate-request")(self.generate_request)
        app.post("/sessions/{session_id}/update")(self.update)
        app.get("/sessions/{session_id}/keys")(self.get_keys)
        app.post("/sessions/{session_id}/close")(self.close)
        app.delete("/sessions/{session_id}")(self.remove)

    def health(self) -> dict[str, Any]:
        """Handle /health endpoint."""
        return self.service.health()

    def create_session(
        self,
        req: CreateSessionRequest,
        x_secret_key: str | None = Header(default=None),
    ) -> CreateSessionResponse:
        """Handle POST /sessions."""
        try:
            return self.service.create_session(x_secret_key, req)
        except CdmError as e:
            raise HTTPException(e.status_code, str(e))

    def generate_request(
        self,
        session_id: str,
        req: GenerateRequestRequest,
        x_secret_key: str | None = Header(default=None),
    ) -> LicenseRequestResponse:
        """Handle POST /sessions/{id}/generate-request."""
        try:
            return self.service.generate_request(x_secret_key, session_id, req)
        except CdmError as e:
            raise HTTPException(e.status_code, str(e))

    def update(
        self,
        session_id: str,
        req: UpdateRequest,
        x_secret_key: str | None = Header(default=None),
    ) -> UpdateResponse:
        """Handle POST /sessions/{id}/update."""
        try:
            return self.service.update(x_secret_key, session_id, req)
        except CdmError as e:
            raise HTTPException(e.status_code, str(e))

    def get_keys(
        self, session_id: str, x_secret_key: str | None = Header(default=None)
    ) -> list[dict]:
        """Handle GET /sessions/{id}/keys."""
        try:
            return self.service.get_keys(x_secret_key, session_id)
        except CdmError as e:
            raise HTTPException(e.status_code, str(e))

    def close(
        self, session_id: str, x_secret_key: str | None = Header(default=None)
    ) -> dict[str, str]:
        """Handle POST /sessions/{id}/close."""
        try:
            return self.service.close(x_secret_key, session_id)
        except CdmError as e:
            raise HTTPException(e.status_code, str(e))

    def remove(
        self, session_id: str, x_secret_key: str | None = Header(default=None)
    ) -> dict[str, str]:
        """Handle DELETE /sessions/{id}."""
        try:
            return self.service.remove(x_secret_key, session_id)
        except CdmError as e:
            raise HTTPException(e.status_code, str(e))
