"""
Remote CDM service built on FastAPI.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from easycdm.client.loader import load_client
from easycdm.common import Configurable, setup_logger
from easycdm.common.config import Config

from .routes import SessionRoutes
from .services import SessionService
from .session_manager import SessionManager

if TYPE_CHECKING:
    from easycdm.client.loader import Identity
    from easycdm.common.models import ServerConfig


class CdmServer(Configurable):
    """
    Hosts CDM identities for authorized users over HTTP.

    Every configured client path is loaded once at startup and exposed
    under its file stem; each remote session gets its own CDM instance.
    """

    def __init__(
        self,
        server_config: ServerConfig | None = None,
        config: Config | None = None,
        identities: dict[str, Identity] | None = None,
        **overrides: Any,
    ):
        self.config = config or Config()
        self.apply_overrides(
            overrides,
            self.config,
            ["log_level", "max_sessions_per_secret", "force_privacy_mode"],
        )
        self.logger = logging.getLogger(__name__)
        setup_logger(logging.getLogger("easycdm"), self.log_level)

        self.server_config = server_config or self.config.load_server_config()
        self.server_host = self.server_config.host
        self.server_port = self.server_config.port
        self.identities = (
            identities if identities is not None else self._load_identities()
        )

        self.session_manager = SessionManager(self.max_sessions_per_secret)
        self.service = SessionService(
            self.server_config,
            self.identities,
            self.session_manager,
            force_privacy_mode=self.force_privacy_mode,
        )

        self.app = FastAPI(title="easycdm")
        self._setup_exception_handlers()
        SessionRoutes(self.service).setup_routes(self.app)

        self.logger.info(
            "Serving %d clients for %d users",
            len(self.identities),
            len(self.server_config.users),
        )

    def _load_identities(self) -> dict[str, Identity]:
        identities: dict[str, Identity] = {}
        for path in self.server_config.clients:
            name = Path(path).stem
            identities[name] = load_client(Path(path))
            self.logger.info("Loaded client %s from %s", name, path)
        return identities

    def _setup_exception_handlers(self) -> None:
        """Report every error as {"error": message}."""

        async def http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
            return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)

        async def validation_error(
            _: Request, exc: RequestValidationError
        ) -> JSONResponse:
            errors = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            )
            return JSONResponse({"error": errors}, status_code=400)

        self.app.add_exception_handler(StarletteHTTPException, http_error)
        self.app.add_exception_handler(RequestValidationError, validation_error)
