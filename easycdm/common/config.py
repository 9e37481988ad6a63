"""
Configuration settings for the CDM engine and the remote CDM service.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from easycdm.common.exceptions import CdmError
from easycdm.common.models import ServerConfig


class Config:
    """Central configuration class for all system settings."""

    def __init__(self) -> None:
        # Server settings
        self.SERVER_HOST: str = os.getenv("EASYCDM_SERVER_HOST", "127.0.0.1")
        self.SERVER_PORT: int = int(os.getenv("EASYCDM_SERVER_PORT", "4000"))
        self.SERVER_URL: str = f"http://{self.SERVER_HOST}:{self.SERVER_PORT}"
        self.CONFIG_PATH: Path = Path(
            os.getenv("EASYCDM_CONFIG", "easycdm.config.json")
        )
        self.MAX_SESSIONS_PER_SECRET: int = 16

        # License acquisition
        self.REQUEST_TIMEOUT: float = float(os.getenv("EASYCDM_REQUEST_TIMEOUT", "30"))
        self.FORCE_PRIVACY_MODE: bool = os.getenv(
            "EASYCDM_FORCE_PRIVACY_MODE", ""
        ).lower() in ("1", "true", "yes")
        self.PLAYREADY_CLIENT_VERSION: str = "10.0.16384.10011"

        # Logging
        level_name = os.getenv("EASYCDM_LOG_LEVEL", "INFO").upper()
        self.LOG_LEVEL: int = logging.getLevelName(level_name)
        if not isinstance(self.LOG_LEVEL, int):
            self.LOG_LEVEL = logging.INFO

    def load_server_config(self, path: Path | None = None) -> ServerConfig:
        """
        Load the remote CDM service configuration.

        A missing file yields the defaults (host and port from the
        environment, no clients and no users).
        """
        path = path or self.CONFIG_PATH
        defaults = {"host": self.SERVER_HOST, "port": self.SERVER_PORT}
        if not path.exists():
            return ServerConfig(**defaults)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return ServerConfig.model_validate({**defaults, **data})
        except (json.JSONDecodeError, ValidationError) as err:
            msg = f"Invalid server configuration in {path}: {err}"
            raise CdmError(msg) from err
