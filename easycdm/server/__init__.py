"""
Entry point for the remote CDM service.
"""

import logging

import uvicorn

from easycdm.common import setup_logger
from easycdm.common.config import Config
from easycdm.common.models import ServerConfig

from .core import CdmServer


def start_server(
    server_config: ServerConfig | None = None, config: Config | None = None
) -> None:
    """Start the remote CDM service."""
    if config is None:
        config = Config()
    setup_logger(logging.getLogger("easycdm"), config.LOG_LEVEL)
    server = CdmServer(server_config, config=config)
    uvicorn.run(server.app, host=server.server_host, port=server.server_port)


__all__ = ["CdmServer", "start_server"]
