"""
One-shot license acquisition over HTTP.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import requests

from easycdm.client.media_keys import request_media_key_system_access
from easycdm.common.config import Config
from easycdm.common.exceptions import ServerException
from easycdm.common.pssh import read_init_data

if TYPE_CHECKING:
    from easycdm.common.interfaces import Cdm
    from easycdm.common.models import Key

logger = logging.getLogger(__name__)


def post_message(
    http: requests.Session,
    url: str,
    body: bytes,
    headers: dict[str, str] | None = None,
    timeout: float | None = None,
) -> bytes:
    """POST a CDM message and return the raw answer."""
    try:
        response = http.post(url, data=body, headers=headers or {}, timeout=timeout)
    except requests.RequestException as err:
        msg = f"Request to {url} failed: {err}"
        raise ServerException(msg) from err
    if not response.ok:
        msg = f"{url} answered {response.status_code}: {response.text[:200]}"
        raise ServerException(msg)
    return response.content


def fetch_decryption_keys(  # noqa: PLR0913
    cdm: Cdm,
    pssh: str | bytes,
    server: str,
    headers: dict[str, str] | None = None,
    individualization_server: str | None = None,
    timeout: float | None = None,
    http: requests.Session | None = None,
) -> list[Key]:
    """
    Run one license exchange and return the content keys.

    When the CDM asks for individualization first (Widevine privacy mode),
    the request is answered by individualization_server, or by server when
    none is given, before the license request is sent.
    """
    init_data = read_init_data(pssh)
    timeout = timeout if timeout is not None else Config().REQUEST_TIMEOUT
    http = http or requests.Session()

    access = request_media_key_system_access(cdm.key_system, cdm)
    session = access.create_media_keys().create_session()
    try:
        message = session.generate_request("cenc", init_data)
        if message.message_type == "individualization-request":
            logger.info("Sending individualization request")
            certificate = post_message(
                http,
                individualization_server or server,
                message.message,
                headers,
                timeout,
            )
            session.update(certificate)

        license_request = session.wait_for_license_request()
        logger.info("Sending license request to %s", server)
        response = post_message(http, server, license_request, headers, timeout)
        session.update(response)
        keys = session.wait_for_key_statuses_change()
        logger.info("Recovered %d keys", len(keys))
        return keys
    finally:
        session.close()
