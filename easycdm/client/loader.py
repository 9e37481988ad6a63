"""
Loading client identities and picking the matching CDM.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

from easycdm.common.exceptions import InvalidDevice, UnsupportedKeySystem
from easycdm.common.interfaces import Cdm
from easycdm.playready.cdm import PlayReadyCdm
from easycdm.playready.device import PRD_MAGIC, Device
from easycdm.widevine.cdm import WidevineCdm
from easycdm.widevine.device import WidevineClient

logger = logging.getLogger(__name__)

Identity = Union[WidevineClient, Device]


def _find(directory: Path, pattern: str) -> Path | None:
    return next(iter(sorted(directory.glob(pattern))), None)


def load_client(path: Path | str) -> Identity:
    """
    Load a client identity.

    Accepts a .wvd or .prd file, or a directory holding one of them or an
    unpacked Widevine client (a *client_id* blob and a *private_key* PEM).
    """
    path = Path(path)
    if path.is_dir():
        client_id = _find(path, "*client_id*")
        private_key = _find(path, "*private_key*")
        if client_id is not None and private_key is not None:
            logger.debug("Loading unpacked client from %s", path)
            return WidevineClient.from_unpacked(
                client_id.read_bytes(), private_key.read_bytes()
            )
        packed = _find(path, "*.wvd") or _find(path, "*.prd")
        if packed is None:
            msg = f"Unable to find client files in {path}"
            raise InvalidDevice(msg)
        path = packed

    if not path.is_file():
        msg = f"Client file {path} does not exist"
        raise InvalidDevice(msg)
    data = path.read_bytes()
    if data.startswith(PRD_MAGIC):
        return Device.loads(data)
    return WidevineClient.loads(data)


def create_cdm(identity: Identity, privacy_mode: bool = False) -> Cdm:  # noqa: FBT001, FBT002
    """Pick the CDM implementation for an identity."""
    if isinstance(identity, WidevineClient):
        return WidevineCdm(identity, privacy_mode=privacy_mode)
    if isinstance(identity, Device):
        return PlayReadyCdm(identity)
    msg = f"No CDM for identity of type {type(identity).__name__}"
    raise UnsupportedKeySystem(msg)
