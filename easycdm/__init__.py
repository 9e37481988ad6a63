# easycdm: EME style Widevine and PlayReady CDM

from easycdm.client import (
    RemoteCdm,
    create_cdm,
    fetch_decryption_keys,
    load_client,
    request_media_key_system_access,
)
from easycdm.common.models import Key, KeyMessage
from easycdm.playready import PlayReadyCdm
from easycdm.widevine import WidevineCdm

__all__ = [
    "Key",
    "KeyMessage",
    "PlayReadyCdm",
    "RemoteCdm",
    "WidevineCdm",
    "create_cdm",
    "fetch_decryption_keys",
    "load_client",
    "request_media_key_system_access",
]
