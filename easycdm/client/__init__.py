from easycdm.client.license import fetch_decryption_keys
from easycdm.client.loader import create_cdm, load_client
from easycdm.client.media_keys import (
    MediaKeys,
    MediaKeySession,
    MediaKeySystemAccess,
    request_media_key_system_access,
)
from easycdm.client.remote import RemoteCdm

__all__ = [
    "MediaKeySession",
    "MediaKeySystemAccess",
    "MediaKeys",
    "RemoteCdm",
    "create_cdm",
    "fetch_decryption_keys",
    "load_client",
    "request_media_key_system_access",
]
