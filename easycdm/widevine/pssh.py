"""
Widevine init data (PSSH) parsing.
"""

from __future__ import annotations

import base64

from google.protobuf.message import DecodeError

from easycdm.common.exceptions import InvalidInitData
from easycdm.common.pssh import find_box_data, is_box, read_init_data, wrap
from easycdm.widevine.proto import WidevinePsshData

WIDEVINE_SYSTEM_ID = bytes.fromhex("edef8ba979d64acea3c827dcd51d21ed")


class PSSH:
    """Widevine header found in init data, bare or box-wrapped."""

    def __init__(self, init_data: bytes | str) -> None:
        data = read_init_data(init_data)
        if not is_box(data):
            data = wrap(data, WIDEVINE_SYSTEM_ID)
        payloads = find_box_data(data, WIDEVINE_SYSTEM_ID)
        if not payloads:
            msg = "No Widevine PSSH box found in init data"
            raise InvalidInitData(msg)
        self.init_data: bytes = payloads[0]

        self.data = WidevinePsshData()
        try:
            self.data.ParseFromString(self.init_data)
        except DecodeError as err:
            msg = "Unable to parse Widevine PSSH data"
            raise InvalidInitData(msg) from err

    @property
    def key_ids(self) -> list[bytes]:
        return list(self.data.key_ids)

    def dumps(self) -> bytes:
        """The Widevine header payload as it appeared in the box."""
        return self.init_data

    def box(self) -> bytes:
        return wrap(self.init_data, WIDEVINE_SYSTEM_ID)

    def __str__(self) -> str:
        return base64.b64encode(self.box()).decode()
