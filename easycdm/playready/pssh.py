"""
PlayReady init data parsing.

Init data may be a bare UTF-16LE WRM header, a PlayReady Object (a list
of typed records), a single record, or a PSSH box carrying any of those.
"""

from __future__ import annotations

import base64

from construct import Array, Bytes, Int16ul, Int32ul, Struct, this

from easycdm.common.codec import decode_prefix, encode
from easycdm.common.exceptions import InvalidInitData, MalformedInputError
from easycdm.common.pssh import find_box_data, is_box, read_init_data, wrap

PLAYREADY_SYSTEM_ID = bytes.fromhex("9a04f07998404286ab92e65be0885f95")

WRM_HEADER_RECORD = 1
MAX_RECORD_TYPE = 3

PlayReadyRecord = Struct(
    "type" / Int16ul,
    "length" / Int16ul,
    "data" / Bytes(this.length),
)

PlayReadyObject = Struct(
    "length" / Int32ul,
    "record_count" / Int16ul,
    "records" / Array(this.record_count, PlayReadyRecord),
)


def decode_wrm_header(data: bytes) -> str | None:
    """Return the text of a UTF-16LE WRM header, or None if data is not one."""
    try:
        text = data.decode("utf-16-le").lstrip("\ufeff").rstrip("\x00")
    except UnicodeDecodeError:
        return None
    if not text.startswith("<WRMHEADER"):
        return None
    return text


def _records(data: bytes) -> list:
    # A PlayReady Object starts with its u32 length; a lone record with its type.
    try:
        if int.from_bytes(data[:2], "little") > MAX_RECORD_TYPE:
            return decode_prefix(PlayReadyObject, data)[0].records
        return [decode_prefix(PlayReadyRecord, data)[0]]
    except MalformedInputError as err:
        msg = "Malformed PlayReady Object in init data"
        raise InvalidInitData(msg) from err


def _wrm_headers(data: bytes) -> list[str]:
    text = decode_wrm_header(data)
    if text is not None:
        return [text]
    headers = []
    for record in _records(data):
        if record.type != WRM_HEADER_RECORD:
            continue
        text = decode_wrm_header(record.data)
        if text is not None:
            headers.append(text)
    return headers


def build_object(wrm_header: str) -> bytes:
    """Pack a WRM header into a single record PlayReady Object."""
    data = wrm_header.encode("utf-16-le")
    return encode(
        PlayReadyObject,
        {
            "length": 6 + 4 + len(data),
            "record_count": 1,
            "records": [{"type": WRM_HEADER_RECORD, "length": len(data), "data": data}],
        },
    )


class PSSH:
    """WRM headers found in PlayReady init data."""

    def __init__(self, init_data: bytes | str) -> None:
        data = read_init_data(init_data)
        if is_box(data):
            payloads = find_box_data(data, PLAYREADY_SYSTEM_ID)
        else:
            payloads = [data]

        self.wrm_headers: list[str] = []
        for payload in payloads:
            self.wrm_headers.extend(_wrm_headers(payload))
        if not self.wrm_headers:
            msg = "No PlayReady WRM header found in init data"
            raise InvalidInitData(msg)

    def box(self) -> bytes:
        return wrap(build_object(self.wrm_headers[0]), PLAYREADY_SYSTEM_ID)

    def __str__(self) -> str:
        return base64.b64encode(self.box()).decode()
