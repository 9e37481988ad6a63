"""
Protection system specific header (PSSH) boxes shared by every scheme.
"""

from __future__ import annotations

import base64
import binascii
from typing import TYPE_CHECKING

from construct import (
    Bytes,
    Const,
    GreedyBytes,
    If,
    Int8ub,
    Int24ub,
    Int32ub,
    Prefixed,
    PrefixedArray,
    Struct,
    this,
)

from easycdm.common.codec import decode_prefix, encode
from easycdm.common.exceptions import InvalidInitData, MalformedInputError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from construct import Container

PsshBox = Struct(
    "size" / Int32ub,
    "box_type" / Const(b"pssh"),
    "version" / Int8ub,
    "flags" / Int24ub,
    "system_id" / Bytes(16),
    "key_ids" / If(this.version == 1, PrefixedArray(Int32ub, Bytes(16))),
    "init_data" / Prefixed(Int32ub, GreedyBytes),
)

BOX_HEADER_SIZE = 32


def read_init_data(init_data: bytes | str) -> bytes:
    """Accept init data as raw bytes or base64 text."""
    if isinstance(init_data, str):
        try:
            init_data = base64.b64decode(init_data, validate=True)
        except binascii.Error as err:
            msg = "Init data is not valid base64"
            raise InvalidInitData(msg) from err
    if not init_data:
        msg = "Init data is empty"
        raise InvalidInitData(msg)
    return init_data


def is_box(data: bytes) -> bool:
    return data[4:8] == b"pssh"


def iter_boxes(data: bytes) -> Iterator[Container]:
    """Yield every PSSH box in a concatenation of boxes."""
    offset = 0
    while offset < len(data):
        try:
            box, _ = decode_prefix(PsshBox, data[offset:])
        except MalformedInputError as err:
            msg = f"Malformed PSSH box at offset {offset}"
            raise InvalidInitData(msg) from err
        if box.size < BOX_HEADER_SIZE:
            msg = f"PSSH box at offset {offset} declares size {box.size}"
            raise InvalidInitData(msg)
        yield box
        offset += box.size


def find_box_data(data: bytes, system_id: bytes) -> list[bytes]:
    """Payloads of every box in data that belongs to system_id."""
    return [box.init_data for box in iter_boxes(data) if box.system_id == system_id]


def wrap(data: bytes, system_id: bytes) -> bytes:
    """Wrap bare header data in a version 0 PSSH box."""
    return encode(
        PsshBox,
        {
            "size": BOX_HEADER_SIZE + len(data),
            "version": 0,
            "flags": 0,
            "system_id": system_id,
            "key_ids": None,
            "init_data": data,
        },
    )
