"""
Binary structure codec helpers.

Structures are declared with construct; this module is the single place
where construct failures become engine exceptions, so callers only ever
see ConstantMismatch, InsufficientData or MalformedInputError.
"""

from __future__ import annotations

import io
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from construct import ConstError, ConstructError, StreamError

from easycdm.common.exceptions import (
    ConstantMismatch,
    InsufficientData,
    MalformedInputError,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from construct import Construct


def padded_length(length: int) -> int:
    """Round a string length up to the next 4-byte boundary."""
    return (length + 3) & 0xFFFFFFFC


@contextmanager
def _decoding() -> Iterator[None]:
    try:
        yield
    except ConstError as err:
        msg = f"Constant mismatch: {err}"
        raise ConstantMismatch(msg) from err
    except StreamError as err:
        msg = f"Insufficient data: {err}"
        raise InsufficientData(msg) from err
    except ConstructError as err:
        msg = f"Unable to decode structure: {err}"
        raise MalformedInputError(msg) from err


def decode(struct: Construct, data: bytes, **context: Any) -> Any:
    """
    Decode bytes with a structure description.

    Raises:
        ConstantMismatch: a Const field did not match the input
        InsufficientData: input ended before the structure was complete
        MalformedInputError: any other decoding failure
    """
    with _decoding():
        return struct.parse(data, **context)


def decode_prefix(struct: Construct, data: bytes, **context: Any) -> tuple[Any, int]:
    """Decode the start of data, returning the value and the bytes consumed."""
    stream = io.BytesIO(data)
    with _decoding():
        value = struct.parse_stream(stream, **context)
    return value, stream.tell()


def encode(struct: Construct, value: Any, **context: Any) -> bytes:
    """Encode a value with a structure description into canonical bytes."""
    try:
        return struct.build(value, **context)
    except ConstError as err:
        msg = f"Constant mismatch: {err}"
        raise ConstantMismatch(msg) from err
    except ConstructError as err:
        msg = f"Unable to encode structure: {err}"
        raise MalformedInputError(msg) from err
