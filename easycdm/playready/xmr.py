"""
XMR license parsing.
"""

from __future__ import annotations

import logging
from enum import IntEnum

from construct import (
    Array,
    Bytes,
    Const,
    Container,
    GreedyRange,
    If,
    Int16ub,
    Int32ub,
    Struct,
    Switch,
    this,
)

from easycdm.common.codec import decode
from easycdm.common.crypto import CryptoUtils
from easycdm.common.exceptions import InvalidLicense, MalformedInputError

logger = logging.getLogger(__name__)

XMR_MAGIC = b"XMR\x00"
OBJECT_HEADER_SIZE = 8


class XmrObjectType(IntEnum):
    CONTENT_KEY = 10
    SIGNATURE = 11
    AUXILIARY_KEYS = 81


class XmrKeyType(IntEnum):
    INVALID = 0
    AES_128_CTR = 1
    RC4_CIPHER = 2
    AES_128_ECB = 3
    COCKTAIL = 4
    AES_128_CBC = 5
    KEYEXCHANGE = 6


class XmrCipherType(IntEnum):
    INVALID = 0
    RSA_1024 = 1
    CHAINED_LICENSE = 2
    ECC_256 = 3
    ECC_256_WITH_KZ = 4
    TEE_TRANSIENT = 5
    ECC_256_VIA_SYMMETRIC = 6


ContentKeyObject = Struct(
    "key_id" / Bytes(16),
    "key_type" / Int16ub,
    "cipher_type" / Int16ub,
    "key_length" / Int16ub,
    "encrypted_key" / Bytes(this.key_length),
)

SignatureObject = Struct(
    "signature_type" / Int16ub,
    "signature_data_length" / Int16ub,
    "signature_data" / Bytes(this.signature_data_length),
)

AuxiliaryKey = Struct(
    "location" / Int32ub,
    "key" / Bytes(16),
)

AuxiliaryKeysObject = Struct(
    "count" / Int16ub,
    "auxiliary_keys" / Array(this.count, AuxiliaryKey),
)

# Container objects (flags 2 and 3) carry no data of their own; their
# children follow inline as further objects.
XmrObject = Struct(
    "flags" / Int16ub,
    "type" / Int16ub,
    "length" / Int32ub,
    "data"
    / If(
        lambda ctx: ctx.flags in (0, 1),
        Switch(
            this.type,
            {
                XmrObjectType.CONTENT_KEY: ContentKeyObject,
                XmrObjectType.SIGNATURE: SignatureObject,
                XmrObjectType.AUXILIARY_KEYS: AuxiliaryKeysObject,
            },
            default=Bytes(this.length - OBJECT_HEADER_SIZE),
        ),
    ),
)

XmrLicenseStruct = Struct(
    "signature" / Const(XMR_MAGIC),
    "xmr_version" / Int32ub,
    "rights_id" / Bytes(16),
    "containers" / GreedyRange(XmrObject),
)


class XmrLicense:
    """A parsed XMR license together with its raw bytes."""

    def __init__(self, raw: bytes, parsed: Container) -> None:
        self.raw = raw
        self.parsed = parsed

    @classmethod
    def loads(cls, data: bytes) -> XmrLicense:
        try:
            return cls(data, decode(XmrLicenseStruct, data))
        except MalformedInputError as err:
            msg = f"Unable to parse XMR license: {err}"
            raise InvalidLicense(msg) from err

    @property
    def rights_id(self) -> bytes:
        return self.parsed.rights_id

    def get_objects(self, object_type: XmrObjectType) -> list[Container]:
        return [obj for obj in self.parsed.containers if obj.type == object_type]

    def check_signature(self, integrity_key: bytes) -> bool:
        """Verify the AES-CMAC over the license minus its signature object."""
        signatures = self.get_objects(XmrObjectType.SIGNATURE)
        if not signatures or signatures[0].data is None:
            logger.debug("XMR license has no signature object")
            return False
        signature = signatures[0].data
        end = len(self.raw) - (signature.signature_data_length + 12)
        return CryptoUtils.aes_cmac_verify(
            integrity_key, self.raw[:end], signature.signature_data
        )
