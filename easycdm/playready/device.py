"""
PlayReady client identity: a BCert chain and its ECC key pairs.
"""

from __future__ import annotations

import logging
from pathlib import Path

from construct import Bytes, Const, Int8ub, Int32ub, Struct, this

from easycdm.common.codec import decode, encode
from easycdm.common.crypto import CryptoUtils
from easycdm.common.ecc import EccKey
from easycdm.common.exceptions import (
    InvalidDevice,
    MalformedInputError,
    UnsupportedVersion,
)
from easycdm.playready.bcert import Certificate, CertificateChain

logger = logging.getLogger(__name__)

PRD_MAGIC = b"PRD"

PRD2 = Struct(
    "signature" / Const(PRD_MAGIC),
    "version" / Const(2, Int8ub),
    "group_certificate_length" / Int32ub,
    "group_certificate" / Bytes(this.group_certificate_length),
    "encryption_key" / Bytes(96),
    "signing_key" / Bytes(96),
)

PRD3 = Struct(
    "signature" / Const(PRD_MAGIC),
    "version" / Const(3, Int8ub),
    "group_key" / Bytes(96),
    "encryption_key" / Bytes(96),
    "signing_key" / Bytes(96),
    "group_certificate_length" / Int32ub,
    "group_certificate" / Bytes(this.group_certificate_length),
)

PRD_STRUCTS = {2: PRD2, 3: PRD3}


class Device:
    """A provisioned PlayReady device."""

    def __init__(
        self,
        group_certificate: CertificateChain,
        encryption_key: EccKey,
        signing_key: EccKey,
        group_key: EccKey | None = None,
    ) -> None:
        self.group_certificate = group_certificate
        self.encryption_key = encryption_key
        self.signing_key = signing_key
        self.group_key = group_key

    @classmethod
    def loads(cls, data: bytes) -> Device:
        """
        Load a .prd identity (version 2 or 3).

        The leaf certificate must carry the public halves of the device's
        signing and encryption keys.
        """
        if data[:3] != PRD_MAGIC:
            msg = "Not a PRD file"
            raise InvalidDevice(msg)
        version = data[3] if len(data) > 3 else None  # noqa: PLR2004
        struct = PRD_STRUCTS.get(version)
        if struct is None:
            msg = f"Unsupported PRD version {version}"
            raise UnsupportedVersion(msg)

        try:
            parsed = decode(struct, data)
            device = cls(
                group_certificate=CertificateChain.loads(parsed.group_certificate),
                encryption_key=EccKey.loads(parsed.encryption_key),
                signing_key=EccKey.loads(parsed.signing_key),
                group_key=EccKey.loads(parsed.group_key) if version == 3 else None,  # noqa: PLR2004
            )
        except MalformedInputError as err:
            msg = f"Malformed PRD file: {err}"
            raise InvalidDevice(msg) from err

        leaf = device.group_certificate.get(0)
        if leaf.get_encryption_key() != device.encryption_key.public_bytes():
            msg = "Leaf certificate encryption key does not match the device key"
            raise InvalidDevice(msg)
        if leaf.get_signing_key() != device.signing_key.public_bytes():
            msg = "Leaf certificate signing key does not match the device key"
            raise InvalidDevice(msg)
        return device

    @classmethod
    def load(cls, path: Path | str) -> Device:
        return cls.loads(Path(path).read_bytes())

    @classmethod
    def provision(
        cls,
        group_key: EccKey,
        group_chain: CertificateChain,
        root_key: bytes | None = None,
    ) -> Device:
        """
        Create a new device below a group certificate chain.

        Fresh encryption and signing keys are generated and a leaf
        certificate is signed with the group key. The resulting chain is
        verified before the device is returned; group_chain itself is left
        untouched.
        """
        chain = CertificateChain.loads(group_chain.dumps())
        if chain.get(0).get_issuer_key() != group_key.public_bytes():
            msg = "Group key does not match the group certificate issuer key"
            raise InvalidDevice(msg)

        encryption_key = EccKey.generate()
        signing_key = EccKey.generate()
        leaf = Certificate.new_leaf_cert(
            cert_id=CryptoUtils.random_bytes(16),
            security_level=chain.security_level or 0,
            client_id=CryptoUtils.random_bytes(16),
            signing_key=signing_key,
            encryption_key=encryption_key,
            group_key=group_key,
            parent=chain,
        )
        chain.prepend(leaf)
        chain.verify(root_key)
        logger.info("Provisioned %s (SL%s)", chain.name, chain.security_level)
        return cls(chain, encryption_key, signing_key, group_key)

    def dumps(self) -> bytes:
        """Pack as .prd version 3, or version 2 when there is no group key."""
        chain = self.group_certificate.dumps()
        values = {
            "encryption_key": self.encryption_key.dumps(),
            "signing_key": self.signing_key.dumps(),
            "group_certificate_length": len(chain),
            "group_certificate": chain,
        }
        if self.group_key is None:
            return encode(PRD2, values)
        return encode(PRD3, {**values, "group_key": self.group_key.dumps()})

    @property
    def security_level(self) -> int | None:
        return self.group_certificate.security_level

    @property
    def name(self) -> str:
        name = self.group_certificate.name or "playready"
        return "".join(c if c.isalnum() else "_" for c in name).lower()

    def __str__(self) -> str:
        return f"{self.group_certificate.name} SL{self.security_level}"
