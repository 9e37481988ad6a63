"""
PlayReady binary certificates (BCert) and certificate chains.

A chain is a "CHAI" header followed by "CERT" certificates, leaf first.
Every certificate is a list of tagged attributes; the last one is the
ECDSA signature made with the issuer key found in the next certificate.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from pathlib import Path
from typing import Any

from construct import (
    Array,
    Bytes,
    Const,
    Container,
    FixedSized,
    GreedyBytes,
    GreedyRange,
    Int16ub,
    Int32ub,
    Struct,
    Switch,
    this,
)

from easycdm.common.codec import decode, encode, padded_length
from easycdm.common.crypto import CryptoUtils
from easycdm.common.ecc import EccKey
from easycdm.common.exceptions import InvalidCertificate, InvalidCertificateChain

logger = logging.getLogger(__name__)

ROOT_ISSUER_KEY = bytes.fromhex(
    "864d61cff2256e422c568b3c28001cfb3e1527658584ba0521b79b1828d936de"
    "1d826a8fc3e6e7fa7a90d5ca2946f1f64a2efb9f5dcffe7e434eb44293fac5ab"
)

CHAIN_HEADER_SIZE = 20
CERT_HEADER_SIZE = 16
ATTRIBUTE_HEADER_SIZE = 8


class CertType(IntEnum):
    UNKNOWN = 0x0
    PC = 0x1
    DEVICE = 0x2
    DOMAIN = 0x3
    ISSUER = 0x4
    CRL_SIGNER = 0x5
    SERVICE = 0x6
    SILVERLIGHT = 0x7
    APPLICATION = 0x8
    METERING = 0x9
    KEYFILESIGNER = 0xA
    SERVER = 0xB
    LICENSESIGNER = 0xC
    SECURETIMESERVER = 0xD
    RPROVMODELAUTH = 0xE


class ObjType(IntEnum):
    BASIC = 0x0001
    DOMAIN = 0x0002
    PC = 0x0003
    DEVICE = 0x0004
    FEATURE = 0x0005
    KEY = 0x0006
    MANUFACTURER = 0x0007
    SIGNATURE = 0x0008
    SILVERLIGHT = 0x0009
    METERING = 0x000A
    EXTDATASIGNKEY = 0x000B
    EXTDATACONTAINER = 0x000C
    EXTDATASIGNATURE = 0x000D
    EXTDATA_HWID = 0x000E
    SERVER = 0x000F
    SECURITY_VERSION = 0x0010
    SECURITY_VERSION_2 = 0x0011
    UNKNOWN_OBJECT_ID = 0xFFFD


class Flag(IntEnum):
    EMPTY = 0x0
    EXTDATA_PRESENT = 0x1


class ObjFlag(IntEnum):
    EMPTY = 0x0
    MUST_UNDERSTAND = 0x1
    CONTAINER_OBJ = 0x2


class SignatureType(IntEnum):
    P256 = 0x1


class KeyType(IntEnum):
    ECC256 = 0x1


class KeyUsage(IntEnum):
    SIGN = 0x1
    ENCRYPT_KEY = 0x2
    ISSUER_DEVICE = 0x6


class Feature(IntEnum):
    SECURE_CLOCK = 0x4
    SUPPORTS_CRLS = 0x9
    SUPPORTS_PR3_FEATURES = 0xD


def _padded(length_field: str) -> Bytes:
    return Bytes(lambda ctx: padded_length(ctx[length_field]))


BasicInfo = Struct(
    "cert_id" / Bytes(16),
    "security_level" / Int32ub,
    "flags" / Int32ub,
    "cert_type" / Int32ub,
    "public_key_digest" / Bytes(32),
    "expiration_date" / Int32ub,
    "client_id" / Bytes(16),
)

DomainInfo = Struct(
    "service_id" / Bytes(16),
    "account_id" / Bytes(16),
    "revision_timestamp" / Int32ub,
    "domain_url_length" / Int32ub,
    "domain_url" / _padded("domain_url_length"),
)

PCInfo = Struct("security_version" / Int32ub)

DeviceInfo = Struct(
    "max_license" / Int32ub,
    "max_header" / Int32ub,
    "max_chain_depth" / Int32ub,
)

FeatureInfo = Struct(
    "feature_count" / Int32ub,
    "features" / Array(this.feature_count, Int32ub),
)

CertKey = Struct(
    "type" / Int16ub,
    "length" / Int16ub,
    "flags" / Int32ub,
    "key" / Bytes(lambda ctx: ctx.length // 8),
    "usages_count" / Int32ub,
    "usages" / Array(this.usages_count, Int32ub),
)

KeyInfo = Struct(
    "key_count" / Int32ub,
    "cert_keys" / Array(this.key_count, CertKey),
)

ManufacturerInfo = Struct(
    "flags" / Int32ub,
    "manufacturer_name_length" / Int32ub,
    "manufacturer_name" / _padded("manufacturer_name_length"),
    "model_name_length" / Int32ub,
    "model_name" / _padded("model_name_length"),
    "model_number_length" / Int32ub,
    "model_number" / _padded("model_number_length"),
)

SignatureInfo = Struct(
    "signature_type" / Int16ub,
    "signature_size" / Int16ub,
    "signature" / Bytes(this.signature_size),
    "signature_key_size" / Int32ub,
    "signature_key" / Bytes(lambda ctx: ctx.signature_key_size // 8),
)

SilverlightInfo = Struct(
    "security_version" / Int32ub,
    "platform_identifier" / Int32ub,
)

MeteringInfo = Struct(
    "metering_id" / Bytes(16),
    "metering_url_length" / Int32ub,
    "metering_url" / _padded("metering_url_length"),
)

ExtDataSignKeyInfo = Struct(
    "key_type" / Int16ub,
    "key_length" / Int16ub,
    "flags" / Int32ub,
    "key" / Bytes(lambda ctx: ctx.key_length // 8),
)

DataRecord = Struct(
    "data_size" / Int32ub,
    "data" / Bytes(this.data_size),
)

ExtDataSignature = Struct(
    "signature_type" / Int16ub,
    "signature_size" / Int16ub,
    "signature" / Bytes(this.signature_size),
)

ExtDataContainer = Struct(
    "record_count" / Int32ub,
    "records" / Array(this.record_count, DataRecord),
    "signature" / ExtDataSignature,
)

ServerInfo = Struct("warning_days" / Int32ub)

SecurityVersion = Struct(
    "security_version" / Int32ub,
    "platform_identifier" / Int32ub,
)

Attribute = Struct(
    "flags" / Int16ub,
    "tag" / Int16ub,
    "length" / Int32ub,
    "attribute"
    / FixedSized(
        this.length - ATTRIBUTE_HEADER_SIZE,
        Switch(
            this.tag,
            {
                ObjType.BASIC: BasicInfo,
                ObjType.DOMAIN: DomainInfo,
                ObjType.PC: PCInfo,
                ObjType.DEVICE: DeviceInfo,
                ObjType.FEATURE: FeatureInfo,
                ObjType.KEY: KeyInfo,
                ObjType.MANUFACTURER: ManufacturerInfo,
                ObjType.SIGNATURE: SignatureInfo,
                ObjType.SILVERLIGHT: SilverlightInfo,
                ObjType.METERING: MeteringInfo,
                ObjType.EXTDATASIGNKEY: ExtDataSignKeyInfo,
                ObjType.EXTDATACONTAINER: ExtDataContainer,
                ObjType.EXTDATASIGNATURE: ExtDataSignature,
                ObjType.SERVER: ServerInfo,
                ObjType.SECURITY_VERSION: SecurityVersion,
                ObjType.SECURITY_VERSION_2: SecurityVersion,
            },
            default=GreedyBytes,
        ),
    ),
)

BCertBody = Struct(
    "signature" / Const(b"CERT"),
    "version" / Int32ub,
    "total_length" / Int32ub,
    "certificate_length" / Int32ub,
    "attributes" / GreedyRange(Attribute),
)

BCert = Struct(
    "signature" / Const(b"CERT"),
    "version" / Int32ub,
    "total_length" / Int32ub,
    "certificate_length" / Int32ub,
    "attributes"
    / FixedSized(this.total_length - CERT_HEADER_SIZE, GreedyRange(Attribute)),
)

BCertChain = Struct(
    "signature" / Const(b"CHAI"),
    "version" / Int32ub,
    "total_length" / Int32ub,
    "flags" / Int32ub,
    "certificate_count" / Int32ub,
    "certificates"
    / FixedSized(this.total_length - CHAIN_HEADER_SIZE, GreedyRange(BCert)),
)


def make_attribute(
    tag: ObjType,
    struct: Struct,
    value: dict[str, Any],
    flags: ObjFlag = ObjFlag.MUST_UNDERSTAND,
) -> dict[str, Any]:
    """Wrap an attribute value with its header, computing the length."""
    return {
        "flags": int(flags),
        "tag": int(tag),
        "length": len(encode(struct, value)) + ATTRIBUTE_HEADER_SIZE,
        "attribute": value,
    }


def cert_key(key: bytes, usages: list[KeyUsage]) -> dict[str, Any]:
    return {
        "type": int(KeyType.ECC256),
        "length": len(key) * 8,
        "flags": int(Flag.EMPTY),
        "key": key,
        "usages_count": len(usages),
        "usages": [int(usage) for usage in usages],
    }


def _unpad(name: bytes) -> str:
    return name.rstrip(b"\x00").decode("utf-8", errors="replace")


class Certificate:
    """A single BCert."""

    def __init__(self, parsed: Container) -> None:
        self.parsed = parsed

    @classmethod
    def loads(cls, data: bytes) -> Certificate:
        return cls(decode(BCert, data))

    @classmethod
    def issue(
        cls,
        attributes: list[dict[str, Any]],
        issuer_key: EccKey,
        version: int = 1,
    ) -> Certificate:
        """Build a certificate from its attributes and sign it with issuer_key."""
        body = {
            "version": version,
            "total_length": 0,
            "certificate_length": 0,
            "attributes": list(attributes),
        }
        payload_length = len(encode(BCertBody, body))
        signature_info = {
            "signature_type": int(SignatureType.P256),
            "signature_size": 64,
            "signature": bytes(64),
            "signature_key_size": len(issuer_key.public_bytes()) * 8,
            "signature_key": issuer_key.public_bytes(),
        }
        signature_attribute = make_attribute(
            ObjType.SIGNATURE, SignatureInfo, signature_info
        )
        body["certificate_length"] = payload_length
        body["total_length"] = payload_length + signature_attribute["length"]

        signature_info["signature"] = issuer_key.sign(encode(BCertBody, body))
        body["attributes"].append(signature_attribute)
        return cls.loads(encode(BCert, body))

    @classmethod
    def new_leaf_cert(  # noqa: PLR0913
        cls,
        cert_id: bytes,
        security_level: int,
        client_id: bytes,
        signing_key: EccKey,
        encryption_key: EccKey,
        group_key: EccKey,
        parent: CertificateChain,
        expiry: int = 0xFFFFFFFF,
    ) -> Certificate:
        """Create a device certificate below the first certificate of parent."""
        manufacturer = parent.get(0).get_attribute(ObjType.MANUFACTURER)
        if manufacturer is None:
            msg = "Parent certificate has no manufacturer info"
            raise InvalidCertificate(msg, 0)

        basic_info = {
            "cert_id": cert_id,
            "security_level": security_level,
            "flags": int(Flag.EMPTY),
            "cert_type": int(CertType.DEVICE),
            "public_key_digest": signing_key.public_sha256_digest(),
            "expiration_date": expiry,
            "client_id": client_id,
        }
        device_info = {"max_license": 10240, "max_header": 15360, "max_chain_depth": 2}
        features = [
            Feature.SECURE_CLOCK,
            Feature.SUPPORTS_CRLS,
            Feature.SUPPORTS_PR3_FEATURES,
        ]
        feature_info = {
            "feature_count": len(features),
            "features": [int(feature) for feature in features],
        }
        keys = [
            cert_key(signing_key.public_bytes(), [KeyUsage.SIGN]),
            cert_key(encryption_key.public_bytes(), [KeyUsage.ENCRYPT_KEY]),
        ]
        key_info = {"key_count": len(keys), "cert_keys": keys}

        return cls.issue(
            [
                make_attribute(ObjType.BASIC, BasicInfo, basic_info),
                make_attribute(ObjType.DEVICE, DeviceInfo, device_info),
                make_attribute(ObjType.FEATURE, FeatureInfo, feature_info),
                make_attribute(ObjType.KEY, KeyInfo, key_info),
                manufacturer,
            ],
            group_key,
        )

    def get_attribute(self, tag: ObjType) -> Container | None:
        for attribute in self.parsed.attributes:
            if attribute.tag == tag:
                return attribute
        return None

    @property
    def security_level(self) -> int | None:
        basic_info = self.get_attribute(ObjType.BASIC)
        if basic_info is None:
            return None
        return basic_info.attribute.security_level

    @property
    def name(self) -> str | None:
        """Manufacturer, model name and model number."""
        manufacturer = self.get_attribute(ObjType.MANUFACTURER)
        if manufacturer is None:
            return None
        info = manufacturer.attribute
        return " ".join(
            _unpad(part)
            for part in (info.manufacturer_name, info.model_name, info.model_number)
        ).strip()

    def _key_with_usage(self, usage: KeyUsage) -> bytes | None:
        key_info = self.get_attribute(ObjType.KEY)
        if key_info is None:
            return None
        for key in key_info.attribute.cert_keys:
            if usage in key.usages:
                return key.key
        return None

    def get_issuer_key(self) -> bytes | None:
        return self._key_with_usage(KeyUsage.ISSUER_DEVICE)

    def get_signing_key(self) -> bytes | None:
        return self._key_with_usage(KeyUsage.SIGN)

    def get_encryption_key(self) -> bytes | None:
        return self._key_with_usage(KeyUsage.ENCRYPT_KEY)

    def dumps(self) -> bytes:
        return encode(BCert, self.parsed)

    def verify(self, public_key: bytes, index: int) -> bytes | None:
        """
        Check the certificate signature against the expected issuer key.

        Returns the issuer key this certificate vouches for, which signs
        the certificate before it in the chain.
        """
        signature_object = self.get_attribute(ObjType.SIGNATURE)
        if signature_object is None:
            msg = f"No signature object in certificate {index}"
            raise InvalidCertificate(msg, index)

        signature_info = signature_object.attribute
        if signature_info.signature_key != public_key:
            msg = f"Signature keys of certificate {index} do not match"
            raise InvalidCertificate(msg, index)

        data = self.dumps()
        sign_payload = data[: len(data) - signature_object.length]
        if not CryptoUtils.ecdsa_verify(
            signature_info.signature_key, sign_payload, signature_info.signature
        ):
            msg = f"Signature of certificate {index} is not authentic"
            raise InvalidCertificate(msg, index)

        return self.get_issuer_key()


class CertificateChain:
    """An ordered BCert chain, leaf first."""

    def __init__(self, parsed: Container) -> None:
        self.parsed = parsed

    @classmethod
    def loads(cls, data: bytes) -> CertificateChain:
        parsed = decode(BCertChain, data)
        if parsed.certificate_count != len(parsed.certificates):
            msg = (
                f"Chain header declares {parsed.certificate_count} certificates,"
                f" body holds {len(parsed.certificates)}"
            )
            raise InvalidCertificateChain(msg)
        return cls(parsed)

    @classmethod
    def load(cls, path: Path | str) -> CertificateChain:
        return cls.loads(Path(path).read_bytes())

    @classmethod
    def new(
        cls, certificates: list[Certificate], version: int = 1, flags: int = 0
    ) -> CertificateChain:
        chain = cls(
            Container(
                version=version,
                total_length=CHAIN_HEADER_SIZE,
                flags=flags,
                certificate_count=0,
                certificates=[],
            )
        )
        for certificate in certificates:
            chain.append(certificate)
        return chain

    def dumps(self) -> bytes:
        return encode(BCertChain, self.parsed)

    def count(self) -> int:
        return self.parsed.certificate_count

    def __len__(self) -> int:
        return self.count()

    def get(self, index: int) -> Certificate:
        if self.count() <= 0:
            msg = "CertificateChain does not contain any Certificates"
            raise InvalidCertificateChain(msg)
        if not 0 <= index < self.count():
            msg = f"No Certificate at index {index}, {self.count()} total"
            raise InvalidCertificateChain(msg, index)
        return Certificate(self.parsed.certificates[index])

    @property
    def security_level(self) -> int | None:
        return self.get(0).security_level

    @property
    def name(self) -> str | None:
        return self.get(0).name

    def verify(self, root_key: bytes | None = None) -> bool:
        """
        Walk the chain from the root-signed certificate down to the leaf.

        Raises:
            InvalidCertificateChain: a certificate failed verification,
                its index is carried on the exception
        """
        if self.count() == 0:
            msg = "CertificateChain does not contain any Certificates"
            raise InvalidCertificateChain(msg)
        issuer_key = root_key or ROOT_ISSUER_KEY
        index = self.count() - 1
        try:
            for index in range(self.count() - 1, -1, -1):
                issuer_key = self.get(index).verify(issuer_key, index)
                if issuer_key is None and index != 0:
                    msg = f"Certificate {index} does not carry an issuer key"
                    raise InvalidCertificate(msg, index)
        except InvalidCertificate as err:
            raise InvalidCertificateChain(str(err), index) from err
        logger.debug("Certificate chain of %d certificates verified", self.count())
        return True

    def append(self, certificate: Certificate) -> None:
        self.parsed.certificates.append(certificate.parsed)
        self.parsed.certificate_count += 1
        self.parsed.total_length += len(certificate.dumps())

    def prepend(self, certificate: Certificate) -> None:
        self.parsed.certificates.insert(0, certificate.parsed)
        self.parsed.certificate_count += 1
        self.parsed.total_length += len(certificate.dumps())

    def remove(self, index: int) -> None:
        certificate = self.get(index)
        self.parsed.total_length -= len(certificate.dumps())
        del self.parsed.certificates[index]
        self.parsed.certificate_count -= 1
