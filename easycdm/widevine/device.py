"""
Widevine client identity: a signed device certificate and its RSA key.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from pathlib import Path

from construct import Bytes, Const, Int8ub, Int16ub, Struct, this
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from google.protobuf.message import DecodeError

from easycdm.common.codec import decode, encode
from easycdm.common.crypto import CryptoUtils
from easycdm.common.exceptions import (
    InvalidDevice,
    MalformedInputError,
    UnsupportedVersion,
)
from easycdm.widevine.proto import (
    ClientIdentification,
    DrmCertificate,
    EncryptedClientIdentification,
    SignedDrmCertificate,
)

logger = logging.getLogger(__name__)

WVD_VERSION = 2

WvdStruct = Struct(
    "signature" / Const(b"WVD"),
    "version" / Const(WVD_VERSION, Int8ub),
    "type" / Int8ub,
    "security_level" / Int8ub,
    "flags" / Int8ub,
    "private_key_len" / Int16ub,
    "private_key" / Bytes(this.private_key_len),
    "client_id_len" / Int16ub,
    "client_id" / Bytes(this.client_id_len),
)


class DeviceType(IntEnum):
    CHROME = 1
    ANDROID = 2


class WidevineClient:
    """A Widevine device identity used to sign requests and unwrap session keys."""

    def __init__(
        self,
        client_id: bytes,
        private_key: rsa.RSAPrivateKey,
        device_type: DeviceType = DeviceType.ANDROID,
        security_level: int = 3,
        flags: int = 0,
    ) -> None:
        self.client_id = ClientIdentification()
        try:
            self.client_id.ParseFromString(client_id)
            self.signed_drm_certificate = SignedDrmCertificate()
            self.signed_drm_certificate.ParseFromString(self.client_id.token)
            self.drm_certificate = DrmCertificate()
            self.drm_certificate.ParseFromString(
                self.signed_drm_certificate.drm_certificate
            )
        except DecodeError as err:
            msg = "Client id blob is not a valid ClientIdentification"
            raise InvalidDevice(msg) from err

        self.private_key = private_key
        self.device_type = DeviceType(device_type)
        self.security_level = security_level
        self.flags = flags
        self.system_id: int = self.drm_certificate.system_id
        self.info: dict[str, str] = {
            item.name: item.value for item in self.client_id.client_info
        }

    @classmethod
    def loads(cls, data: bytes) -> WidevineClient:
        """Load a packed .wvd identity."""
        if data[:3] != b"WVD":
            msg = "Not a WVD file"
            raise InvalidDevice(msg)
        if len(data) > 3 and data[3] != WVD_VERSION:  # noqa: PLR2004
            msg = f"Unsupported WVD version {data[3]}, expected {WVD_VERSION}"
            raise UnsupportedVersion(msg)
        try:
            parsed = decode(WvdStruct, data)
            device_type = DeviceType(parsed.type)
        except (MalformedInputError, ValueError) as err:
            msg = f"Malformed WVD file: {err}"
            raise InvalidDevice(msg) from err
        return cls(
            client_id=parsed.client_id,
            private_key=CryptoUtils.load_rsa_private_key(parsed.private_key),
            device_type=device_type,
            security_level=parsed.security_level,
            flags=parsed.flags,
        )

    @classmethod
    def load(cls, path: Path | str) -> WidevineClient:
        return cls.loads(Path(path).read_bytes())

    @classmethod
    def from_unpacked(
        cls,
        client_id: bytes,
        private_key: bytes,
        device_type: DeviceType = DeviceType.ANDROID,
        security_level: int = 3,
    ) -> WidevineClient:
        """Build an identity from a client id blob and a PEM or DER private key."""
        return cls(
            client_id=client_id,
            private_key=CryptoUtils.load_rsa_private_key(private_key),
            device_type=device_type,
            security_level=security_level,
        )

    def dumps(self) -> bytes:
        """Pack the identity into the .wvd format."""
        private_key = self.private_key.private_bytes(
            serialization.Encoding.DER,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        )
        client_id = self.client_id.SerializeToString()
        return encode(
            WvdStruct,
            {
                "type": int(self.device_type),
                "security_level": self.security_level,
                "flags": self.flags,
                "private_key_len": len(private_key),
                "private_key": private_key,
                "client_id_len": len(client_id),
                "client_id": client_id,
            },
        )

    def unpack(self) -> tuple[bytes, bytes]:
        """Return the client id blob and the PKCS#1 PEM private key."""
        private_key = self.private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        )
        return self.client_id.SerializeToString(), private_key

    @property
    def name(self) -> str:
        return f"{self.info.get('company_name')}_{self.info.get('model_name')}"

    @property
    def label(self) -> str:
        return f"{self.info.get('company_name')} {self.info.get('model_name')}"

    def sign(self, data: bytes) -> bytes:
        return CryptoUtils.rsa_pss_sign(self.private_key, data)

    def decrypt(self, data: bytes) -> bytes:
        return CryptoUtils.rsa_oaep_decrypt(self.private_key, data)

    def encrypt_client_id(
        self,
        service_certificate: DrmCertificate,
        privacy_key: bytes | None = None,
        privacy_iv: bytes | None = None,
    ) -> EncryptedClientIdentification:
        """Encrypt the client id for a service certificate's provider."""
        privacy_key = privacy_key or CryptoUtils.random_bytes(16)
        privacy_iv = privacy_iv or CryptoUtils.random_bytes(16)
        public_key = CryptoUtils.load_rsa_public_key(service_certificate.public_key)
        return EncryptedClientIdentification(
            provider_id=service_certificate.provider_id,
            service_certificate_serial_number=service_certificate.serial_number,
            encrypted_client_id=CryptoUtils.aes_cbc_encrypt(
                privacy_key, privacy_iv, self.client_id.SerializeToString()
            ),
            encrypted_client_id_iv=privacy_iv,
            encrypted_privacy_key=CryptoUtils.rsa_oaep_encrypt(public_key, privacy_key),
        )

    def __str__(self) -> str:
        return f"{self.system_id} L{self.security_level}"
