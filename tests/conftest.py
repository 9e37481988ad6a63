"""
Throwaway identities and fake license servers for the CDM tests.
"""

from __future__ import annotations

import base64
from collections.abc import Callable

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from easycdm.common.crypto import CryptoUtils
from easycdm.common.ecc import GENERATOR, EccKey, ElGamal, random_scalar, to_affine
from easycdm.common.pssh import wrap
from easycdm.playready.bcert import (
    BasicInfo,
    Certificate,
    CertificateChain,
    CertType,
    KeyInfo,
    KeyUsage,
    ManufacturerInfo,
    ObjType,
    cert_key,
    make_attribute,
)
from easycdm.playready.device import Device
from easycdm.playready.pssh import PLAYREADY_SYSTEM_ID, build_object
from easycdm.playready.xmr import XMR_MAGIC, XmrCipherType, XmrKeyType, XmrObjectType
from easycdm.widevine.device import DeviceType, WidevineClient
from easycdm.widevine.proto import (
    ClientIdentification,
    DrmCertificate,
    KeyContainer,
    KeyType,
    License,
    LicenseIdentification,
    LicenseRequest,
    LicenseType,
    MessageType,
    NameValue,
    SignedDrmCertificate,
    SignedMessage,
    TokenType,
    WidevinePsshData,
)
from easycdm.widevine.pssh import WIDEVINE_SYSTEM_ID
from easycdm.widevine.session import derive_context, derive_keys

CONTENT_KEYS = {
    bytes.fromhex("00000000000000000000000000000001"): bytes.fromhex(
        "0123456789abcdef0123456789abcdef"
    ),
    bytes.fromhex("00000000000000000000000000000002"): bytes.fromhex(
        "fedcba9876543210fedcba9876543210"
    ),
}

RGB_MAGIC_CONSTANT_ZERO = bytes.fromhex("7ee9ed4af773224f00b8ea7efb027cbb")

WRM_HEADER = (
    '<WRMHEADER xmlns="http://schemas.microsoft.com/DRM/2007/03/PlayReadyHeader" '
    'version="4.3.0.0"><DATA><PROTECTINFO><KIDS>'
    '<KID ALGID="AESCTR" VALUE="AQAAAAAAAAAAAAAAAAAAAA=="></KID>'
    "</KIDS></PROTECTINFO></DATA></WRMHEADER>"
)


def _public_der(key: rsa.RSAPrivateKey) -> bytes:
    return key.public_key().public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.PKCS1
    )


# Widevine


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def client_id_blob(rsa_key: rsa.RSAPrivateKey) -> bytes:
    drm_certificate = DrmCertificate(
        type=DrmCertificate.DEVICE,
        serial_number=b"\x01" * 16,
        public_key=_public_der(rsa_key),
        system_id=4464,
    )
    signed = SignedDrmCertificate(
        drm_certificate=drm_certificate.SerializeToString(), signature=b"\x00" * 256
    )
    client_id = ClientIdentification(
        type=TokenType.DRM_DEVICE_CERTIFICATE,
        token=signed.SerializeToString(),
        client_info=[
            NameValue(name="company_name", value="easycdm"),
            NameValue(name="model_name", value="test"),
        ],
    )
    return client_id.SerializeToString()


@pytest.fixture
def widevine_client(
    client_id_blob: bytes, rsa_key: rsa.RSAPrivateKey
) -> WidevineClient:
    return WidevineClient(client_id_blob, rsa_key, DeviceType.ANDROID, 3)


@pytest.fixture
def widevine_pssh() -> bytes:
    data = WidevinePsshData(key_ids=list(CONTENT_KEYS), provider="easycdm")
    return wrap(data.SerializeToString(), WIDEVINE_SYSTEM_ID)


@pytest.fixture(scope="session")
def service_root() -> tuple[rsa.RSAPrivateKey, DrmCertificate]:
    """A stand-in for the Widevine root that signs service certificates."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    certificate = DrmCertificate(
        type=DrmCertificate.ROOT, public_key=_public_der(key), system_id=0
    )
    return key, certificate


@pytest.fixture(scope="session")
def service_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def service_certificate(
    service_root: tuple[rsa.RSAPrivateKey, DrmCertificate],
    service_key: rsa.RSAPrivateKey,
    monkeypatch: pytest.MonkeyPatch,
) -> bytes:
    """A SignedMessage(SERVICE_CERTIFICATE) that verifies against service_root."""
    root_key, root_certificate = service_root
    monkeypatch.setattr(
        "easycdm.widevine.certificate.ROOT_DRM_CERTIFICATE", root_certificate
    )
    drm_certificate = DrmCertificate(
        type=DrmCertificate.SERVICE,
        serial_number=b"\x02" * 16,
        public_key=_public_der(service_key),
        provider_id="license.easycdm.test",
    ).SerializeToString()
    signed = SignedDrmCertificate(
        drm_certificate=drm_certificate,
        signature=CryptoUtils.rsa_pss_sign(root_key, drm_certificate),
    )
    return SignedMessage(
        type=MessageType.SERVICE_CERTIFICATE, msg=signed.SerializeToString()
    ).SerializeToString()


class FakeWidevineServer:
    """Answers license requests with a License carrying CONTENT_KEYS."""

    def __init__(
        self,
        client_key: rsa.RSAPrivateKey,
        service_key: rsa.RSAPrivateKey | None = None,
        service_certificate: bytes | None = None,
    ) -> None:
        self.client_key = client_key
        self.service_key = service_key
        self.service_certificate = service_certificate
        self.requests: list[LicenseRequest] = []
        self.tamper = False

    def __call__(self, body: bytes) -> bytes:
        if body == b"\x08\x04":
            assert self.service_certificate is not None
            return self.service_certificate

        signed_request = SignedMessage()
        signed_request.ParseFromString(body)
        assert signed_request.type == MessageType.LICENSE_REQUEST
        assert CryptoUtils.rsa_pss_verify(
            self.client_key.public_key(), signed_request.msg, signed_request.signature
        )
        request = LicenseRequest()
        request.ParseFromString(signed_request.msg)
        self.requests.append(request)

        session_key = CryptoUtils.random_bytes(16)
        enc_key, mac_key_server, _ = derive_keys(
            *derive_context(signed_request.msg), session_key
        )
        containers = [
            KeyContainer(
                iv=b"\x03" * 16,
                key=CryptoUtils.aes_cbc_encrypt(enc_key, b"\x03" * 16, b"\x00" * 32),
                type=KeyType.SIGNING,
            )
        ]
        for kid, key in CONTENT_KEYS.items():
            iv = CryptoUtils.random_bytes(16)
            containers.append(
                KeyContainer(
                    id=kid,
                    iv=iv,
                    key=CryptoUtils.aes_cbc_encrypt(enc_key, iv, key),
                    type=KeyType.CONTENT,
                    level=KeyContainer.SW_SECURE_CRYPTO,
                    track_label="SD",
                )
            )
        license_message = License(
            id=LicenseIdentification(
                request_id=request.content_id.widevine_pssh_data.request_id,
                type=LicenseType.STREAMING,
            ),
            key=containers,
        ).SerializeToString()
        signature = CryptoUtils.hmac_sha256(mac_key_server, license_message)
        if self.tamper:
            signature = bytes([signature[0] ^ 1]) + signature[1:]
        return SignedMessage(
            type=MessageType.LICENSE,
            msg=license_message,
            signature=signature,
            session_key=CryptoUtils.rsa_oaep_encrypt(
                self.client_key.public_key(), session_key
            ),
        ).SerializeToString()

    def decrypt_client_id(self, request: LicenseRequest) -> ClientIdentification:
        """Open an EncryptedClientIdentification with the service key."""
        assert self.service_key is not None
        encrypted = request.encrypted_client_id
        privacy_key = CryptoUtils.rsa_oaep_decrypt(
            self.service_key, encrypted.encrypted_privacy_key
        )
        client_id = ClientIdentification()
        client_id.ParseFromString(
            CryptoUtils.aes_cbc_decrypt(
                privacy_key,
                encrypted.encrypted_client_id_iv,
                encrypted.encrypted_client_id,
            )
        )
        return client_id


@pytest.fixture
def widevine_server(rsa_key: rsa.RSAPrivateKey) -> FakeWidevineServer:
    return FakeWidevineServer(rsa_key)


@pytest.fixture
def private_widevine_server(
    rsa_key: rsa.RSAPrivateKey,
    service_key: rsa.RSAPrivateKey,
    service_certificate: bytes,
) -> FakeWidevineServer:
    return FakeWidevineServer(rsa_key, service_key, service_certificate)


# PlayReady


@pytest.fixture(scope="session")
def root_key() -> EccKey:
    """Test root standing in for the PlayReady root issuer."""
    return EccKey.generate()


@pytest.fixture(scope="session")
def group_key() -> EccKey:
    return EccKey.generate()


def _padded(text: str) -> bytes:
    data = text.encode()
    return data + b"\x00" * (-len(data) % 4)


@pytest.fixture(scope="session")
def group_chain(root_key: EccKey, group_key: EccKey) -> CertificateChain:
    """A one certificate group chain issued by root_key."""
    basic_info = {
        "cert_id": b"\x10" * 16,
        "security_level": 2000,
        "flags": 0,
        "cert_type": int(CertType.DEVICE),
        "public_key_digest": group_key.public_sha256_digest(),
        "expiration_date": 0xFFFFFFFF,
        "client_id": b"\x20" * 16,
    }
    manufacturer_info = {
        "flags": 0,
        "manufacturer_name_length": 4,
        "manufacturer_name": _padded("Test"),
        "model_name_length": 5,
        "model_name": _padded("Model"),
        "model_number_length": 4,
        "model_number": _padded("0001"),
    }
    keys = [cert_key(group_key.public_bytes(), [KeyUsage.ISSUER_DEVICE])]
    certificate = Certificate.issue(
        [
            make_attribute(ObjType.BASIC, BasicInfo, basic_info),
            make_attribute(ObjType.KEY, KeyInfo, {"key_count": 1, "cert_keys": keys}),
            make_attribute(ObjType.MANUFACTURER, ManufacturerInfo, manufacturer_info),
        ],
        root_key,
    )
    return CertificateChain.new([certificate])


@pytest.fixture(scope="session")
def playready_device(
    group_key: EccKey, group_chain: CertificateChain, root_key: EccKey
) -> Device:
    return Device.provision(group_key, group_chain, root_key.public_bytes())


@pytest.fixture
def playready_pssh() -> bytes:
    return wrap(build_object(WRM_HEADER), PLAYREADY_SYSTEM_ID)


def _xmr_object(object_type: int, payload: bytes, flags: int = 1) -> bytes:
    return (
        flags.to_bytes(2, "big")
        + object_type.to_bytes(2, "big")
        + (8 + len(payload)).to_bytes(4, "big")
        + payload
    )


def _aes_ecb(key: bytes, data: bytes) -> bytes:
    encryptor = Cipher(algorithms.AES(key), modes.ECB()).encryptor()  # noqa: S305
    return encryptor.update(data) + encryptor.finalize()


def mix_scalable_key(
    ck: bytes, auxiliary_key: bytes, root_tail: bytes, leaf_license: bytes
) -> tuple[bytes, bytes]:
    """The (ci, ck) pair a scalable ECC-256-via-symmetric license yields."""
    rgb_key = bytes(a ^ b for a, b in zip(ck, RGB_MAGIC_CONSTANT_ZERO))
    content_key_prime = _aes_ecb(ck, rgb_key)
    uplink_x_key = _aes_ecb(content_key_prime, auxiliary_key)
    secondary_key = _aes_ecb(ck, root_tail)
    leaf = _aes_ecb(secondary_key, _aes_ecb(uplink_x_key, leaf_license))
    return leaf[:16], leaf[16:32]


def make_xmr_license(  # noqa: PLR0913
    device: Device,
    key_id: bytes,
    cipher_type: int = XmrCipherType.ECC_256,
    auxiliary_key: bytes | None = None,
    tamper: bool = False,  # noqa: FBT001, FBT002
    leaf_license: bytes | None = None,
    auxiliary_object: bytes | None = None,
) -> tuple[bytes, bytes, bytes]:
    """
    Build a signed XMR license for device.

    Returns the license and the (ci, ck) pair it carries. The pair is the x
    coordinate of a random point, split in halves, or interleaved when an
    auxiliary key makes the license scalable. A leaf_license is embedded
    after the ElGamal ciphertext and a 16 byte root tail, and switches the
    cipher to ECC-256 via symmetric. auxiliary_object replaces the
    auxiliary keys object verbatim.
    """
    message_point = to_affine(GENERATOR * random_scalar())
    x_bytes = message_point[0].to_bytes(32, "big")
    scalable = auxiliary_key is not None or auxiliary_object is not None
    if scalable:
        ci, ck = x_bytes[::2], x_bytes[1::2]
    else:
        ci, ck = x_bytes[:16], x_bytes[16:]
    encrypted_key = ElGamal.encrypt_to_bytes(
        message_point, device.encryption_key.public_point
    )
    if leaf_license is not None:
        cipher_type = XmrCipherType.ECC_256_VIA_SYMMETRIC
        root_tail = b"\x33" * 16
        encrypted_key += root_tail + leaf_license
        if auxiliary_key is not None and len(leaf_license) % 16 == 0:
            ci, ck = mix_scalable_key(ck, auxiliary_key, root_tail, leaf_license)
    content_key = (
        key_id
        + int(XmrKeyType.AES_128_CTR).to_bytes(2, "big")
        + int(cipher_type).to_bytes(2, "big")
        + len(encrypted_key).to_bytes(2, "big")
        + encrypted_key
    )
    body = (
        XMR_MAGIC
        + (3).to_bytes(4, "big")
        + b"\x42" * 16
        + _xmr_object(XmrObjectType.CONTENT_KEY, content_key)
    )
    if auxiliary_object is not None:
        body += auxiliary_object
    elif auxiliary_key is not None:
        body += _xmr_object(
            XmrObjectType.AUXILIARY_KEYS,
            (1).to_bytes(2, "big") + (0).to_bytes(4, "big") + auxiliary_key,
        )
    signature = CryptoUtils.aes_cmac(ci, body)
    if tamper:
        signature = bytes([signature[0] ^ 1]) + signature[1:]
    signature_object = _xmr_object(
        XmrObjectType.SIGNATURE,
        (1).to_bytes(2, "big") + len(signature).to_bytes(2, "big") + signature,
    )
    return body + signature_object, ci, ck


def license_response(*licenses: bytes) -> bytes:
    elements = "".join(
        f"<License>{base64.b64encode(lic).decode()}</License>" for lic in licenses
    )
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
        "<soap:Body>"
        '<AcquireLicenseResponse xmlns="http://schemas.microsoft.com/DRM/2007/03/protocols">'
        "<AcquireLicenseResult><Response><LicenseResponse>"
        f"<Licenses>{elements}</Licenses>"
        "</LicenseResponse></Response></AcquireLicenseResult>"
        "</AcquireLicenseResponse>"
        "</soap:Body></soap:Envelope>"
    ).encode()


@pytest.fixture
def xmr_license() -> Callable[..., tuple[bytes, bytes, bytes]]:
    return make_xmr_license


@pytest.fixture
def playready_response() -> Callable[..., bytes]:
    return license_response
