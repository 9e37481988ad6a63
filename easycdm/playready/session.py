"""
PlayReady license session.

Builds the signed SOAP license challenge for a WRM header and recovers
content keys from the XMR licenses in the server's answer.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
import time

from lxml import etree
from pydantic import ValidationError

from easycdm.common.crypto import CryptoUtils
from easycdm.common.ecc import EccKey, ElGamal
from easycdm.common.exceptions import (
    InvalidLicense,
    InvalidLicenseMessage,
    InvalidSession,
    LicenseIntegrityError,
    ServerException,
)
from easycdm.common.models import Key, KeyMessage, PlayReadySessionState, SessionType
from easycdm.playready.device import Device
from easycdm.playready.pssh import PSSH
from easycdm.playready.xmr import (
    XmrCipherType,
    XmrKeyType,
    XmrLicense,
    XmrObjectType,
)

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_VERSION = "10.0.16384.10011"

WMRM_SERVER_KEY = (
    90785344306297710604867503975059265028223978614363440949957868233137570135451,
    68827801477692731286297993103001909218341737652466656881935707825713852622178,
)

RGB_MAGIC_CONSTANT_ZERO = bytes.fromhex("7ee9ed4af773224f00b8ea7efb027cbb")

SUPPORTED_CIPHERS = (
    XmrCipherType.ECC_256,
    XmrCipherType.ECC_256_WITH_KZ,
    XmrCipherType.ECC_256_VIA_SYMMETRIC,
)

PROTOCOL_VERSIONS = {"4.3.0.0": 5, "4.2.0.0": 4}

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)


def swap_key_id(key_id: bytes) -> bytes:
    """Convert a little endian GUID to big endian byte order."""
    return key_id[3::-1] + key_id[5:3:-1] + key_id[7:5:-1] + key_id[8:]


def _enum_name(enum_cls, value: int) -> str:
    try:
        return enum_cls(value).name
    except ValueError:
        return str(value)


class XmlKey:
    """Ephemeral key whose x coordinate yields the challenge AES key and IV."""

    def __init__(self) -> None:
        self.key = EccKey.generate()
        x_bytes = self.key.public_bytes()[:32]
        self.aes_iv = x_bytes[:16]
        self.aes_key = x_bytes[16:]

    @property
    def point(self) -> tuple[int, int]:
        return self.key.public_point


class Session:
    """One PlayReady license exchange."""

    def __init__(
        self,
        device: Device,
        session_type: SessionType = "temporary",
        client_version: str = DEFAULT_CLIENT_VERSION,
    ) -> None:
        self.session_id = secrets.token_hex(16)
        self.session_type: SessionType = session_type
        self.device = device
        self.client_version = client_version
        self.keys: list[Key] = []
        self.init_data: bytes | None = None
        self.init_data_type: str | None = None
        self.closed = False

    def _check_open(self) -> None:
        if self.closed:
            msg = f"Session {self.session_id} is closed"
            raise InvalidSession(msg, 400)

    def generate_request(self, init_data_type: str, init_data: bytes) -> KeyMessage:
        self._check_open()
        pssh = PSSH(init_data)
        challenge = self.get_license_challenge(pssh.wrm_headers[0])
        self.init_data = init_data
        self.init_data_type = init_data_type
        return KeyMessage(message_type="license-request", message=challenge.encode())

    @staticmethod
    def protocol_version(wrm_header: str) -> int:
        try:
            root = etree.fromstring(wrm_header.encode(), _PARSER)
        except etree.XMLSyntaxError:
            logger.debug("WRM header is not well formed, using protocol version 1")
            return 1
        return PROTOCOL_VERSIONS.get(root.get("version"), 1)

    def _key_cipher(self, xml_key: XmlKey) -> bytes:
        return ElGamal.encrypt_to_bytes(xml_key.point, WMRM_SERVER_KEY)

    def _data_cipher(self, xml_key: XmlKey) -> bytes:
        chain = base64.b64encode(self.device.group_certificate.dumps()).decode()
        body = (
            "<Data><CertificateChains><CertificateChain>"
            f"{chain}"
            "</CertificateChain></CertificateChains>"
            '<Features><Feature Name="AESCBC">""</Feature>'
            "<REE><AESCBCS></AESCBCS></REE></Features></Data>"
        )
        return xml_key.aes_iv + CryptoUtils.aes_cbc_encrypt(
            xml_key.aes_key, xml_key.aes_iv, body.encode()
        )

    def _la_content(  # noqa: PLR0913
        self,
        wrm_header: str,
        nonce: str,
        key_cipher: str,
        data_cipher: str,
        protocol_version: int,
        rev_lists: str,
    ) -> str:
        return (
            '<LA xmlns="http://schemas.microsoft.com/DRM/2007/03/protocols" '
            'Id="SignedData" xml:space="preserve">'
            f"<Version>{protocol_version}</Version>"
            f"<ContentHeader>{wrm_header}</ContentHeader>"
            "<CLIENTINFO>"
            f"<CLIENTVERSION>{self.client_version}</CLIENTVERSION>"
            "</CLIENTINFO>"
            f"{rev_lists}"
            f"<LicenseNonce>{nonce}</LicenseNonce>"
            f"<ClientTime>{int(time.time())}</ClientTime>"
            '<EncryptedData xmlns="http://www.w3.org/2001/04/xmlenc#" '
            'Type="http://www.w3.org/2001/04/xmlenc#Element">'
            '<EncryptionMethod Algorithm="http://www.w3.org/2001/04/xmlenc#aes128-cbc">'
            "</EncryptionMethod>"
            '<KeyInfo xmlns="http://www.w3.org/2000/09/xmldsig#">'
            '<EncryptedKey xmlns="http://www.w3.org/2001/04/xmlenc#">'
            '<EncryptionMethod Algorithm="http://schemas.microsoft.com/DRM/2007/03/protocols#ecc256">'
            "</EncryptionMethod>"
            '<KeyInfo xmlns="http://www.w3.org/2000/09/xmldsig#">'
            "<KeyName>WMRMServer</KeyName>"
            "</KeyInfo>"
            "<CipherData>"
            f"<CipherValue>{key_cipher}</CipherValue>"
            "</CipherData>"
            "</EncryptedKey>"
            "</KeyInfo>"
            "<CipherData>"
            f"<CipherValue>{data_cipher}</CipherValue>"
            "</CipherData>"
            "</EncryptedData>"
            "</LA>"
        )

    @staticmethod
    def _signed_info(digest_value: str) -> str:
        return (
            '<SignedInfo xmlns="http://www.w3.org/2000/09/xmldsig#">'
            '<CanonicalizationMethod Algorithm="http://www.w3.org/TR/2001/REC-xml-c14n-20010315">'
            "</CanonicalizationMethod>"
            '<SignatureMethod Algorithm="http://schemas.microsoft.com/DRM/2007/03/protocols#ecdsa-sha256">'
            "</SignatureMethod>"
            '<Reference URI="#SignedData">'
            '<DigestMethod Algorithm="http://schemas.microsoft.com/DRM/2007/03/protocols#sha256">'
            "</DigestMethod>"
            f"<DigestValue>{digest_value}</DigestValue>"
            "</Reference>"
            "</SignedInfo>"
        )

    @staticmethod
    def _envelope(la_content: str, signed_info: str, signature: str, public_key: str) -> str:
        return (
            '<?xml version="1.0" encoding="utf-8"?>'
            '<soap:Envelope xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
            'xmlns:xsd="http://www.w3.org/2001/XMLSchema" '
            'xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
            "<soap:Body>"
            '<AcquireLicense xmlns="http://schemas.microsoft.com/DRM/2007/03/protocols">'
            "<challenge>"
            '<Challenge xmlns="http://schemas.microsoft.com/DRM/2007/03/protocols/messages">'
            f"{la_content}"
            '<Signature xmlns="http://www.w3.org/2000/09/xmldsig#">'
            f"{signed_info}"
            f"<SignatureValue>{signature}</SignatureValue>"
            '<KeyInfo xmlns="http://www.w3.org/2000/09/xmldsig#">'
            "<KeyValue><ECCKeyValue>"
            f"<PublicKey>{public_key}</PublicKey>"
            "</ECCKeyValue></KeyValue>"
            "</KeyInfo>"
            "</Signature>"
            "</Challenge>"
            "</challenge>"
            "</AcquireLicense>"
            "</soap:Body>"
            "</soap:Envelope>"
        )

    def get_license_challenge(self, wrm_header: str, rev_lists: str = "") -> str:
        """Build the signed SOAP AcquireLicense envelope for a WRM header."""
        xml_key = XmlKey()
        la_content = self._la_content(
            wrm_header,
            base64.b64encode(CryptoUtils.random_bytes(16)).decode(),
            base64.b64encode(self._key_cipher(xml_key)).decode(),
            base64.b64encode(self._data_cipher(xml_key)).decode(),
            self.protocol_version(wrm_header),
            rev_lists,
        )
        digest = base64.b64encode(CryptoUtils.sha256(la_content.encode())).decode()
        signed_info = self._signed_info(digest)
        signature = self.device.signing_key.sign(signed_info.encode())
        logger.debug("Session %s: license challenge built", self.session_id)
        return self._envelope(
            la_content,
            signed_info,
            base64.b64encode(signature).decode(),
            base64.b64encode(self.device.signing_key.public_bytes()).decode(),
        )

    def _content_key(
        self, content_key, auxiliary_keys: list, scalable: bool  # noqa: FBT001
    ) -> tuple[bytes, bytes]:
        encrypted_key = content_key.encrypted_key
        decrypted = ElGamal.decrypt_from_bytes(
            encrypted_key, self.device.encryption_key.private_value
        )
        ci, ck = decrypted[:16], decrypted[16:32]
        if not scalable:
            return ci, ck

        ci, ck = decrypted[::2][:16], decrypted[1::2][:16]
        if content_key.cipher_type != XmrCipherType.ECC_256_VIA_SYMMETRIC:
            return ci, ck

        root_license = encrypted_key[:144]
        leaf_license = encrypted_key[144:]
        if len(root_license) < 144 or len(leaf_license) < 32:  # noqa: PLR2004
            msg = "Scalable content key is too short to carry an embedded leaf license"
            raise InvalidLicense(msg)
        aux_key = next(
            (
                key.key
                for obj in auxiliary_keys
                if obj.data is not None
                for key in obj.data.auxiliary_keys
            ),
            None,
        )
        if aux_key is None:
            msg = "Scalable license carries no auxiliary key"
            raise InvalidLicense(msg)

        rgb_key = bytes(a ^ b for a, b in zip(ck, RGB_MAGIC_CONSTANT_ZERO))
        content_key_prime = CryptoUtils.aes_ecb_encrypt(ck, rgb_key)
        uplink_x_key = CryptoUtils.aes_ecb_encrypt(content_key_prime, aux_key)
        secondary_key = CryptoUtils.aes_ecb_encrypt(ck, root_license[128:])
        try:
            leaf_license = CryptoUtils.aes_ecb_encrypt(uplink_x_key, leaf_license)
            leaf_license = CryptoUtils.aes_ecb_encrypt(secondary_key, leaf_license)
        except ValueError as err:
            msg = "Embedded leaf license is not block aligned"
            raise InvalidLicense(msg) from err
        return leaf_license[:16], leaf_license[16:32]

    def parse_license(self, response: str | bytes) -> list[Key]:
        """
        Recover the content keys from a license response.

        Raises:
            ServerException: the response is a SOAP fault
            InvalidLicense: a license is malformed or uses an unsupported cipher
            LicenseIntegrityError: a license signature does not match its key
        """
        if isinstance(response, str):
            response = response.encode()
        try:
            root = etree.fromstring(response, _PARSER)
        except etree.XMLSyntaxError as err:
            msg = f"License response is not valid XML: {err}"
            raise InvalidLicenseMessage(msg) from err

        fault = next(root.iter("{*}Fault"), None)
        if fault is not None:
            msg = fault.findtext("{*}faultstring") or "License server returned a fault"
            raise ServerException(msg)

        elements = list(root.iter("{*}License"))
        if not elements:
            msg = "No license found in response"
            raise InvalidLicenseMessage(msg)

        keys = []
        for element in elements:
            try:
                data = base64.b64decode(element.text or "", validate=True)
            except binascii.Error as err:
                msg = "License element is not valid base64"
                raise InvalidLicense(msg) from err
            license_ = XmrLicense.loads(data)
            auxiliary_keys = license_.get_objects(XmrObjectType.AUXILIARY_KEYS)

            for obj in license_.get_objects(XmrObjectType.CONTENT_KEY):
                content_key = obj.data
                if content_key is None:
                    continue
                if content_key.cipher_type not in SUPPORTED_CIPHERS:
                    msg = f"Unsupported cipher type {content_key.cipher_type}"
                    raise InvalidLicense(msg)

                ci, ck = self._content_key(
                    content_key, auxiliary_keys, scalable=bool(auxiliary_keys)
                )
                if not license_.check_signature(ci):
                    msg = "License integrity signature does not match"
                    raise LicenseIntegrityError(msg)

                keys.append(
                    Key(
                        key_id=swap_key_id(content_key.key_id).hex(),
                        key=ck.hex(),
                        type=_enum_name(XmrKeyType, content_key.key_type),
                        cipher_type=_enum_name(XmrCipherType, content_key.cipher_type),
                    )
                )
        return keys

    def update(self, response: bytes) -> KeyMessage | None:
        self._check_open()
        if self.init_data is None:
            msg = f"Session {self.session_id} has not generated a license request"
            raise InvalidSession(msg, 400)
        self.keys = self.parse_license(response)
        logger.debug("Session %s: %d keys recovered", self.session_id, len(self.keys))
        if self.keys:
            self.close()
        return None

    def close(self) -> None:
        self.closed = True

    def remove(self) -> None:
        self.keys = []
        self.closed = True

    def pause(self) -> str:
        state = PlayReadySessionState(
            session_id=self.session_id,
            session_type=self.session_type,
            init_data=(
                base64.b64encode(self.init_data).decode() if self.init_data else None
            ),
            init_data_type=self.init_data_type,
            keys=self.keys,
        )
        return state.model_dump_json(by_alias=True)

    @classmethod
    def resume(
        cls,
        state: str,
        device: Device,
        client_version: str = DEFAULT_CLIENT_VERSION,
    ) -> Session:
        """Restore a paused session; device keys come from the live device."""
        try:
            values = PlayReadySessionState.model_validate_json(state)
        except ValidationError as err:
            msg = f"Invalid session state: {err}"
            raise InvalidSession(msg, 400) from err

        session = cls(device, values.session_type, client_version)
        session.session_id = values.session_id
        session.init_data = base64.b64decode(values.init_data) if values.init_data else None
        session.init_data_type = values.init_data_type
        session.keys = list(values.keys)
        return session
