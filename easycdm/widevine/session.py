"""
Widevine license session.

A session signs license requests for one piece of content, keeps the key
derivation context of every request it sent, and recovers content keys
from the matching license.
"""

from __future__ import annotations

import base64
import logging
import secrets
import time

from google.protobuf.message import DecodeError
from pydantic import ValidationError

from easycdm.common.crypto import CryptoUtils
from easycdm.common.exceptions import (
    InvalidContext,
    InvalidLicenseMessage,
    InvalidSession,
    SignatureMismatch,
)
from easycdm.common.models import (
    Key,
    KeyMessage,
    RequestContext,
    SessionType,
    WidevineSessionState,
)
from easycdm.widevine.certificate import (
    SERVICE_CERTIFICATE_CHALLENGE,
    parse_service_certificate,
    verify_certificate,
)
from easycdm.widevine.device import WidevineClient
from easycdm.widevine.proto import (
    ContentIdentification,
    DrmCertificate,
    KeyContainer,
    KeyType,
    License,
    LicenseRequest,
    LicenseType,
    MessageType,
    ProtocolVersion,
    RequestType,
    SecurityLevel,
    SignedDrmCertificate,
    SignedMessage,
    WidevinePsshContent,
)
from easycdm.widevine.pssh import PSSH

logger = logging.getLogger(__name__)

PERMISSIONS = ("allow_encrypt", "allow_decrypt", "allow_sign", "allow_signature_verify")


def generate_session_id() -> str:
    """16 random hex digits, a 2 digit counter and 14 zeros."""
    return secrets.token_hex(8).upper() + "01" + "00000000000000"


def derive_context(message: bytes) -> tuple[bytes, bytes]:
    """Return the encryption and authentication contexts for a request."""
    enc = b"ENCRYPTION\x00" + message + (128).to_bytes(4, "big")
    auth = b"AUTHENTICATION\x00" + message + (512).to_bytes(4, "big")
    return enc, auth


def derive_keys(
    enc_context: bytes, auth_context: bytes, session_key: bytes
) -> tuple[bytes, bytes, bytes]:
    """
    Derive the content decryption key and the server and client MAC keys.

    Each block is AES-CMAC(session_key, counter || context).
    """

    def derive(context: bytes, counter: int) -> bytes:
        return CryptoUtils.aes_cmac(session_key, bytes([counter]) + context)

    enc_key = derive(enc_context, 1)
    mac_key_server = derive(auth_context, 1) + derive(auth_context, 2)
    mac_key_client = derive(auth_context, 3) + derive(auth_context, 4)
    return enc_key, mac_key_server, mac_key_client


def key_from_container(container: KeyContainer, enc_key: bytes) -> Key:
    value = CryptoUtils.aes_cbc_decrypt(enc_key, container.iv, container.key)
    permissions = []
    if container.HasField("operator_session_key_permissions"):
        granted = container.operator_session_key_permissions
        permissions = [name for name in PERMISSIONS if getattr(granted, name)]
    return Key(
        key_id=container.id.hex(),
        key=value.hex(),
        type=KeyType.Name(container.type) if container.HasField("type") else None,
        security_level=(
            SecurityLevel.Name(container.level) if container.HasField("level") else None
        ),
        track_label=container.track_label or None,
        permissions=permissions,
    )


class Session:
    """One Widevine license exchange."""

    def __init__(
        self,
        client: WidevineClient,
        session_type: SessionType = "temporary",
        privacy_mode: bool = False,  # noqa: FBT001, FBT002
    ) -> None:
        self.session_id = generate_session_id()
        self.session_type: SessionType = session_type
        self.client = client
        self.privacy_mode = privacy_mode
        self.keys: dict[str, Key] = {}
        self.contexts: dict[str, tuple[bytes, bytes]] = {}
        self.init_data: bytes | None = None
        self.init_data_type: str | None = None
        self.individualization_sent = False
        self.service_certificate: SignedDrmCertificate | None = None
        self.closed = False

    def _check_open(self) -> None:
        if self.closed:
            msg = f"Session {self.session_id} is closed"
            raise InvalidSession(msg, 400)

    def generate_request(self, init_data_type: str, init_data: bytes) -> KeyMessage:
        """
        Build a signed license request.

        In privacy mode, before any service certificate is known, an
        individualization request is returned instead and the license
        request is issued once update() receives the certificate.
        """
        self._check_open()
        self.init_data = init_data
        self.init_data_type = init_data_type
        if (
            self.privacy_mode
            and self.service_certificate is None
            and not self.individualization_sent
        ):
            self.individualization_sent = True
            return KeyMessage(
                message_type="individualization-request",
                message=SERVICE_CERTIFICATE_CHALLENGE,
            )

        pssh = PSSH(init_data)
        request_id = self.session_id.encode()
        request = LicenseRequest(
            content_id=ContentIdentification(
                widevine_pssh_data=WidevinePsshContent(
                    pssh_data=[pssh.dumps()],
                    license_type=(
                        LicenseType.OFFLINE
                        if self.session_type == "persistent-license"
                        else LicenseType.STREAMING
                    ),
                    request_id=request_id,
                )
            ),
            type=RequestType.NEW,
            request_time=int(time.time()),
            protocol_version=ProtocolVersion.VERSION_2_1,
        )
        if self.service_certificate is not None:
            drm_certificate = DrmCertificate()
            drm_certificate.ParseFromString(self.service_certificate.drm_certificate)
            request.encrypted_client_id.CopyFrom(
                self.client.encrypt_client_id(drm_certificate)
            )
        else:
            request.client_id.CopyFrom(self.client.client_id)

        message = request.SerializeToString()
        signed = SignedMessage(
            type=MessageType.LICENSE_REQUEST,
            msg=message,
            signature=self.client.sign(message),
        )
        self.contexts[request_id.hex()] = derive_context(message)
        logger.debug(
            "Session %s: license request %s (privacy=%s)",
            self.session_id,
            request_id.hex(),
            self.service_certificate is not None,
        )
        return KeyMessage(message_type="license-request", message=signed.SerializeToString())

    def set_service_certificate(self, certificate: bytes | str) -> str:
        """Verify and install a service certificate, returning its provider id."""
        signed_certificate, drm_certificate = parse_service_certificate(certificate)
        verify_certificate(signed_certificate)
        self.service_certificate = signed_certificate
        logger.debug(
            "Session %s: service certificate from %s installed",
            self.session_id,
            drm_certificate.provider_id,
        )
        return drm_certificate.provider_id

    def update(self, response: bytes) -> KeyMessage | None:
        """
        Process a license server message.

        Returns the deferred license request when the message was a service
        certificate, otherwise None once the license keys are recovered.
        """
        self._check_open()
        signed = SignedMessage()
        try:
            signed.ParseFromString(response)
        except DecodeError as err:
            msg = "Unable to parse license message"
            raise InvalidLicenseMessage(msg) from err

        if signed.type == MessageType.SERVICE_CERTIFICATE:
            self.set_service_certificate(response)
            if self.init_data is None or self.init_data_type is None:
                return None
            return self.generate_request(self.init_data_type, self.init_data)

        if signed.type != MessageType.LICENSE:
            msg = f"Expected a LICENSE message, got type {signed.type}"
            raise InvalidLicenseMessage(msg)

        license_message = License()
        try:
            license_message.ParseFromString(signed.msg)
        except DecodeError as err:
            msg = "Unable to parse License"
            raise InvalidLicenseMessage(msg) from err

        request_id = license_message.id.request_id.hex()
        context = self.contexts.get(request_id)
        if context is None:
            msg = f"No request context for license with request id {request_id}"
            raise InvalidContext(msg)

        session_key = self.client.decrypt(signed.session_key)
        enc_key, mac_key_server, _ = derive_keys(*context, session_key)

        signed_data = signed.oemcrypto_core_message + signed.msg
        if not CryptoUtils.hmac_sha256_verify(mac_key_server, signed_data, signed.signature):
            logger.debug(
                "Calculated signature: %s",
                CryptoUtils.hmac_sha256(mac_key_server, signed_data).hex(),
            )
            logger.debug("Actual signature: %s", signed.signature.hex())
            msg = "Signature mismatch on license message, rejecting license"
            raise SignatureMismatch(msg)

        recovered = {}
        for container in license_message.key:
            if not container.id or not container.key or not container.iv:
                continue
            key = key_from_container(container, enc_key)
            recovered[key.key_id] = key
        self.keys.update(recovered)
        del self.contexts[request_id]
        logger.debug("Session %s: %d keys recovered", self.session_id, len(recovered))

        if self.keys:
            self.close()
        return None

    def close(self) -> None:
        self.closed = True

    def remove(self) -> None:
        self.keys.clear()
        self.contexts.clear()
        self.closed = True

    def pause(self) -> str:
        """Serialize everything needed to resume this session."""
        state = WidevineSessionState(
            session_id=self.session_id,
            session_type=self.session_type,
            init_data=(
                base64.b64encode(self.init_data).decode() if self.init_data else None
            ),
            init_data_type=self.init_data_type,
            individualization_sent=self.individualization_sent,
            service_certificate=(
                base64.b64encode(self.service_certificate.SerializeToString()).decode()
                if self.service_certificate is not None
                else None
            ),
            contexts={
                request_id: RequestContext(
                    enc=base64.b64encode(enc).decode(),
                    auth=base64.b64encode(auth).decode(),
                )
                for request_id, (enc, auth) in self.contexts.items()
            },
            keys=list(self.keys.values()),
        )
        return state.model_dump_json(by_alias=True)

    @classmethod
    def resume(
        cls,
        state: str,
        client: WidevineClient,
        privacy_mode: bool = False,  # noqa: FBT001, FBT002
    ) -> Session:
        """Restore a paused session; fails if any state field is missing."""
        try:
            values = WidevineSessionState.model_validate_json(state)
        except ValidationError as err:
            msg = f"Invalid session state: {err}"
            raise InvalidSession(msg, 400) from err

        session = cls(client, values.session_type, privacy_mode)
        session.session_id = values.session_id
        session.init_data = base64.b64decode(values.init_data) if values.init_data else None
        session.init_data_type = values.init_data_type
        session.individualization_sent = values.individualization_sent
        if values.service_certificate:
            signed_certificate, _ = parse_service_certificate(values.service_certificate)
            session.service_certificate = signed_certificate
        session.contexts = {
            request_id: (base64.b64decode(context.enc), base64.b64decode(context.auth))
            for request_id, context in values.contexts.items()
        }
        session.keys = {key.key_id: key for key in values.keys}
        return session
