"""
Pydantic models for keys, session state and request/response validation.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SessionType = Literal["temporary", "persistent-license"]
MessageType = Literal[
    "license-request",
    "license-renewal",
    "license-release",
    "individualization-request",
]


class Key(BaseModel):
    """A recovered content key, identified and valued in lowercase hex."""

    model_config = ConfigDict(populate_by_name=True)

    key_id: str = Field(alias="keyId")
    key: str
    type: str | None = None
    cipher_type: str | None = Field(default=None, alias="cipherType")
    security_level: str | None = Field(default=None, alias="securityLevel")
    track_label: str | None = Field(default=None, alias="trackLabel")
    permissions: list[str] = Field(default_factory=list)

    @property
    def kid(self) -> bytes:
        return bytes.fromhex(self.key_id)

    @property
    def value(self) -> bytes:
        return bytes.fromhex(self.key)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)

    def __str__(self) -> str:
        return f"{self.key_id}:{self.key}"


class KeyMessage(BaseModel):
    """A message a session wants delivered to a license server."""

    message_type: MessageType
    message: bytes


# Remote CDM protocol


class CreateSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_type: SessionType = Field(default="temporary", alias="sessionType")
    client: str | None = None


class CreateSessionResponse(BaseModel):
    id: str


class GenerateRequestRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    init_data_type: str = Field(default="cenc", alias="initDataType")
    init_data: str = Field(alias="initData")


class LicenseRequestResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    license_request: str = Field(alias="licenseRequest")
    message_type: MessageType = Field(default="license-request", alias="messageType")


class UpdateRequest(BaseModel):
    response: str


class UpdateResponse(BaseModel):
    """Update result; carries the re-issued request after a certificate exchange."""

    model_config = ConfigDict(populate_by_name=True)

    license_request: str | None = Field(default=None, alias="licenseRequest")
    message_type: MessageType | None = Field(default=None, alias="messageType")


class ErrorResponse(BaseModel):
    error: str


# Service configuration


class UserConfig(BaseModel):
    name: str = ""
    clients: list[str] = Field(default_factory=list)


class ServerConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    host: str = "127.0.0.1"
    port: int = 4000
    clients: list[str] = Field(default_factory=list)
    users: dict[str, UserConfig] = Field(default_factory=dict)
    force_privacy_mode: bool = Field(default=False, alias="forcePrivacyMode")


# Session state blobs


class RequestContext(BaseModel):
    """Base64 key-derivation contexts recorded for one license request."""

    enc: str
    auth: str


class WidevineSessionState(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    session_type: SessionType = Field(alias="sessionType")
    init_data: str | None = Field(alias="initData")
    init_data_type: str | None = Field(alias="initDataType")
    individualization_sent: bool = Field(alias="individualizationSent")
    service_certificate: str | None = Field(alias="serviceCertificate")
    contexts: dict[str, RequestContext]
    keys: list[Key]


class PlayReadySessionState(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    session_type: SessionType = Field(alias="sessionType")
    init_data: str | None = Field(alias="initData")
    init_data_type: str | None = Field(alias="initDataType")
    keys: list[Key]
