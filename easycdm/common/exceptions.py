"""
Custom exceptions for the CDM engine.
"""

from __future__ import annotations


class CdmError(Exception):
    """Base exception for every failure surfaced by the engine."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedInputError(CdmError):
    """Input bytes or text could not be decoded."""


class ConstantMismatch(MalformedInputError):
    """A magic value or constant field did not match."""


class InsufficientData(MalformedInputError):
    """Input ended before the structure was complete."""


class InvalidInitData(MalformedInputError):
    """The init data (PSSH) is invalid or empty."""


class InvalidLicenseMessage(MalformedInputError):
    """The license message could not be parsed."""


class InvalidLicense(MalformedInputError):
    """The XMR license could not be parsed."""


class InvalidKeyMaterial(MalformedInputError):
    """Key bytes are not a valid key for the requested algorithm."""


class InvalidDevice(MalformedInputError):
    """The client identity file is not correctly formatted."""


class TrustError(CdmError):
    """A cryptographic verification failed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 403)


class InvalidCertificate(TrustError):
    """A single certificate failed verification."""

    def __init__(self, message: str, index: int | None = None) -> None:
        super().__init__(message)
        self.index = index


class InvalidCertificateChain(TrustError):
    """The certificate chain failed verification."""

    def __init__(self, message: str, index: int | None = None) -> None:
        super().__init__(message)
        self.index = index


class SignatureMismatch(TrustError):
    """A message signature did not match its computed value."""


class LicenseIntegrityError(TrustError):
    """The license integrity signature did not match."""


class InvalidSession(CdmError):
    """No usable session for the request."""

    def __init__(self, message: str, status_code: int = 404) -> None:
        super().__init__(message, status_code)


class InvalidContext(InvalidSession):
    """No request context exists for a license response."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 400)


class TooManySessions(InvalidSession):
    """Too many sessions are open."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 429)


class UnsupportedError(CdmError):
    """The requested scheme, format or version is not supported."""


class UnsupportedVersion(UnsupportedError):
    """Unsupported structure version."""


class UnsupportedKeySystem(UnsupportedError):
    """Unsupported media key system."""


class AccessDenied(CdmError):
    """The caller is not allowed to use the resource."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 403)


class ServerException(CdmError):
    """The license server rejected the request."""

    def __init__(self, message: str, status_code: int = 502) -> None:
        super().__init__(message, status_code)


class RemoteCdmError(CdmError):
    """A remote CDM call failed."""
