"""
Widevine service certificates and the root of trust they chain to.
"""

from __future__ import annotations

import base64
import logging

from google.protobuf.message import DecodeError

from easycdm.common.crypto import CryptoUtils
from easycdm.common.exceptions import InvalidCertificate, MalformedInputError
from easycdm.widevine.proto import (
    DrmCertificate,
    MessageType,
    SignedDrmCertificate,
    SignedMessage,
)

logger = logging.getLogger(__name__)

ROOT_CERTIFICATE = (
    "CpwDCAASAQAY3ZSIiwUijgMwggGKAoIBgQC0/jnDZZAD2zwRlwnoaM3yw16b8udNI7EQ24dl39z7"
    "nzWgVwNTTPZtNX2meNuzNtI/nECplSZyf7i+Zt/FIZh4FRZoXS9GDkPLioQ5q/uwNYAivjQji6tT"
    "W3LsS7VIaVM+R1/9Cf2ndhOPD5LWTN+udqm62SIQqZ1xRdbX4RklhZxTmpfrhNfMqIiCIHAmIP1+"
    "QFAn4iWTb7w+cqD6wb0ptE2CXMG0y5xyfrDpihc+GWP8/YJIK7eyM7l97Eu6iR8nuJuISISqGJIO"
    "ZfXIbBH/azbkdDTKjDOx+biOtOYS4AKYeVJeRTP/Edzrw1O6fGAaET0A+9K3qjD6T15Id1sX3HXv"
    "b9IZbdy+f7B4j9yCYEy/5CkGXmmMOROtFCXtGbLynwGCDVZEiMg17B8RsyTgWQ035Ec86kt/lzEc"
    "gXyUikx9aBWE/6UI/Rjn5yvkRycSEbgj7FiTPKwS0ohtQT3F/hzcufjUUT4H5QNvpxLoEve1zqaW"
    "VT94tGSCUNIzX5ECAwEAARKAA1jx1k0ECXvf1+9dOwI5F/oUNnVKOGeFVxKnFO41FtU9v0KG9mkA"
    "ds2T9Hyy355EzUzUrgkYU0Qy7OBhG+XaE9NVxd0ay5AeflvG6Q8in76FAv6QMcxrA4S9IsRV+vXy"
    "CM1lQVjofSnaBFiC9TdpvPNaV4QXezKHcLKwdpyywxXRESYqI3WZPrl3IjINvBoZwdVlkHZVdA8O"
    "aU1fTY8Zr9/WFjGUqJJfT7x6Mfiujq0zt+kw0IwKimyDNfiKgbL+HIisKmbF/73mF9BiC9yKRfew"
    "PlrIHkokL2yl4xyIFIPVxe9enz2FRXPia1BSV0z7kmxmdYrWDRuu8+yvUSIDXQouY5OcCwEgqKmE"
    "LhfKrnPsIht5rvagcizfB0fbiIYwFHghESKIrNdUdPnzJsKlVshWTwApHQh7evuVicPumFSePGuU"
    "BRMS9nG5qxPDDJtGCHs9Mmpoyh6ckGLF7RC5HxclzpC5bc3ERvWjYhN0AqdipPpV2d7PouaAdFUG"
    "SdUCDA==")

COMMON_PRIVACY_CERT = (
    "CAUSxwUKwQIIAxIQFwW5F8wSBIaLBjM6L3cqjBiCtIKSBSKOAjCCAQoCggEBAJntWzsyfateJO/D"
    "tiqVtZhSCtW8yzdQPgZFuBTYdrjfQFEEQa2M462xG7iMTnJaXkqeB5UpHVhYQCOn4a8OOKkSeTkw"
    "CGELbxWMh4x+Ib/7/up34QGeHleB6KRfRiY9FOYOgFioYHrc4E+shFexN6jWfM3rM3BdmDoh+07s"
    "vUoQykdJDKR+ql1DghjduvHK3jOS8T1v+2RC/THhv0CwxgTRxLpMlSCkv5fuvWCSmvzu9Vu69WTi"
    "0Ods18Vcc6CCuZYSC4NZ7c4kcHCCaA1vZ8bYLErF8xNEkKdO7DevSy8BDFnoKEPiWC8La59dsPxe"
    "bt9k+9MItHEbzxJQAZyfWgkCAwEAAToUbGljZW5zZS53aWRldmluZS5jb20SgAOuNHMUtag1KX8n"
    "E4j7e7jLUnfSSYI83dHaMLkzOVEes8y96gS5RLknwSE0bv296snUE5F+bsF2oQQ4RgpQO8GVK5uk"
    "5M4PxL/CCpgIqq9L/NGcHc/N9XTMrCjRtBBBbPneiAQwHL2zNMr80NQJeEI6ZC5UYT3wr8+WykqS"
    "SdhV5Cs6cD7xdn9qm9Nta/gr52u/DLpP3lnSq8x2/rZCR7hcQx+8pSJmthn8NpeVQ/ypy727+voO"
    "GlXnVaPHvOZV+WRvWCq5z3CqCLl5+Gf2Ogsrf9s2LFvE7NVV2FvKqcWTw4PIV9Sdqrd+QLeFHd/S"
    "SZiAjjWyWOddeOrAyhb3BHMEwg2T7eTo/xxvF+YkPj89qPwXCYcOxF+6gjomPwzvofcJOxkJkoMm"
    "MzcFBDopvab5tDQsyN9UPLGhGC98X/8z8QSQ+spbJTYLdgFenFoGq47gLwDS6NWYYQSqzE3Udf2W"
    "7pzk4ybyG4PHBYV3s4cyzdq8amvtE/sNSdOKReuHpfQ=")

STAGING_PRIVACY_CERT = (
    "CAUSxQUKvwIIAxIQKHA0VMAI9jYYredEPbbEyBiL5/mQBSKOAjCCAQoCggEBALUhErjQXQI/zF2V"
    "4sJRwcZJtBd82NK+7zVbsGdD3mYePSq8MYK3mUbVX9wI3+lUB4FemmJ0syKix/XgZ7tfCsB6idRa"
    "6pSyUW8HW2bvgR0NJuG5priU8rmFeWKqFxxPZmMNPkxgJxiJf14e+baq9a1Nuip+FBdt8TSh0xhb"
    "WiGKwFpMQfCB7/+Ao6BAxQsJu8dA7tzY8U1nWpGYD5LKfdxkagatrVEB90oOSYzAHwBTK6wheFC9"
    "kF6QkjZWt9/v70JIZ2fzPvYoPU9CVKtyWJOQvuVYCPHWaAgNRdiTwryi901goMDQoJk87wFgRwMz"
    "TDY4E5SGvJ2vJP1noH+a2UMCAwEAAToSc3RhZ2luZy5nb29nbGUuY29tEoADmD4wNSZ19AunFfwk"
    "m9rl1KxySaJmZSHkNlVzlSlyH/iA4KrvxeJ7yYDa6tq/P8OG0ISgLIJTeEjMdT/0l7ARp9qXeIoA"
    "4qprhM19ccB6SOv2FgLMpaPzIDCnKVww2pFbkdwYubyVk7jei7UPDe3BKTi46eA5zd4Y+oLoG7Ay"
    "Yw/pVdhaVmzhVDAL9tTBvRJpZjVrKH1lexjOY9Dv1F/FJp6X6rEctWPlVkOyb/SfEJwhAa/K81uD"
    "LyiPDZ1Flg4lnoX7XSTb0s+Cdkxd2b9yfvvpyGH4aTIfat4YkF9Nkvmm2mU224R1hx0WjocLsjA8"
    "9wxul4TJPS3oRa2CYr5+DU4uSgdZzvgtEJ0lksckKfjAF0K64rPeytvDPD5fS69eFuy3Tq26/LfG"
    "cF96njtvOUA4P5xRFtICogySKe6WnCUZcYMDtQ0BMMM1LgawFNg4VA+KDCJ8ABHg9bOOTimO0ssw"
    "HrRWSWX1XF15dXolCk65yEqz5lOfa2/fVomeopkU")

# Request that asks a license server for its service certificate
SERVICE_CERTIFICATE_CHALLENGE = b"\x08\x04"


def _parse(message: type, data: bytes):
    parsed = message()
    try:
        parsed.ParseFromString(data)
    except DecodeError as err:
        msg = f"Unable to parse {message.DESCRIPTOR.name}"
        raise MalformedInputError(msg) from err
    return parsed


def parse_service_certificate(
    certificate: bytes | str,
) -> tuple[SignedDrmCertificate, DrmCertificate]:
    """
    Parse a service certificate.

    Accepts a SignedDrmCertificate or a SignedMessage of type
    SERVICE_CERTIFICATE wrapping one, as bytes or base64.
    """
    if isinstance(certificate, str):
        certificate = base64.b64decode(certificate)

    payload = certificate
    signed_message = SignedMessage()
    try:
        signed_message.ParseFromString(certificate)
        if (
            signed_message.HasField("type")
            and signed_message.type == MessageType.SERVICE_CERTIFICATE
        ):
            payload = signed_message.msg
    except DecodeError:
        logger.debug("Service certificate is not wrapped in a SignedMessage")

    signed_certificate = _parse(SignedDrmCertificate, payload)
    if not signed_certificate.drm_certificate:
        msg = "Service certificate carries no DRM certificate"
        raise MalformedInputError(msg)
    drm_certificate = _parse(DrmCertificate, signed_certificate.drm_certificate)
    return signed_certificate, drm_certificate


def verify_certificate(
    signed_certificate: SignedDrmCertificate,
    issuer: DrmCertificate | None = None,
) -> None:
    """
    Check the RSA-PSS signature of a certificate against its issuer,
    the Widevine root by default.

    Raises:
        InvalidCertificate: the signature does not verify
    """
    issuer = issuer or ROOT_DRM_CERTIFICATE
    public_key = CryptoUtils.load_rsa_public_key(issuer.public_key)
    if not CryptoUtils.rsa_pss_verify(
        public_key, signed_certificate.drm_certificate, signed_certificate.signature
    ):
        msg = "Service certificate signature does not verify against its issuer"
        raise InvalidCertificate(msg)


ROOT_SIGNED_CERTIFICATE = _parse(
    SignedDrmCertificate, base64.b64decode(ROOT_CERTIFICATE)
)
ROOT_DRM_CERTIFICATE = _parse(
    DrmCertificate, ROOT_SIGNED_CERTIFICATE.drm_certificate
)
