import base64
import json

import pytest
from lxml import etree

from easycdm.common.crypto import CryptoUtils
from easycdm.common.exceptions import (
    CdmError,
    InvalidLicense,
    InvalidLicenseMessage,
    InvalidSession,
    LicenseIntegrityError,
    ServerException,
)
from easycdm.playready.cdm import PlayReadyCdm
from easycdm.playready.session import Session, swap_key_id
from easycdm.playready.xmr import XmrCipherType, XmrLicense, XmrObjectType

from .conftest import WRM_HEADER, _xmr_object

KEY_ID = bytes.fromhex("0123456789abcdef0011223344556677")

NS = {
    "soap": "http://schemas.xmlsoap.org/soap/envelope/",
    "pr": "http://schemas.microsoft.com/DRM/2007/03/protocols",
    "msg": "http://schemas.microsoft.com/DRM/2007/03/protocols/messages",
    "ds": "http://www.w3.org/2000/09/xmldsig#",
}


def test_swap_key_id() -> None:
    assert swap_key_id(KEY_ID).hex() == "67452301ab89efcd0011223344556677"
    assert swap_key_id(swap_key_id(KEY_ID)) == KEY_ID


def test_protocol_version() -> None:
    assert Session.protocol_version(WRM_HEADER) == 5  # noqa: PLR2004
    assert Session.protocol_version(WRM_HEADER.replace("4.3.0.0", "4.2.0.0")) == 4  # noqa: PLR2004
    assert Session.protocol_version("<WRMHEADER version=") == 1


def test_license_challenge_is_signed(playready_device, playready_pssh) -> None:
    cdm = PlayReadyCdm(playready_device)
    session_id = cdm.create_session()
    message = cdm.generate_request(session_id, playready_pssh)
    assert message.message_type == "license-request"

    root = etree.fromstring(message.message)
    la = root.find(".//pr:LA", NS)
    assert la.findtext("pr:Version", namespaces=NS) == "5"
    assert la.findtext("pr:CLIENTINFO/pr:CLIENTVERSION", namespaces=NS) == (
        "10.0.16384.10011"
    )
    assert la.find("pr:ContentHeader/{*}WRMHEADER", NS) is not None

    signature = root.find(".//ds:Signature", NS)
    public_key = base64.b64decode(signature.findtext(".//ds:PublicKey", namespaces=NS))
    assert public_key == playready_device.signing_key.public_bytes()

    # the signature covers SignedInfo exactly as it appears in the document
    text = message.message.decode()
    start = text.index("<SignedInfo")
    signed_info = text[start : text.index("</SignedInfo>") + len("</SignedInfo>")]
    signature_value = base64.b64decode(
        signature.findtext("ds:SignatureValue", namespaces=NS)
    )
    assert CryptoUtils.ecdsa_verify(public_key, signed_info.encode(), signature_value)

    la_text = text[text.index("<LA ") : text.index("</LA>") + len("</LA>")]
    digest = signature.findtext(".//ds:DigestValue", namespaces=NS)
    assert base64.b64decode(digest) == CryptoUtils.sha256(la_text.encode())


def test_license_keys(playready_device, playready_pssh, xmr_license, playready_response) -> None:
    cdm = PlayReadyCdm(playready_device)
    session_id = cdm.create_session()
    cdm.generate_request(session_id, playready_pssh)
    license_, _, ck = xmr_license(playready_device, KEY_ID)

    assert cdm.update_session(session_id, playready_response(license_)) is None
    [key] = cdm.get_keys(session_id)
    assert key.key_id == swap_key_id(KEY_ID).hex()
    assert key.key == ck.hex()
    assert key.type == "AES_128_CTR"
    assert key.cipher_type == "ECC_256"


def test_scalable_license_interleaves_key(
    playready_device, xmr_license, playready_response
) -> None:
    session = Session(playready_device)
    license_, _, ck = xmr_license(playready_device, KEY_ID, auxiliary_key=b"\x05" * 16)
    [key] = session.parse_license(playready_response(license_))
    assert key.key == ck.hex()


def test_scalable_leaf_license_is_mixed(
    playready_device, xmr_license, playready_response
) -> None:
    session = Session(playready_device)
    leaf = bytes(range(32))
    license_, ci, ck = xmr_license(
        playready_device, KEY_ID, auxiliary_key=b"\x05" * 16, leaf_license=leaf
    )
    assert XmrLicense.loads(license_).check_signature(ci)
    [key] = session.parse_license(playready_response(license_))
    assert key.key == ck.hex()
    assert key.cipher_type == "ECC_256_VIA_SYMMETRIC"


@pytest.mark.parametrize("leaf", [b"\x01" * 40, b"\x01" * 16])
def test_scalable_leaf_license_must_be_whole_blocks(
    playready_device, xmr_license, playready_response, leaf: bytes
) -> None:
    license_, _, _ = xmr_license(
        playready_device, KEY_ID, auxiliary_key=b"\x05" * 16, leaf_license=leaf
    )
    with pytest.raises(InvalidLicense):
        Session(playready_device).parse_license(playready_response(license_))


@pytest.mark.parametrize(
    "auxiliary_object",
    [
        _xmr_object(XmrObjectType.AUXILIARY_KEYS, (0).to_bytes(2, "big")),
        _xmr_object(XmrObjectType.AUXILIARY_KEYS, b"", flags=2),
    ],
    ids=["no-keys", "container"],
)
def test_scalable_leaf_license_needs_auxiliary_key(
    playready_device, xmr_license, playready_response, auxiliary_object: bytes
) -> None:
    license_, _, _ = xmr_license(
        playready_device,
        KEY_ID,
        leaf_license=b"\x01" * 32,
        auxiliary_object=auxiliary_object,
    )
    with pytest.raises(InvalidLicense, match="auxiliary key"):
        Session(playready_device).parse_license(playready_response(license_))


def test_every_license_in_the_response(
    playready_device, xmr_license, playready_response
) -> None:
    session = Session(playready_device)
    first, _, ck1 = xmr_license(playready_device, KEY_ID)
    second, _, ck2 = xmr_license(playready_device, KEY_ID[::-1])
    keys = session.parse_license(playready_response(first, second))
    assert [key.key for key in keys] == [ck1.hex(), ck2.hex()]


def test_integrity_check_rejects_tampered_license(
    playready_device, xmr_license, playready_response
) -> None:
    session = Session(playready_device)
    good, _, _ = xmr_license(playready_device, KEY_ID)
    bad, _, _ = xmr_license(playready_device, KEY_ID, tamper=True)
    with pytest.raises(LicenseIntegrityError):
        session.parse_license(playready_response(good, bad))
    assert session.keys == []


def test_check_signature(playready_device, xmr_license) -> None:
    license_, ci, _ = xmr_license(playready_device, KEY_ID)
    parsed = XmrLicense.loads(license_)
    assert parsed.rights_id == b"\x42" * 16
    assert parsed.check_signature(ci)
    assert not parsed.check_signature(b"\x00" * 16)


def test_unsupported_cipher(playready_device, xmr_license, playready_response) -> None:
    license_, _, _ = xmr_license(
        playready_device, KEY_ID, cipher_type=XmrCipherType.RSA_1024
    )
    with pytest.raises(InvalidLicense):
        Session(playready_device).parse_license(playready_response(license_))


def test_soap_fault(playready_device) -> None:
    fault = (
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
        "<soap:Body><soap:Fault><faultcode>soap:Server</faultcode>"
        "<faultstring>Device certificate is revoked</faultstring>"
        "</soap:Fault></soap:Body></soap:Envelope>"
    )
    with pytest.raises(ServerException, match="revoked") as exc_info:
        Session(playready_device).parse_license(fault)
    assert exc_info.value.status_code == 502  # noqa: PLR2004


@pytest.mark.parametrize(
    ("response", "error"),
    [
        (b"not xml", InvalidLicenseMessage),
        (b"<Envelope></Envelope>", InvalidLicenseMessage),
        (b"<Envelope><License>%%%</License></Envelope>", InvalidLicense),
        (
            b"<Envelope><License>" + base64.b64encode(b"XMR\x00") + b"</License></Envelope>",
            InvalidLicense,
        ),
    ],
)
def test_malformed_responses(playready_device, response: bytes, error: type) -> None:
    with pytest.raises(error):
        Session(playready_device).parse_license(response)


def test_pause_and_resume(
    playready_device, playready_pssh, xmr_license, playready_response
) -> None:
    cdm = PlayReadyCdm(playready_device)
    session_id = cdm.create_session()
    cdm.generate_request(session_id, playready_pssh)
    license_, _, ck = xmr_license(playready_device, KEY_ID)
    cdm.update_session(session_id, playready_response(license_))
    state = cdm.pause_session(session_id)

    other = PlayReadyCdm(playready_device)
    assert other.resume_session(state) == session_id
    [key] = other.get_keys(session_id)
    assert key.key_id == swap_key_id(KEY_ID).hex()
    assert key.key == ck.hex()

    broken = json.loads(state)
    del broken["keys"]
    with pytest.raises(InvalidSession):
        other.resume_session(json.dumps(broken))


def test_closed_session_rejects_requests(playready_device, playready_pssh) -> None:
    cdm = PlayReadyCdm(playready_device)
    session_id = cdm.create_session()
    cdm.close_session(session_id)
    with pytest.raises(InvalidSession):
        cdm.generate_request(session_id, playready_pssh)
    cdm.remove_session(session_id)
    cdm.remove_session(session_id)


def test_update_before_generate_request(
    playready_device, xmr_license, playready_response
) -> None:
    cdm = PlayReadyCdm(playready_device)
    session_id = cdm.create_session()
    license_, _, _ = xmr_license(playready_device, KEY_ID)
    with pytest.raises(InvalidSession) as exc_info:
        cdm.update_session(session_id, playready_response(license_))
    assert exc_info.value.status_code == 400  # noqa: PLR2004
    assert cdm.get_keys(session_id) == []


def test_failed_request_does_not_unlock_update(
    playready_device, xmr_license, playready_response
) -> None:
    cdm = PlayReadyCdm(playready_device)
    session_id = cdm.create_session()
    with pytest.raises(CdmError):
        cdm.generate_request(session_id, b"\x00" * 40)
    license_, _, _ = xmr_license(playready_device, KEY_ID)
    with pytest.raises(InvalidSession):
        cdm.update_session(session_id, playready_response(license_))
