import pytest

from easycdm.common.ecc import EccKey
from easycdm.common.exceptions import (
    InvalidCertificateChain,
    InvalidDevice,
    UnsupportedVersion,
)
from easycdm.playready.bcert import (
    CHAIN_HEADER_SIZE,
    Certificate,
    CertificateChain,
    ObjType,
)
from easycdm.playready.device import Device


def test_group_chain_verifies_against_its_root(group_chain, root_key) -> None:
    assert group_chain.verify(root_key.public_bytes())
    assert group_chain.name == "Test Model 0001"
    assert group_chain.security_level == 2000  # noqa: PLR2004


def test_group_chain_fails_against_the_real_root(group_chain) -> None:
    with pytest.raises(InvalidCertificateChain) as exc_info:
        group_chain.verify()
    assert exc_info.value.index == 0
    assert exc_info.value.status_code == 403  # noqa: PLR2004


def test_chain_header_tracks_certificates(playready_device) -> None:
    chain = CertificateChain.loads(playready_device.group_certificate.dumps())
    assert chain.count() == len(chain) == 2  # noqa: PLR2004
    sizes = [len(chain.get(i).dumps()) for i in range(chain.count())]
    assert chain.parsed.total_length == CHAIN_HEADER_SIZE + sum(sizes)
    assert len(chain.dumps()) == chain.parsed.total_length

    chain.remove(0)
    assert chain.count() == 1
    assert chain.parsed.total_length == CHAIN_HEADER_SIZE + sizes[1]
    assert CertificateChain.loads(chain.dumps()).count() == 1


def test_certificate_roundtrip_is_exact(playready_device) -> None:
    leaf = playready_device.group_certificate.get(0)
    assert Certificate.loads(leaf.dumps()).dumps() == leaf.dumps()


def test_get_out_of_range(group_chain) -> None:
    with pytest.raises(InvalidCertificateChain) as exc_info:
        group_chain.get(5)
    assert exc_info.value.index == 5  # noqa: PLR2004


def test_empty_chain_has_no_certificates() -> None:
    with pytest.raises(InvalidCertificateChain):
        CertificateChain.new([]).get(0)


def test_empty_chain_does_not_verify(root_key) -> None:
    with pytest.raises(InvalidCertificateChain):
        CertificateChain.new([]).verify(root_key.public_bytes())


@pytest.mark.parametrize("count", [0, 1, 3])
def test_certificate_count_must_match_body(playready_device, count: int) -> None:
    data = bytearray(playready_device.group_certificate.dumps())
    data[16:20] = count.to_bytes(4, "big")
    with pytest.raises(InvalidCertificateChain, match="declares"):
        CertificateChain.loads(bytes(data))


def test_provisioned_leaf(playready_device, group_key) -> None:
    leaf = playready_device.group_certificate.get(0)
    assert leaf.get_signing_key() == playready_device.signing_key.public_bytes()
    assert leaf.get_encryption_key() == playready_device.encryption_key.public_bytes()
    signature = leaf.get_attribute(ObjType.SIGNATURE).attribute
    assert signature.signature_key == group_key.public_bytes()
    assert playready_device.name == "test_model_0001"


@pytest.mark.parametrize("index", [0, 1])
def test_flipped_signature_byte_fails_at_its_certificate(
    playready_device, root_key, index: int
) -> None:
    chain = playready_device.group_certificate
    lengths = [len(chain.get(i).dumps()) for i in range(chain.count())]
    end = CHAIN_HEADER_SIZE + sum(lengths[: index + 1])
    data = bytearray(chain.dumps())
    # each certificate ends with signature (64), signer key size (4) and signer key (64)
    data[end - 69] ^= 0x01
    with pytest.raises(InvalidCertificateChain) as exc_info:
        CertificateChain.loads(bytes(data)).verify(root_key.public_bytes())
    assert exc_info.value.index == index


def test_provision_rejects_foreign_group_key(group_chain, root_key) -> None:
    with pytest.raises(InvalidDevice):
        Device.provision(EccKey.generate(), group_chain, root_key.public_bytes())


def test_provision_leaves_group_chain_untouched(group_chain, playready_device) -> None:
    assert group_chain.count() == 1
    assert playready_device.group_certificate.count() == 2  # noqa: PLR2004


def test_device_dumps_and_loads(playready_device) -> None:
    data = playready_device.dumps()
    assert data[:4] == b"PRD\x03"
    device = Device.loads(data)
    assert device.group_key.public_bytes() == playready_device.group_key.public_bytes()
    assert device.group_certificate.dumps() == playready_device.group_certificate.dumps()

    v2 = Device(device.group_certificate, device.encryption_key, device.signing_key)
    assert Device.loads(v2.dumps()).group_key is None


def test_device_load_checks_leaf_keys(playready_device) -> None:
    device = Device(
        playready_device.group_certificate,
        EccKey.generate(),
        playready_device.signing_key,
    )
    with pytest.raises(InvalidDevice):
        Device.loads(device.dumps())


@pytest.mark.parametrize(
    ("data", "error"),
    [
        (b"XYZ\x03", InvalidDevice),
        (b"PRD\x07", UnsupportedVersion),
        (b"PRD\x03" + b"\x00" * 10, InvalidDevice),
    ],
)
def test_device_load_errors(data: bytes, error: type[Exception]) -> None:
    with pytest.raises(error):
        Device.loads(data)
