"""
P-256 keys and EC ElGamal.

ECDSA goes through cryptography; ElGamal needs raw point addition and
scalar multiplication, which come from the ecdsa package.
"""

from __future__ import annotations

import secrets

from cryptography.hazmat.primitives.asymmetric import ec
from ecdsa import NIST256p
from ecdsa.ellipticcurve import INFINITY, Point, PointJacobi

from easycdm.common.crypto import P256_COORDINATE_SIZE, CryptoUtils
from easycdm.common.exceptions import InvalidKeyMaterial

CURVE = NIST256p.curve
GENERATOR = NIST256p.generator
ORDER = NIST256p.order

AffinePoint = tuple[int, int]


def random_scalar() -> int:
    """Random scalar in [1, n-1]."""
    return secrets.randbelow(ORDER - 1) + 1


def to_point(x: int, y: int) -> PointJacobi:
    """Lift affine coordinates to a curve point, rejecting off-curve input."""
    if not CURVE.contains_point(x, y):
        msg = "Coordinates are not a point on P-256"
        raise InvalidKeyMaterial(msg)
    return PointJacobi.from_affine(Point(CURVE, x, y))


def to_affine(point: PointJacobi) -> AffinePoint:
    if point == INFINITY:
        msg = "Point at infinity has no affine coordinates"
        raise InvalidKeyMaterial(msg)
    return int(point.x()), int(point.y())


def point_to_bytes(point: AffinePoint) -> bytes:
    x, y = point
    return x.to_bytes(P256_COORDINATE_SIZE, "big") + y.to_bytes(
        P256_COORDINATE_SIZE, "big"
    )


def point_from_bytes(data: bytes) -> AffinePoint:
    if len(data) != 2 * P256_COORDINATE_SIZE:
        msg = f"Encoded point must be 64 bytes, got {len(data)}"
        raise InvalidKeyMaterial(msg)
    return (
        int.from_bytes(data[:P256_COORDINATE_SIZE], "big"),
        int.from_bytes(data[P256_COORDINATE_SIZE:], "big"),
    )


class EccKey:
    """P-256 key pair."""

    def __init__(self, private_key: ec.EllipticCurvePrivateKey) -> None:
        self.key = private_key
        numbers = private_key.private_numbers()
        self.private_value: int = numbers.private_value
        self.public_point: AffinePoint = (
            numbers.public_numbers.x,
            numbers.public_numbers.y,
        )

    @classmethod
    def generate(cls) -> EccKey:
        return cls(ec.generate_private_key(ec.SECP256R1()))

    @classmethod
    def construct(cls, private_value: int) -> EccKey:
        if not 0 < private_value < ORDER:
            msg = "P-256 private scalar is out of range"
            raise InvalidKeyMaterial(msg)
        return cls(ec.derive_private_key(private_value, ec.SECP256R1()))

    @classmethod
    def loads(cls, data: bytes) -> EccKey:
        """
        Load a key from its 32 byte private scalar, optionally followed by
        the 64 byte public point, which must then match the scalar.
        """
        if len(data) not in (32, 96):
            msg = f"ECC key must be 32 or 96 bytes, got {len(data)}"
            raise InvalidKeyMaterial(msg)
        key = cls.construct(int.from_bytes(data[:32], "big"))
        if len(data) == 96 and data[32:] != key.public_bytes():  # noqa: PLR2004
            msg = "ECC public key does not match its private key"
            raise InvalidKeyMaterial(msg)
        return key

    def dumps(self) -> bytes:
        return self.private_bytes() + self.public_bytes()

    def private_bytes(self) -> bytes:
        return self.private_value.to_bytes(P256_COORDINATE_SIZE, "big")

    def public_bytes(self) -> bytes:
        return point_to_bytes(self.public_point)

    def public_sha256_digest(self) -> bytes:
        return CryptoUtils.sha256(self.public_bytes())

    def sign(self, data: bytes) -> bytes:
        """ECDSA-SHA256 signature as raw r||s."""
        return CryptoUtils.ecdsa_sign(self.key, data)


class ElGamal:
    """EC ElGamal over P-256."""

    @staticmethod
    def encrypt(
        message_point: AffinePoint, public_key: AffinePoint
    ) -> tuple[AffinePoint, AffinePoint]:
        """Return (k*G, M + k*P) for a fresh random k."""
        k = random_scalar()
        point1 = GENERATOR * k
        point2 = to_point(*message_point) + to_point(*public_key) * k
        return to_affine(point1), to_affine(point2)

    @staticmethod
    def decrypt(point1: AffinePoint, point2: AffinePoint, private_key: int) -> AffinePoint:
        """Return point2 - private_key*point1."""
        sx, sy = to_affine(to_point(*point1) * private_key)
        negated = to_point(sx, -sy % CURVE.p())
        return to_affine(to_point(*point2) + negated)

    @staticmethod
    def encrypt_to_bytes(message_point: AffinePoint, public_key: AffinePoint) -> bytes:
        point1, point2 = ElGamal.encrypt(message_point, public_key)
        return point_to_bytes(point1) + point_to_bytes(point2)

    @staticmethod
    def decrypt_from_bytes(ciphertext: bytes, private_key: int) -> bytes:
        """Decrypt a 128 byte ciphertext and return the x coordinate bytes."""
        if len(ciphertext) < 4 * P256_COORDINATE_SIZE:
            msg = f"ElGamal ciphertext must be at least 128 bytes, got {len(ciphertext)}"
            raise InvalidKeyMaterial(msg)
        point1 = point_from_bytes(ciphertext[:64])
        point2 = point_from_bytes(ciphertext[64:128])
        x, _ = ElGamal.decrypt(point1, point2, private_key)
        return x.to_bytes(P256_COORDINATE_SIZE, "big")
