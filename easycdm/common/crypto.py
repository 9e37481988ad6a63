"""Common cryptographic utilities.
"""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import cmac, hashes, hmac, padding, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric import padding as asym_padding
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from easycdm.common.exceptions import InvalidKeyMaterial

AES_BLOCK_SIZE = 16
P256_COORDINATE_SIZE = 32
PSS_SALT_LENGTH = 20


class CryptoUtils:
    """Utility class for cryptographic operations."""

    @staticmethod
    def random_bytes(length: int) -> bytes:
        """Cryptographically secure random bytes."""
        return os.urandom(length)

    @staticmethod
    def _aes(key: bytes) -> algorithms.AES:
        try:
            return algorithms.AES(key)
        except ValueError as err:
            msg = f"Invalid AES key of {len(key)} bytes"
            raise InvalidKeyMaterial(msg) from err

    @staticmethod
    def aes_cbc_encrypt(key: bytes, iv: bytes, data: bytes, *, pad: bool = True) -> bytes:
        """Encrypt with AES-CBC, PKCS#7 padding unless pad is False."""
        if pad:
            padder = padding.PKCS7(128).padder()
            data = padder.update(data) + padder.finalize()
        elif len(data) % AES_BLOCK_SIZE:
            msg = "AES-CBC input must be block aligned when padding is disabled"
            raise ValueError(msg)
        encryptor = Cipher(CryptoUtils._aes(key), modes.CBC(iv)).encryptor()
        return encryptor.update(data) + encryptor.finalize()

    @staticmethod
    def aes_cbc_decrypt(key: bytes, iv: bytes, data: bytes, *, unpad: bool = True) -> bytes:
        """Decrypt with AES-CBC, stripping PKCS#7 padding unless unpad is False."""
        decryptor = Cipher(CryptoUtils._aes(key), modes.CBC(iv)).decryptor()
        plain = decryptor.update(data) + decryptor.finalize()
        if not unpad:
            return plain
        unpadder = padding.PKCS7(128).unpadder()
        try:
            return unpadder.update(plain) + unpadder.finalize()
        except ValueError as err:
            msg = "Invalid PKCS#7 padding in decrypted data"
            raise InvalidKeyMaterial(msg) from err

    @staticmethod
    def aes_ecb_encrypt(key: bytes, data: bytes) -> bytes:
        """Keyed AES permutation over block-aligned data."""
        if len(data) % AES_BLOCK_SIZE:
            msg = f"AES-ECB input of {len(data)} bytes is not block aligned"
            raise ValueError(msg)
        encryptor = Cipher(CryptoUtils._aes(key), modes.ECB()).encryptor()  # noqa: S305
        return encryptor.update(data) + encryptor.finalize()

    @staticmethod
    def aes_cmac(key: bytes, data: bytes) -> bytes:
        """Compute AES-CMAC."""
        c = cmac.CMAC(CryptoUtils._aes(key))
        c.update(data)
        return c.finalize()

    @staticmethod
    def aes_cmac_verify(key: bytes, data: bytes, tag: bytes) -> bool:
        """Constant-time AES-CMAC check."""
        c = cmac.CMAC(CryptoUtils._aes(key))
        c.update(data)
        try:
            c.verify(tag)
        except InvalidSignature:
            return False
        return True

    @staticmethod
    def hmac_sha256(key: bytes, data: bytes) -> bytes:
        """Compute HMAC-SHA256."""
        h = hmac.HMAC(key, hashes.SHA256())
        h.update(data)
        return h.finalize()

    @staticmethod
    def hmac_sha256_verify(key: bytes, data: bytes, signature: bytes) -> bool:
        """Constant-time HMAC-SHA256 check."""
        h = hmac.HMAC(key, hashes.SHA256())
        h.update(data)
        try:
            h.verify(signature)
        except InvalidSignature:
            return False
        return True

    @staticmethod
    def sha256(data: bytes) -> bytes:
        """Compute SHA-256."""
        digest = hashes.Hash(hashes.SHA256())
        digest.update(data)
        return digest.finalize()

    # RSA

    @staticmethod
    def load_rsa_private_key(data: bytes) -> rsa.RSAPrivateKey:
        """Load an RSA private key from PEM (PKCS#1 or PKCS#8) or DER."""
        loader = (
            serialization.load_pem_private_key
            if data.lstrip().startswith(b"-----")
            else serialization.load_der_private_key
        )
        try:
            key = loader(data, None)
        except (ValueError, TypeError) as err:
            msg = "Unable to load RSA private key"
            raise InvalidKeyMaterial(msg) from err
        if not isinstance(key, rsa.RSAPrivateKey):
            msg = f"Expected an RSA private key, got {type(key).__name__}"
            raise InvalidKeyMaterial(msg)
        return key

    @staticmethod
    def load_rsa_public_key(data: bytes) -> rsa.RSAPublicKey:
        """Load an RSA public key from DER (PKCS#1 or SubjectPublicKeyInfo)."""
        try:
            key = serialization.load_der_public_key(data)
        except (ValueError, TypeError) as err:
            msg = "Unable to load RSA public key"
            raise InvalidKeyMaterial(msg) from err
        if not isinstance(key, rsa.RSAPublicKey):
            msg = f"Expected an RSA public key, got {type(key).__name__}"
            raise InvalidKeyMaterial(msg)
        return key

    @staticmethod
    def _oaep() -> asym_padding.OAEP:
        return asym_padding.OAEP(
            mgf=asym_padding.MGF1(algorithm=hashes.SHA1()),  # noqa: S303
            algorithm=hashes.SHA1(),  # noqa: S303
            label=None,
        )

    @staticmethod
    def rsa_oaep_encrypt(public_key: rsa.RSAPublicKey, data: bytes) -> bytes:
        """RSA-OAEP (SHA-1) encryption."""
        return public_key.encrypt(data, CryptoUtils._oaep())

    @staticmethod
    def rsa_oaep_decrypt(private_key: rsa.RSAPrivateKey, data: bytes) -> bytes:
        """RSA-OAEP (SHA-1) decryption."""
        try:
            return private_key.decrypt(data, CryptoUtils._oaep())
        except ValueError as err:
            msg = "Unable to decrypt with RSA-OAEP"
            raise InvalidKeyMaterial(msg) from err

    @staticmethod
    def rsa_pss_sign(private_key: rsa.RSAPrivateKey, data: bytes) -> bytes:
        """RSA-PSS (SHA-1, 20 byte salt) signature."""
        return private_key.sign(
            data,
            asym_padding.PSS(
                mgf=asym_padding.MGF1(hashes.SHA1()),  # noqa: S303
                salt_length=PSS_SALT_LENGTH,
            ),
            hashes.SHA1(),  # noqa: S303
        )

    @staticmethod
    def rsa_pss_verify(public_key: rsa.RSAPublicKey, data: bytes, signature: bytes) -> bool:
        """RSA-PSS (SHA-1) verification."""
        try:
            public_key.verify(
                signature,
                data,
                asym_padding.PSS(
                    mgf=asym_padding.MGF1(hashes.SHA1()),  # noqa: S303
                    salt_length=asym_padding.PSS.AUTO,
                ),
                hashes.SHA1(),  # noqa: S303
            )
        except InvalidSignature:
            return False
        return True

    # P-256 ECDSA

    @staticmethod
    def ecdsa_sign(private_key: ec.EllipticCurvePrivateKey, data: bytes) -> bytes:
        """ECDSA-SHA256 signature as raw r||s."""
        der = private_key.sign(data, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        return r.to_bytes(P256_COORDINATE_SIZE, "big") + s.to_bytes(
            P256_COORDINATE_SIZE, "big"
        )

    @staticmethod
    def ecdsa_verify(public_key: bytes, data: bytes, signature: bytes) -> bool:
        """Verify a raw r||s ECDSA-SHA256 signature with a raw 64 byte public key."""
        key = CryptoUtils.load_p256_public_key(public_key)
        if len(signature) != 2 * P256_COORDINATE_SIZE:
            return False
        r = int.from_bytes(signature[:P256_COORDINATE_SIZE], "big")
        s = int.from_bytes(signature[P256_COORDINATE_SIZE:], "big")
        try:
            key.verify(encode_dss_signature(r, s), data, ec.ECDSA(hashes.SHA256()))
        except InvalidSignature:
            return False
        return True

    @staticmethod
    def load_p256_public_key(public_key: bytes) -> ec.EllipticCurvePublicKey:
        """Load a raw x||y P-256 public key."""
        if len(public_key) != 2 * P256_COORDINATE_SIZE:
            msg = f"P-256 public key must be 64 bytes, got {len(public_key)}"
            raise InvalidKeyMaterial(msg)
        try:
            return ec.EllipticCurvePublicKey.from_encoded_point(
                ec.SECP256R1(), b"\x04" + public_key
            )
        except ValueError as err:
            msg = "P-256 public key is not a point on the curve"
            raise InvalidKeyMaterial(msg) from err
