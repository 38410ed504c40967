"""Key pair generation per purpose and thin OOP wrappers used by services.

Signature keys are RSA-PSS 2048 / SHA-384 (blind RSA token issuance) and are
published with an ``id-RSASSA-PSS`` SPKI. Encryption keys are ECDH on P-384
(HPKE DHKEM) and are published as a plain SPKI.
"""
from __future__ import annotations

from typing import Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from ..exceptions import InvalidKeyEncoding, KeyGenerationFailed
from ..models import KeyPurpose
from .rsassa_pss import from_rsassa_pss_spki, to_rsassa_pss_spki

RSA_MODULUS_BITS = 2048
RSA_PUBLIC_EXPONENT = 65537


def _pkcs8_der(private_key) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _load_spki(encoded: bytes):
    try:
        return serialization.load_der_public_key(encoded)
    except (ValueError, TypeError) as exc:
        raise InvalidKeyEncoding(f"cannot parse public key: {exc}") from exc


def _spki_der(public_key) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


class RsaPssKeyPair:
    """RSA key pair destined for RSA-PSS (SHA-384) token signing."""

    def __init__(self, private: rsa.RSAPrivateKey | None = None, public: rsa.RSAPublicKey | None = None):
        self._priv = private
        self._pub = public or (private.public_key() if private else None)

    @staticmethod
    def generate(bits: int = RSA_MODULUS_BITS) -> "RsaPssKeyPair":
        priv = rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=bits)
        return RsaPssKeyPair(private=priv)

    @classmethod
    def from_public_bytes(cls, encoded: bytes) -> "RsaPssKeyPair":
        public = _load_spki(from_rsassa_pss_spki(encoded))
        if not isinstance(public, rsa.RSAPublicKey):
            raise InvalidKeyEncoding("expected an RSA public key")
        return cls(public=public)

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self._pub

    def public_bytes(self) -> bytes:
        """SPKI DER under the ``id-RSASSA-PSS`` algorithm identifier."""
        return to_rsassa_pss_spki(_spki_der(self._pub))

    def private_bytes(self) -> bytes:
        return _pkcs8_der(self._priv)


class EcP384KeyPair:
    """P-384 key pair used for HPKE key agreement."""

    def __init__(
        self,
        private: ec.EllipticCurvePrivateKey | None = None,
        public: ec.EllipticCurvePublicKey | None = None,
    ):
        self._priv = private
        self._pub = public or (private.public_key() if private else None)

    @staticmethod
    def generate() -> "EcP384KeyPair":
        return EcP384KeyPair(private=ec.generate_private_key(ec.SECP384R1()))

    @classmethod
    def from_public_bytes(cls, encoded: bytes) -> "EcP384KeyPair":
        public = _load_spki(encoded)
        if not isinstance(public, ec.EllipticCurvePublicKey) or public.curve.name != "secp384r1":
            raise InvalidKeyEncoding("expected a P-384 public key")
        return cls(public=public)

    @property
    def public_key(self) -> ec.EllipticCurvePublicKey:
        return self._pub

    def public_bytes(self) -> bytes:
        return _spki_der(self._pub)

    def private_bytes(self) -> bytes:
        return _pkcs8_der(self._priv)


_PAIR_TYPES = {
    KeyPurpose.SIGNATURE: RsaPssKeyPair,
    KeyPurpose.ENCRYPTION: EcP384KeyPair,
}


def generate_key_pair(purpose: KeyPurpose) -> Tuple[bytes, bytes]:
    """Return ``(public_encoded, private_encoded)`` for ``purpose``.

    Both halves are serialised before returning so a provider failure can never
    leak a half-built pair to the caller.
    """
    pair_type = _PAIR_TYPES[KeyPurpose(purpose)]
    try:
        pair = pair_type.generate()
        return pair.public_bytes(), pair.private_bytes()
    except Exception as exc:
        raise KeyGenerationFailed(f"{purpose.value} key generation failed: {exc}") from exc


def load_public_key(purpose: KeyPurpose, encoded: bytes):
    """Parse a published public key back into a ``cryptography`` key object."""
    return _PAIR_TYPES[KeyPurpose(purpose)].from_public_bytes(encoded).public_key


__all__ = [
    "RsaPssKeyPair",
    "EcP384KeyPair",
    "generate_key_pair",
    "load_public_key",
    "RSA_MODULUS_BITS",
]
