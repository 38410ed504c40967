"""SubjectPublicKeyInfo fix-ups between ``rsaEncryption`` and ``id-RSASSA-PSS``.

Token issuer directories (RFC 9578, section 6.5) publish RSA keys under the
``id-RSASSA-PSS`` algorithm identifier with explicit SHA-384 parameters, while
``cryptography`` only serialises the generic ``rsaEncryption`` form. Both
encodings wrap the very same ``RSAPublicKey`` BIT STRING, so converting is a
matter of swapping the AlgorithmIdentifier and re-framing the outer SEQUENCE.
"""
from __future__ import annotations

from typing import List, Tuple

from ..exceptions import InvalidKeyEncoding

_SEQUENCE = 0x30
_BIT_STRING = 0x03

# AlgorithmIdentifier { rsaEncryption, NULL }
RSA_ENCRYPTION_ALGORITHM = bytes.fromhex("300d06092a864886f70d0101010500")

# AlgorithmIdentifier { id-RSASSA-PSS, RSASSA-PSS-params {
#   hashAlgorithm [0] sha384, maskGenAlgorithm [1] mgf1(sha384), saltLength [2] 48 } }
RSASSA_PSS_SHA384_ALGORITHM = bytes.fromhex(
    "303d"
    "06092a864886f70d01010a"
    "3030"
    "a00d300b0609608648016503040202"
    "a11a3018"
    "06092a864886f70d010108"
    "300b0609608648016503040202"
    "a203020130"
)

_RSASSA_PSS_OID_TLV = bytes.fromhex("06092a864886f70d01010a")


def _encode_length(length: int) -> bytes:
    if length < 0x80:
        return bytes([length])
    body = length.to_bytes((length.bit_length() + 7) // 8, "big")
    return bytes([0x80 | len(body)]) + body


def _read_tlv(data: bytes, offset: int) -> Tuple[int, int, int]:
    """Return ``(tag, value_start, value_end)`` for the TLV at ``offset``."""
    if offset + 2 > len(data):
        raise InvalidKeyEncoding("truncated DER element")
    tag = data[offset]
    first = data[offset + 1]
    cursor = offset + 2
    if first < 0x80:
        length = first
    else:
        count = first & 0x7F
        if count == 0 or count > 4 or cursor + count > len(data):
            raise InvalidKeyEncoding("unsupported DER length encoding")
        length = int.from_bytes(data[cursor:cursor + count], "big")
        cursor += count
    end = cursor + length
    if end > len(data):
        raise InvalidKeyEncoding("DER element overruns buffer")
    return tag, cursor, end


def _split_spki(spki: bytes) -> List[bytes]:
    tag, start, end = _read_tlv(spki, 0)
    if tag != _SEQUENCE or end != len(spki):
        raise InvalidKeyEncoding("SubjectPublicKeyInfo must be a single SEQUENCE")
    children: List[bytes] = []
    cursor = start
    while cursor < end:
        _tag, _value_start, child_end = _read_tlv(spki, cursor)
        children.append(spki[cursor:child_end])
        cursor = child_end
    if len(children) != 2 or children[0][0] != _SEQUENCE or children[1][0] != _BIT_STRING:
        raise InvalidKeyEncoding("SubjectPublicKeyInfo must hold an AlgorithmIdentifier and a BIT STRING")
    return children


def _wrap(algorithm: bytes, subject_public_key: bytes) -> bytes:
    body = algorithm + subject_public_key
    return bytes([_SEQUENCE]) + _encode_length(len(body)) + body


def to_rsassa_pss_spki(spki: bytes) -> bytes:
    """Re-label a generic RSA SPKI (DER) as ``id-RSASSA-PSS`` with SHA-384 params."""
    algorithm, subject_public_key = _split_spki(spki)
    if algorithm != RSA_ENCRYPTION_ALGORITHM:
        raise InvalidKeyEncoding("expected an rsaEncryption SubjectPublicKeyInfo")
    return _wrap(RSASSA_PSS_SHA384_ALGORITHM, subject_public_key)


def from_rsassa_pss_spki(spki: bytes) -> bytes:
    """Inverse of :func:`to_rsassa_pss_spki`, loadable by ``cryptography``."""
    algorithm, subject_public_key = _split_spki(spki)
    _tag, start, _end = _read_tlv(algorithm, 0)
    if not algorithm[start:].startswith(_RSASSA_PSS_OID_TLV):
        raise InvalidKeyEncoding("expected an id-RSASSA-PSS SubjectPublicKeyInfo")
    return _wrap(RSA_ENCRYPTION_ALGORITHM, subject_public_key)


__all__ = [
    "RSA_ENCRYPTION_ALGORITHM",
    "RSASSA_PSS_SHA384_ALGORITHM",
    "to_rsassa_pss_spki",
    "from_rsassa_pss_spki",
]
