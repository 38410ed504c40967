# Derive the short token key identifier from an encoded public key.
from __future__ import annotations

import hashlib


def token_key_id(public_key: bytes) -> int:
    """Return the truncated token key ID: the last byte of SHA-256(public_key).

    The identifier is a function of the key, never chosen, so auditors can
    recompute it from the published directory. Two different keys landing on
    the same byte is resolved by minting a new key pair, not by adjusting the ID.
    """
    if not public_key:
        raise ValueError("public key must not be empty")
    return hashlib.sha256(public_key).digest()[-1]


__all__ = ["token_key_id"]
