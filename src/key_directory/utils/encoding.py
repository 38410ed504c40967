from __future__ import annotations

import base64
import hashlib


def b64e(data: bytes) -> str:
    """URL-safe base64 encode without padding"""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64d(value: str) -> bytes:
    """URL-safe base64 decode that tolerates missing padding.

    Standard-alphabet input (``+`` and ``/``) is accepted as well since older
    directory entries were published that way.
    """
    value = value.strip().replace("+", "-").replace("/", "_")
    pad = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + pad).encode("ascii"))


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


__all__ = ["b64e", "b64d", "sha256_hex"]
