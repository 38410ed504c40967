"""Utility exports."""
from .encoding import b64d, b64e, sha256_hex

__all__ = ["b64e", "b64d", "sha256_hex"]
