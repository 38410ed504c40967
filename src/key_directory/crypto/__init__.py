"""Key generation and encoding helpers."""
from .identifier import token_key_id
from .keypairs import EcP384KeyPair, RsaPssKeyPair, generate_key_pair, load_public_key
from .rsassa_pss import from_rsassa_pss_spki, to_rsassa_pss_spki

__all__ = [
    "token_key_id",
    "EcP384KeyPair",
    "RsaPssKeyPair",
    "generate_key_pair",
    "load_public_key",
    "to_rsassa_pss_spki",
    "from_rsassa_pss_spki",
]
