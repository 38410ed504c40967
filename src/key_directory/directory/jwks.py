# JWK Set of HPKE encryption keys (P-384).
from __future__ import annotations

from typing import Any, Dict, Sequence

from ..crypto import load_public_key
from ..models import KeyPurpose, KeyRecord
from ..utils import b64e
from .rendered import RenderedDirectory, render_json

HPKE_ALG = "HPKE-Base-P384-SHA384-AES256GCM"
MEDIA_TYPE = "application/jwk-set+json"
_COORDINATE_BYTES = 48


def record_to_jwk(record: KeyRecord) -> Dict[str, Any]:
    if record.purpose is not KeyPurpose.ENCRYPTION:
        raise ValueError(f"HPKE JWKS only lists encryption keys, got {record.purpose.value}")
    numbers = load_public_key(record.purpose, record.public_key).public_numbers()
    return {
        "kty": "EC",
        "crv": "P-384",
        "x": b64e(numbers.x.to_bytes(_COORDINATE_BYTES, "big")),
        "y": b64e(numbers.y.to_bytes(_COORDINATE_BYTES, "big")),
        "alg": HPKE_ALG,
        "kid": str(record.identifier),
        "nbf": record.not_before_or_uploaded(),
    }


def render_hpke_jwks(records: Sequence[KeyRecord], *, cache_max_age: int = 300) -> RenderedDirectory:
    return render_json({"keys": [record_to_jwk(r) for r in records]}, MEDIA_TYPE, cache_max_age)


__all__ = ["render_hpke_jwks", "record_to_jwk", "HPKE_ALG", "MEDIA_TYPE"]
