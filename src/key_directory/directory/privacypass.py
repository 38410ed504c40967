# Privacy Pass token issuer directory (RFC 9578, section 4).
from __future__ import annotations

from typing import Sequence

from ..models import KeyPurpose, KeyRecord
from .rendered import RenderedDirectory, render_json

TOKEN_TYPE_BLIND_RSA = 0x0002
MEDIA_TYPE = "application/private-token-issuer-directory"


def render_privacypass_directory(
    records: Sequence[KeyRecord],
    *,
    issuer_request_uri: str = "/token-request",
    cache_max_age: int = 300,
) -> RenderedDirectory:
    """Render signature keys, in the order given, as an issuer directory."""
    token_keys = []
    for record in records:
        if record.purpose is not KeyPurpose.SIGNATURE:
            raise ValueError(f"issuer directory only lists signature keys, got {record.purpose.value}")
        token_keys.append(
            {
                "token-type": TOKEN_TYPE_BLIND_RSA,
                "token-key": record.public_key_b64,
                "not-before": record.not_before_or_uploaded(),
            }
        )
    document = {"issuer-request-uri": issuer_request_uri, "token-keys": token_keys}
    return render_json(document, MEDIA_TYPE, cache_max_age)


__all__ = ["render_privacypass_directory", "TOKEN_TYPE_BLIND_RSA", "MEDIA_TYPE"]
