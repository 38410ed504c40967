"""Directory renderers: pure functions from selected key records to wire formats."""
from .jwks import HPKE_ALG, render_hpke_jwks
from .privacypass import TOKEN_TYPE_BLIND_RSA, render_privacypass_directory
from .rendered import RenderedDirectory

__all__ = [
    "HPKE_ALG",
    "TOKEN_TYPE_BLIND_RSA",
    "RenderedDirectory",
    "render_hpke_jwks",
    "render_privacypass_directory",
]
