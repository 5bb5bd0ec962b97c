"""Expose constructed client wrappers."""

from .apple_auth import AppleOAuthClient
from .assertion import CachingAssertionSigner, ClientAssertion, ClientAssertionSigner
from .backend import BackendForwarder
from .id_token import AppleJWKSVerifier, IdTokenVerifier, decode_unverified
from .state import OAuthStateEncoder, PendingLogin

__all__ = [
    "AppleJWKSVerifier",
    "AppleOAuthClient",
    "BackendForwarder",
    "CachingAssertionSigner",
    "ClientAssertion",
    "ClientAssertionSigner",
    "IdTokenVerifier",
    "OAuthStateEncoder",
    "PendingLogin",
    "decode_unverified",
]
