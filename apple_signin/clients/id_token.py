"""
ID token handling.

Verification is a pluggable capability: the OAuth client only attaches claims
it obtained through a configured ``IdTokenVerifier``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Protocol

import jwt
from jwt import PyJWKClient

from apple_signin.clients.assertion import APPLE_AUDIENCE
from apple_signin.core.errors import IdTokenVerificationError

logger = logging.getLogger(__name__)


class IdTokenVerifier(Protocol):
    """Anything able to verify an ID token and return its trusted claims.

    ``verify`` is synchronous and may block; the OAuth client calls it from a
    worker thread.
    """

    def verify(self, id_token: str) -> Dict[str, Any]:
        ...


class AppleJWKSVerifier:
    """Verify ID tokens against Apple's published signing keys."""

    JWKS_URL = "https://appleid.apple.com/auth/keys"
    ALGORITHMS = ("RS256",)

    def __init__(
        self,
        client_id: str,
        *,
        jwks_client: PyJWKClient | None = None,
        leeway: int = 0,
        timeout: float = 10.0,
    ) -> None:
        self._client_id = client_id
        self._leeway = leeway
        # Apple rotates keys rarely; cache for a day.
        self._jwks = jwks_client or PyJWKClient(
            self.JWKS_URL, cache_keys=True, lifespan=86400, timeout=timeout
        )

    def verify(self, id_token: str) -> Dict[str, Any]:
        try:
            signing_key = self._jwks.get_signing_key_from_jwt(id_token)
            return jwt.decode(
                id_token,
                signing_key.key,
                algorithms=list(self.ALGORITHMS),
                audience=self._client_id,
                issuer=APPLE_AUDIENCE,
                leeway=self._leeway,
            )
        except jwt.ExpiredSignatureError as exc:
            raise IdTokenVerificationError("ID token has expired.") from exc
        except jwt.InvalidAudienceError as exc:
            raise IdTokenVerificationError("ID token audience does not match this client.") from exc
        except jwt.InvalidIssuerError as exc:
            raise IdTokenVerificationError("ID token was not issued by Apple.") from exc
        except jwt.PyJWKClientError as exc:
            raise IdTokenVerificationError(f"Unable to resolve ID token signing key: {exc}") from exc
        except jwt.InvalidTokenError as exc:
            raise IdTokenVerificationError(f"Invalid ID token: {exc}") from exc


def decode_unverified(id_token: str) -> Dict[str, Any]:
    """Decode the ID token payload WITHOUT checking its signature.

    The returned claims are untrusted; use them only for display or as hints.
    """
    try:
        return jwt.decode(id_token, options={"verify_signature": False})
    except jwt.InvalidTokenError as exc:
        raise IdTokenVerificationError(f"ID token could not be decoded: {exc}") from exc


__all__ = ["AppleJWKSVerifier", "IdTokenVerifier", "decode_unverified"]
