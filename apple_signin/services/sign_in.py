"""
Completion of the Sign in with Apple redirect leg.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from apple_signin.clients import AppleOAuthClient, BackendForwarder, decode_unverified
from apple_signin.core.errors import ProtocolError
from apple_signin.schemas import AppleCallbackPayload, AppleUserProfile, TokenExchangeResponse

logger = logging.getLogger(__name__)


@dataclass
class SignInResult:
    profile: AppleUserProfile
    tokens: TokenExchangeResponse
    verified: bool
    backend_response: Optional[Dict[str, Any]] = field(default=None)


class SignInService:
    """Exchange the callback code, identify the user, and notify the backend."""

    def __init__(
        self,
        oauth_client: AppleOAuthClient,
        *,
        redirect_uri: str,
        forwarder: Optional[BackendForwarder] = None,
    ) -> None:
        self._oauth = oauth_client
        self._redirect_uri = redirect_uri
        self._forwarder = forwarder

    async def complete(
        self, payload: AppleCallbackPayload, *, expected_state: str
    ) -> SignInResult:
        tokens = await self._oauth.exchange_authorization_code(
            payload.code,
            expected_state=expected_state,
            received_state=payload.state,
        )
        if not tokens.id_token:
            raise ProtocolError("Apple did not return an ID token.")

        verified = tokens.id_token_claims is not None
        if verified:
            claims = tokens.id_token_claims
        else:
            logger.warning("Using unverified ID token claims; no verifier is configured.")
            claims = decode_unverified(tokens.id_token)

        if not claims.get("sub"):
            raise ProtocolError("Apple ID token is missing the subject claim.")

        profile = AppleUserProfile.from_claims(claims, payload.user)
        logger.info(
            "Apple sign-in completed for %s (email=%s, private_relay=%s)",
            profile.apple_id,
            profile.email is not None,
            profile.is_private_email,
        )

        backend_response = None
        if self._forwarder is not None:
            backend_response = await self._forwarder.forward(
                code=payload.code,
                redirect_uri=self._redirect_uri,
                profile=profile,
                tokens=tokens,
            )

        return SignInResult(
            profile=profile,
            tokens=tokens,
            verified=verified,
            backend_response=backend_response,
        )


__all__ = ["SignInResult", "SignInService"]
