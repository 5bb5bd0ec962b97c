"""Schemas related to the Sign in with Apple flow."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

PRIVATE_RELAY_DOMAIN = "@privaterelay.appleid.com"


class AppleCallbackPayload(BaseModel):
    """Form fields Apple posts to the redirect URI."""

    code: str = Field(..., description="Single-use authorization code.")
    state: str = Field(..., description="State value issued when the login started.")
    id_token: Optional[str] = Field(None, description="ID token sent alongside the code.")
    user: Optional[str] = Field(
        None,
        description="JSON with name and email, only sent on the user's first consent.",
    )


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class RevokeTokenRequest(BaseModel):
    token: str = Field(..., min_length=1)
    token_type_hint: Literal["access_token", "refresh_token"] = "access_token"


class AppleUserProfile(BaseModel):
    """Identity of a signed-in user assembled from ID token claims."""

    apple_id: str = Field(..., description="Stable Apple user identifier (sub).")
    email: Optional[str] = None
    is_private_email: bool = False
    name: Optional[str] = Field(
        None, description="Full name, available on first sign-in only."
    )

    @classmethod
    def from_claims(
        cls, claims: Dict[str, Any], user_payload: Optional[str] = None
    ) -> "AppleUserProfile":
        email = claims.get("email") or None
        return cls(
            apple_id=claims["sub"],
            email=email,
            is_private_email=bool(email and email.endswith(PRIVATE_RELAY_DOMAIN)),
            name=_parse_user_name(user_payload),
        )


def _parse_user_name(user_payload: Optional[str]) -> Optional[str]:
    if not user_payload:
        return None
    try:
        parsed = json.loads(user_payload)
    except json.JSONDecodeError:
        logger.warning("Ignoring unparsable Apple user payload.")
        return None
    name = parsed.get("name") if isinstance(parsed, dict) else None
    if not isinstance(name, dict):
        return None
    full_name = f"{name.get('firstName') or ''} {name.get('lastName') or ''}".strip()
    return full_name or None


__all__ = [
    "AppleCallbackPayload",
    "AppleUserProfile",
    "PRIVATE_RELAY_DOMAIN",
    "RefreshTokenRequest",
    "RevokeTokenRequest",
]
