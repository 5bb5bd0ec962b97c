"""Schemas describing Apple token endpoint responses."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class TokenExchangeResponse(BaseModel):
    """Token endpoint payload; unknown fields are preserved as returned."""

    model_config = ConfigDict(extra="allow")

    access_token: str = Field(..., description="Access token issued by Apple.")
    token_type: str = Field("Bearer", description="Token type, always Bearer today.")
    expires_in: int = Field(..., description="Access token lifetime in seconds.")
    refresh_token: Optional[str] = Field(
        None, description="Returned for authorization code grants only."
    )
    id_token: Optional[str] = Field(
        None, description="Signed identity token for the user."
    )
    id_token_claims: Optional[Dict[str, Any]] = Field(
        None,
        description="Claims from a verified ID token; unset unless a verifier ran.",
    )


class RevocationResult(BaseModel):
    """Outcome of a successful revocation request."""

    revoked: bool = True
    status_code: int


__all__ = ["RevocationResult", "TokenExchangeResponse"]
