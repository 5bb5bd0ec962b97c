"""Public schema exports."""

from .auth import (
    AppleCallbackPayload,
    AppleUserProfile,
    RefreshTokenRequest,
    RevokeTokenRequest,
)
from .tokens import RevocationResult, TokenExchangeResponse

__all__ = [
    "AppleCallbackPayload",
    "AppleUserProfile",
    "RefreshTokenRequest",
    "RevocationResult",
    "RevokeTokenRequest",
    "TokenExchangeResponse",
]
