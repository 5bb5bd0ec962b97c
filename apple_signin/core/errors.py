"""
Error types raised by the Sign in with Apple client.

Every failure surfaces as a subclass of ``AppleAuthError`` so callers can catch
the whole family or a specific category. Messages never carry the private key
or a generated client secret.
"""

from __future__ import annotations

from typing import Optional


class AppleAuthError(Exception):
    """Base class for all Sign in with Apple failures."""


class ConfigurationError(AppleAuthError):
    """Raised when client configuration is missing or malformed."""


class KeyLoadError(AppleAuthError):
    """Raised when the private key resource cannot be read."""


class SigningError(AppleAuthError):
    """Raised when the key cannot be parsed or the assertion cannot be signed."""


class CsrfStateMismatch(AppleAuthError):
    """Raised when the callback state does not match the issued state."""


class StateExpired(CsrfStateMismatch):
    """Raised when a login attempt's state outlived its validity window."""


class TokenExchangeError(AppleAuthError):
    """Raised when a call to Apple's token or revocation endpoint fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TransportError(TokenExchangeError):
    """Network-level failure (timeout, connection reset). Safe to retry."""


class ProtocolError(TokenExchangeError):
    """Apple answered with an error status or an unusable payload."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> None:
        super().__init__(message, status_code=status_code, body=body)
        self.error = error
        self.error_description = error_description


class RevocationError(ProtocolError):
    """Apple rejected a token revocation request."""


class IdTokenVerificationError(AppleAuthError):
    """Raised when an ID token fails signature or claim verification."""


class BackendForwardError(AppleAuthError):
    """Raised when the downstream account service rejects a sign-in."""


__all__ = [
    "AppleAuthError",
    "BackendForwardError",
    "ConfigurationError",
    "CsrfStateMismatch",
    "IdTokenVerificationError",
    "KeyLoadError",
    "ProtocolError",
    "RevocationError",
    "SigningError",
    "StateExpired",
    "TokenExchangeError",
    "TransportError",
]
