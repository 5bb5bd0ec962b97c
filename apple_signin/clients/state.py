"""
Per-attempt OAuth state carrier.

Each login attempt's state travels with the browser in a signed, expiring
value, so concurrent logins never share or overwrite each other's state.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from hashlib import sha256
from typing import Callable, Optional

from apple_signin.core.errors import ConfigurationError, CsrfStateMismatch, StateExpired

_SIGNATURE_LENGTH = 32


@dataclass(frozen=True)
class PendingLogin:
    """A login attempt awaiting Apple's callback."""

    state: str
    issued_at: datetime
    redirect_to: Optional[str] = None


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(
        self,
        secret_key: str,
        *,
        ttl_seconds: int = 600,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not secret_key:
            raise ConfigurationError("OAuth state secret must be provided.")
        if ttl_seconds <= 0:
            raise ConfigurationError("OAuth state TTL must be positive.")
        self._secret_key = secret_key.encode("utf-8")
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def encode(self, state: str, redirect_to: Optional[str] = None) -> str:
        payload = {
            "state": state,
            "redirect_to": redirect_to,
            "issued_at": self._clock().isoformat(),
        }
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
        signature = hmac.new(self._secret_key, serialized, sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized).decode("utf-8")

    def decode(self, token: Optional[str]) -> PendingLogin:
        """Verify ``token`` and return the login attempt it describes."""
        if not token:
            raise CsrfStateMismatch("No OAuth state was issued for this browser.")
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise CsrfStateMismatch("Malformed OAuth state token.") from exc

        signature, serialized = decoded[:_SIGNATURE_LENGTH], decoded[_SIGNATURE_LENGTH:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise CsrfStateMismatch("Invalid OAuth state signature.")

        try:
            data = json.loads(serialized)
            issued_at = datetime.fromisoformat(data["issued_at"])
            state = data["state"]
        except (ValueError, KeyError, TypeError) as exc:
            raise CsrfStateMismatch("Invalid OAuth state payload.") from exc

        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=timezone.utc)
        if self._clock() - issued_at > self._ttl:
            raise StateExpired("OAuth state has expired; start the sign-in again.")

        return PendingLogin(
            state=state,
            issued_at=issued_at,
            redirect_to=data.get("redirect_to"),
        )


__all__ = ["OAuthStateEncoder", "PendingLogin"]
