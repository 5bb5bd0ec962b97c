"""
Client assertion generation.

Apple does not issue static client secrets. Each token endpoint call carries a
short-lived ES256 JWT signed with the developer's private key instead.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

import jwt
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
    load_pem_private_key,
)

from apple_signin.core.errors import ConfigurationError, KeyLoadError, SigningError
from apple_signin.models import ClientIdentity

logger = logging.getLogger(__name__)

APPLE_AUDIENCE = "https://appleid.apple.com"
SIGNING_ALGORITHM = "ES256"
MAX_ASSERTION_LIFETIME = timedelta(seconds=15777000)
DEFAULT_ASSERTION_LIFETIME = timedelta(minutes=5)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ClientAssertion:
    """A signed client secret and its validity window."""

    token: str
    key_id: str
    issued_at: datetime
    expires_at: datetime

    def is_valid(self, at: datetime, margin: timedelta = timedelta(0)) -> bool:
        return self.issued_at <= at and at + margin < self.expires_at

    def __repr__(self) -> str:
        return (
            f"ClientAssertion(key_id={self.key_id!r}, issued_at={self.issued_at.isoformat()}, "
            f"expires_at={self.expires_at.isoformat()})"
        )


def _read_key_file(location: str) -> str:
    path = Path(location).expanduser()
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise KeyLoadError(f"Unable to read private key file {path}: {exc.__class__.__name__}") from exc


def _parse_private_key(pem: str) -> ec.EllipticCurvePrivateKey:
    try:
        key = load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError) as exc:
        raise SigningError("Private key material could not be parsed as a PEM key.") from exc
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise SigningError("Private key must be an elliptic-curve key for ES256 signing.")
    if not isinstance(key.curve, ec.SECP256R1):
        raise SigningError(f"Unsupported curve {key.curve.name}; ES256 requires P-256.")
    return key


class ClientAssertionSigner:
    """Mint client assertions for a single Apple client identity.

    The key is read and parsed once at construction and never mutated, so a
    signer may be shared freely between threads and tasks.
    """

    def __init__(
        self,
        identity: ClientIdentity,
        *,
        lifetime: timedelta = DEFAULT_ASSERTION_LIFETIME,
        clock: Optional[Clock] = None,
    ) -> None:
        if lifetime <= timedelta(0) or lifetime > MAX_ASSERTION_LIFETIME:
            raise ConfigurationError(
                "Assertion lifetime must be positive and at most "
                f"{int(MAX_ASSERTION_LIFETIME.total_seconds())} seconds."
            )
        raw_key = identity.private_key.get_secret_value()
        if identity.key_format == "file":
            raw_key = _read_key_file(raw_key)

        self._private_key = _parse_private_key(raw_key)
        self._team_id = identity.team_id
        self._client_id = identity.client_id
        self._key_id = identity.key_id
        self._lifetime = lifetime
        self._clock = clock or _utcnow

    @property
    def key_id(self) -> str:
        return self._key_id

    @property
    def lifetime(self) -> timedelta:
        return self._lifetime

    @property
    def public_key_fingerprint(self) -> str:
        """SHA-256 of the DER public key. Safe to log and store."""
        der = self._private_key.public_key().public_bytes(
            Encoding.DER, PublicFormat.SubjectPublicKeyInfo
        )
        return hashlib.sha256(der).hexdigest()

    def generate(self) -> ClientAssertion:
        """Sign a new assertion valid from now for the configured lifetime."""
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + self._lifetime
        claims = {
            "iss": self._team_id,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "aud": APPLE_AUDIENCE,
            "sub": self._client_id,
        }
        try:
            token = jwt.encode(
                claims,
                self._private_key,
                algorithm=SIGNING_ALGORITHM,
                headers={"kid": self._key_id},
            )
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise SigningError(f"Failed to sign client assertion: {exc.__class__.__name__}") from exc

        logger.debug("Minted client assertion kid=%s exp=%s", self._key_id, expires_at.isoformat())
        return ClientAssertion(
            token=token,
            key_id=self._key_id,
            issued_at=issued_at,
            expires_at=expires_at,
        )


class CachingAssertionSigner:
    """Reuse an assertion until it nears expiry.

    Useful when a long assertion lifetime is configured and signing on every
    call is undesirable. ``rotate`` swaps in a signer for a new key; a cached
    assertion minted under a different key id is never handed out.
    """

    def __init__(
        self,
        signer: ClientAssertionSigner,
        *,
        refresh_margin: timedelta = timedelta(seconds=60),
        clock: Optional[Clock] = None,
    ) -> None:
        if refresh_margin < timedelta(0) or refresh_margin >= signer.lifetime:
            raise ConfigurationError("Refresh margin must be shorter than the assertion lifetime.")
        self._signer = signer
        self._refresh_margin = refresh_margin
        self._clock = clock or _utcnow
        self._cached: Optional[ClientAssertion] = None
        self._lock = threading.Lock()

    @property
    def key_id(self) -> str:
        return self._signer.key_id

    def rotate(self, signer: ClientAssertionSigner) -> None:
        with self._lock:
            self._signer = signer

    def generate(self) -> ClientAssertion:
        with self._lock:
            cached = self._cached
            if (
                cached is None
                or cached.key_id != self._signer.key_id
                or not cached.is_valid(self._clock(), self._refresh_margin)
            ):
                cached = self._signer.generate()
                self._cached = cached
            return cached


__all__ = [
    "APPLE_AUDIENCE",
    "CachingAssertionSigner",
    "ClientAssertion",
    "ClientAssertionSigner",
    "DEFAULT_ASSERTION_LIFETIME",
    "MAX_ASSERTION_LIFETIME",
]
