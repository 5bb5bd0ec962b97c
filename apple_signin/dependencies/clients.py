"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

import logging
import secrets
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from apple_signin.clients import (
    AppleJWKSVerifier,
    AppleOAuthClient,
    BackendForwarder,
    ClientAssertionSigner,
    OAuthStateEncoder,
)
from apple_signin.core.config import get_settings
from apple_signin.services import SignInService

logger = logging.getLogger(__name__)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_assertion_signer() -> ClientAssertionSigner:
    """Load the private key once and share the signer process-wide."""
    settings = _settings()
    return ClientAssertionSigner(
        settings.apple.to_identity(),
        lifetime=timedelta(seconds=settings.oauth.assertion_ttl_seconds),
    )


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide a state encoder keyed by the configured state secret."""
    settings = _settings()
    if settings.oauth.state_secret is not None:
        secret = settings.oauth.state_secret.get_secret_value()
    else:
        logger.warning(
            "OAUTH_STATE_SECRET is not set; using a per-process key. "
            "Logins started on another worker or before a restart will be rejected."
        )
        secret = secrets.token_urlsafe(32)
    return OAuthStateEncoder(
        secret_key=secret,
        ttl_seconds=settings.oauth.state_ttl_seconds,
    )


@lru_cache()
def get_apple_oauth_client() -> AppleOAuthClient:
    """Create a shared Apple OAuth client; it holds no per-login state."""
    settings = _settings()
    verifier = None
    if settings.oauth.verify_id_token:
        verifier = AppleJWKSVerifier(
            settings.apple.client_id, timeout=settings.oauth.request_timeout_seconds
        )
    return AppleOAuthClient(
        settings.apple.to_client_config(),
        get_assertion_signer(),
        timeout=settings.oauth.request_timeout_seconds,
        debug=settings.oauth.debug,
        id_token_verifier=verifier,
    )


@lru_cache()
def get_backend_forwarder() -> Optional[BackendForwarder]:
    """Provide the account backend forwarder when a callback URL is configured."""
    url = _settings().backend_callback_url
    if not url:
        return None
    return BackendForwarder(str(url))


def get_sign_in_service() -> SignInService:
    """Build the callback orchestration service."""
    return SignInService(
        get_apple_oauth_client(),
        redirect_uri=_settings().apple.redirect_uri,
        forwarder=get_backend_forwarder(),
    )


__all__ = [
    "get_apple_oauth_client",
    "get_assertion_signer",
    "get_backend_forwarder",
    "get_oauth_state_encoder",
    "get_sign_in_service",
]
