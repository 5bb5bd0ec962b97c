"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_apple_oauth_client,
    get_assertion_signer,
    get_backend_forwarder,
    get_oauth_state_encoder,
    get_sign_in_service,
)
from .config import (
    SettingsDependency,
    get_app_settings,
    get_oauth_settings,
)

__all__ = [
    "SettingsDependency",
    "get_app_settings",
    "get_apple_oauth_client",
    "get_assertion_signer",
    "get_backend_forwarder",
    "get_oauth_settings",
    "get_oauth_state_encoder",
    "get_sign_in_service",
]
