"""
Application configuration models and helpers.

Centralizes settings management so the web service, the scripts, and tests
share one configuration surface. The OAuth client itself only ever sees the
validated ``ClientIdentity`` and ``AppleClientConfig`` built from here.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

import os

from pydantic import Field, HttpUrl, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from apple_signin.models import AppleClientConfig, ClientIdentity


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class AppleSettings(BaseSettings):
    """Credentials and registration details for the Apple Services ID."""

    model_config = SettingsConfigDict(env_prefix="APPLE_")

    team_id: str
    client_id: str
    key_id: str
    redirect_uri: str
    scope: str = "name email"
    private_key: SecretStr = Field(
        ...,
        description="PEM text of the .p8 key, or its path when private_key_source is 'file'.",
    )
    private_key_source: Literal["text", "file"] = "text"

    @field_validator("private_key", mode="before")
    @classmethod
    def _unescape_newlines(cls, value):
        # Single-line environment values carry the PEM newlines as literal "\n".
        if isinstance(value, str) and "\\n" in value:
            return value.replace("\\n", "\n")
        return value

    def to_identity(self) -> ClientIdentity:
        return ClientIdentity.create(
            team_id=self.team_id,
            client_id=self.client_id,
            key_id=self.key_id,
            private_key=self.private_key,
            key_format=self.private_key_source,
        )

    def to_client_config(self) -> AppleClientConfig:
        return AppleClientConfig.create(
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            scope=self.scope,
        )


class OAuthSettings(BaseSettings):
    """OAuth flow configuration."""

    model_config = SettingsConfigDict(env_prefix="OAUTH_", populate_by_name=True)

    state_ttl_seconds: int = Field(600, validation_alias="OAUTH_STATE_TTL", gt=0)
    state_secret: Optional[SecretStr] = Field(
        None,
        description="HMAC key for state cookies; shared by every worker.",
    )
    state_cookie_name: str = "apple_oauth_state"
    request_timeout_seconds: float = Field(
        10.0, validation_alias="OAUTH_REQUEST_TIMEOUT", gt=0, le=60
    )
    assertion_ttl_seconds: int = Field(
        300, validation_alias="OAUTH_ASSERTION_TTL", gt=0, le=15777000
    )
    verify_id_token: bool = Field(
        True,
        description="Verify ID tokens against Apple's published keys before use.",
    )
    debug: bool = Field(
        False,
        description="Echo Apple's error descriptions in errors and logs.",
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional URL for redirecting users back to the front-end.",
    )
    backend_callback_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="BACKEND_CALLBACK_URL",
        description="Optional account service that receives completed sign-ins.",
    )
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    apple: AppleSettings = Field(default_factory=AppleSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "AppleSettings",
    "OAuthSettings",
    "get_settings",
]
