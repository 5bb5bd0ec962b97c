"""
Immutable configuration models for the Sign in with Apple client.
"""

from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from apple_signin.core.errors import ConfigurationError

APPLE_IDENTIFIER_PATTERN = r"^[A-Z0-9]{10}$"


def _describe_errors(exc: ValidationError) -> str:
    # ValidationError's own str() echoes input values, which may include key material.
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'config'}: {error['msg']}"
        for error in exc.errors()
    )


class _ValidatedModel(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True, extra="forbid")

    @classmethod
    def create(cls, **values: Any):
        """Validate ``values`` once, converting failures to ``ConfigurationError``."""
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid {cls.__name__}: {_describe_errors(exc)}"
            ) from exc


class ClientIdentity(_ValidatedModel):
    """Credentials proving this client's identity to Apple."""

    team_id: str = Field(
        ...,
        pattern=APPLE_IDENTIFIER_PATTERN,
        description="Apple Developer Team ID.",
    )
    client_id: str = Field(
        ...,
        min_length=1,
        description="Services ID (or bundle ID) registered with Apple.",
    )
    key_id: str = Field(
        ...,
        pattern=APPLE_IDENTIFIER_PATTERN,
        description="Identifier of the Sign in with Apple private key.",
    )
    private_key: SecretStr = Field(
        ...,
        description="PEM key text, or a path to the .p8 file when key_format is 'file'.",
    )
    key_format: Literal["text", "file"] = "text"

    @field_validator("private_key")
    @classmethod
    def _require_key(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("private key must not be empty")
        return value


class AppleClientConfig(_ValidatedModel):
    """Everything the OAuth client needs besides the signing key."""

    client_id: str = Field(..., min_length=1)
    redirect_uri: str = Field(..., description="Registered OAuth return URL.")
    scope: str = Field("name email", description="Space separated scopes.")

    @field_validator("redirect_uri")
    @classmethod
    def _absolute_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("redirect_uri must be an absolute http(s) URL")
        return value

    @field_validator("scope")
    @classmethod
    def _known_scopes(cls, value: str) -> str:
        scopes = value.split()
        unknown = sorted(set(scopes) - {"name", "email"})
        if unknown:
            raise ValueError(f"unsupported scopes: {', '.join(unknown)}")
        return " ".join(scopes)


__all__ = ["APPLE_IDENTIFIER_PATTERN", "AppleClientConfig", "ClientIdentity"]
