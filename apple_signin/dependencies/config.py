"""
FastAPI dependencies exposing configuration sections.
"""

from functools import lru_cache

from fastapi import Depends

from apple_signin.core.config import AppSettings, OAuthSettings, get_settings


@lru_cache()
def _settings_singleton() -> AppSettings:
    """Ensure configuration is created once per process."""
    return get_settings()


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning application settings."""
    return _settings_singleton()


def get_oauth_settings() -> OAuthSettings:
    return _settings_singleton().oauth


SettingsDependency = Depends(get_app_settings)

__all__ = [
    "SettingsDependency",
    "get_app_settings",
    "get_oauth_settings",
]
