"""
FastAPI application entrypoint for the Sign in with Apple service.
"""

from __future__ import annotations

from fastapi import FastAPI

from apple_signin.api.routes import router as api_router
from apple_signin.core.config import get_settings
from apple_signin.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Sign in with Apple Service",
        version="0.1.0",
        description="Apple OAuth2 login, token refresh, and revocation endpoints.",
        debug=settings.oauth.debug,
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
