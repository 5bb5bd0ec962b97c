"""
FastAPI routes for the Sign in with Apple service.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from apple_signin.clients import BackendForwarder
from apple_signin.core.errors import (
    AppleAuthError,
    BackendForwardError,
    CsrfStateMismatch,
    IdTokenVerificationError,
    ProtocolError,
    StateExpired,
    TransportError,
)
from apple_signin.dependencies import (
    get_app_settings,
    get_apple_oauth_client,
    get_backend_forwarder,
    get_oauth_settings,
    get_oauth_state_encoder,
    get_sign_in_service,
)
from apple_signin.schemas import (
    AppleCallbackPayload,
    RefreshTokenRequest,
    RevocationResult,
    RevokeTokenRequest,
    TokenExchangeResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


def _to_http_error(exc: AppleAuthError) -> HTTPException:
    """Translate client failures into HTTP errors without leaking upstream bodies."""
    if isinstance(exc, StateExpired):
        return HTTPException(status_code=HTTPStatus.FORBIDDEN, detail="Sign-in attempt expired.")
    if isinstance(exc, CsrfStateMismatch):
        return HTTPException(
            status_code=HTTPStatus.FORBIDDEN,
            detail="State mismatch. Possible CSRF attack.",
        )
    if isinstance(exc, TransportError):
        return HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY, detail="Apple could not be reached."
        )
    if isinstance(exc, ProtocolError):
        return HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail={"message": "Apple rejected the request.", "error": exc.error},
        )
    if isinstance(exc, IdTokenVerificationError):
        return HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail=str(exc))
    if isinstance(exc, BackendForwardError):
        return HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY, detail="Account backend rejected the sign-in."
        )
    return HTTPException(status_code=HTTPStatus.INTERNAL_SERVER_ERROR, detail="Sign-in failed.")


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/apple/login", status_code=HTTPStatus.OK)
async def start_apple_sign_in(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_apple_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    oauth_settings: Annotated[Any, Depends(get_oauth_settings)],
    redirect_to: Optional[str] = Query(
        default=None,
        description="Relative path to send the browser to after signing in.",
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to Apple's consent screen.",
    ),
) -> Response:
    """
    Start a login attempt: issue a fresh state and bind it to this browser.
    """
    if redirect_to and (not redirect_to.startswith("/") or redirect_to.startswith("//")):
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="redirect_to must be a path on this site.",
        )

    authorization_url, state = oauth_client.build_login_url()
    cookie_value = state_encoder.encode(state, redirect_to=redirect_to)

    if redirect or _wants_html(request):
        response: Response = RedirectResponse(
            url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT
        )
    else:
        response = JSONResponse(
            content={"authorization_url": authorization_url, "state": state}
        )

    # Apple posts the callback cross-site, so the cookie must be SameSite=None.
    response.set_cookie(
        oauth_settings.state_cookie_name,
        cookie_value,
        max_age=oauth_settings.state_ttl_seconds,
        httponly=True,
        secure=True,
        samesite="none",
    )
    return response


@router.post("/auth/apple/callback", status_code=HTTPStatus.OK)
async def handle_apple_callback(
    request: Request,
    service: Annotated[Any, Depends(get_sign_in_service)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    settings: Annotated[Any, Depends(get_app_settings)],
    code: str = Form(...),
    state: str = Form(...),
    id_token: Optional[str] = Form(default=None),
    user: Optional[str] = Form(default=None),
) -> Response:
    """Complete the sign-in Apple posted back to us."""
    payload = AppleCallbackPayload(code=code, state=state, id_token=id_token, user=user)
    cookie_name = settings.oauth.state_cookie_name

    try:
        pending = state_encoder.decode(request.cookies.get(cookie_name))
        result = await service.complete(payload, expected_state=pending.state)
    except AppleAuthError as exc:
        logger.warning("Apple callback failed: %s", exc.__class__.__name__)
        raise _to_http_error(exc) from exc

    body = {
        "status": "signed_in",
        "user": result.profile.model_dump(),
        "verified": result.verified,
        "backend": result.backend_response,
    }
    redirect_target = pending.redirect_to or settings.frontend_base_url
    if redirect_target and _wants_html(request):
        response: Response = RedirectResponse(
            url=str(redirect_target), status_code=HTTPStatus.SEE_OTHER
        )
    else:
        response = JSONResponse(content=body)

    response.delete_cookie(cookie_name, httponly=True, secure=True, samesite="none")
    return response


@router.post("/auth/apple/refresh", response_model=TokenExchangeResponse)
async def refresh_apple_token(
    payload: RefreshTokenRequest,
    oauth_client: Annotated[Any, Depends(get_apple_oauth_client)],
) -> TokenExchangeResponse:
    """Exchange a refresh token for a new access token."""
    try:
        return await oauth_client.exchange_refresh_token(payload.refresh_token)
    except AppleAuthError as exc:
        raise _to_http_error(exc) from exc


@router.post("/auth/apple/revoke", response_model=RevocationResult)
async def revoke_apple_token(
    payload: RevokeTokenRequest,
    oauth_client: Annotated[Any, Depends(get_apple_oauth_client)],
) -> RevocationResult:
    """Revoke a user's Apple token, e.g. on account deletion."""
    try:
        return await oauth_client.revoke_token(payload.token, payload.token_type_hint)
    except AppleAuthError as exc:
        raise _to_http_error(exc) from exc


@router.get("/debug", status_code=HTTPStatus.OK)
async def debug_info(
    settings: Annotated[Any, Depends(get_app_settings)],
    forwarder: Annotated[Optional[BackendForwarder], Depends(get_backend_forwarder)],
) -> dict:
    """Report non-secret configuration to help diagnose setup problems."""
    if forwarder is None:
        backend_status = "not_configured"
    elif await forwarder.check_reachable():
        backend_status = "reachable"
    else:
        backend_status = "unreachable"

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
        "config": {
            "client_id": settings.apple.client_id,
            "team_id": settings.apple.team_id,
            "key_id": settings.apple.key_id,
            "redirect_uri": settings.apple.redirect_uri,
            "scope": settings.apple.scope,
            "private_key_source": settings.apple.private_key_source,
            "verify_id_token": settings.oauth.verify_id_token,
        },
        "backend_status": backend_status,
    }


__all__ = ["router"]
