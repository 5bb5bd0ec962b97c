"""
Sign in with Apple OAuth client.

Builds authorization URLs and talks to Apple's token and revocation endpoints,
presenting a freshly minted client assertion as the client secret on each call.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from typing import Any, Dict, Optional, Protocol, Tuple, Type
from urllib.parse import quote, urlencode

import anyio
import anyio.to_thread
import httpx

from apple_signin.clients.assertion import ClientAssertion
from apple_signin.clients.id_token import IdTokenVerifier
from apple_signin.core.errors import (
    CsrfStateMismatch,
    ProtocolError,
    RevocationError,
    TransportError,
)
from apple_signin.core.logging import mask_secret
from apple_signin.models import AppleClientConfig
from apple_signin.schemas import RevocationResult, TokenExchangeResponse

logger = logging.getLogger(__name__)

_REDACTED = "[redacted]"
_ERROR_BODY_LIMIT = 200


class AssertionSource(Protocol):
    def generate(self) -> ClientAssertion:
        ...


class AppleOAuthClient:
    """Build Apple authorization URLs and call the token endpoints."""

    AUTHORIZE_URL = "https://appleid.apple.com/auth/authorize"
    TOKEN_URL = "https://appleid.apple.com/auth/token"
    REVOKE_URL = "https://appleid.apple.com/auth/revoke"
    STATE_BYTES = 24

    def __init__(
        self,
        config: AppleClientConfig,
        signer: AssertionSource,
        *,
        timeout: float = 10.0,
        debug: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        id_token_verifier: Optional[IdTokenVerifier] = None,
    ) -> None:
        self._config = config
        self._signer = signer
        self._timeout = timeout
        self._debug = debug
        self._transport = transport
        self._verifier = id_token_verifier

    def build_login_url(self) -> Tuple[str, str]:
        """
        Return the consent URL and the fresh state value embedded in it.

        The caller must keep the state with the login attempt it belongs to and
        hand it back to ``exchange_authorization_code`` as ``expected_state``.
        """
        state = secrets.token_urlsafe(self.STATE_BYTES)
        params = {
            "response_type": "code id_token",
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_uri,
            "state": state,
            "scope": self._config.scope,
            "response_mode": "form_post",
        }
        query = urlencode(params, quote_via=quote)
        return f"{self.AUTHORIZE_URL}?{query}", state

    async def exchange_authorization_code(
        self,
        code: str,
        *,
        expected_state: str,
        received_state: str,
    ) -> TokenExchangeResponse:
        """Validate the callback state, then trade the code for tokens."""
        if not expected_state or not hmac.compare_digest(
            expected_state.encode("utf-8"), received_state.encode("utf-8")
        ):
            logger.warning("Rejected Apple callback with mismatched state.")
            raise CsrfStateMismatch("OAuth state does not match the login attempt.")

        assertion = self._signer.generate()
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._config.redirect_uri,
            "client_id": self._config.client_id,
            "client_secret": assertion.token,
        }
        response = await self._post_form(self.TOKEN_URL, payload, assertion.token)
        return await self._parse_token_response(response, assertion.token)

    async def exchange_refresh_token(self, refresh_token: str) -> TokenExchangeResponse:
        """Obtain a new access token from a stored refresh token."""
        assertion = self._signer.generate()
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "redirect_uri": self._config.redirect_uri,
            "client_id": self._config.client_id,
            "client_secret": assertion.token,
        }
        response = await self._post_form(self.TOKEN_URL, payload, assertion.token)
        return await self._parse_token_response(response, assertion.token)

    async def revoke_token(
        self, token: str, token_type_hint: str = "access_token"
    ) -> RevocationResult:
        """Revoke an access or refresh token. Revoking twice is harmless."""
        assertion = self._signer.generate()
        payload = {
            "token": token,
            "token_type_hint": token_type_hint,
            "client_id": self._config.client_id,
            "client_secret": assertion.token,
            "redirect_uri": self._config.redirect_uri,
        }
        response = await self._post_form(
            self.REVOKE_URL, payload, assertion.token, error_cls=RevocationError
        )
        logger.info("Revoked Apple %s %s", token_type_hint, mask_secret(token))
        return RevocationResult(status_code=response.status_code)

    async def _post_form(
        self,
        url: str,
        payload: Dict[str, str],
        client_secret: str,
        *,
        error_cls: Type[ProtocolError] = ProtocolError,
    ) -> httpx.Response:
        # httpx timeouts are per phase; fail_after bounds the whole exchange.
        try:
            with anyio.fail_after(self._timeout):
                async with httpx.AsyncClient(
                    timeout=self._timeout, transport=self._transport
                ) as client:
                    response = await client.post(
                        url, data=payload, headers={"Accept": "application/json"}
                    )
        except (httpx.TimeoutException, TimeoutError) as exc:
            raise TransportError(
                f"Timed out after {self._timeout}s waiting for {url}."
            ) from exc
        except httpx.TransportError as exc:
            raise TransportError(
                f"Could not reach {url}: {exc.__class__.__name__}."
            ) from exc

        if not response.is_success:
            raise self._protocol_error(response, client_secret, error_cls)
        return response

    def _protocol_error(
        self,
        response: httpx.Response,
        client_secret: str,
        error_cls: Type[ProtocolError],
    ) -> ProtocolError:
        body = response.text.replace(client_secret, _REDACTED)
        if not self._debug:
            body = body[:_ERROR_BODY_LIMIT]

        error: Optional[str] = None
        description: Optional[str] = None
        try:
            parsed: Any = response.json()
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            error = parsed.get("error")
            raw_description = parsed.get("error_description")
            if isinstance(raw_description, str):
                description = raw_description.replace(client_secret, _REDACTED)

        message = f"Apple returned HTTP {response.status_code}"
        if error:
            message += f" ({error})"
        if self._debug:
            if description:
                message += f": {description}"
            logger.error("%s | body=%s", message, body)
        else:
            logger.warning(message)

        return error_cls(
            message,
            status_code=response.status_code,
            body=body,
            error=error,
            error_description=description,
        )

    async def _parse_token_response(
        self, response: httpx.Response, client_secret: str
    ) -> TokenExchangeResponse:
        try:
            token_response = TokenExchangeResponse.model_validate(response.json())
        except ValueError as exc:
            # pydantic's ValidationError is a ValueError as well.
            raise ProtocolError(
                "Incomplete token payload returned from Apple.",
                status_code=response.status_code,
                body=response.text.replace(client_secret, _REDACTED)[:_ERROR_BODY_LIMIT],
            ) from exc

        if self._verifier is not None and token_response.id_token:
            # Verifiers may fetch signing keys with blocking I/O.
            token_response.id_token_claims = await anyio.to_thread.run_sync(
                self._verifier.verify, token_response.id_token
            )

        logger.info(
            "Apple token response received (refresh_token=%s, id_token=%s)",
            token_response.refresh_token is not None,
            token_response.id_token is not None,
        )
        return token_response


__all__ = ["AppleOAuthClient", "AssertionSource"]
