"""Forward completed sign-ins to the downstream account service."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import anyio
import httpx

from apple_signin.core.errors import BackendForwardError
from apple_signin.schemas import AppleUserProfile, TokenExchangeResponse

logger = logging.getLogger(__name__)


class BackendForwarder:
    """POST the signed-in user's identity and Apple tokens to a backend URL."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def _send(
        self, method: str, *, timeout: Optional[float] = None, **kwargs: Any
    ) -> httpx.Response:
        limit = timeout if timeout is not None else self._timeout
        try:
            with anyio.fail_after(limit):
                async with httpx.AsyncClient(
                    timeout=limit, transport=self._transport
                ) as client:
                    return await client.request(
                        method,
                        self._url,
                        headers={"Accept": "application/json"},
                        **kwargs,
                    )
        except TimeoutError as exc:
            raise BackendForwardError(
                f"Account backend did not answer within {limit}s."
            ) from exc
        except httpx.HTTPError as exc:
            raise BackendForwardError(
                f"Could not reach account backend: {exc.__class__.__name__}."
            ) from exc

    async def check_reachable(self, *, timeout: float = 5.0) -> bool:
        """Return True when the backend answers at all.

        The callback route normally only accepts POST, so any HTTP status
        (405 included) counts as reachable.
        """
        try:
            response = await self._send("GET", timeout=timeout)
        except BackendForwardError as exc:
            logger.warning("Account backend unreachable: %s", exc)
            return False
        logger.info("Account backend answered HTTP %s", response.status_code)
        return True

    async def forward(
        self,
        *,
        code: str,
        redirect_uri: str,
        profile: AppleUserProfile,
        tokens: TokenExchangeResponse,
    ) -> Dict[str, Any]:
        payload = {
            "code": code,
            "redirectUri": redirect_uri,
            "appleId": profile.apple_id,
            "email": profile.email,
            "name": profile.name,
            "isPrivateEmail": profile.is_private_email,
            "refreshToken": tokens.refresh_token,
            "accessToken": tokens.access_token,
        }
        response = await self._send("POST", json=payload)
        if not response.is_success:
            raise BackendForwardError(
                f"Account backend returned HTTP {response.status_code}."
            )

        logger.info("Forwarded Apple sign-in for user %s", profile.apple_id)
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {"data": data}


__all__ = ["BackendForwarder"]
