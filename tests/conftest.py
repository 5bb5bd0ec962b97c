"""Pytest configuration shared across the suite."""

from __future__ import annotations

import json
from typing import Callable
from urllib.parse import parse_qs

import httpx
import pytest

try:
    from ._bootstrap import CLIENT_ID, KEY_ID, REDIRECT_URI, TEAM_ID, generate_p256_pem
except Exception:  # pragma: no cover
    from _bootstrap import (  # type: ignore
        CLIENT_ID,
        KEY_ID,
        REDIRECT_URI,
        TEAM_ID,
        generate_p256_pem,
    )

from apple_signin.clients import ClientAssertionSigner
from apple_signin.models import AppleClientConfig, ClientIdentity


class RecordingTransport(httpx.MockTransport):
    """Mock upstream that remembers every request it answered."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    def form(self, index: int = -1) -> dict[str, str]:
        parsed = parse_qs(self.requests[index].content.decode("utf-8"))
        return {key: values[0] for key, values in parsed.items()}

    def json(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture(scope="session")
def private_key_pem() -> str:
    return generate_p256_pem()


@pytest.fixture
def identity(private_key_pem: str) -> ClientIdentity:
    return ClientIdentity.create(
        team_id=TEAM_ID,
        client_id=CLIENT_ID,
        key_id=KEY_ID,
        private_key=private_key_pem,
    )


@pytest.fixture
def signer(identity: ClientIdentity) -> ClientAssertionSigner:
    return ClientAssertionSigner(identity)


@pytest.fixture
def client_config() -> AppleClientConfig:
    return AppleClientConfig.create(
        client_id=CLIENT_ID,
        redirect_uri=REDIRECT_URI,
        scope="name email",
    )


@pytest.fixture
def recording_transport() -> Callable[..., RecordingTransport]:
    """Build a mock upstream from a handler function."""
    return RecordingTransport
