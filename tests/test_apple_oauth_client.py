from __future__ import annotations

import base64
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from urllib.parse import parse_qs, urlparse

import anyio
import httpx
import jwt
import pytest

from apple_signin.clients import AppleOAuthClient, ClientAssertionSigner
from apple_signin.core.errors import (
    CsrfStateMismatch,
    ProtocolError,
    RevocationError,
    TransportError,
)
from apple_signin.models import AppleClientConfig

try:
    from ._bootstrap import CLIENT_ID, REDIRECT_URI, TEAM_ID
except Exception:  # pragma: no cover
    from _bootstrap import CLIENT_ID, REDIRECT_URI, TEAM_ID  # type: ignore

TOKEN_BODY = {
    "access_token": "a1b2c3.access",
    "token_type": "Bearer",
    "expires_in": 3600,
    "refresh_token": "r1.refresh",
    "id_token": "header.payload.signature",
}


def _ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json=TOKEN_BODY)


def _client(config: AppleClientConfig, signer: ClientAssertionSigner, transport, **kwargs) -> AppleOAuthClient:
    return AppleOAuthClient(config, signer, transport=transport, **kwargs)


def test_build_login_url_contains_required_parameters(client_config, signer) -> None:
    client = AppleOAuthClient(client_config, signer)

    url, state = client.build_login_url()

    assert url.startswith(AppleOAuthClient.AUTHORIZE_URL + "?")
    assert "response_type=code%20id_token" in url
    assert f"client_id={CLIENT_ID}" in url
    query = parse_qs(urlparse(url).query)
    assert query["state"] == [state]
    assert query["redirect_uri"] == [REDIRECT_URI]
    assert query["scope"] == ["name email"]
    assert query["response_mode"] == ["form_post"]


def test_build_login_url_issues_distinct_unguessable_states(client_config, signer) -> None:
    client = AppleOAuthClient(client_config, signer)

    states = {client.build_login_url()[1] for _ in range(200)}

    assert len(states) == 200
    # 24 random bytes, url-safe base64 encoded.
    assert all(len(state) >= 32 for state in states)


def _state_bits(state: str) -> int:
    padded = state + "=" * (-len(state) % 4)
    return len(base64.urlsafe_b64decode(padded)) * 8


def test_concurrent_login_urls_get_distinct_states(client_config, signer) -> None:
    client = AppleOAuthClient(client_config, signer)
    attempts = 500

    with ThreadPoolExecutor(max_workers=32) as pool:
        results = list(pool.map(lambda _: client.build_login_url(), range(attempts)))

    states = [state for _, state in results]
    assert len(set(states)) == attempts
    assert all(_state_bits(state) >= 80 for state in states)
    for url, state in results:
        assert parse_qs(urlparse(url).query)["state"] == [state]


@pytest.mark.anyio
async def test_state_mismatch_short_circuits_before_network(
    client_config, signer, recording_transport
) -> None:
    transport = recording_transport(_ok)
    client = _client(client_config, signer, transport)

    with pytest.raises(CsrfStateMismatch):
        await client.exchange_authorization_code(
            "code-123", expected_state="expected", received_state="forged"
        )

    assert transport.requests == []


@pytest.mark.anyio
async def test_empty_expected_state_is_rejected(client_config, signer, recording_transport) -> None:
    transport = recording_transport(_ok)
    client = _client(client_config, signer, transport)

    with pytest.raises(CsrfStateMismatch):
        await client.exchange_authorization_code("code", expected_state="", received_state="")

    assert transport.requests == []


@pytest.mark.anyio
async def test_exchange_authorization_code_posts_form_and_parses_tokens(
    client_config, signer, recording_transport
) -> None:
    transport = recording_transport(_ok)
    client = _client(client_config, signer, transport)

    result = await client.exchange_authorization_code(
        "code-123", expected_state="s1", received_state="s1"
    )

    assert result.access_token == TOKEN_BODY["access_token"]
    assert result.refresh_token == TOKEN_BODY["refresh_token"]
    assert result.id_token == TOKEN_BODY["id_token"]
    assert result.expires_in == 3600
    assert result.token_type == "Bearer"
    assert result.id_token_claims is None

    request = transport.requests[0]
    assert str(request.url) == AppleOAuthClient.TOKEN_URL
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    form = transport.form()
    assert form["grant_type"] == "authorization_code"
    assert form["code"] == "code-123"
    assert form["redirect_uri"] == REDIRECT_URI
    assert form["client_id"] == CLIENT_ID


@pytest.mark.anyio
async def test_client_secret_is_a_fresh_assertion_for_the_configured_client(
    client_config, signer, recording_transport
) -> None:
    def echo_secret(request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode("utf-8"))
        return httpx.Response(
            200,
            json={**TOKEN_BODY, "echoed_secret": form["client_secret"][0]},
        )

    client = _client(client_config, signer, recording_transport(echo_secret))

    result = await client.exchange_authorization_code("c", expected_state="s", received_state="s")

    claims = jwt.decode(result.echoed_secret, options={"verify_signature": False})
    assert claims["iss"] == TEAM_ID
    assert claims["sub"] == CLIENT_ID
    assert claims["aud"] == "https://appleid.apple.com"


@pytest.mark.anyio
async def test_unknown_response_fields_are_preserved(client_config, signer, recording_transport) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={**TOKEN_BODY, "scope": "name email"})

    client = _client(client_config, signer, recording_transport(handler))

    result = await client.exchange_refresh_token("r1.refresh")

    assert result.model_dump()["scope"] == "name email"


@pytest.mark.anyio
async def test_exchange_refresh_token_posts_refresh_grant(
    client_config, signer, recording_transport
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"access_token": "new", "token_type": "Bearer", "expires_in": 3600}
        )

    transport = recording_transport(handler)
    client = _client(client_config, signer, transport)

    result = await client.exchange_refresh_token("r1.refresh")

    assert result.access_token == "new"
    assert result.refresh_token is None
    form = transport.form()
    assert form["grant_type"] == "refresh_token"
    assert form["refresh_token"] == "r1.refresh"
    assert "code" not in form
    assert form["client_secret"].count(".") == 2


@pytest.mark.anyio
async def test_revoke_token_posts_revocation_form(client_config, signer, recording_transport) -> None:
    transport = recording_transport(lambda request: httpx.Response(200))
    client = _client(client_config, signer, transport)

    result = await client.revoke_token("a1b2c3.access")

    assert result.revoked is True
    assert result.status_code == 200
    assert str(transport.requests[0].url) == AppleOAuthClient.REVOKE_URL
    form = transport.form()
    assert form["token"] == "a1b2c3.access"
    assert form["token_type_hint"] == "access_token"
    assert form["client_id"] == CLIENT_ID
    assert form["redirect_uri"] == REDIRECT_URI
    assert "client_secret" in form


@pytest.mark.anyio
async def test_invalid_grant_surfaces_protocol_error(client_config, signer, recording_transport) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_grant"})

    client = _client(client_config, signer, recording_transport(handler))

    with pytest.raises(ProtocolError) as excinfo:
        await client.exchange_authorization_code("used", expected_state="s", received_state="s")

    assert excinfo.value.status_code == 400
    assert excinfo.value.error == "invalid_grant"
    assert not isinstance(excinfo.value, TransportError)


@pytest.mark.anyio
async def test_refresh_protocol_error_carries_code(client_config, signer, recording_transport) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_grant"})

    client = _client(client_config, signer, recording_transport(handler))

    with pytest.raises(ProtocolError) as excinfo:
        await client.exchange_refresh_token("expired")

    assert excinfo.value.error == "invalid_grant"


@pytest.mark.anyio
async def test_revoke_failure_raises_revocation_error(client_config, signer, recording_transport) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_client"})

    client = _client(client_config, signer, recording_transport(handler))

    with pytest.raises(RevocationError) as excinfo:
        await client.revoke_token("token")

    assert excinfo.value.error == "invalid_client"


class StallingTransport(httpx.AsyncBaseTransport):
    """Upstream that accepts the request and then never answers in time."""

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        await anyio.sleep(self.delay)
        return httpx.Response(200, json=TOKEN_BODY)


@pytest.mark.anyio
@pytest.mark.parametrize(
    "operation",
    [
        lambda client: client.exchange_authorization_code("c", expected_state="s", received_state="s"),
        lambda client: client.exchange_refresh_token("r"),
        lambda client: client.revoke_token("t"),
    ],
)
async def test_hanging_upstream_fails_within_timeout(client_config, signer, operation) -> None:
    transport = StallingTransport(delay=5.0)
    client = _client(client_config, signer, transport, timeout=0.2)

    started = time.monotonic()
    with pytest.raises(TransportError) as excinfo:
        await operation(client)

    assert time.monotonic() - started < 2.0
    assert len(transport.requests) == 1
    assert "0.2" in str(excinfo.value)


@pytest.mark.anyio
async def test_httpx_timeout_surfaces_transport_error(
    client_config, signer, recording_transport
) -> None:
    def read_timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("upstream hung", request=request)

    client = _client(client_config, signer, recording_transport(read_timeout), timeout=0.5)

    with pytest.raises(TransportError) as excinfo:
        await client.exchange_refresh_token("r")

    assert "0.5" in str(excinfo.value)


@pytest.mark.anyio
async def test_connection_failure_surfaces_transport_error(
    client_config, signer, recording_transport
) -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(client_config, signer, recording_transport(refuse))

    with pytest.raises(TransportError):
        await client.exchange_refresh_token("r")


@pytest.mark.anyio
async def test_error_body_redacts_client_secret(client_config, signer, recording_transport) -> None:
    def echo_error(request: httpx.Request) -> httpx.Response:
        secret = parse_qs(request.content.decode("utf-8"))["client_secret"][0]
        return httpx.Response(
            401,
            json={"error": "invalid_client", "error_description": f"bad secret {secret}"},
        )

    transport = recording_transport(echo_error)
    client = _client(client_config, signer, transport, debug=True)

    with pytest.raises(ProtocolError) as excinfo:
        await client.exchange_refresh_token("r")

    secret = transport.form()["client_secret"]
    assert secret not in excinfo.value.body
    assert secret not in str(excinfo.value)
    assert "[redacted]" in excinfo.value.body
    assert excinfo.value.error_description is not None


@pytest.mark.anyio
async def test_error_body_is_truncated_without_debug(client_config, signer, recording_transport) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="x" * 5000)

    client = _client(client_config, signer, recording_transport(handler))

    with pytest.raises(ProtocolError) as excinfo:
        await client.exchange_refresh_token("r")

    assert excinfo.value.status_code == 500
    assert excinfo.value.error is None
    assert len(excinfo.value.body) == 200


@pytest.mark.anyio
async def test_incomplete_success_payload_is_a_protocol_error(
    client_config, signer, recording_transport
) -> None:
    client = _client(
        client_config,
        signer,
        recording_transport(lambda request: httpx.Response(200, json={"token_type": "Bearer"})),
    )

    with pytest.raises(ProtocolError, match="Incomplete"):
        await client.exchange_refresh_token("r")


@pytest.mark.anyio
async def test_configured_verifier_attaches_claims(client_config, signer, recording_transport) -> None:
    class StubVerifier:
        def __init__(self) -> None:
            self.seen: list[str] = []

        def verify(self, id_token: str) -> dict:
            self.seen.append(id_token)
            return {"sub": "001234.abcd", "email": "user@example.com"}

    verifier = StubVerifier()
    client = _client(client_config, signer, recording_transport(_ok), id_token_verifier=verifier)

    result = await client.exchange_authorization_code("c", expected_state="s", received_state="s")

    assert verifier.seen == [TOKEN_BODY["id_token"]]
    assert result.id_token_claims == {"sub": "001234.abcd", "email": "user@example.com"}


@pytest.mark.anyio
async def test_verifier_runs_off_the_event_loop_thread(
    client_config, signer, recording_transport
) -> None:
    loop_thread = threading.get_ident()
    seen_threads: list[int] = []

    class BlockingVerifier:
        def verify(self, id_token: str) -> dict:
            seen_threads.append(threading.get_ident())
            return {"sub": "001234.abcd"}

    client = _client(
        client_config, signer, recording_transport(_ok), id_token_verifier=BlockingVerifier()
    )

    result = await client.exchange_refresh_token("r1.refresh")

    assert result.id_token_claims == {"sub": "001234.abcd"}
    assert seen_threads and seen_threads[0] != loop_thread
