"""Tests for the OAuth authorization, exchange and API key calls."""

import base64
import hashlib
import json
from collections.abc import Callable
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from claude_multi_auth.auth.oauth.token_exchange import (
    OAuthConfig,
    build_authorization_request,
    create_api_key,
    exchange_code,
    generate_pkce_pair,
)
from claude_multi_auth.exceptions import TokenExchangeError


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def oauth_config() -> OAuthConfig:
    return OAuthConfig(
        token_url="https://auth.test/v1/oauth/token",
        api_key_url="https://api.test/api/oauth/claude_cli/create_api_key",
        client_id="client-123",
    )


@pytest.mark.unit
class TestAuthorizationRequest:
    def test_pkce_challenge_matches_verifier(self) -> None:
        verifier, challenge = generate_pkce_pair()

        digest = hashlib.sha256(verifier.encode("ascii")).digest()
        assert challenge == base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")

    def test_max_mode_uses_claude_ai(self, oauth_config: OAuthConfig) -> None:
        request = build_authorization_request("max", oauth_config)

        parts = urlsplit(request.url)
        params = {k: v[0] for k, v in parse_qs(parts.query).items()}
        assert parts.netloc == "claude.ai"
        assert params["client_id"] == "client-123"
        assert params["response_type"] == "code"
        assert params["code_challenge_method"] == "S256"
        assert params["state"] == request.verifier
        assert params["scope"] == "org:create_api_key user:profile user:inference"

    def test_console_mode_uses_console_host(self, oauth_config: OAuthConfig) -> None:
        request = build_authorization_request("console", oauth_config)

        assert urlsplit(request.url).netloc == "console.anthropic.com"


@pytest.mark.unit
@pytest.mark.asyncio
class TestExchangeCode:
    async def test_splits_code_and_state(self, oauth_config: OAuthConfig) -> None:
        bodies: list[dict[str, str]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={"access_token": "at", "refresh_token": "rt", "expires_in": 3600},
            )

        async with _client(handler) as client:
            tokens = await exchange_code("the-code#the-state", "verifier", oauth_config, client)

        assert bodies[0]["code"] == "the-code"
        assert bodies[0]["state"] == "the-state"
        assert bodies[0]["code_verifier"] == "verifier"
        assert bodies[0]["grant_type"] == "authorization_code"
        assert (tokens.access_token, tokens.refresh_token, tokens.expires_in) == ("at", "rt", 3600)

    async def test_state_defaults_to_verifier(self, oauth_config: OAuthConfig) -> None:
        bodies: list[dict[str, str]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"access_token": "at"})

        async with _client(handler) as client:
            await exchange_code("  the-code \n", "verifier", oauth_config, client)

        assert bodies[0]["code"] == "the-code"
        assert bodies[0]["state"] == "verifier"

    async def test_rejected_code(self, oauth_config: OAuthConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, text='{"error":"invalid_grant"}')

        async with _client(handler) as client:
            with pytest.raises(TokenExchangeError) as exc_info:
                await exchange_code("bad", "verifier", oauth_config, client)

        assert exc_info.value.upstream_status == 400
        assert "invalid_grant" in exc_info.value.response_text

    async def test_missing_access_token(self, oauth_config: OAuthConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"refresh_token": "rt"})

        async with _client(handler) as client:
            with pytest.raises(TokenExchangeError, match="access_token"):
                await exchange_code("code", "verifier", oauth_config, client)

    async def test_non_numeric_expiry(self, oauth_config: OAuthConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"access_token": "at", "expires_in": "one hour"})

        async with _client(handler) as client:
            with pytest.raises(TokenExchangeError, match="expires_in") as exc_info:
                await exchange_code("code", "verifier", oauth_config, client)

        assert exc_info.value.response_text == "one hour"


@pytest.mark.unit
@pytest.mark.asyncio
class TestCreateApiKey:
    async def test_returns_raw_key(self, oauth_config: OAuthConfig) -> None:
        auth_headers: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            auth_headers.append(request.headers["authorization"])
            return httpx.Response(200, json={"raw_key": "sk-ant-api03-xyz"})

        async with _client(handler) as client:
            key = await create_api_key("access-token", oauth_config, client)

        assert key == "sk-ant-api03-xyz"
        assert auth_headers == ["Bearer access-token"]

    async def test_missing_raw_key(self, oauth_config: OAuthConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={})

        async with _client(handler) as client:
            with pytest.raises(TokenExchangeError, match="raw_key"):
                await create_api_key("access-token", oauth_config, client)
