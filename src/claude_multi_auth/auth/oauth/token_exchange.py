"""OAuth token exchange utilities.

Covers the three calls made against Anthropic's OAuth endpoints: exchanging
an authorization code, refreshing an access token and creating an API key.
All token requests use a JSON body, not the form-encoded OAuth 2.0 format.
"""

import base64
import hashlib
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

import httpx
from structlog import get_logger

from claude_multi_auth.config.settings import OAuthSettings
from claude_multi_auth.exceptions import TokenExchangeError

from .constants import (
    OAUTH_API_KEY_URL,
    OAUTH_AUTHORIZE_URL_CONSOLE,
    OAUTH_AUTHORIZE_URL_MAX,
    OAUTH_CLIENT_ID,
    OAUTH_REDIRECT_URI,
    OAUTH_SCOPES,
    OAUTH_TOKEN_URL,
)


logger = get_logger(__name__)


@dataclass
class OAuthConfig:
    """OAuth configuration with sensible defaults."""

    token_url: str = OAUTH_TOKEN_URL
    authorize_url_max: str = OAUTH_AUTHORIZE_URL_MAX
    authorize_url_console: str = OAUTH_AUTHORIZE_URL_CONSOLE
    api_key_url: str = OAUTH_API_KEY_URL
    client_id: str = OAUTH_CLIENT_ID
    redirect_uri: str = OAUTH_REDIRECT_URI
    scopes: list[str] = field(default_factory=lambda: list(OAUTH_SCOPES))
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: OAuthSettings) -> "OAuthConfig":
        return cls(
            token_url=settings.token_url,
            authorize_url_max=settings.authorize_url_max,
            authorize_url_console=settings.authorize_url_console,
            api_key_url=settings.api_key_url,
            client_id=settings.client_id,
            redirect_uri=settings.redirect_uri,
            scopes=list(settings.scopes),
            timeout=settings.request_timeout,
        )


@dataclass
class AuthorizationRequest:
    """A PKCE authorization URL and the verifier needed to redeem its code."""

    url: str
    verifier: str


@dataclass
class TokenResponse:
    """Tokens returned by the OAuth token endpoint."""

    access_token: str
    refresh_token: str | None
    expires_in: int | None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenResponse":
        access_token = data.get("access_token")
        if not access_token:
            raise TokenExchangeError("Token response missing access_token")
        expires_in = data.get("expires_in")
        if expires_in is not None:
            try:
                expires_in = int(expires_in)
            except (TypeError, ValueError) as e:
                raise TokenExchangeError(
                    "Token response has invalid expires_in", response_text=str(expires_in)
                ) from e
        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            expires_in=expires_in,
        )


def _build_headers() -> dict[str, str]:
    """Build standard OAuth headers for JSON requests."""
    return {
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


def _handle_error_response(response: httpx.Response, operation: str) -> None:
    """Log an error response and raise TokenExchangeError."""
    error_text = response.text[:500]
    logger.error(
        f"oauth_{operation}_failed",
        status=response.status_code,
        error=error_text,
    )
    raise TokenExchangeError(
        f"{operation} failed with HTTP {response.status_code}: {error_text}",
        status_code=response.status_code,
        response_text=error_text,
    )


def _parse_json(response: httpx.Response, operation: str) -> dict[str, Any]:
    """Decode a successful JSON response body."""
    try:
        data = response.json()
    except ValueError as e:
        raise TokenExchangeError(
            f"{operation} returned invalid JSON",
            status_code=response.status_code,
            response_text=response.text[:500],
        ) from e
    if not isinstance(data, dict):
        raise TokenExchangeError(f"{operation} returned unexpected payload")
    return data


@asynccontextmanager
async def _client_scope(
    client: httpx.AsyncClient | None, timeout: float
) -> AsyncIterator[httpx.AsyncClient]:
    """Use the caller's client, or a short-lived one when none is given."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE (verifier, S256 challenge) pair."""
    verifier = secrets.token_urlsafe(32)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
    return verifier, challenge


def build_authorization_request(
    mode: str = "max", config: OAuthConfig | None = None
) -> AuthorizationRequest:
    """Build the URL the user opens to authorize a new account.

    Args:
        mode: "max" authorizes on claude.ai, "console" on console.anthropic.com
        config: OAuth configuration (uses defaults if not provided)

    Returns:
        AuthorizationRequest with the URL and the PKCE verifier
    """
    if config is None:
        config = OAuthConfig()

    verifier, challenge = generate_pkce_pair()
    base_url = config.authorize_url_console if mode == "console" else config.authorize_url_max
    params = {
        "code": "true",
        "client_id": config.client_id,
        "response_type": "code",
        "redirect_uri": config.redirect_uri,
        "scope": " ".join(config.scopes),
        "code_challenge": challenge,
        "code_challenge_method": "S256",
        "state": verifier,
    }
    return AuthorizationRequest(url=f"{base_url}?{urlencode(params)}", verifier=verifier)


async def exchange_code(
    code: str,
    code_verifier: str,
    config: OAuthConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    """Exchange an authorization code for tokens.

    Args:
        code: Pasted value, either ``code`` or ``code#state``
        code_verifier: PKCE verifier from the authorization request
        config: OAuth configuration (uses defaults if not provided)
        client: HTTP client to use (a short-lived one is created if None)

    Returns:
        TokenResponse with access and refresh tokens

    Raises:
        TokenExchangeError: If the exchange fails
    """
    if config is None:
        config = OAuthConfig()

    auth_code, _, state = code.strip().partition("#")
    token_data = {
        "grant_type": "authorization_code",
        "code": auth_code,
        "state": state or code_verifier,
        "client_id": config.client_id,
        "redirect_uri": config.redirect_uri,
        "code_verifier": code_verifier,
    }

    async with _client_scope(client, config.timeout) as http:
        try:
            response = await http.post(
                config.token_url,
                headers=_build_headers(),
                json=token_data,
                timeout=config.timeout,
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"token_exchange request failed: {e}") from e

    if not response.is_success:
        _handle_error_response(response, "token_exchange")

    logger.info("oauth_token_exchange_succeeded")
    return TokenResponse.from_dict(_parse_json(response, "token_exchange"))


async def refresh_access_token(
    refresh_token: str,
    config: OAuthConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    """Refresh an access token.

    Args:
        refresh_token: Refresh token from a previous token response
        config: OAuth configuration (uses defaults if not provided)
        client: HTTP client to use (a short-lived one is created if None)

    Returns:
        TokenResponse with the new access token

    Raises:
        TokenExchangeError: If the refresh is rejected
        httpx.HTTPError: If the token endpoint could not be reached
    """
    if config is None:
        config = OAuthConfig()

    token_data = {
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
        "client_id": config.client_id,
    }

    async with _client_scope(client, config.timeout) as http:
        response = await http.post(
            config.token_url,
            headers=_build_headers(),
            json=token_data,
            timeout=config.timeout,
        )

    if not response.is_success:
        _handle_error_response(response, "token_refresh")

    return TokenResponse.from_dict(_parse_json(response, "token_refresh"))


async def create_api_key(
    access_token: str,
    config: OAuthConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Create a long-lived API key using an OAuth access token.

    Raises:
        TokenExchangeError: If the key could not be created
    """
    if config is None:
        config = OAuthConfig()

    headers = {**_build_headers(), "authorization": f"Bearer {access_token}"}
    async with _client_scope(client, config.timeout) as http:
        try:
            response = await http.post(
                config.api_key_url, headers=headers, timeout=config.timeout
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"create_api_key request failed: {e}") from e

    if not response.is_success:
        _handle_error_response(response, "create_api_key")

    raw_key = _parse_json(response, "create_api_key").get("raw_key")
    if not raw_key:
        raise TokenExchangeError("API key response missing raw_key")
    return str(raw_key)
