"""Lazy access-token refresh for a single account.

Refresh happens only when the account about to be used has an expired token.
There is no retry here; the caller decides how to react to a failure.
"""

from dataclasses import replace

import httpx
from structlog import get_logger

from claude_multi_auth.auth.oauth.constants import DEFAULT_TOKEN_EXPIRY_SECONDS
from claude_multi_auth.auth.oauth.token_exchange import OAuthConfig, refresh_access_token
from claude_multi_auth.exceptions import TokenExchangeError, TokenRefreshError
from claude_multi_auth.rotation.accounts import Account, now_ms


logger = get_logger(__name__)


async def refresh_account(
    account: Account,
    client: httpx.AsyncClient,
    oauth_config: OAuthConfig | None = None,
    now: int | None = None,
) -> Account:
    """Refresh the account's access token.

    Args:
        account: Account whose token expired
        client: HTTP client used to reach the token endpoint
        oauth_config: OAuth configuration (uses defaults if not provided)
        now: Current time in ms

    Returns:
        A new Account with a fresh access token and expiry. The refresh
        token is rotated when the endpoint returns one.

    Raises:
        TokenRefreshError: If the account has no refresh token, the endpoint
            answered non-2xx, or it could not be reached
    """
    if not account.refresh_token:
        logger.warning("token_refresh_skipped_no_refresh_token", account=account.label)
        raise TokenRefreshError(status=None, account_label=account.label)

    try:
        tokens = await refresh_access_token(
            account.refresh_token, config=oauth_config, client=client
        )
    except TokenExchangeError as e:
        logger.warning(
            "token_refresh_failed", account=account.label, status=e.upstream_status
        )
        raise TokenRefreshError(status=e.upstream_status, account_label=account.label) from e
    except httpx.HTTPError as e:
        logger.warning("token_refresh_failed", account=account.label, error=str(e))
        raise TokenRefreshError(status=None, account_label=account.label) from e

    if now is None:
        now = now_ms()
    expires_in = tokens.expires_in or DEFAULT_TOKEN_EXPIRY_SECONDS

    refreshed = replace(
        account,
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token or account.refresh_token,
        expires_at=now + expires_in * 1000,
    )
    logger.info(
        "token_refreshed",
        account=account.label,
        expires_in=expires_in,
        refresh_token_rotated=bool(tokens.refresh_token),
    )
    return refreshed
