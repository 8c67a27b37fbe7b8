"""Shared fixtures for claude-multi-auth tests."""

from collections.abc import Callable

import pytest

from claude_multi_auth.rotation.accounts import Account, AuthConfig
from tests.factories import NOW, ONE_HOUR


@pytest.fixture
def make_account() -> Callable[..., Account]:
    """Build accounts with valid tokens by default."""

    def _make(
        label: str = "Personal",
        *,
        id: str | None = None,
        access_token: str | None = None,
        refresh_token: str | None = None,
        expires_at: int = NOW + 8 * ONE_HOUR,
        rate_limited_until: int | None = None,
        mode: str = "max",
    ) -> Account:
        slug = label.lower().replace(" ", "-")
        return Account(
            id=id or f"account-{slug}",
            label=label,
            access_token=access_token if access_token is not None else f"access-{slug}",
            refresh_token=refresh_token if refresh_token is not None else f"refresh-{slug}",
            expires_at=expires_at,
            rate_limited_until=rate_limited_until,
            mode=mode,
        )

    return _make


@pytest.fixture
def two_account_config(make_account: Callable[..., Account]) -> AuthConfig:
    return AuthConfig(
        accounts=[make_account("Personal"), make_account("Work")],
        current_index=0,
        auto_failover=True,
    )
