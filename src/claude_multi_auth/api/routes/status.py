"""Status endpoints for account rotation monitoring."""

from datetime import UTC, datetime

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from claude_multi_auth.api.dependencies import RequestProxyDep
from claude_multi_auth.rotation.accounts import (
    Account,
    account_state,
    get_auth_status,
)


router = APIRouter(tags=["status"])


def _iso(timestamp_ms: int | None) -> str | None:
    if timestamp_ms is None:
        return None
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC).isoformat()


class AccountStatusResponse(BaseModel):
    """Status of a single account. Tokens are never included."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    label: str
    mode: str
    state: str = Field(description="valid, expired or rate_limited")
    current: bool
    token_expires_at: str | None = Field(serialization_alias="tokenExpiresAt")
    rate_limited_until: str | None = Field(
        default=None, serialization_alias="rateLimitedUntil"
    )


class AuthStatusResponse(BaseModel):
    """Aggregate account status."""

    model_config = ConfigDict(populate_by_name=True)

    total_accounts: int = Field(serialization_alias="totalAccounts")
    available_accounts: int = Field(serialization_alias="availableAccounts")
    rate_limited_accounts: int = Field(serialization_alias="rateLimitedAccounts")
    current_account: str | None = Field(serialization_alias="currentAccount")
    auto_failover: bool = Field(serialization_alias="autoFailover")
    capability_status: str = Field(serialization_alias="capabilityStatus")
    accounts: list[AccountStatusResponse]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str


def _account_response(account: Account, current: bool, now: int) -> AccountStatusResponse:
    return AccountStatusResponse(
        id=account.id,
        label=account.label,
        mode=account.mode,
        state=account_state(account, now).value,
        current=current,
        token_expires_at=_iso(account.expires_at),
        rate_limited_until=_iso(account.rate_limited_until),
    )


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse(status="healthy", timestamp=datetime.now(UTC).isoformat())


@router.get("/status", response_model=AuthStatusResponse, response_model_by_alias=True)
async def get_status(proxy: RequestProxyDep) -> AuthStatusResponse:
    """Summarise configured accounts and the long-context probe state."""
    config = await proxy.store.get(proxy.config_id)
    now = proxy.clock()

    if config is None:
        return AuthStatusResponse(
            total_accounts=0,
            available_accounts=0,
            rate_limited_accounts=0,
            current_account=None,
            auto_failover=True,
            capability_status=proxy.probe.status.value,
            accounts=[],
        )

    summary = get_auth_status(config, now)
    return AuthStatusResponse(
        total_accounts=summary.total,
        available_accounts=summary.available,
        rate_limited_accounts=summary.rate_limited,
        current_account=summary.current_account.label if summary.current_account else None,
        auto_failover=config.auto_failover,
        capability_status=proxy.probe.status.value,
        accounts=[
            _account_response(account, index == config.current_index, now)
            for index, account in enumerate(summary.accounts)
        ],
    )
