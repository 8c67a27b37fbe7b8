"""Account model for multi-account rotation.

Accounts and the surrounding configuration are persisted in the camelCase
layout used by ``multi-auth.json``. All timestamps are Unix milliseconds.
"""

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from structlog import get_logger

from claude_multi_auth.rotation.constants import (
    ACCOUNT_MODES,
    CONFIG_TYPE_LEGACY,
    CONFIG_TYPE_MULTI,
    MIGRATED_ACCOUNT_ID,
    MIGRATED_ACCOUNT_LABEL,
    ONE_HOUR_MILLISECONDS,
    ONE_MINUTE_MILLISECONDS,
)


logger = get_logger(__name__)


def now_ms() -> int:
    """Current time as Unix milliseconds."""
    return int(time.time() * 1000)


class AccountState(StrEnum):
    """Display state of an account."""

    VALID = "valid"
    EXPIRED = "expired"
    RATE_LIMITED = "rate_limited"


@dataclass
class Account:
    """An OAuth credential set with its rotation state."""

    id: str
    label: str
    access_token: str
    refresh_token: str
    expires_at: int  # Unix timestamp in milliseconds
    rate_limited_until: int | None = None  # Unix timestamp ms when limit resets
    mode: str = "max"

    def __post_init__(self) -> None:
        if self.mode not in ACCOUNT_MODES:
            raise ValueError(
                f"Invalid mode '{self.mode}' for account '{self.label}': "
                f"expected one of {', '.join(ACCOUNT_MODES)}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "label": self.label,
            "access": self.access_token,
            "refresh": self.refresh_token,
            "expires": self.expires_at,
            "rateLimitedUntil": self.rate_limited_until,
            "mode": self.mode,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Account":
        """Create from dictionary."""
        return cls(
            id=str(data["id"]),
            label=str(data.get("label") or data["id"]),
            access_token=data.get("access") or "",
            refresh_token=data.get("refresh") or "",
            expires_at=int(data.get("expires") or 0),
            rate_limited_until=(
                int(data["rateLimitedUntil"])
                if data.get("rateLimitedUntil") is not None
                else None
            ),
            mode=data.get("mode") or "max",
        )


@dataclass
class AuthConfig:
    """The persisted multi-account configuration."""

    accounts: list[Account] = field(default_factory=list)
    current_index: int = 0
    auto_failover: bool = True

    def __post_init__(self) -> None:
        ids = [account.id for account in self.accounts]
        if len(ids) != len(set(ids)):
            raise ValueError("Account ids must be unique")
        if self.accounts and not 0 <= self.current_index < len(self.accounts):
            logger.warning(
                "current_index_out_of_range",
                current_index=self.current_index,
                accounts=len(self.accounts),
            )
            self.current_index = 0

    @property
    def active_account(self) -> Account | None:
        """The account at current_index, or None when there are no accounts."""
        if not self.accounts:
            return None
        return self.accounts[self.current_index]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "type": CONFIG_TYPE_MULTI,
            "accounts": [account.to_dict() for account in self.accounts],
            "currentAccountIndex": self.current_index,
            "autoFailover": self.auto_failover,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuthConfig":
        """Create from dictionary loaded from JSON.

        Legacy single-account records (``"type": "oauth"``) are migrated into
        a one-account configuration.
        """
        if data.get("type") == CONFIG_TYPE_LEGACY:
            return migrate_legacy_config(data)

        accounts = []
        for account_data in data.get("accounts", []):
            try:
                accounts.append(Account.from_dict(account_data))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(
                    "invalid_account_skipped",
                    account=account_data.get("id")
                    if isinstance(account_data, dict)
                    else None,
                    error=str(e),
                )

        return cls(
            accounts=accounts,
            current_index=int(data.get("currentAccountIndex", 0)),
            auto_failover=bool(data.get("autoFailover", True)),
        )


def migrate_legacy_config(data: dict[str, Any]) -> AuthConfig:
    """Turn a single-account OAuth record into a multi-account config."""
    account = Account(
        id=MIGRATED_ACCOUNT_ID,
        label=MIGRATED_ACCOUNT_LABEL,
        access_token=data.get("access") or "",
        refresh_token=data.get("refresh") or "",
        expires_at=int(data.get("expires") or 0),
    )
    logger.info("legacy_config_migrated", account=account.id)
    return AuthConfig(accounts=[account], current_index=0, auto_failover=True)


def is_rate_limited(account: Account, now: int | None = None) -> bool:
    """Check whether the account is inside a rate-limit window."""
    if account.rate_limited_until is None:
        return False
    if now is None:
        now = now_ms()
    return now < account.rate_limited_until


def is_token_expired(account: Account, now: int | None = None) -> bool:
    """Check whether the account's access token must be refreshed before use."""
    if not account.access_token:
        return True
    if now is None:
        now = now_ms()
    return now >= account.expires_at


def account_state(account: Account, now: int | None = None) -> AccountState:
    """Derive the display state. Rate-limited wins over expired."""
    if is_rate_limited(account, now):
        return AccountState.RATE_LIMITED
    if is_token_expired(account, now):
        return AccountState.EXPIRED
    return AccountState.VALID


def new_account(
    access_token: str,
    refresh_token: str,
    expires_at: int,
    *,
    label: str | None = None,
    mode: str = "max",
    existing: int = 0,
    now: int | None = None,
) -> Account:
    """Create a freshly authorized account.

    Args:
        access_token: OAuth access token
        refresh_token: OAuth refresh token
        expires_at: Expiry as Unix milliseconds
        label: Display name, defaults to "Account N"
        mode: "max" or "console"
        existing: Number of accounts already configured
        now: Current time in ms, used for the id

    Returns:
        New Account with an ``account-<ms>`` id
    """
    if now is None:
        now = now_ms()
    return Account(
        id=f"account-{now}",
        label=label or f"Account {existing + 1}",
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=expires_at,
        mode=mode,
    )


@dataclass
class AuthStatus:
    """Summary of a configuration for display."""

    total: int
    available: int
    rate_limited: int
    current_account: Account | None
    accounts: list[Account]


def get_auth_status(config: AuthConfig, now: int | None = None) -> AuthStatus:
    """Count available and rate-limited accounts."""
    if now is None:
        now = now_ms()
    limited = sum(1 for account in config.accounts if is_rate_limited(account, now))
    return AuthStatus(
        total=len(config.accounts),
        available=len(config.accounts) - limited,
        rate_limited=limited,
        current_account=config.active_account,
        accounts=list(config.accounts),
    )


def format_time_remaining(timestamp: int, now: int | None = None) -> str:
    """Format time until a millisecond timestamp as "Xh Ym" or "Ym"."""
    if now is None:
        now = now_ms()
    remaining = max(0, timestamp - now)
    hours = remaining // ONE_HOUR_MILLISECONDS
    minutes = (remaining % ONE_HOUR_MILLISECONDS) // ONE_MINUTE_MILLISECONDS
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _check_index(config: AuthConfig, index: int) -> None:
    if not 0 <= index < len(config.accounts):
        raise IndexError(f"No account number {index + 1}")


def add_account(config: AuthConfig, account: Account) -> None:
    """Append an account. The current account does not change."""
    if any(existing.id == account.id for existing in config.accounts):
        raise ValueError(f"Account id '{account.id}' already exists")
    config.accounts.append(account)


def rename_account(config: AuthConfig, index: int, label: str) -> str:
    """Rename the account at ``index``. Returns the previous label."""
    _check_index(config, index)
    old_label = config.accounts[index].label
    config.accounts[index].label = label
    return old_label


def remove_account(config: AuthConfig, index: int) -> Account:
    """Remove the account at ``index`` and keep current_index pointing inside the list.

    Raises:
        IndexError: If there is no such account
        ValueError: If it is the only account left
    """
    _check_index(config, index)
    if len(config.accounts) == 1:
        raise ValueError("Cannot remove the last account. Add another account first.")

    if config.current_index >= index:
        config.current_index = max(0, config.current_index - 1)
    return config.accounts.pop(index)


def switch_account(config: AuthConfig, index: int) -> Account:
    """Make the account at ``index`` the current one."""
    _check_index(config, index)
    config.current_index = index
    return config.accounts[index]
