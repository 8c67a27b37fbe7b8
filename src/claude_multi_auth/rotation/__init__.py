"""Multi-account rotation for claude-multi-auth.

Account model, rate-limit bookkeeping and failover selection.
"""

from claude_multi_auth.rotation.accounts import (
    Account,
    AccountState,
    AuthConfig,
    AuthStatus,
    format_time_remaining,
    get_auth_status,
    is_rate_limited,
    is_token_expired,
)
from claude_multi_auth.rotation.selector import (
    clear_rate_limit,
    find_next_available,
    mark_rate_limited,
    parse_retry_after,
)


__all__ = [
    "Account",
    "AccountState",
    "AuthConfig",
    "AuthStatus",
    "clear_rate_limit",
    "find_next_available",
    "format_time_remaining",
    "get_auth_status",
    "is_rate_limited",
    "is_token_expired",
    "mark_rate_limited",
    "parse_retry_after",
]
