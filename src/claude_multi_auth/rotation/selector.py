"""Account selection and rate-limit bookkeeping.

Rate limits are resolved lazily: an account counts as limited while
``now < rate_limited_until`` and becomes eligible again on its own once the
instant passes. Nothing here runs on a timer.
"""

from collections.abc import Mapping
from datetime import UTC

from dateutil import parser as dateutil_parser
from structlog import get_logger

from claude_multi_auth.rotation.accounts import (
    Account,
    AuthConfig,
    is_rate_limited,
    now_ms,
)
from claude_multi_auth.rotation.constants import DEFAULT_RETRY_AFTER_SECONDS


logger = get_logger(__name__)


def find_next_available(
    config: AuthConfig, exclude_index: int | None, now: int | None = None
) -> int | None:
    """Find the first account, in insertion order, that can take a request.

    Args:
        config: Account configuration
        exclude_index: Index to skip (normally the current account)
        now: Current time in ms

    Returns:
        Index of the first non-rate-limited account other than
        ``exclude_index``, or None when there is none
    """
    if now is None:
        now = now_ms()
    for index, account in enumerate(config.accounts):
        if index == exclude_index:
            continue
        if not is_rate_limited(account, now):
            return index
    return None


def mark_rate_limited(
    account: Account,
    retry_after_seconds: int = DEFAULT_RETRY_AFTER_SECONDS,
    now: int | None = None,
) -> None:
    """Put the account into a rate-limit window.

    Args:
        account: Account to mark
        retry_after_seconds: Window length. Non-positive values fall back to
            the default so the reset instant is always in the future.
        now: Current time in ms
    """
    if retry_after_seconds <= 0:
        retry_after_seconds = DEFAULT_RETRY_AFTER_SECONDS
    if now is None:
        now = now_ms()
    account.rate_limited_until = now + retry_after_seconds * 1000
    logger.info(
        "account_rate_limited",
        account=account.label,
        retry_after_seconds=retry_after_seconds,
        rate_limited_until=account.rate_limited_until,
    )


def clear_rate_limit(account: Account) -> None:
    """Remove the account's rate-limit window."""
    account.rate_limited_until = None
    logger.info("account_rate_limit_cleared", account=account.label)


def earliest_reset_seconds(config: AuthConfig, now: int | None = None) -> int | None:
    """Seconds until the first rate-limited account becomes eligible again."""
    if now is None:
        now = now_ms()
    resets = [
        account.rate_limited_until
        for account in config.accounts
        if account.rate_limited_until is not None and is_rate_limited(account, now)
    ]
    if not resets:
        return None
    # Round up so callers never retry a moment too early
    return max(1, -(-(min(resets) - now) // 1000))


def parse_retry_after(headers: Mapping[str, str], now: int | None = None) -> int | None:
    """Parse how long to back off from rate-limit response headers.

    Checks headers in order of preference:
    1. retry-after (seconds or HTTP date)
    2. anthropic-ratelimit-unified-reset (Unix timestamp in seconds)

    Args:
        headers: Response headers
        now: Current time in ms

    Returns:
        Seconds to wait, or None when no header gives a usable value
    """
    if now is None:
        now = now_ms()
    headers_lower = {k.lower(): v for k, v in headers.items()}

    retry_after = (headers_lower.get("retry-after") or "").strip()
    if retry_after.isdigit():
        seconds = int(retry_after)
        if seconds > 0:
            return seconds
    elif retry_after:
        try:
            dt = dateutil_parser.parse(retry_after)
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=UTC)
            seconds = -(-(int(dt.timestamp() * 1000) - now) // 1000)
            if seconds > 0:
                return seconds
        except (ValueError, OverflowError, dateutil_parser.ParserError):
            pass

    if reset_value := headers_lower.get("anthropic-ratelimit-unified-reset"):
        try:
            seconds = -(-(int(reset_value) * 1000 - now) // 1000)
            if seconds > 0:
                return seconds
        except ValueError:
            logger.debug("invalid_unified_reset_header", value=reset_value)

    return None
