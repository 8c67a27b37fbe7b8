"""Exception hierarchy for claude-multi-auth.

All exceptions use proper exception chaining with the `from` keyword.
Error types use StrEnum so API error bodies stay stable.
"""

from enum import StrEnum
from typing import Any

from starlette import status


class ErrorType(StrEnum):
    """Error type codes for API responses."""

    INVALID_REQUEST = "invalid_request_error"
    AUTHENTICATION = "authentication_error"
    RATE_LIMIT = "rate_limit_error"
    SERVICE_UNAVAILABLE = "service_unavailable_error"
    UPSTREAM = "upstream_error"
    INTERNAL_SERVER = "internal_server_error"


# ============================================================================
# Base Exception
# ============================================================================


class MultiAuthError(Exception):
    """Base exception for all claude-multi-auth errors.

    Carries an HTTP status code and structured details so the local server
    can turn any failure into a consistent error body.
    """

    def __init__(
        self,
        message: str,
        *,
        error_type: ErrorType = ErrorType.INTERNAL_SERVER,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.details = details or {}


# ============================================================================
# Account & Rotation Errors
# ============================================================================


class NoAccountsConfiguredError(MultiAuthError):
    """No accounts exist for the requested configuration."""

    def __init__(self, config_id: str | None = None) -> None:
        message = "No accounts configured. Run 'multi-auth add' to add one."
        super().__init__(
            message,
            error_type=ErrorType.SERVICE_UNAVAILABLE,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"config_id": config_id} if config_id else None,
        )


class RateLimitExceededError(MultiAuthError):
    """Upstream rate-limited the active account and no failover happened."""

    def __init__(self, account_label: str, retry_after_seconds: int) -> None:
        super().__init__(
            f"Rate limited on account '{account_label}'. "
            f"Retry after {retry_after_seconds}s.",
            error_type=ErrorType.RATE_LIMIT,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details={
                "account_label": account_label,
                "retry_after_seconds": retry_after_seconds,
            },
        )
        self.account_label = account_label
        self.retry_after_seconds = retry_after_seconds


class AllAccountsRateLimitedError(MultiAuthError):
    """Every configured account is currently rate-limited."""

    def __init__(self, retry_after_seconds: int | None = None) -> None:
        message = "All accounts are rate-limited."
        if retry_after_seconds is not None:
            message += f" Earliest reset in {retry_after_seconds}s."
        super().__init__(
            message,
            error_type=ErrorType.RATE_LIMIT,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details={"retry_after_seconds": retry_after_seconds},
        )
        self.retry_after_seconds = retry_after_seconds


# ============================================================================
# OAuth Errors
# ============================================================================


class TokenRefreshError(MultiAuthError):
    """Refreshing an account's access token failed.

    `status` is the token endpoint's HTTP status, or None when the request
    never produced a response.
    """

    def __init__(
        self,
        status: int | None = None,
        account_label: str | None = None,
        message: str | None = None,
    ) -> None:
        if message is None:
            who = f" for account '{account_label}'" if account_label else ""
            reason = f"HTTP {status}" if status is not None else "no response"
            message = f"Token refresh failed{who}: {reason}"
        super().__init__(
            message,
            error_type=ErrorType.AUTHENTICATION,
            status_code=502,
            details={"status": status, "account_label": account_label},
        )
        self.status = status
        self.account_label = account_label


class TokenExchangeError(MultiAuthError):
    """Authorization code exchange failed during OAuth login."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        super().__init__(
            message,
            error_type=ErrorType.AUTHENTICATION,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"upstream_status": status_code},
        )
        self.upstream_status = status_code
        self.response_text = response_text


# ============================================================================
# Transport & Storage Errors
# ============================================================================


class UpstreamConnectionError(MultiAuthError):
    """The upstream API could not be reached."""

    def __init__(self, message: str = "Upstream connection failed") -> None:
        super().__init__(
            message,
            error_type=ErrorType.UPSTREAM,
            status_code=status.HTTP_502_BAD_GATEWAY,
        )


class ConfigStoreError(MultiAuthError):
    """Reading or writing persisted configuration failed."""

    def __init__(self, message: str, *, location: str | None = None) -> None:
        super().__init__(
            message,
            error_type=ErrorType.INTERNAL_SERVER,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"location": location} if location else None,
        )


__all__ = [
    "ErrorType",
    "MultiAuthError",
    "NoAccountsConfiguredError",
    "RateLimitExceededError",
    "AllAccountsRateLimitedError",
    "TokenRefreshError",
    "TokenExchangeError",
    "UpstreamConnectionError",
    "ConfigStoreError",
]
