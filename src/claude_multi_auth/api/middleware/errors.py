"""Error handling for the local proxy server.

Turns every MultiAuthError into an Anthropic-style error body using the
exception's own error_type and status_code.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from structlog import get_logger

from claude_multi_auth.exceptions import (
    AllAccountsRateLimitedError,
    MultiAuthError,
    RateLimitExceededError,
)


logger = get_logger(__name__)


def _build_error_response(
    status_code: int,
    error_type: str,
    message: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build standardized error response."""
    return JSONResponse(
        status_code=status_code,
        content={"type": "error", "error": {"type": error_type, "message": message}},
        headers=headers,
    )


def _retry_after_header(exc: MultiAuthError) -> dict[str, str] | None:
    if isinstance(exc, RateLimitExceededError | AllAccountsRateLimitedError):
        if exc.retry_after_seconds is not None:
            return {"retry-after": str(exc.retry_after_seconds)}
    return None


def setup_error_handlers(app: FastAPI) -> None:
    """Setup error handlers for the FastAPI application."""

    @app.exception_handler(MultiAuthError)
    async def multi_auth_error_handler(
        request: Request, exc: MultiAuthError
    ) -> JSONResponse:
        """Handle all MultiAuthError subclasses using their built-in attributes."""
        logger.error(
            type(exc).__name__,
            error_type=exc.error_type.value,
            error_message=exc.message,
            status_code=exc.status_code,
            request_method=request.method,
            request_url=request.url.path,
        )
        return _build_error_response(
            exc.status_code,
            exc.error_type.value,
            exc.message,
            headers=_retry_after_header(exc),
        )
