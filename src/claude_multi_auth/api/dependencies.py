"""FastAPI dependencies backed by objects created in the app lifespan."""

from typing import Annotated, cast

from fastapi import Depends, HTTPException, Request
from starlette import status

from claude_multi_auth.services.proxy_service import RequestProxy


def get_request_proxy(request: Request) -> RequestProxy:
    """Get the request proxy from app state.

    Raises:
        HTTPException: If the app has not finished starting
    """
    proxy = getattr(request.app.state, "request_proxy", None)
    if proxy is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Request proxy not initialized",
        )
    return cast(RequestProxy, proxy)


RequestProxyDep = Annotated[RequestProxy, Depends(get_request_proxy)]
