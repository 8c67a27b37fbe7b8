"""Forwarding endpoint for Anthropic API calls."""

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from claude_multi_auth.api.dependencies import RequestProxyDep
from claude_multi_auth.services.proxy_service import ProxyRequest


router = APIRouter(tags=["proxy"])

# Never relayed back to the client; the body is re-chunked and decompressed
_HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "transfer-encoding",
        "content-length",
        "content-encoding",
        "upgrade",
    }
)


@router.api_route("/v1/{path:path}", methods=["GET", "POST"], response_model=None)
async def forward(request: Request, path: str, proxy: RequestProxyDep) -> StreamingResponse:
    """Forward a request to upstream through the active account.

    Successful responses stream back as they arrive; upstream error bodies
    are relayed unchanged with their status code.
    """
    proxy_request = ProxyRequest(
        method=request.method,
        path=f"/v1/{path}",
        query=request.url.query,
        headers=dict(request.headers),
        content=await request.body(),
    )
    response = await proxy.proxy_fetch(proxy_request)

    headers = {
        key: value
        for key, value in response.headers.items()
        if key.lower() not in _HOP_BY_HOP_HEADERS
    }
    return StreamingResponse(
        response.aiter_bytes(),
        status_code=response.status_code,
        headers=headers,
        background=BackgroundTask(response.aclose),
    )
