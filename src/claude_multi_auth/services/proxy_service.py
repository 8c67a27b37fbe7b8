"""Request proxy with multi-account failover.

Every call goes through a bounded, sequential attempt loop:

    resolve account → fail over if rate-limited → refresh if expired
    → transform → send → on 429 mark, persist, maybe next attempt

The account configuration is shared mutable state. Each read-mutate-persist
section runs under the instance's asyncio.Lock (one RequestProxy serves one
config id), so concurrent calls made through it never lose an update.
The proxied request itself is sent outside the lock.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from types import TracebackType

import httpx
from structlog import get_logger

from claude_multi_auth.auth.oauth.token_exchange import OAuthConfig
from claude_multi_auth.config.settings import Settings
from claude_multi_auth.exceptions import (
    AllAccountsRateLimitedError,
    NoAccountsConfiguredError,
    RateLimitExceededError,
    TokenRefreshError,
    UpstreamConnectionError,
)
from claude_multi_auth.rotation.accounts import (
    Account,
    AuthConfig,
    is_rate_limited,
    is_token_expired,
    now_ms,
)
from claude_multi_auth.rotation.constants import (
    DEFAULT_RETRY_AFTER_SECONDS,
    REFRESH_FAILURE_COOLDOWN_SECONDS,
)
from claude_multi_auth.rotation.refresh import refresh_account
from claude_multi_auth.rotation.selector import (
    earliest_reset_seconds,
    find_next_available,
    mark_rate_limited,
    parse_retry_after,
)
from claude_multi_auth.services.capability_probe import (
    REJECTION_STATUS_CODES,
    CapabilityProbe,
)
from claude_multi_auth.services.payload import (
    OutboundRequest,
    TransformOptions,
    transform_request,
)
from claude_multi_auth.services.streaming import restore_tool_names
from claude_multi_auth.storage.base import ConfigStore


logger = get_logger(__name__)


@dataclass
class ProxyRequest:
    """A caller's request to forward upstream."""

    method: str = "POST"
    path: str = "/v1/messages"
    query: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""


class ProxyResponse:
    """Upstream response handed back to the caller.

    The body is a one-shot async byte stream. Closing the response (or the
    iterator returned by ``aiter_bytes``) closes the upstream connection.
    """

    def __init__(
        self,
        status_code: int,
        headers: httpx.Headers,
        stream: AsyncIterator[bytes],
        close: Callable[[], Awaitable[None]],
        account_label: str,
    ) -> None:
        self.status_code = status_code
        self.headers = headers
        self.account_label = account_label
        self._stream = stream
        self._close = close
        self._closed = False

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._stream:
                yield chunk
        finally:
            await self.aclose()

    async def aread(self) -> bytes:
        return b"".join([chunk async for chunk in self.aiter_bytes()])

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await self._close()

    async def __aenter__(self) -> "ProxyResponse":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


async def _single_chunk(body: bytes) -> AsyncIterator[bytes]:
    if body:
        yield body


async def _noop() -> None:
    return None


class RequestProxy:
    """Forwards requests upstream through the active account.

    One instance holds one capability probe, so the long-context status is
    shared by every request made through it and by nothing else.
    """

    def __init__(
        self,
        store: ConfigStore,
        client: httpx.AsyncClient,
        *,
        settings: Settings | None = None,
        config_id: str | None = None,
        max_retries: int | None = None,
        options: TransformOptions | None = None,
        oauth_config: OAuthConfig | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if settings is None:
            settings = Settings()
        self.store = store
        self.client = client
        self.config_id = config_id or settings.config_id
        self.max_retries = settings.max_retries if max_retries is None else max_retries
        self.base_url = settings.upstream_base_url.rstrip("/")
        self.options = options or TransformOptions.from_settings(settings)
        self.oauth_config = oauth_config or OAuthConfig.from_settings(settings.oauth)
        self.probe = CapabilityProbe(self.options.long_context_beta)
        self.clock = clock
        self._lock = asyncio.Lock()

    async def proxy_fetch(self, request: ProxyRequest) -> ProxyResponse:
        """Forward a request, failing over between accounts on 429.

        Args:
            request: Caller's request

        Returns:
            ProxyResponse. Successful bodies stream with tool names restored;
            error bodies are returned as upstream sent them.

        Raises:
            NoAccountsConfiguredError: No accounts are configured
            AllAccountsRateLimitedError: No account can take the request,
                including when the current one is limited and failover is off
            RateLimitExceededError: Upstream returned 429 and no failover
                happened
            TokenRefreshError: The active account's token could not be
                refreshed
            UpstreamConnectionError: Upstream could not be reached
        """
        attempt = 0
        while True:
            account = await self._prepare_account()
            response, outbound, body = await self._send_attempt(request, account)

            if response.status_code == 429:
                if body is None:
                    await self._read_and_close(response)
                retry_after = (
                    parse_retry_after(response.headers, self.clock())
                    or DEFAULT_RETRY_AFTER_SECONDS
                )
                logger.warning(
                    "upstream_rate_limited",
                    account=account.label,
                    attempt=attempt + 1,
                    retry_after_seconds=retry_after,
                )
                can_failover = await self._record_rate_limit(account, retry_after)
                if can_failover and attempt < self.max_retries:
                    attempt += 1
                    continue
                raise RateLimitExceededError(account.label, retry_after)

            if response.status_code >= 400:
                if body is None:
                    body = await self._read_and_close(response)
                logger.info(
                    "upstream_error_response",
                    account=account.label,
                    status_code=response.status_code,
                )
                return ProxyResponse(
                    response.status_code,
                    response.headers,
                    _single_chunk(body),
                    _noop,
                    account.label,
                )

            return ProxyResponse(
                response.status_code,
                response.headers,
                restore_tool_names(response.aiter_bytes(), outbound.tool_names),
                response.aclose,
                account.label,
            )

    async def _prepare_account(self) -> Account:
        """Resolve the account for this attempt, failing over and refreshing."""
        async with self._lock:
            config = await self.store.get(self.config_id)
            if config is None or not config.accounts:
                raise NoAccountsConfiguredError(self.config_id)

            now = self.clock()
            account = config.accounts[config.current_index]

            if is_rate_limited(account, now):
                account = await self._fail_over(config, account, now)

            if is_token_expired(account, now):
                account = await self._refresh(config, account)

            return account

    async def _fail_over(self, config: AuthConfig, current: Account, now: int) -> Account:
        if not config.auto_failover:
            wait = max(1, -(-((current.rate_limited_until or now) - now) // 1000))
            logger.warning("failover_disabled", account=current.label, retry_after_seconds=wait)
            raise AllAccountsRateLimitedError(wait)

        candidate = find_next_available(config, config.current_index, now)
        if candidate is None:
            logger.warning("all_accounts_rate_limited", accounts=len(config.accounts))
            raise AllAccountsRateLimitedError(earliest_reset_seconds(config, now))

        previous = config.current_index
        config.current_index = candidate
        await self.store.set(self.config_id, config)
        account = config.accounts[candidate]
        logger.info(
            "account_switched",
            from_account=current.label,
            to_account=account.label,
            from_index=previous,
            to_index=candidate,
        )
        return account

    async def _refresh(self, config: AuthConfig, account: Account) -> Account:
        index = config.accounts.index(account)
        try:
            refreshed = await refresh_account(
                account, self.client, self.oauth_config, now=self.clock()
            )
        except TokenRefreshError:
            mark_rate_limited(account, REFRESH_FAILURE_COOLDOWN_SECONDS, self.clock())
            await self.store.set(self.config_id, config)
            raise

        config.accounts[index] = refreshed
        await self.store.set(self.config_id, config)
        return refreshed

    async def _record_rate_limit(self, account: Account, retry_after: int) -> bool:
        """Mark the account limited and persist. Returns True if failover can proceed."""
        async with self._lock:
            config = await self.store.get(self.config_id)
            if config is None:
                return False

            now = self.clock()
            index = next(
                (i for i, a in enumerate(config.accounts) if a.id == account.id), None
            )
            if index is not None:
                mark_rate_limited(config.accounts[index], retry_after, now)
                await self.store.set(self.config_id, config)

            if not config.auto_failover:
                return False
            return find_next_available(config, index, now) is not None

    def _build(self, request: ProxyRequest, account: Account) -> OutboundRequest:
        url = self.base_url + request.path
        if request.query:
            url = f"{url}?{request.query}"
        return transform_request(
            request.method,
            url,
            request.headers,
            request.content,
            access_token=account.access_token,
            probe=self.probe,
            options=self.options,
        )

    async def _send_attempt(
        self, request: ProxyRequest, account: Account
    ) -> tuple[httpx.Response, OutboundRequest, bytes | None]:
        """Send once, resending without the long-context flag if it is rejected.

        Returns:
            The response, the request that produced it, and the body when it
            already had to be read
        """
        outbound = self._build(request, account)
        response = await self._send(outbound)

        if not outbound.long_context_attached:
            return response, outbound, None

        if response.status_code in REJECTION_STATUS_CODES:
            body = await self._read_and_close(response)
            if not CapabilityProbe.is_rejection(
                response.status_code, body.decode("utf-8", errors="replace")
            ):
                return response, outbound, body

            self.probe.record_rejection()
            outbound = self._build(request, account)
            logger.info("resending_without_capability_flag", account=account.label)
            return await self._send(outbound), outbound, None

        if response.status_code < 400:
            self.probe.record_success()
        return response, outbound, None

    async def _send(self, outbound: OutboundRequest) -> httpx.Response:
        http_request = self.client.build_request(
            outbound.method,
            outbound.url,
            headers=outbound.headers,
            content=outbound.content,
        )
        try:
            return await self.client.send(http_request, stream=True)
        except httpx.TransportError as e:
            logger.error("upstream_connection_failed", url=str(outbound.url), error=str(e))
            raise UpstreamConnectionError(f"Upstream request failed: {e}") from e

    async def _read_and_close(self, response: httpx.Response) -> bytes:
        try:
            return await response.aread()
        except httpx.TransportError as e:
            raise UpstreamConnectionError(f"Upstream response failed: {e}") from e
        finally:
            await response.aclose()
