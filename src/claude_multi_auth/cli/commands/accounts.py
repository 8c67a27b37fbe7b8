"""Account management commands."""

import asyncio
from enum import StrEnum
from typing import Annotated

import typer
from rich.console import Console
from structlog import get_logger

from claude_multi_auth.auth.oauth.token_exchange import (
    OAuthConfig,
    build_authorization_request,
    create_api_key,
    exchange_code,
)
from claude_multi_auth.auth.oauth.constants import DEFAULT_TOKEN_EXPIRY_SECONDS
from claude_multi_auth.cli.commands.display import (
    render_account_details,
    render_account_table,
    render_status,
)
from claude_multi_auth.config.settings import get_settings
from claude_multi_auth.exceptions import MultiAuthError
from claude_multi_auth.rotation import accounts as account_ops
from claude_multi_auth.rotation.accounts import AuthConfig, now_ms
from claude_multi_auth.rotation.constants import ACCOUNT_MODES
from claude_multi_auth.rotation.selector import clear_rate_limit
from claude_multi_auth.storage.base import ConfigStore
from claude_multi_auth.storage.json_file import JsonFileConfigStore


console = Console()
logger = get_logger(__name__)


def get_store() -> ConfigStore:
    settings = get_settings()
    return JsonFileConfigStore(settings.config_file, settings.config_id)


def _config_id() -> str:
    return get_settings().config_id


def load_config(store: ConfigStore) -> AuthConfig:
    """Load the configuration, or an empty one when none is stored yet."""
    config = asyncio.run(store.get(_config_id()))
    return config if config is not None else AuthConfig()


def save_config(store: ConfigStore, config: AuthConfig) -> None:
    asyncio.run(store.set(_config_id(), config))


def _fail(message: str) -> typer.Exit:
    console.print(f"[red]❌ {message}[/red]")
    return typer.Exit(1)


def _require_accounts(config: AuthConfig) -> bool:
    if not config.accounts:
        console.print(
            '📋 No accounts configured. Use "multi-auth add" to add your first account.'
        )
        return False
    return True


def add(
    label: Annotated[
        str | None, typer.Argument(help="Display name for the account")
    ] = None,
    mode: Annotated[
        str,
        typer.Option(
            "--mode",
            "-m",
            help="Authorize on claude.ai (max) or console.anthropic.com (console)",
        ),
    ] = "max",
) -> None:
    """Authorize a new Claude account and add it to the pool."""
    if mode not in ACCOUNT_MODES:
        raise _fail(f"Invalid mode '{mode}'. Use one of: {', '.join(ACCOUNT_MODES)}")

    settings = get_settings()
    oauth_config = OAuthConfig.from_settings(settings.oauth)
    store = get_store()

    try:
        config = load_config(store)
        authorization = build_authorization_request(mode, oauth_config)

        console.print("[bold cyan]🔐 Adding new Claude account...[/bold cyan]")
        console.print("\n📱 Open this URL in your browser:")
        console.print(authorization.url, soft_wrap=True)
        code = typer.prompt("\n📋 Paste the authorization code")

        console.print("\n🔄 Exchanging authorization code for tokens...")
        tokens = asyncio.run(
            exchange_code(code, authorization.verifier, config=oauth_config)
        )

        now = now_ms()
        expires_in = tokens.expires_in or DEFAULT_TOKEN_EXPIRY_SECONDS
        account = account_ops.new_account(
            tokens.access_token,
            tokens.refresh_token or "",
            now + expires_in * 1000,
            label=label,
            mode=mode,
            existing=len(config.accounts),
            now=now,
        )
        account_ops.add_account(config, account)
        save_config(store, config)
    except MultiAuthError as e:
        raise _fail(f"Error adding account: {e.message}") from e

    logger.info("account_added", account=account.label, total=len(config.accounts))
    console.print(f'[green]✅ Account "{account.label}" added successfully![/green]')
    console.print(f"📊 Total accounts: {len(config.accounts)}")


def list_accounts() -> None:
    """List all accounts with their status."""
    try:
        config = load_config(get_store())
    except MultiAuthError as e:
        raise _fail(e.message) from e

    if _require_accounts(config):
        render_account_table(console, config, now_ms())


def info() -> None:
    """Show detailed information for every account."""
    try:
        config = load_config(get_store())
    except MultiAuthError as e:
        raise _fail(e.message) from e

    if _require_accounts(config):
        render_account_details(console, config, now_ms())


def status() -> None:
    """Show the current account and a status summary."""
    try:
        config = load_config(get_store())
    except MultiAuthError as e:
        raise _fail(e.message) from e

    if _require_accounts(config):
        render_status(console, config, now_ms())


def rename(
    number: Annotated[int, typer.Argument(help="Account number from 'list'")],
    name: Annotated[str, typer.Argument(help="New display name")],
) -> None:
    """Rename an account."""
    store = get_store()
    try:
        config = load_config(store)
        old_label = account_ops.rename_account(config, number - 1, name)
        save_config(store, config)
    except IndexError as e:
        raise _fail("Invalid account number.") from e
    except MultiAuthError as e:
        raise _fail(e.message) from e

    console.print(f'[green]✅ Account renamed from "{old_label}" to "{name}"[/green]')


def remove(
    number: Annotated[int, typer.Argument(help="Account number from 'list'")],
) -> None:
    """Remove an account. The last remaining account cannot be removed."""
    store = get_store()
    try:
        config = load_config(store)
        removed = account_ops.remove_account(config, number - 1)
        save_config(store, config)
    except IndexError as e:
        raise _fail("Invalid account number.") from e
    except ValueError as e:
        raise _fail(str(e)) from e
    except MultiAuthError as e:
        raise _fail(e.message) from e

    logger.info("account_removed", account=removed.label)
    console.print(f'[green]✅ Account "{removed.label}" removed successfully.[/green]')


def switch(
    number: Annotated[int, typer.Argument(help="Account number from 'list'")],
) -> None:
    """Make an account the current one."""
    store = get_store()
    try:
        config = load_config(store)
        account = account_ops.switch_account(config, number - 1)
        save_config(store, config)
    except IndexError as e:
        raise _fail("Invalid account number.") from e
    except MultiAuthError as e:
        raise _fail(e.message) from e

    console.print(f'[green]✅ Current account is now "{account.label}"[/green]')


def clear_limit(
    number: Annotated[int, typer.Argument(help="Account number from 'list'")],
) -> None:
    """Clear an account's rate limit."""
    store = get_store()
    try:
        config = load_config(store)
        if not 0 < number <= len(config.accounts):
            raise _fail("Invalid account number.")
        account = config.accounts[number - 1]
        clear_rate_limit(account)
        save_config(store, config)
    except MultiAuthError as e:
        raise _fail(e.message) from e

    console.print(f'[green]✅ Rate limit cleared for "{account.label}"[/green]')


class Toggle(StrEnum):
    ON = "on"
    OFF = "off"


def failover(
    state: Annotated[Toggle, typer.Argument(help="on or off")],
) -> None:
    """Turn automatic failover on or off."""
    enabled = state == Toggle.ON
    store = get_store()
    try:
        config = load_config(store)
        config.auto_failover = enabled
        save_config(store, config)
    except MultiAuthError as e:
        raise _fail(e.message) from e

    text = "[green]✅ Enabled[/green]" if enabled else "[red]❌ Disabled[/red]"
    console.print(f"🔄 Auto failover: {text}")


def api_key(
    number: Annotated[
        int | None,
        typer.Argument(help="Account number from 'list' (defaults to current)"),
    ] = None,
) -> None:
    """Create an API key with an account's OAuth token."""
    settings = get_settings()
    try:
        config = load_config(get_store())
        if not config.accounts:
            raise _fail("No accounts configured.")
        index = config.current_index if number is None else number - 1
        if not 0 <= index < len(config.accounts):
            raise _fail("Invalid account number.")
        account = config.accounts[index]
        if account_ops.is_token_expired(account):
            raise _fail(
                f'Token for "{account.label}" has expired. '
                "Send a request through the proxy to refresh it first."
            )
        key = asyncio.run(
            create_api_key(
                account.access_token,
                config=OAuthConfig.from_settings(settings.oauth),
            )
        )
    except MultiAuthError as e:
        raise _fail(f"Error creating API key: {e.message}") from e

    console.print(f'[green]✅ API key created for "{account.label}"[/green]')
    console.print(key, soft_wrap=True)


def migrate() -> None:
    """Rewrite a legacy single-account config in the multi-account format."""
    store = get_store()
    try:
        stored = asyncio.run(store.get(_config_id()))
        if stored is None:
            console.print("📋 Nothing to migrate: no configuration found.")
            return
        save_config(store, stored)
    except MultiAuthError as e:
        raise _fail(e.message) from e

    console.print(
        f"[green]✅ Configuration saved in multi-account format "
        f"({len(stored.accounts)} account(s))[/green]"
    )
    console.print('💡 Use "multi-auth list" to verify the migration')
