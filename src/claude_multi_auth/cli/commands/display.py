"""Display helpers for account commands."""

from datetime import UTC, datetime

from rich import box
from rich.console import Console
from rich.table import Table

from claude_multi_auth.rotation.accounts import (
    AccountState,
    AuthConfig,
    account_state,
    format_time_remaining,
    get_auth_status,
)


STATE_STYLES: dict[AccountState, tuple[str, str]] = {
    AccountState.VALID: ("🟢", "green"),
    AccountState.EXPIRED: ("🟡", "yellow"),
    AccountState.RATE_LIMITED: ("🔴", "red"),
}

STATE_TEXT: dict[AccountState, str] = {
    AccountState.VALID: "valid",
    AccountState.EXPIRED: "expired",
    AccountState.RATE_LIMITED: "rate-limited",
}


def _local_time(timestamp_ms: int) -> str:
    return (
        datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)
        .astimezone()
        .strftime("%Y-%m-%d %H:%M:%S")
    )


def _failover_text(enabled: bool) -> str:
    return "[green]✅ Enabled[/green]" if enabled else "[red]❌ Disabled[/red]"


def render_account_table(console: Console, config: AuthConfig, now: int) -> None:
    """Print one row per account with its state and token lifetime."""
    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        title="Connected Accounts",
        title_style="bold white",
    )
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Label", style="white")
    table.add_column("Status")
    table.add_column("Token", justify="right")
    table.add_column("Mode", style="dim")

    for index, account in enumerate(config.accounts):
        state = account_state(account, now)
        icon, color = STATE_STYLES[state]
        label = account.label
        if index == config.current_index:
            label += " [bold](current)[/bold]"
        table.add_row(
            str(index + 1),
            label,
            f"{icon} [{color}]{STATE_TEXT[state]}[/{color}]",
            f"{format_time_remaining(account.expires_at, now)} left",
            account.mode,
        )

    console.print(table)
    console.print(f"\n🔄 Auto failover: {_failover_text(config.auto_failover)}")


def render_account_details(console: Console, config: AuthConfig, now: int) -> None:
    """Print the summary followed by every account's full details."""
    status = get_auth_status(config, now)
    current = status.current_account.label if status.current_account else "None"

    console.print("[bold]📊 Detailed Account Information[/bold]\n")
    console.print("[bold]Summary:[/bold]")
    console.print(f"  Total accounts: {status.total}")
    console.print(f"  Available: {status.available}")
    console.print(f"  Rate-limited: {status.rate_limited}")
    console.print(f"  Current account: {current}")
    console.print(f"  Auto failover: {_failover_text(config.auto_failover)}\n")

    console.print("[bold]Account Details:[/bold]\n")
    for index, account in enumerate(config.accounts):
        state = account_state(account, now)
        icon, color = STATE_STYLES[state]
        marker = " (current)" if index == config.current_index else ""
        console.print(f"{index + 1}. [bold]{account.label}[/bold]{marker}")
        console.print(f"   Status: {icon} [{color}]{STATE_TEXT[state]}[/{color}]")
        console.print(f"   Token expires: {_local_time(account.expires_at)}")
        console.print(
            f"   Time remaining: {format_time_remaining(account.expires_at, now)}"
        )
        if state == AccountState.RATE_LIMITED and account.rate_limited_until:
            console.print(
                f"   Rate limited until: {_local_time(account.rate_limited_until)}"
            )
            console.print(
                "   Rate limit time remaining: "
                f"{format_time_remaining(account.rate_limited_until, now)}"
            )
        console.print(f"   Mode: {account.mode}")
        console.print(f"   Account ID: {account.id}\n")


def render_status(console: Console, config: AuthConfig, now: int) -> None:
    """Print the current account and summary counts."""
    status = get_auth_status(config, now)

    console.print("[bold]🔄 Auth Status[/bold]")
    if status.current_account is not None:
        account = status.current_account
        state = account_state(account, now)
        icon, color = STATE_STYLES[state]
        until = (
            account.rate_limited_until
            if state == AccountState.RATE_LIMITED and account.rate_limited_until
            else account.expires_at
        )
        console.print(
            f"\nCurrent Account: {icon} {account.label} - "
            f"[{color}]{STATE_TEXT[state]}[/{color}] "
            f"({format_time_remaining(until, now)})"
        )

    table = Table(show_header=False, box=box.ROUNDED, title="Summary")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Total accounts", str(status.total))
    table.add_row("Available", str(status.available))
    table.add_row("Rate-limited", str(status.rate_limited))
    table.add_row("Auto failover", _failover_text(config.auto_failover))
    console.print(table)

    if status.rate_limited:
        console.print(
            f"\n[yellow]⚠️  {status.rate_limited} account(s) are currently "
            "rate-limited[/yellow]"
        )
