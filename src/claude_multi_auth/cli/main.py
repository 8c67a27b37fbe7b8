"""Entry point for the multi-auth command line."""

from typing import Annotated

import typer

from claude_multi_auth import __version__
from claude_multi_auth.cli.commands import accounts
from claude_multi_auth.cli.commands.serve import serve
from claude_multi_auth.config.settings import get_settings
from claude_multi_auth.core.logging import setup_logging


app = typer.Typer(
    name="multi-auth",
    help="Manage multiple Claude OAuth accounts with automatic failover",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"multi-auth {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    settings = get_settings()
    setup_logging("DEBUG" if verbose else settings.log_level, settings.log_json)


app.command(name="add")(accounts.add)
app.command(name="list")(accounts.list_accounts)
app.command(name="info")(accounts.info)
app.command(name="status")(accounts.status)
app.command(name="rename")(accounts.rename)
app.command(name="remove")(accounts.remove)
app.command(name="switch")(accounts.switch)
app.command(name="clear-rate-limit")(accounts.clear_limit)
app.command(name="failover")(accounts.failover)
app.command(name="create-api-key")(accounts.api_key)
app.command(name="migrate")(accounts.migrate)
app.command(name="serve")(serve)


if __name__ == "__main__":
    app()
