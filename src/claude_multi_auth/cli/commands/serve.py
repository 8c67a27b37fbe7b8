"""Local proxy server command."""

from typing import Annotated

import typer
import uvicorn
from rich.console import Console

from claude_multi_auth.api.app import create_app
from claude_multi_auth.config.settings import get_settings


console = Console()


def serve(
    host: Annotated[
        str | None, typer.Option("--host", help="Interface to bind (default from settings)")
    ] = None,
    port: Annotated[
        int | None, typer.Option("--port", "-p", help="Port to listen on (default from settings)")
    ] = None,
) -> None:
    """Run the local proxy. Point API clients at http://HOST:PORT."""
    settings = get_settings()
    bind_host = host or settings.host
    bind_port = port or settings.port

    console.print(
        f"[bold cyan]Serving on http://{bind_host}:{bind_port}[/bold cyan] "
        f"→ {settings.upstream_base_url}"
    )
    uvicorn.run(
        create_app(settings),
        host=bind_host,
        port=bind_port,
        log_config=None,
    )
