"""CLI command: courseqa server: start the HTTP API."""

from __future__ import annotations

import click
import uvicorn
from rich.console import Console

console = Console(stderr=True)


@click.command()
@click.option(
    "--port",
    type=int,
    default=None,
    help="Port to listen on (default: 8480).",
)
@click.pass_context
def server(ctx: click.Context, port: int | None) -> None:
    """Start the course QA HTTP API."""
    config = ctx.obj["config"]
    if port is not None:
        config.web_port = port

    console.print(
        f"[bold]courseqa[/bold] API starting on "
        f"[cyan]http://{config.web_host}:{config.web_port}/api[/cyan]\n"
    )

    from courseqa.web.app import create_app

    uvicorn.run(
        create_app(config),
        host=config.web_host,
        port=config.web_port,
        log_level="debug" if config.verbose else "info",
    )
