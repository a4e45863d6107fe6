"""CLI command: courseqa vpat <project_id>: write a VPAT draft."""

from __future__ import annotations

import asyncio
import sys

import click
from rich.console import Console

from courseqa.cli.services import open_services
from courseqa.errors import DomainError
from courseqa.qa.vpat import generate_vpat_draft

console = Console(stderr=True)


@click.command()
@click.argument("project_id")
@click.pass_context
def vpat(ctx: click.Context, project_id: str) -> None:
    """Render a VPAT draft from the latest scan run."""
    config = ctx.obj["config"]

    async def _run() -> tuple[str, str]:
        async with open_services(config) as (store, objects):
            file_name = await generate_vpat_draft(store, objects, project_id)
            return file_name, objects.locator_for("vpat", project_id, file_name)

    try:
        file_name, locator = asyncio.run(_run())
    except DomainError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    console.print(f"VPAT draft written to [cyan]{locator}[/cyan]")
    click.echo(file_name)
