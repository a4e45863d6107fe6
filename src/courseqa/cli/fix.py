"""CLI command: courseqa fix <project_id>: auto-fix the newest package."""

from __future__ import annotations

import asyncio
import sys

import click
from rich.console import Console
from rich.table import Table

from courseqa.cli.services import open_services
from courseqa.errors import DomainError
from courseqa.qa.autofix import AutoFixer
from courseqa.qa.models import FixRunResult

console = Console(stderr=True)


@click.command()
@click.argument("project_id")
@click.pass_context
def fix(ctx: click.Context, project_id: str) -> None:
    """Apply markup fixes and store the fixed archive as a new package."""
    config = ctx.obj["config"]

    async def _run() -> FixRunResult:
        async with open_services(config) as (store, objects):
            return await AutoFixer(store, objects).run(project_id)

    try:
        result = asyncio.run(_run())
    except DomainError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    table = Table(title=f"Auto-fix ({result.changed_files} file(s) changed)")
    table.add_column("Rule")
    table.add_column("Edits", justify="right")
    for rule, count in result.total_fixes.to_dict().items():
        table.add_row(rule, str(count))
    console.print(table)
    console.print(f"Fixed archive: [cyan]{result.zip_locator}[/cyan]")
    console.print(f"Diff: [cyan]{result.diff_locator}[/cyan]")
    click.echo(result.zip_asset_id)
