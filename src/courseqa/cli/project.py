"""CLI commands: courseqa project create / courseqa package add."""

from __future__ import annotations

import asyncio
import sys
import zipfile
from pathlib import Path

import click
from rich.console import Console

from courseqa.cli.services import open_services
from courseqa.qa.models import Project
from courseqa.qa.package import store_package

console = Console(stderr=True)


@click.group()
def project() -> None:
    """Manage projects."""


@project.command("create")
@click.argument("title")
@click.pass_context
def create(ctx: click.Context, title: str) -> None:
    """Create a project and print its id."""
    config = ctx.obj["config"]
    new_project = Project(title=title)

    async def _run() -> None:
        async with open_services(config) as (store, _):
            await store.create_project(new_project)

    asyncio.run(_run())
    console.print(f"Created project [cyan]{new_project.title}[/cyan]")
    click.echo(new_project.id)


@click.group()
def package() -> None:
    """Manage course packages."""


@package.command("add")
@click.argument("project_id")
@click.argument("archive", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def add(ctx: click.Context, project_id: str, archive: str) -> None:
    """Upload a zip ARCHIVE as the project's newest package."""
    config = ctx.obj["config"]
    path = Path(archive)
    if not zipfile.is_zipfile(path):
        console.print(f"[red]{path} is not a zip archive[/red]")
        sys.exit(1)
    data = path.read_bytes()

    async def _run() -> str | None:
        async with open_services(config) as (store, objects):
            if not await store.get_project(project_id):
                return None
            asset = await store_package(store, objects, project_id, data)
            return asset.id

    asset_id = asyncio.run(_run())
    if asset_id is None:
        console.print(f"[red]Project not found: {project_id}[/red]")
        sys.exit(1)
    console.print(f"Stored [cyan]{path.name}[/cyan] ({len(data)} bytes)")
    click.echo(asset_id)
