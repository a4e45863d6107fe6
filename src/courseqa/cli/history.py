"""CLI command: courseqa history <project_id>: list scan runs."""

from __future__ import annotations

import asyncio
import sys
from datetime import datetime

import click
from rich.console import Console
from rich.table import Table

from courseqa.cli.services import open_services
from courseqa.qa.history import compare_runs, list_history

console = Console(stderr=True)


def _fmt_time(ts: float | None) -> str:
    if not ts:
        return "-"
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")


def _fmt_delta(value: int) -> str:
    if value > 0:
        return f"[green]+{value}[/green]"
    if value < 0:
        return f"[red]{value}[/red]"
    return "0"


@click.command()
@click.argument("project_id")
@click.pass_context
def history(ctx: click.Context, project_id: str) -> None:
    """Show scan runs newest first, with the latest score change."""
    config = ctx.obj["config"]

    async def _run() -> list[dict] | None:
        async with open_services(config) as (store, _):
            if not await store.get_project(project_id):
                return None
            return await list_history(store, project_id)

    runs = asyncio.run(_run())
    if runs is None:
        console.print(f"[red]Project not found: {project_id}[/red]")
        sys.exit(1)
    if not runs:
        console.print("No scan runs yet.")
        return

    table = Table(title="Scan runs")
    table.add_column("Run", style="cyan")
    table.add_column("Status")
    table.add_column("Started")
    table.add_column("Total", justify="right")
    table.add_column("Error", max_width=50)
    for run in runs:
        score = run["score"]
        table.add_row(
            run["id"][:12],
            run["status"],
            _fmt_time(run["started_at"]),
            str(score["total_score"]) if score else "-",
            run["error_text"] or "",
        )
    console.print(table)

    comparison = compare_runs(runs)
    if comparison is None:
        console.print("\nNo earlier scored run to compare against.")
        return
    delta = comparison.delta
    console.print(
        f"\nSince run [cyan]{comparison.previous_run_id[:12]}[/cyan]: "
        f"total {_fmt_delta(delta.total)}, "
        f"accessibility {_fmt_delta(delta.accessibility)}, "
        f"SCORM {_fmt_delta(delta.scorm)}, "
        f"reliability {_fmt_delta(delta.reliability)}"
    )
