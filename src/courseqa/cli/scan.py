"""CLI command: courseqa scan <project_id>: run the QA pipeline."""

from __future__ import annotations

import asyncio
import sys

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from courseqa.cli.services import open_services
from courseqa.qa.engine import ScanOutcome, build_scan_runner

console = Console(stderr=True)

SEVERITY_COLORS = {
    "critical": "red",
    "high": "magenta",
    "medium": "yellow",
    "low": "blue",
}


@click.command()
@click.argument("project_id")
@click.pass_context
def scan(ctx: click.Context, project_id: str) -> None:
    """Scan the project's newest package and store the results."""
    config = ctx.obj["config"]
    console.print(f"[bold]courseqa[/bold] scanning project [cyan]{project_id}[/cyan]\n")

    async def _run() -> ScanOutcome | None:
        async with open_services(config) as (store, objects):
            if not await store.get_project(project_id):
                return None
            return await build_scan_runner(config, store, objects).execute(project_id)

    try:
        outcome = asyncio.run(_run())
    except Exception as e:
        console.print(f"[red]Scan failed:[/red] {e}")
        sys.exit(1)

    if outcome is None:
        console.print(f"[red]Project not found: {project_id}[/red]")
        sys.exit(1)

    if outcome.issues:
        console.print(issue_table(outcome.issues))
    else:
        console.print("[green]No issues.[/green]")
    console.print(score_panel(outcome.score))

    critical_count = sum(1 for i in outcome.issues if i["severity"] == "critical")
    if critical_count > 0:
        console.print(f"\n[red]{critical_count} critical issue(s)[/red]")
        sys.exit(1)


def issue_table(issues: list[dict]) -> Table:
    table = Table(title="Issues", show_lines=False)
    table.add_column("Severity", style="bold", width=10)
    table.add_column("Category")
    table.add_column("Rule", style="cyan")
    table.add_column("File")
    table.add_column("Title", max_width=60)

    for issue in issues:
        color = SEVERITY_COLORS.get(issue["severity"], "white")
        table.add_row(
            f"[{color}]{issue['severity']}[/{color}]",
            issue["category"],
            issue["rule_key"],
            issue.get("file_path") or "-",
            issue["title"],
        )
    return table


def score_panel(score: dict) -> Panel:
    body = (
        f"Total: [bold]{score['total_score']}[/bold]\n"
        f"Accessibility: {score['accessibility_score']}\n"
        f"SCORM: {score['scorm_score']}\n"
        f"Reliability: {score['reliability_score']}"
    )
    return Panel(body, title="Quality score", expand=False)
