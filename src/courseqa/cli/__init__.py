"""CLI entry point: Click group with global options."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from courseqa import __version__
from courseqa.config import CourseQAConfig


@click.group()
@click.version_option(version=__version__, prog_name="courseqa")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to an extra YAML config file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """courseqa: quality scanning and auto-fix for e-learning course packages."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if "config" not in ctx.obj:
        config = CourseQAConfig.load()
        if config_path:
            config.apply_yaml(Path(config_path))
        config.verbose = verbose
        ctx.obj["config"] = config


def _register_commands() -> None:
    from courseqa.cli.fix import fix  # noqa: F811
    from courseqa.cli.history import history  # noqa: F811
    from courseqa.cli.project import package, project  # noqa: F811
    from courseqa.cli.scan import scan  # noqa: F811
    from courseqa.cli.server import server  # noqa: F811
    from courseqa.cli.vpat import vpat  # noqa: F811

    main.add_command(project)
    main.add_command(package)
    main.add_command(scan)
    main.add_command(history)
    main.add_command(fix)
    main.add_command(vpat)
    main.add_command(server)


_register_commands()
