"""questlab command line interface."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from pathlib import Path
from typing import Any

import click

from questlab.config import settings
from questlab.errors import QuestLabError
from questlab.hosts import HostsFile
from questlab.logging_config import setup_logging
from questlab.providers import DockerProvider
from questlab.puppet import PuppetMaster
from questlab.quest import QuestRunner
from questlab.schemas import load_quest_catalog
from questlab.version import __version__

logger = logging.getLogger(__name__)


def build_runner(catalog_path: str | Path) -> QuestRunner:
    """Wire a QuestRunner to Docker, the Puppet CLI and the hosts file."""
    return QuestRunner(
        catalog=load_quest_catalog(catalog_path),
        provider=DockerProvider(),
        puppet=PuppetMaster(),
        hosts=HostsFile(),
    )


def _run(ctx: click.Context, coro: Coroutine[Any, Any, Any]) -> Any:
    """Run a coroutine, turning questlab errors into a fatal exit."""
    try:
        return asyncio.run(coro)
    except QuestLabError as e:
        logger.critical(f"Fatal: {e}")
        ctx.exit(1)


def _runner(ctx: click.Context) -> QuestRunner:
    try:
        return build_runner(ctx.obj["catalog"])
    except QuestLabError as e:
        logger.critical(f"Fatal: {e}")
        ctx.exit(1)


@click.group()
@click.option(
    "--catalog",
    "-c",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Quest catalog file (JSON or YAML)",
)
@click.option("--debug", "-d", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="questlab")
@click.pass_context
def main(ctx: click.Context, catalog: Path | None, debug: bool) -> None:
    """Provision and tear down lab nodes for training quests."""
    ctx.ensure_object(dict)
    ctx.obj["catalog"] = catalog or Path(settings.catalog_path)
    ctx.obj["debug"] = debug
    setup_logging(debug=debug)


@main.command()
@click.argument("quest")
@click.option("--skip-puppet", is_flag=True, help="Do not trigger puppet agent runs")
@click.pass_context
def setup(ctx: click.Context, quest: str, skip_puppet: bool) -> None:
    """Provision the nodes for QUEST and wait until they are reachable."""
    setup_logging(quest=quest, debug=ctx.obj["debug"])
    runner = _runner(ctx)
    result = _run(ctx, runner.setup(quest, run_puppet=not skip_puppet))
    for node in result.nodes:
        click.echo(f"{node.name}\t{node.ip_address or '-'}")


@main.command()
@click.pass_context
def teardown(ctx: click.Context) -> None:
    """Remove every questlab node and its host entries."""
    runner = _runner(ctx)
    removed = _run(ctx, runner.teardown())
    click.echo(f"Removed {len(removed)} node(s)")


@main.command()
@click.pass_context
def hosts(ctx: click.Context) -> None:
    """Rewrite host entries from the running nodes."""
    runner = _runner(ctx)
    addresses = _run(ctx, runner.refresh_hosts())
    for name in sorted(addresses):
        click.echo(f"{addresses[name]}\t{name}")


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the questlab nodes that currently exist."""
    runner = _runner(ctx)
    nodes = _run(ctx, runner.status())
    if not nodes:
        click.echo("No nodes")
        return
    for node in nodes:
        click.echo(
            f"{node.name}\t{node.status.value}\t{node.ip_address or '-'}\t{node.quest or '-'}"
        )


@main.command()
@click.pass_context
def quests(ctx: click.Context) -> None:
    """List the quests in the catalog."""
    try:
        catalog = load_quest_catalog(ctx.obj["catalog"])
    except QuestLabError as e:
        logger.critical(f"Fatal: {e}")
        ctx.exit(1)
    for quest in catalog.quests():
        click.echo(quest)
