"""Command-line interface for flatsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- config: Store the remote store URL, token and mirror root
- plan: Show what a sync would do
- sync: Synchronize a project with its local mirror
- cat, write, edit, rm, mv, cp: Single-file operations
"""

from __future__ import annotations

import logging

import click

from flatsync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_settings,
    load_config,
    open_service,
    require_remote_config,
    save_config,
)
from flatsync.client.cli.configure import configure
from flatsync.client.cli.files import cat, cp, edit, mv, rm, write
from flatsync.client.cli.sync import plan, sync


@click.group()
@click.version_option(package_name="flatsync")
@click.option("--verbose", "-v", count=True, help="Increase log verbosity (-v, -vv).")
@click.option("--no-git", is_flag=True, help="Do not commit changes in the local mirror.")
@click.pass_context
def cli(ctx: click.Context, verbose: int, no_git: bool) -> None:
    """flatsync - Mirror flat remote projects into local git trees."""
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    ctx.ensure_object(dict)
    ctx.obj["use_git"] = not no_git


# Configuration
cli.add_command(configure)

# Sync commands
cli.add_command(plan)
cli.add_command(sync)

# File commands
cli.add_command(cat)
cli.add_command(write)
cli.add_command(edit)
cli.add_command(rm)
cli.add_command(mv)
cli.add_command(cp)

__all__ = [
    "cli",
    "get_config_dir",
    "get_config_file",
    "get_settings",
    "load_config",
    "open_service",
    "require_remote_config",
    "save_config",
]
