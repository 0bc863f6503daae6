"""Bulk sync commands for the flatsync CLI.

Commands:
- plan: Show what a sync would do (dry run)
- sync: Plan and apply a sync
"""

from __future__ import annotations

import sys

import click

from flatsync.client.cli.config import HANDLED_ERRORS, open_service
from flatsync.client.sync import ApplyResult, DiffType, SyncPlan, format_summary
from flatsync.core.types import SyncDirection

_DIRECTION = click.option(
    "--direction",
    "-d",
    type=click.Choice([d.value for d in SyncDirection]),
    default=SyncDirection.PULL.value,
    show_default=True,
    help="pull copies remote changes locally, push sends local changes.",
)

_SYMBOLS = {
    DiffType.CREATE: "+",
    DiffType.UPDATE: "~",
    DiffType.DELETE: "-",
    DiffType.CONFLICT: "!",
}


def echo_plan(plan: SyncPlan) -> None:
    """Print a plan, one operation per line."""
    click.echo(f"Plan ({plan.direction.value}): {format_summary(plan)}")
    for op in plan.operations:
        click.echo(f"  {_SYMBOLS[op.type]} {op.path}")


def echo_result(result: ApplyResult) -> None:
    """Print the outcome of an apply."""
    click.echo(f"Applied: {len(result.succeeded)}")
    for failed in result.failed:
        click.echo(f"  Failed: {failed.path}: {failed.error}", err=True)
    for path in result.conflicts:
        click.echo(f"  Conflict: {path} (resolve manually)")
    if result.commit_error:
        click.echo(f"  Commit failed: {result.commit_error}", err=True)
    if result.manifest_updated:
        click.echo("Baseline updated.")


@click.command()
@click.argument("project")
@_DIRECTION
@click.pass_context
def plan(ctx: click.Context, project: str, direction: str) -> None:
    """Show the operations a sync of PROJECT would perform."""
    try:
        with open_service(use_git=ctx.obj["use_git"]) as service:
            echo_plan(service.plan(project, SyncDirection(direction)))
    except HANDLED_ERRORS as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.command()
@click.argument("project")
@_DIRECTION
@click.pass_context
def sync(ctx: click.Context, project: str, direction: str) -> None:
    """Synchronize PROJECT between the remote store and its mirror.

    Conflicts are reported and left untouched. Exits with status 1 when any
    operation failed.
    """
    try:
        with open_service(use_git=ctx.obj["use_git"]) as service:
            sync_plan, result = service.sync(project, SyncDirection(direction))
    except HANDLED_ERRORS as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    echo_plan(sync_plan)
    echo_result(result)
    if not result.success:
        sys.exit(1)
