"""Single-file commands for the flatsync CLI.

Commands:
- cat: Print a remote file
- write: Create or replace a file
- edit: Replace text inside a file
- rm: Delete a file
- mv: Rename a file
- cp: Copy a file

Every change is written to the local mirror and committed (running the
mirror's git hooks) before it is sent to the remote store.
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from typing import TextIO

import click

from flatsync.client.cli.config import HANDLED_ERRORS, open_service
from flatsync.client.operations import Edit, OperationOutcome
from flatsync.client.service import MirrorService


def _run(use_git: bool, action: Callable[[MirrorService], OperationOutcome]) -> None:
    try:
        with open_service(use_git=use_git) as service:
            outcome = action(service)
    except HANDLED_ERRORS as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(outcome.commit_message)
    for name, file_hash in outcome.result.files.items():
        click.echo(f"  {name}: {file_hash[:8] if file_hash else 'deleted'}")
    collision = outcome.collision
    if collision.has_collisions:
        click.echo(f"Warning: {collision.recommendation}", err=True)
        if collision.diff:
            click.echo(collision.diff.content, err=True)


@click.command()
@click.argument("project")
@click.argument("name")
@click.option(
    "--hash",
    "show_hash",
    is_flag=True,
    help="Print the content hash on stderr (pass it to write --expected-hash).",
)
@click.pass_context
def cat(ctx: click.Context, project: str, name: str, show_hash: bool) -> None:
    """Print file NAME of PROJECT."""
    try:
        with open_service(use_git=ctx.obj["use_git"]) as service:
            content = service.read_file(project, name)
            entry = service.ledger.get(project, name)
    except HANDLED_ERRORS as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if content is None:
        click.echo(f"Error: {name} not found in {project}", err=True)
        sys.exit(1)
    click.echo(content, nl=False)
    if show_hash and entry is not None:
        click.echo(f"hash: {entry.hash}", err=True)


@click.command()
@click.argument("project")
@click.argument("name")
@click.option(
    "--from-file",
    "-f",
    type=click.File("r", encoding="utf-8"),
    default="-",
    help="Read content from a file (default: stdin).",
)
@click.option("--expected-hash", default=None, help="Hash of the content last read.")
@click.option("--message", "-m", default=None, help="Commit message.")
@click.pass_context
def write(
    ctx: click.Context,
    project: str,
    name: str,
    from_file: TextIO,
    expected_hash: str | None,
    message: str | None,
) -> None:
    """Create or replace file NAME of PROJECT."""
    content = from_file.read()
    _run(
        ctx.obj["use_git"],
        lambda s: s.write_file(project, name, content, expected_hash, message),
    )


@click.command()
@click.argument("project")
@click.argument("name")
@click.option("--old", "old_text", required=True, help="Text to replace.")
@click.option("--new", "new_text", required=True, help="Replacement text.")
@click.option("--index", type=int, default=None, help="Occurrence to replace (0-based).")
@click.option("--fuzzy", is_flag=True, help="Treat any whitespace run as equivalent.")
@click.option("--expected-hash", default=None, help="Hash of the content last read.")
@click.option("--message", "-m", default=None, help="Commit message.")
@click.pass_context
def edit(
    ctx: click.Context,
    project: str,
    name: str,
    old_text: str,
    new_text: str,
    index: int | None,
    fuzzy: bool,
    expected_hash: str | None,
    message: str | None,
) -> None:
    """Replace text inside file NAME of PROJECT."""
    edits = [Edit(old_text, new_text, index)]
    _run(
        ctx.obj["use_git"],
        lambda s: s.edit_file(project, name, edits, fuzzy, expected_hash, message),
    )


@click.command()
@click.argument("project")
@click.argument("name")
@click.option("--message", "-m", default=None, help="Commit message.")
@click.pass_context
def rm(ctx: click.Context, project: str, name: str, message: str | None) -> None:
    """Delete file NAME of PROJECT."""
    _run(ctx.obj["use_git"], lambda s: s.delete_file(project, name, message))


@click.command()
@click.argument("project")
@click.argument("source")
@click.argument("destination")
@click.option("--force", is_flag=True, help="Overwrite an existing destination.")
@click.option("--message", "-m", default=None, help="Commit message.")
@click.pass_context
def mv(
    ctx: click.Context,
    project: str,
    source: str,
    destination: str,
    force: bool,
    message: str | None,
) -> None:
    """Rename SOURCE to DESTINATION in PROJECT."""
    _run(
        ctx.obj["use_git"],
        lambda s: s.move_file(project, source, destination, force, message),
    )


@click.command()
@click.argument("project")
@click.argument("source")
@click.argument("destination")
@click.option("--force", is_flag=True, help="Overwrite an existing destination.")
@click.option("--message", "-m", default=None, help="Commit message.")
@click.pass_context
def cp(
    ctx: click.Context,
    project: str,
    source: str,
    destination: str,
    force: bool,
    message: str | None,
) -> None:
    """Copy SOURCE to DESTINATION in PROJECT."""
    _run(
        ctx.obj["use_git"],
        lambda s: s.copy_file(project, source, destination, force, message),
    )
