"""Configuration command for the flatsync CLI.

Commands:
- config: Store the remote store URL, token and mirror root
"""

from __future__ import annotations

import click

from flatsync.client.cli.config import get_config_file, get_settings, load_config, save_config


@click.command("config")
@click.option("--server", default=None, help="Remote store URL (e.g., https://store.example.com).")
@click.option("--token", default=None, help="Bearer token for the remote store.")
@click.option(
    "--mirror-root",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory holding one mirror per project.",
)
def configure(server: str | None, token: str | None, mirror_root: str | None) -> None:
    """Show or update the CLI configuration.

    Without options, prints the current configuration (token hidden).
    """
    config = load_config()
    if server is None and token is None and mirror_root is None:
        click.echo(f"Config file: {get_config_file()}")
        click.echo(f"Server: {config.get('server_url', '(not set)')}")
        click.echo(f"Token: {'(set)' if config.get('auth_token') else '(not set)'}")
        click.echo(f"Mirror root: {get_settings().mirror_root}")
        return

    if server is not None:
        config["server_url"] = server.rstrip("/")
    if token is not None:
        config["auth_token"] = token
    if mirror_root is not None:
        config["mirror_root"] = mirror_root
    save_config(config)
    click.echo("Configuration saved.")
