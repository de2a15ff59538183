"""Client configuration command for LedgerSync CLI.

Commands:
- configure: Point this client at a server
"""

from __future__ import annotations

import click

from ledgersync.client.cli.config import DEFAULT_TIMEOUT, get_config_file, load_config, save_config


@click.command()
@click.option(
    "--server-url",
    required=True,
    help="Server URL (e.g., http://localhost:8000).",
)
@click.option(
    "--timeout",
    type=float,
    default=DEFAULT_TIMEOUT,
    show_default=True,
    help="Request timeout in seconds.",
)
def configure(server_url: str, timeout: float) -> None:
    """Point this client at a LedgerSync server."""
    config = load_config()
    config["server_url"] = server_url.rstrip("/")
    config["timeout"] = timeout
    save_config(config)
    click.echo(f"Server set to {config['server_url']}")
    click.echo(f"Config saved to {get_config_file()}")
