"""Command-line interface for LedgerSync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Point this client at a server
- enqueue: Record a mutation made while offline
- pending: List queued mutations
- sync: Replay queued mutations against the server
- watch: Sync whenever the server becomes reachable
- cache: Show cached entities
- serve: Run the API server
"""

from __future__ import annotations

import logging

import click

from ledgersync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_queue_db_path,
    load_config,
    save_config,
)
from ledgersync.client.cli.configure import configure
from ledgersync.client.cli.queue import cache, enqueue, pending
from ledgersync.client.cli.server import serve
from ledgersync.client.cli.sync import sync, watch


@click.group()
@click.version_option(package_name="ledgersync")
@click.option("--verbose", "-v", is_flag=True, help="Show sync progress logs.")
def cli(verbose: bool) -> None:
    """LedgerSync - Offline-first ledger client with server-wins sync."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# Setup
cli.add_command(configure)

# Offline queue commands
cli.add_command(enqueue)
cli.add_command(pending)
cli.add_command(cache)

# Sync commands
cli.add_command(sync)
cli.add_command(watch)

# Server
cli.add_command(serve)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "get_queue_db_path",
    "load_config",
    "save_config",
]
