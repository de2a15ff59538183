"""Sync commands for LedgerSync CLI.

Commands:
- sync: Replay queued mutations against the server
- watch: Sync automatically whenever the server becomes reachable
"""

from __future__ import annotations

import sys
import time

import click

from ledgersync.client.api import LedgerClient
from ledgersync.client.cli.config import require_server_config
from ledgersync.client.cli.queue import open_store
from ledgersync.client.identity import DeviceIdentity
from ledgersync.client.store import LocalQueueStore
from ledgersync.client.sync import (
    ConnectivityMonitor,
    FullSyncResult,
    SyncOrchestrator,
    SyncResult,
)


def build_orchestrator(client: LedgerClient, store: LocalQueueStore) -> SyncOrchestrator:
    """Wire the orchestrator with this device's identity."""
    identity = DeviceIdentity.load_or_create(store)
    return SyncOrchestrator(client, store, identity)


def print_result(result: SyncResult) -> None:
    """Print per-pass details (conflicts and last error)."""
    for report in result.conflicts:
        click.echo(
            f"  Conflict on {report.entity_type.value} {report.entity_id}: "
            f"server version {report.server_version} kept"
        )
        fields = report.changed_fields
        if fields:
            click.echo(f"    Your changes discarded: {', '.join(fields)}")
    if result.last_error:
        click.echo(f"  Last error: {result.last_error}", err=True)


@click.command()
@click.option(
    "--full/--no-full",
    default=True,
    show_default=True,
    help="Also refresh cached suppliers and products.",
)
def sync(full: bool) -> None:
    """Replay queued mutations against the server.

    Conflicts are resolved in favour of the server; the discarded local
    changes are listed.
    """
    server_config = require_server_config()
    store = open_store()

    try:
        with LedgerClient(server_config) as client:
            if not client.health_check():
                click.echo(f"Server {server_config.server_url} is unreachable.", err=True)
                click.echo(f"{store.pending_count()} change(s) remain queued.", err=True)
                sys.exit(1)

            orchestrator = build_orchestrator(client, store)
            if full:
                full_result = orchestrator.full_sync()
                click.echo(full_result.message)
                print_result(full_result.sync)
                for error in full_result.refresh_errors:
                    click.echo(f"  Cache refresh failed: {error}", err=True)
                failed = not full_result.success
            else:
                result = orchestrator.sync_pending()
                click.echo(f"Synced {result.synced} items. {result.failed} failed.")
                print_result(result)
                failed = result.failed > 0
    finally:
        store.close()

    if failed:
        sys.exit(1)


@click.command()
@click.option(
    "--interval",
    "-i",
    type=float,
    default=5.0,
    show_default=True,
    help="Seconds between connectivity checks.",
)
def watch(interval: float) -> None:
    """Sync whenever the server becomes reachable.

    Runs until interrupted with Ctrl+C.
    """
    server_config = require_server_config()
    store = open_store()
    client = LedgerClient(server_config)
    orchestrator = build_orchestrator(client, store)

    def on_synced(result: FullSyncResult) -> None:
        click.echo(result.message)
        print_result(result.sync)

    monitor = ConnectivityMonitor(client, orchestrator, interval=interval, on_synced=on_synced)
    monitor.start()
    click.echo(f"Watching {server_config.server_url} (Ctrl+C to stop)")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("\nStopping...")
    finally:
        monitor.stop()
        client.close()
        store.close()
