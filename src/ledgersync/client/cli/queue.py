"""Offline queue and cache commands for LedgerSync CLI.

Commands:
- enqueue: Record a mutation made while offline
- pending: List queued mutations
- cache: Show cached entities
"""

from __future__ import annotations

import json
import sys
from datetime import datetime

import click

from ledgersync.client.cli.config import get_queue_db_path
from ledgersync.client.store import LocalQueueStore, StoreError
from ledgersync.core.entities import EntityType, MutationAction, validate_payload

ENTITY_CHOICE = click.Choice([t.value for t in EntityType])
ACTION_CHOICE = click.Choice([a.value for a in MutationAction])


def open_store() -> LocalQueueStore:
    """Open the local queue store, exiting on failure."""
    try:
        return LocalQueueStore(get_queue_db_path())
    except StoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.command()
@click.argument("entity", type=ENTITY_CHOICE)
@click.argument("action", type=ACTION_CHOICE)
@click.argument("payload")
def enqueue(entity: str, action: str, payload: str) -> None:
    """Queue a mutation for the next sync.

    PAYLOAD is the full entity snapshot as a JSON object. Updates carry
    every field of the record plus the ``version`` last seen from the server.

    Examples:

        ledgersync enqueue collection create '{"supplier_id": 1, "product_id": 2, "quantity": 5}'

        ledgersync enqueue supplier update '{"id": 1, "version": 3, "name": "Acme", "code": "AC", "phone": "555-0100"}'
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        click.echo(f"Error: Invalid JSON payload: {e}", err=True)
        sys.exit(1)
    if not isinstance(data, dict):
        click.echo("Error: Payload must be a JSON object.", err=True)
        sys.exit(1)

    entity_type = EntityType(entity)
    mutation_action = MutationAction(action)

    for error in validate_payload(entity_type, mutation_action, data):
        click.echo(f"Warning: {error} (mutation will fail validation at sync)", err=True)

    store = open_store()
    try:
        mutation = store.enqueue(entity_type, mutation_action, data)
    finally:
        store.close()

    click.echo(f"Queued #{mutation.id}: {action} {entity}")


@click.command()
def pending() -> None:
    """List mutations waiting to be synced."""
    store = open_store()
    try:
        mutations = store.list_pending()
    finally:
        store.close()

    if not mutations:
        click.echo("No pending changes.")
        return

    click.echo(f"{len(mutations)} pending change(s):")
    for mutation in mutations:
        queued = datetime.fromtimestamp(mutation.enqueued_at).strftime("%Y-%m-%d %H:%M:%S")
        target = f" {mutation.entity_id}" if mutation.entity_id is not None else ""
        line = (
            f"  #{mutation.id} {queued} {mutation.action.value} "
            f"{mutation.entity_type.value}{target}"
        )
        if mutation.attempts:
            line += f" [{mutation.attempts} failed: {mutation.last_error}]"
        click.echo(line)


@click.command()
@click.argument("entity", type=ENTITY_CHOICE)
@click.option("--all", "show_all", is_flag=True, help="Include inactive records.")
def cache(entity: str, show_all: bool) -> None:
    """Show cached ENTITY records (available offline)."""
    entity_type = EntityType(entity)
    store = open_store()
    try:
        cached = store.list_cached(entity_type, active_only=not show_all)
    finally:
        store.close()

    if not cached:
        click.echo(f"No cached {entity_type.plural}.")
        return

    for item in cached:
        click.echo(json.dumps(item.data, sort_keys=True))
