"""Durable local storage for the offline client.

This module provides:
- LocalQueueStore: SQLite-backed pending-mutation queue and entity cache
- PendingMutation: A queued local change awaiting server confirmation
- CachedEntity: Last server-confirmed state of an entity

Durability:
    The connection runs in autocommit mode with WAL journaling, so every
    enqueue/mark/purge is on disk when the call returns. A mutation is only
    physically removed by purge_synced() after it has been marked synced,
    which means a crash at any point of a sync pass leaves unsynced rows in
    place for the next pass.

Ownership:
    The Sync Orchestrator is the only writer of both tables. Readers (UI,
    CLI) may query the cache at any time; the RLock only serializes access
    to the shared connection.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ledgersync.core.entities import EntityType, MutationAction

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Local storage failure (disk or database error)."""


@dataclass
class PendingMutation:
    """A local mutation queued for replay against the server.

    Attributes:
        id: Local auto-assigned identifier.
        entity_type: Type of entity mutated.
        action: create, update or delete.
        payload: Entity snapshot at mutation time.
        enqueued_at: Unix timestamp of the mutation.
        synced: True once the server acknowledged it.
        attempts: Number of failed passes so far.
        last_error: Message of the most recent failure.
    """

    id: int
    entity_type: EntityType
    action: MutationAction
    payload: dict[str, Any]
    enqueued_at: float
    synced: bool = False
    attempts: int = 0
    last_error: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> PendingMutation:
        """Create PendingMutation from database row."""
        return cls(
            id=row["id"],
            entity_type=EntityType(row["entity_type"]),
            action=MutationAction(row["action"]),
            payload=json.loads(row["payload"]),
            enqueued_at=row["enqueued_at"],
            synced=bool(row["synced"]),
            attempts=row["attempts"],
            last_error=row["last_error"],
        )

    @property
    def entity_id(self) -> Any:
        """ID of the mutated entity (None for creates)."""
        return self.payload.get("id")


@dataclass
class CachedEntity:
    """Server-confirmed entity state kept for offline reads."""

    entity_type: EntityType
    entity_id: int
    version: int
    data: dict[str, Any]
    synced_at: float

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> CachedEntity:
        """Create CachedEntity from database row."""
        return cls(
            entity_type=EntityType(row["entity_type"]),
            entity_id=row["entity_id"],
            version=row["version"],
            data=json.loads(row["data"]),
            synced_at=row["synced_at"],
        )


class LocalQueueStore:
    """SQLite-based pending-mutation queue and read cache."""

    def __init__(self, db_path: Path) -> None:
        """Open (or create) the local store.

        Args:
            db_path: Path to SQLite database file.

        Raises:
            StoreError: If the database cannot be opened.
        """
        self._db_path = Path(db_path)
        self._lock = threading.RLock()

        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(self._db_path),
                check_same_thread=False,
                isolation_level=None,  # Autocommit mode
            )
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"Cannot open local store {self._db_path}: {e}") from e

        self._conn.row_factory = sqlite3.Row

        with self._guard():
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS pending_mutations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                entity_type TEXT NOT NULL,
                action TEXT NOT NULL,
                payload TEXT NOT NULL,
                enqueued_at REAL NOT NULL,
                synced INTEGER NOT NULL DEFAULT 0,
                attempts INTEGER NOT NULL DEFAULT 0,
                last_error TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_pending_synced_enqueued
                ON pending_mutations (synced, enqueued_at);

            CREATE TABLE IF NOT EXISTS cached_entities (
                entity_type TEXT NOT NULL,
                entity_id INTEGER NOT NULL,
                version INTEGER NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1,
                data TEXT NOT NULL,
                synced_at REAL NOT NULL,
                PRIMARY KEY (entity_type, entity_id)
            );

            -- Key-value sync state
            CREATE TABLE IF NOT EXISTS sync_state (
                key TEXT PRIMARY KEY,
                value TEXT
            );
        """)

    @contextmanager
    def _guard(self) -> Iterator[None]:
        """Serialize access and surface sqlite failures as StoreError."""
        with self._lock:
            try:
                yield
            except sqlite3.Error as e:
                raise StoreError(f"Local store error: {e}") from e

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # === Pending mutation queue ===

    def enqueue(
        self,
        entity_type: EntityType,
        action: MutationAction,
        payload: dict[str, Any],
    ) -> PendingMutation:
        """Append a mutation to the queue.

        The row is committed before this returns.

        Args:
            entity_type: Type of entity mutated.
            action: Mutation kind.
            payload: Entity snapshot.

        Returns:
            The queued mutation.
        """
        enqueued_at = time.time()
        encoded = json.dumps(payload)
        with self._guard():
            cursor = self._conn.execute(
                """
                INSERT INTO pending_mutations (entity_type, action, payload, enqueued_at, synced)
                VALUES (?, ?, ?, ?, 0)
                """,
                (entity_type.value, action.value, encoded, enqueued_at),
            )
            mutation_id = cursor.lastrowid

        if mutation_id is None:
            raise StoreError(f"Failed to queue {action.value} {entity_type.value}: no row id")
        logger.debug("Queued %s %s (#%d)", action.value, entity_type.value, mutation_id)
        return PendingMutation(
            id=mutation_id,
            entity_type=entity_type,
            action=action,
            payload=json.loads(encoded),
            enqueued_at=enqueued_at,
        )

    def list_pending(self) -> list[PendingMutation]:
        """List unsynced mutations, oldest first.

        Returns:
            Pending mutations in FIFO order.
        """
        with self._guard():
            rows = self._conn.execute(
                "SELECT * FROM pending_mutations WHERE synced = 0 ORDER BY enqueued_at ASC, id ASC"
            ).fetchall()
        return [PendingMutation.from_row(row) for row in rows]

    def pending_count(self) -> int:
        """Number of unsynced mutations."""
        with self._guard():
            row = self._conn.execute(
                "SELECT COUNT(*) AS n FROM pending_mutations WHERE synced = 0"
            ).fetchone()
        return int(row["n"])

    def has_pending(self) -> bool:
        """Check whether any mutation awaits sync."""
        return self.pending_count() > 0

    def mark_synced(self, mutation_id: int) -> None:
        """Mark a mutation as acknowledged by the server. Idempotent."""
        with self._guard():
            self._conn.execute(
                "UPDATE pending_mutations SET synced = 1 WHERE id = ?",
                (mutation_id,),
            )

    def record_failure(self, mutation_id: int, error: str) -> None:
        """Record a failed sync attempt on a mutation."""
        with self._guard():
            self._conn.execute(
                """
                UPDATE pending_mutations
                SET attempts = attempts + 1, last_error = ?
                WHERE id = ?
                """,
                (error, mutation_id),
            )

    def purge_synced(self) -> int:
        """Delete all synced mutations.

        Returns:
            Number of rows deleted.
        """
        with self._guard():
            cursor = self._conn.execute("DELETE FROM pending_mutations WHERE synced = 1")
        return cursor.rowcount

    # === Entity cache ===

    def cache_write(
        self,
        entity_type: EntityType,
        entities: Iterable[dict[str, Any]],
    ) -> int:
        """Replace cached entities by id.

        Each entity overwrites its previous cached row wholesale.

        Args:
            entity_type: Type of the entities.
            entities: Server-confirmed entity dicts (must contain ``id``).

        Returns:
            Number of entities written.
        """
        now = time.time()
        rows = [
            (
                entity_type.value,
                entity["id"],
                entity.get("version") or 1,
                0 if entity.get("is_active") is False else 1,
                json.dumps(entity),
                now,
            )
            for entity in entities
        ]
        with self._guard():
            self._conn.executemany(
                """
                INSERT OR REPLACE INTO cached_entities
                (entity_type, entity_id, version, is_active, data, synced_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        return len(rows)

    def cache_remove(self, entity_type: EntityType, entity_id: int) -> None:
        """Drop an entity from the cache."""
        with self._guard():
            self._conn.execute(
                "DELETE FROM cached_entities WHERE entity_type = ? AND entity_id = ?",
                (entity_type.value, entity_id),
            )

    def get_cached(self, entity_type: EntityType, entity_id: int) -> CachedEntity | None:
        """Get a cached entity.

        Returns:
            CachedEntity if cached, None otherwise.
        """
        with self._guard():
            row = self._conn.execute(
                "SELECT * FROM cached_entities WHERE entity_type = ? AND entity_id = ?",
                (entity_type.value, entity_id),
            ).fetchone()
        if row is None:
            return None
        return CachedEntity.from_row(row)

    def list_cached(
        self,
        entity_type: EntityType,
        active_only: bool = True,
    ) -> list[CachedEntity]:
        """List cached entities of a type ordered by id."""
        query = "SELECT * FROM cached_entities WHERE entity_type = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY entity_id"
        with self._guard():
            rows = self._conn.execute(query, (entity_type.value,)).fetchall()
        return [CachedEntity.from_row(row) for row in rows]

    def clear_cache(self) -> None:
        """Remove all cached entities."""
        with self._guard():
            self._conn.execute("DELETE FROM cached_entities")

    # === Sync state ===

    def get_state(self, key: str) -> str | None:
        """Get a sync state value."""
        with self._guard():
            row = self._conn.execute(
                "SELECT value FROM sync_state WHERE key = ?",
                (key,),
            ).fetchone()
        return row["value"] if row else None

    def set_state(self, key: str, value: str) -> None:
        """Set a sync state value."""
        with self._guard():
            self._conn.execute(
                "INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)",
                (key, value),
            )

    def get_last_sync_at(self) -> float | None:
        """Get timestamp of last completed sync pass."""
        value = self.get_state("last_sync_at")
        return float(value) if value else None

    def set_last_sync_at(self, timestamp: float) -> None:
        """Set timestamp of last completed sync pass."""
        self.set_state("last_sync_at", str(timestamp))
