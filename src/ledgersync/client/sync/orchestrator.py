"""Sync orchestrator: replays the pending-mutation queue against the server.

Per pass:
1. Fetch pending mutations, oldest first
2. For each mutation, in order:
   - validate the payload (failures never reach the network)
   - attach sync metadata and dispatch create/update/delete
   - success: cache the returned entity and mark the mutation synced
   - conflict: resolve (server wins), cache server data, mark synced
   - network error: retry with exponential backoff, then leave for next pass
   - other error: retry once, then leave for next pass
3. Purge synced mutations

A failure in one mutation never aborts the pass. Only one pass runs at a
time per orchestrator; a second request while a pass is running returns
immediately with status ALREADY_SYNCING.

Usage:
    orchestrator = SyncOrchestrator(client, store, identity)
    result = orchestrator.full_sync()
    print(result.message)
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from ledgersync.client.api import APIError, ConflictError, LedgerClient, NotFoundError
from ledgersync.client.identity import DeviceIdentity
from ledgersync.client.store import LocalQueueStore, PendingMutation, StoreError
from ledgersync.client.sync.conflict import (
    ConflictRecord,
    ResolutionAction,
    build_report,
    log_conflict,
    resolve_conflict,
)
from ledgersync.client.sync.retry import (
    BASE_DELAY,
    MAX_DELAY,
    MAX_NETWORK_RETRIES,
    MAX_UNKNOWN_RETRIES,
    classify_error,
    retry_delay,
    should_retry,
)
from ledgersync.client.sync.types import (
    FullSyncResult,
    MutationValidationError,
    ProtocolViolationError,
    SyncErrorKind,
    SyncPassStatus,
    SyncResult,
)
from ledgersync.core.entities import REFRESHED_TYPES, EntityType, MutationAction, validate_payload

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Drains the local queue and keeps the read cache current.

    The orchestrator is the only writer of the local queue and cache. It is
    constructed once and shared by every trigger (CLI, connectivity monitor).
    """

    def __init__(
        self,
        client: LedgerClient,
        store: LocalQueueStore,
        identity: DeviceIdentity,
        sleep: Callable[[float], None] = time.sleep,
        base_delay: float = BASE_DELAY,
        max_delay: float = MAX_DELAY,
        max_network_retries: int = MAX_NETWORK_RETRIES,
        max_unknown_retries: int = MAX_UNKNOWN_RETRIES,
        refreshed_types: tuple[EntityType, ...] = REFRESHED_TYPES,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            client: HTTP client for the server.
            store: Local queue and cache.
            identity: Device identity attached to every replayed mutation.
            sleep: Function used to wait between retries.
            base_delay: Backoff delay for the first retry (seconds).
            max_delay: Backoff cap (seconds).
            max_network_retries: Retry ceiling for network errors.
            max_unknown_retries: Retry ceiling for unclassified errors.
            refreshed_types: Entity types whose cache full_sync() refreshes.
        """
        self._client = client
        self._store = store
        self._identity = identity
        self._sleep = sleep
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._max_network_retries = max_network_retries
        self._max_unknown_retries = max_unknown_retries
        self._refreshed_types = refreshed_types

        self._running = threading.Lock()

    # === Pass guard ===

    def try_start(self) -> bool:
        """Enter the Syncing state.

        Returns:
            True if this caller now owns the pass, False if one is running.
        """
        return self._running.acquire(blocking=False)

    def finish(self) -> None:
        """Return to the Idle state."""
        self._running.release()

    def is_running(self) -> bool:
        """Check if a pass is in progress."""
        return self._running.locked()

    # === Public entry points ===

    def sync_pending(self) -> SyncResult:
        """Run one pass over the pending queue.

        Returns:
            Aggregate result (status ALREADY_SYNCING if a pass was running).
        """
        if not self.try_start():
            logger.info("Sync already in progress, skipping")
            return SyncResult(status=SyncPassStatus.ALREADY_SYNCING)
        try:
            return self._drain_queue()
        finally:
            self.finish()

    def full_sync(self) -> FullSyncResult:
        """Drain the queue, then refresh the read caches.

        The refresh runs whatever the queue outcome was.

        Returns:
            Queue result, refresh counts and a summary message.
        """
        if not self.try_start():
            logger.info("Sync already in progress, skipping")
            return FullSyncResult(sync=SyncResult(status=SyncPassStatus.ALREADY_SYNCING))
        try:
            sync_result = self._drain_queue()
            full = FullSyncResult(sync=sync_result)
            self._refresh_caches(full)
        finally:
            self.finish()

        logger.info(full.message)
        return full

    def has_pending_changes(self) -> bool:
        """Check if there are mutations awaiting sync."""
        return self._store.has_pending()

    # === Queue drain ===

    def _drain_queue(self) -> SyncResult:
        """Process every pending mutation once, in FIFO order."""
        result = SyncResult()

        try:
            pending = self._store.list_pending()
        except StoreError as e:
            logger.error(f"Cannot read pending queue: {e}")
            result.last_error = str(e)
            return result

        if pending:
            logger.info(f"Syncing {len(pending)} pending mutation(s)")

        for mutation in pending:
            self._sync_mutation(mutation, result)

        try:
            purged = self._store.purge_synced()
            if purged:
                logger.debug(f"Purged {purged} synced mutation(s)")
            self._store.set_last_sync_at(time.time())
        except StoreError as e:
            logger.error(f"Queue cleanup failed: {e}")
            result.last_error = str(e)

        logger.info(f"Sync pass done: {result.synced} synced, {result.failed} failed")
        return result

    def _sync_mutation(self, mutation: PendingMutation, result: SyncResult) -> None:
        """Sync one mutation, recording its outcome in result."""
        errors = validate_payload(mutation.entity_type, mutation.action, mutation.payload)
        if errors:
            self._record_failure(mutation, MutationValidationError(mutation.id, errors), result)
            return

        payload = self._prepare_payload(mutation)

        try:
            entity = self._send_with_retry(mutation, payload)
        except ConflictError as e:
            self._handle_conflict(mutation, e, result)
            return
        except Exception as e:
            self._record_failure(mutation, e, result)
            return

        try:
            if entity is None:
                self._store.cache_remove(mutation.entity_type, mutation.entity_id)
            else:
                self._store.cache_write(mutation.entity_type, [entity])
            self._store.mark_synced(mutation.id)
        except StoreError as e:
            self._record_failure(mutation, e, result)
            return

        result.synced += 1

    def _prepare_payload(self, mutation: PendingMutation) -> dict[str, Any]:
        """Attach version and sync metadata to the queued snapshot."""
        payload = dict(mutation.payload)
        payload["version"] = payload.get("version") or 1
        payload["sync_timestamp"] = time.time()
        payload["client_id"] = self._identity.client_id
        return payload

    def _send_with_retry(
        self,
        mutation: PendingMutation,
        payload: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Dispatch a mutation, retrying transient failures.

        Returns:
            Entity returned by the server, or None for deletes.

        Raises:
            ConflictError: On version conflict (never retried).
            Exception: The last failure once retries are exhausted.
        """
        attempt = 0
        while True:
            try:
                return self._dispatch(mutation, payload)
            except Exception as e:
                kind = classify_error(e)
                if not should_retry(
                    kind,
                    attempt,
                    max_network_retries=self._max_network_retries,
                    max_unknown_retries=self._max_unknown_retries,
                ):
                    raise

                delay = retry_delay(attempt, self._base_delay, self._max_delay)
                logger.warning(
                    f"Mutation #{mutation.id} attempt {attempt + 1} failed "
                    f"({kind.value}): {e}. Retrying in {delay:.1f}s..."
                )
                self._sleep(delay)
                attempt += 1

    def _dispatch(
        self,
        mutation: PendingMutation,
        payload: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Send one mutation to the server."""
        entity_type = mutation.entity_type

        if mutation.action is MutationAction.CREATE:
            return self._client.create_entity(entity_type, payload)

        if mutation.action is MutationAction.UPDATE:
            return self._client.update_entity(entity_type, payload["id"], payload)

        try:
            self._client.delete_entity(entity_type, payload["id"])
        except NotFoundError:
            # Already gone on the server; the delete has the intended effect
            logger.info(f"{entity_type.value} {payload['id']} already deleted on server")
        return None

    def _handle_conflict(
        self,
        mutation: PendingMutation,
        error: ConflictError,
        result: SyncResult,
    ) -> None:
        """Resolve a version conflict reported by the server."""
        record = ConflictRecord(
            entity_type=mutation.entity_type,
            entity_id=mutation.entity_id,
            local_version=error.client_version,
            server_version=error.server_version,
            local_data=mutation.payload,
            server_data=error.current_data,
        )
        resolution = resolve_conflict(record)
        log_conflict(record, resolution)

        if resolution.action is ResolutionAction.RETRY:
            violation = ProtocolViolationError(
                record.entity_type,
                record.entity_id,
                record.local_version,
                record.server_version,
            )
            logger.error(f"Protocol violation on mutation #{mutation.id}: {violation}")
            self._record_failure(mutation, violation, result)
            return

        try:
            self._store.cache_write(mutation.entity_type, [resolution.resolved_data])
            self._store.mark_synced(mutation.id)
        except StoreError as e:
            self._record_failure(mutation, e, result)
            return

        result.synced += 1
        result.conflicts.append(build_report(record, resolution))

    def _record_failure(
        self,
        mutation: PendingMutation,
        error: Exception,
        result: SyncResult,
    ) -> None:
        """Leave a mutation unsynced and note why."""
        kind = classify_error(error)
        message = str(error)
        logger.warning(
            f"Failed to sync mutation #{mutation.id} "
            f"({mutation.action.value} {mutation.entity_type.value}, {kind.value}): {message}"
        )
        if kind is SyncErrorKind.UNKNOWN and not isinstance(error, APIError):
            logger.error(f"Unexpected error syncing mutation #{mutation.id}", exc_info=error)

        result.failed += 1
        result.last_error = message

        try:
            self._store.record_failure(mutation.id, message)
        except StoreError as e:
            logger.error(f"Cannot record failure of mutation #{mutation.id}: {e}")

    # === Cache refresh ===

    def _refresh_caches(self, full: FullSyncResult) -> None:
        """Re-fetch reference entities so offline browsing stays current."""
        for entity_type in self._refreshed_types:
            try:
                entities = self._client.list_entities(entity_type)
                full.refreshed[entity_type] = self._store.cache_write(entity_type, entities)
            except (APIError, StoreError) as e:
                logger.error(f"Error refreshing {entity_type.plural} cache: {e}")
                full.refresh_errors.append(f"{entity_type.plural}: {e}")
