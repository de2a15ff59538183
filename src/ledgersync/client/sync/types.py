"""Shared types and dataclasses for sync operations.

This module provides:
- SyncErrorKind: Classification of per-mutation failures
- SyncError, MutationValidationError, ProtocolViolationError: Exception classes
- SyncPassStatus: Outcome of a request to start a pass
- SyncResult, FullSyncResult: Aggregate pass results
- ConflictReport: User-facing summary of a server-wins resolution
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ledgersync.client.store import PendingMutation
from ledgersync.core.entities import EntityType


class SyncErrorKind(Enum):
    """How a failed mutation is treated by the orchestrator."""

    VALIDATION = "validation"  # Never retried, never sent
    VERSION_CONFLICT = "version_conflict"  # Resolved immediately (server wins)
    NETWORK = "network"  # Transient, retried with backoff
    UNKNOWN = "unknown"  # Retried once


class SyncError(Exception):
    """Base exception for sync errors."""


class MutationValidationError(SyncError):
    """A queued payload fails its entity's required-field rules.

    Attributes:
        mutation_id: Local queue id of the mutation.
        errors: Human-readable messages, one per failed rule.
    """

    def __init__(self, mutation_id: int, errors: list[str]) -> None:
        self.mutation_id = mutation_id
        self.errors = errors
        super().__init__(f"Validation failed: {', '.join(errors)}")


class ProtocolViolationError(SyncError):
    """The client holds a version newer than the server's.

    Under correct operation the local version never outruns the server.
    """

    def __init__(
        self,
        entity_type: EntityType,
        entity_id: Any,
        local_version: int,
        server_version: int,
    ) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.local_version = local_version
        self.server_version = server_version
        super().__init__(
            f"Local version {local_version} of {entity_type.value} {entity_id} "
            f"is ahead of server version {server_version}"
        )


class SyncPassStatus(Enum):
    """Whether a sync request actually ran."""

    COMPLETED = "completed"
    ALREADY_SYNCING = "already_syncing"


@dataclass
class ConflictReport:
    """What the user lost when the server won a conflict.

    Attributes:
        entity_type: Type of the conflicting entity.
        entity_id: ID of the conflicting entity.
        local_version: Version the queued change was based on.
        server_version: Version the server holds.
        your_changes: Payload of the discarded local mutation.
        server_changes: Server state now cached locally.
        reason: Why the server state was kept.
    """

    entity_type: EntityType
    entity_id: Any
    local_version: int
    server_version: int
    your_changes: dict[str, Any]
    server_changes: dict[str, Any]
    reason: str

    @property
    def changed_fields(self) -> list[str]:
        """Fields whose local value was overwritten by the server's."""
        return sorted(
            key
            for key, value in self.your_changes.items()
            if key in self.server_changes and self.server_changes[key] != value
        )


@dataclass
class SyncResult:
    """Result of one pass over the pending-mutation queue."""

    status: SyncPassStatus = SyncPassStatus.COMPLETED
    synced: int = 0
    failed: int = 0
    conflicts: list[ConflictReport] = field(default_factory=list)
    last_error: str | None = None

    @property
    def already_syncing(self) -> bool:
        """Check if the request was rejected because a pass was running."""
        return self.status is SyncPassStatus.ALREADY_SYNCING

    @property
    def has_conflicts(self) -> bool:
        """Check if there are any conflicts."""
        return len(self.conflicts) > 0


@dataclass
class FullSyncResult:
    """Result of a queue drain followed by a cache refresh."""

    sync: SyncResult
    refreshed: dict[EntityType, int] = field(default_factory=dict)
    refresh_errors: list[str] = field(default_factory=list)

    @property
    def status(self) -> SyncPassStatus:
        return self.sync.status

    @property
    def success(self) -> bool:
        """True when the pass ran and nothing failed."""
        return (
            self.sync.status is SyncPassStatus.COMPLETED
            and self.sync.failed == 0
            and not self.refresh_errors
        )

    @property
    def message(self) -> str:
        """Human-readable summary for UI layers."""
        if self.sync.already_syncing:
            return "Sync already in progress"
        return f"Synced {self.sync.synced} items. {self.sync.failed} failed."


__all__ = [
    "ConflictReport",
    "FullSyncResult",
    "MutationValidationError",
    "PendingMutation",
    "ProtocolViolationError",
    "SyncError",
    "SyncErrorKind",
    "SyncPassStatus",
    "SyncResult",
]
