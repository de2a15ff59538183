"""Offline sync: queue replay, conflict resolution and retry policy.

Architecture:
    ConnectivityMonitor / CLI → SyncOrchestrator → LedgerClient
                                      │
                              LocalQueueStore (queue + cache)

Components:
- **SyncOrchestrator**: Drains the pending queue in FIFO order, one pass at a time
- **Conflict resolver**: Server-wins decision on version conflicts
- **Retry policy**: Error classification and exponential backoff
- **ConnectivityMonitor**: Triggers a full sync when the server comes back

All public symbols are re-exported here.
"""

from ledgersync.client.sync.conflict import (
    STRATEGY_DESCRIPTION,
    ConflictRecord,
    ConflictResolution,
    ResolutionAction,
    has_conflict,
    log_conflict,
    resolve_conflict,
)
from ledgersync.client.sync.connectivity import ConnectivityMonitor
from ledgersync.client.sync.orchestrator import SyncOrchestrator
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
    ConflictReport,
    FullSyncResult,
    MutationValidationError,
    PendingMutation,
    ProtocolViolationError,
    SyncError,
    SyncErrorKind,
    SyncPassStatus,
    SyncResult,
)

__all__ = [
    # Retry functions and constants
    "BASE_DELAY",
    "MAX_DELAY",
    "MAX_NETWORK_RETRIES",
    "MAX_UNKNOWN_RETRIES",
    "classify_error",
    "retry_delay",
    "should_retry",
    # Conflict resolution
    "STRATEGY_DESCRIPTION",
    "ConflictRecord",
    "ConflictResolution",
    "ResolutionAction",
    "has_conflict",
    "log_conflict",
    "resolve_conflict",
    # Types
    "ConflictReport",
    "FullSyncResult",
    "MutationValidationError",
    "PendingMutation",
    "ProtocolViolationError",
    "SyncError",
    "SyncErrorKind",
    "SyncPassStatus",
    "SyncResult",
    # Orchestration
    "ConnectivityMonitor",
    "SyncOrchestrator",
]
