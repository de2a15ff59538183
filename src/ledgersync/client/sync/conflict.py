"""Conflict detection and resolution.

Implements the "Server Wins" strategy:
1. The server is always the authoritative source of truth
2. Version conflicts are resolved by accepting server data
3. Local changes that conflict are discarded (never merged field by field)
4. Users are notified of discarded changes through a ConflictReport

Resolution is a pure function of the ConflictRecord, so resolving the same
conflict twice always gives the same answer.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ledgersync.client.sync.types import ConflictReport
from ledgersync.core.entities import EntityType

logger = logging.getLogger(__name__)

STRATEGY_DESCRIPTION = """\
Conflict Resolution Strategy:
1. Server is ALWAYS the authoritative source of truth
2. Version conflicts are resolved by accepting server data
3. Local changes that conflict are discarded
4. Users are notified of discarded changes
5. Optimistic locking prevents most conflicts before they occur
6. All operations are atomic and transactional"""


class ResolutionAction(str, Enum):
    """Outcome of conflict resolution."""

    USE_SERVER = "use_server"  # Cache server data, abandon local change
    RETRY = "retry"  # Local ahead of server (protocol violation)


@dataclass(frozen=True)
class ConflictRecord:
    """Version mismatch detected while replaying a mutation.

    Ephemeral: consumed by resolve_conflict() and kept only as a log line.
    """

    entity_type: EntityType
    entity_id: Any
    local_version: int
    server_version: int
    local_data: dict[str, Any]
    server_data: dict[str, Any]


@dataclass(frozen=True)
class ConflictResolution:
    """Result of conflict resolution."""

    action: ResolutionAction
    resolved_data: dict[str, Any] | None = None  # Authoritative record to cache
    reason: str = ""  # Human-readable explanation


def has_conflict(local_version: int, server_version: int) -> bool:
    """Check whether two versions of the same record disagree."""
    return local_version != server_version


def resolve_conflict(record: ConflictRecord) -> ConflictResolution:
    """Decide which side of a conflict wins.

    Args:
        record: The detected conflict.

    Returns:
        USE_SERVER with the server data when the server is newer or tied,
        RETRY without data when the local version is ahead.
    """
    if record.server_version > record.local_version:
        return ConflictResolution(
            action=ResolutionAction.USE_SERVER,
            resolved_data=record.server_data,
            reason="Server has newer version - using server data as source of truth",
        )

    # Same version but the server still rejected the write
    if record.server_version == record.local_version:
        return ConflictResolution(
            action=ResolutionAction.USE_SERVER,
            resolved_data=record.server_data,
            reason="Version match but data differs - using server data to maintain consistency",
        )

    return ConflictResolution(
        action=ResolutionAction.RETRY,
        reason="Local version newer than server - sync retry needed",
    )


def log_conflict(record: ConflictRecord, resolution: ConflictResolution) -> None:
    """Write an audit line for a resolved conflict.

    The line is a JSON object so it can be grepped out of the log file and
    parsed.
    """
    entry = {
        "timestamp": datetime.now(UTC).isoformat(),
        "entity": record.entity_type.value,
        "entity_id": record.entity_id,
        "local_version": record.local_version,
        "server_version": record.server_version,
        "resolution": resolution.action.value,
        "reason": resolution.reason,
    }
    level = logging.ERROR if resolution.action is ResolutionAction.RETRY else logging.WARNING
    logger.log(level, "[Conflict Resolution] %s", json.dumps(entry, default=str))


def build_report(record: ConflictRecord, resolution: ConflictResolution) -> ConflictReport:
    """Summarize a server-wins resolution for the user."""
    return ConflictReport(
        entity_type=record.entity_type,
        entity_id=record.entity_id,
        local_version=record.local_version,
        server_version=record.server_version,
        your_changes=record.local_data,
        server_changes=resolution.resolved_data or {},
        reason=resolution.reason,
    )
