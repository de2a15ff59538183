"""Optimistic-locking guard for entity updates.

An update request may carry the ``version`` the client last observed:

- no version      -> legacy caller, update proceeds unchecked
- version matches -> update proceeds (and the version is bumped by
                     ledgersync.server.versioning)
- version differs -> VersionConflictError with the stored state; nothing
                     is written

The check runs inside the database session that applies the update, and the
UPDATE statement itself is conditional on the loaded version, so a concurrent
writer that wins the race turns the loser's update into a conflict as well.
"""

from __future__ import annotations

import logging
from typing import Any

from ledgersync.server.models import LedgerEntity
from ledgersync.server.schemas import serialize_entity

logger = logging.getLogger(__name__)


class VersionConflictError(Exception):
    """Raised when an update is based on a stale version.

    Attributes:
        client_version: Version asserted by the client.
        server_version: Version currently stored.
        current_data: Full stored state of the entity.
    """

    def __init__(
        self,
        client_version: int,
        server_version: int,
        current_data: dict[str, Any],
    ) -> None:
        self.client_version = client_version
        self.server_version = server_version
        self.current_data = current_data
        super().__init__(
            f"Version conflict: client has version {client_version}, "
            f"server has version {server_version}"
        )


def check_version(client_version: int | None, entity: LedgerEntity) -> None:
    """Compare the client's version against the stored entity.

    Args:
        client_version: Version sent with the request (None if absent).
        entity: Stored entity about to be updated.

    Raises:
        VersionConflictError: If the versions differ.
    """
    if client_version is None:
        return

    if client_version != entity.version:
        logger.warning(
            "Rejecting update of %s %s: client version %d, server version %d",
            type(entity).__name__,
            entity.id,
            client_version,
            entity.version,
        )
        raise VersionConflictError(
            client_version=client_version,
            server_version=entity.version,
            current_data=serialize_entity(entity),
        )
