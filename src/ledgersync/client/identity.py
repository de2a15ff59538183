"""Device identity for sync audit.

The client_id tags every replayed mutation so the server log shows which
device produced it. It plays no part in conflict detection.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from ledgersync.client.store import LocalQueueStore

logger = logging.getLogger(__name__)

CLIENT_ID_KEY = "client_id"


@dataclass(frozen=True)
class DeviceIdentity:
    """Stable identifier of this client installation."""

    client_id: str

    @classmethod
    def load_or_create(cls, store: LocalQueueStore) -> DeviceIdentity:
        """Read the persisted client_id, generating one on first run.

        Args:
            store: Local store holding the sync state.

        Returns:
            The device identity.
        """
        client_id = store.get_state(CLIENT_ID_KEY)
        if client_id is None:
            client_id = f"client_{uuid.uuid4().hex}"
            store.set_state(CLIENT_ID_KEY, client_id)
            logger.info("Generated device identity %s", client_id)
        return cls(client_id=client_id)
