"""Connectivity monitor that triggers a sync when the server comes back.

This module provides:
- ConnectivityMonitor: Background thread polling the server health endpoint

Architecture:
    ConnectivityMonitor ─(offline → online)─► SyncOrchestrator.full_sync()

The sync runs on the monitor thread, so retry backoff never blocks the
caller's thread. stop() prevents new passes but does not interrupt one in
progress.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ledgersync.client.api import LedgerClient
    from ledgersync.client.sync.orchestrator import SyncOrchestrator
    from ledgersync.client.sync.types import FullSyncResult

logger = logging.getLogger(__name__)

DEFAULT_CHECK_INTERVAL = 5.0  # seconds between health checks


class ConnectivityMonitor:
    """Poll server health and sync on every offline→online transition.

    Usage:
        monitor = ConnectivityMonitor(client, orchestrator)
        monitor.start()
        # ...
        monitor.stop()
    """

    def __init__(
        self,
        client: LedgerClient,
        orchestrator: SyncOrchestrator,
        interval: float = DEFAULT_CHECK_INTERVAL,
        on_synced: Callable[[FullSyncResult], None] | None = None,
    ) -> None:
        """Initialize the monitor.

        Args:
            client: HTTP client used for health checks.
            orchestrator: Orchestrator to run on reconnect.
            interval: Seconds between health checks.
            on_synced: Optional callback receiving each sync result.
        """
        self._client = client
        self._orchestrator = orchestrator
        self._interval = interval
        self._on_synced = on_synced

        # Starts offline so that the first successful check triggers a sync
        self._online = False
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def online(self) -> bool:
        """Whether the last health check succeeded."""
        return self._online

    def start(self) -> None:
        """Start polling in a background thread."""
        if self._thread and self._thread.is_alive():
            logger.warning("ConnectivityMonitor already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="ConnectivityMonitor",
            daemon=True,
        )
        self._thread.start()
        logger.info("ConnectivityMonitor started (checking every %.0fs)", self._interval)

    def stop(self) -> None:
        """Stop polling. An in-flight sync pass runs to completion."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
            self._thread = None
        logger.info("ConnectivityMonitor stopped")

    def check_once(self) -> FullSyncResult | None:
        """Run one health check, syncing if connectivity was restored.

        Returns:
            The sync result if a sync ran, None otherwise.
        """
        was_online = self._online
        self._online = self._client.health_check()

        if was_online and not self._online:
            logger.warning("Server unreachable, working offline")
            return None
        if not self._online or was_online:
            return None
        if self._stop_event.is_set():
            return None

        logger.info("Connectivity restored, starting sync")
        result = self._orchestrator.full_sync()
        if self._on_synced:
            self._on_synced(result)
        return result

    def _run_loop(self) -> None:
        """Poll until stopped."""
        while not self._stop_event.is_set():
            try:
                self.check_once()
            except Exception as e:
                logger.warning("ConnectivityMonitor error: %s", e)
                logger.debug("Full traceback:", exc_info=True)

            # Interruptible sleep - wakes on stop()
            self._stop_event.wait(self._interval)
