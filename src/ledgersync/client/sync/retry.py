"""Retry policy with exponential backoff.

This module provides:
- retry_delay: Backoff delay for a given attempt
- classify_error: Map an exception to a SyncErrorKind
- should_retry: Whether another attempt is allowed
"""

from __future__ import annotations

import logging

from ledgersync.client.api import ConflictError, NetworkError
from ledgersync.client.store import StoreError
from ledgersync.client.sync.types import MutationValidationError, SyncErrorKind

logger = logging.getLogger(__name__)

# Default retry configuration
BASE_DELAY = 1.0  # seconds
MAX_DELAY = 30.0  # seconds
BACKOFF_MULTIPLIER = 2.0

# Retries allowed after the first attempt
MAX_NETWORK_RETRIES = 3
MAX_UNKNOWN_RETRIES = 1


def retry_delay(
    attempt: int,
    base_delay: float = BASE_DELAY,
    max_delay: float = MAX_DELAY,
) -> float:
    """Compute the backoff delay before retry number ``attempt``.

    Exponential backoff: 1s, 2s, 4s, 8s... capped at max_delay.

    Args:
        attempt: Zero-based count of failed attempts so far.
        base_delay: Delay for attempt 0, in seconds.
        max_delay: Upper bound, in seconds.

    Returns:
        Delay in seconds.
    """
    return min(base_delay * BACKOFF_MULTIPLIER**attempt, max_delay)


def classify_error(exc: BaseException) -> SyncErrorKind:
    """Classify a per-mutation failure.

    Local storage failures count as transient I/O, the same as network
    errors.
    """
    if isinstance(exc, MutationValidationError):
        return SyncErrorKind.VALIDATION
    if isinstance(exc, ConflictError):
        return SyncErrorKind.VERSION_CONFLICT
    if isinstance(exc, (NetworkError, StoreError)):
        return SyncErrorKind.NETWORK
    return SyncErrorKind.UNKNOWN


def should_retry(
    kind: SyncErrorKind,
    attempt: int,
    max_network_retries: int = MAX_NETWORK_RETRIES,
    max_unknown_retries: int = MAX_UNKNOWN_RETRIES,
) -> bool:
    """Decide whether a failed attempt may be retried.

    Args:
        kind: Classification of the failure.
        attempt: Zero-based count of failed attempts so far.
        max_network_retries: Retry ceiling for network errors.
        max_unknown_retries: Retry ceiling for unclassified errors.

    Returns:
        True if another attempt is allowed.
    """
    if kind is SyncErrorKind.NETWORK:
        return attempt < max_network_retries
    if kind in (SyncErrorKind.VALIDATION, SyncErrorKind.VERSION_CONFLICT):
        return False
    return attempt < max_unknown_retries
