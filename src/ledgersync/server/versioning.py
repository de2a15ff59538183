"""Version lifecycle for ledger entities.

Version rules:
- New entity: version = 1 (assigned here when the creating code leaves it unset)
- Accepted update: version += 1, exactly once, whichever fields changed
- No-op update (no field actually changed): version untouched
- An explicit ``version`` in the change set is never applied; the counter
  is owned by this module

Both functions must run inside the session that persists the entity so the
field change and the new version are committed together.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import inspect

from ledgersync.server.models import LedgerEntity

logger = logging.getLogger(__name__)

INITIAL_VERSION = 1
VERSION_FIELD = "version"

# Columns callers may never assign through apply_changes
PROTECTED_FIELDS = frozenset({"id", VERSION_FIELD, "created_at", "updated_at"})


def stamp_created(entity: LedgerEntity) -> None:
    """Give a new entity its initial version.

    Idempotent: an entity that already has a version keeps it.
    """
    if not entity.version:
        entity.version = INITIAL_VERSION


def apply_changes(entity: LedgerEntity, changes: Mapping[str, Any]) -> bool:
    """Apply field changes and bump the version once if anything changed.

    Args:
        entity: Persistent entity attached to the current session.
        changes: Field name -> new value.

    Returns:
        True if at least one field changed (and the version was incremented).

    Raises:
        ValueError: If a change names a column the entity does not have.
    """
    columns = {attr.key for attr in inspect(type(entity)).column_attrs}
    changed_fields: list[str] = []

    for name, value in changes.items():
        if name in PROTECTED_FIELDS:
            continue
        if name not in columns:
            raise ValueError(f"{type(entity).__name__} has no field {name!r}")
        if getattr(entity, name) != value:
            setattr(entity, name, value)
            changed_fields.append(name)

    if not changed_fields:
        return False

    entity.version = (entity.version or 0) + 1
    logger.debug(
        "%s %s -> version %d (changed: %s)",
        type(entity).__name__,
        entity.id,
        entity.version,
        ", ".join(changed_fields),
    )
    return True
