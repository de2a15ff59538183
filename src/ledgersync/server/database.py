"""Server database using SQLAlchemy with SQLite.

This module provides:
- Creation, lookup and listing of ledger entities
- Version-checked updates (optimistic locking)
- Soft deletion
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledgersync.core.entities import EntityType
from ledgersync.server.guard import VersionConflictError, check_version
from ledgersync.server.models import ENTITY_MODELS, Base, LedgerEntity
from ledgersync.server.schemas import serialize_entity
from ledgersync.server.versioning import PROTECTED_FIELDS, apply_changes, stamp_created

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


class EntityNotFoundError(Exception):
    """Raised when an entity does not exist (or has been deleted)."""

    def __init__(self, entity_type: EntityType, entity_id: int) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.value.capitalize()} not found: {entity_id}")


class Database:
    """SQLAlchemy database for ledger entities.

    Uses SQLite with WAL mode for better concurrency with multiple readers.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # check_same_thread=False for multi-threaded access (uvicorn workers)
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False},
            echo=False,
        )

        @event.listens_for(self._engine, "connect")
        def _enable_foreign_keys(dbapi_conn: Any, _record: Any) -> None:
            # foreign_keys is per-connection; journal_mode persists in the file
            dbapi_conn.execute("PRAGMA foreign_keys=ON")

        with self._engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")

        Base.metadata.create_all(self._engine)

    @property
    def path(self) -> Path:
        """Path of the SQLite database file."""
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine)

    def _load(
        self,
        session: Session,
        entity_type: EntityType,
        entity_id: int,
    ) -> LedgerEntity:
        """Load a live (not soft-deleted) entity inside a session.

        Raises:
            EntityNotFoundError: If missing or deleted.
        """
        model = ENTITY_MODELS[entity_type]
        entity = session.get(model, entity_id, populate_existing=True)
        if entity is None or entity.deleted_at is not None:
            raise EntityNotFoundError(entity_type, entity_id)
        return entity

    # === Entity operations ===

    def create_entity(
        self,
        entity_type: EntityType,
        fields: Mapping[str, Any],
    ) -> LedgerEntity:
        """Create a new entity at version 1.

        Args:
            entity_type: Type of entity to create.
            fields: Column values (id, version and timestamps are ignored).

        Returns:
            The created entity (detached).

        Raises:
            IntegrityError: On unique or foreign key violations.
        """
        model = ENTITY_MODELS[entity_type]
        with self._session() as session:
            entity = model(**{k: v for k, v in fields.items() if k not in PROTECTED_FIELDS})
            stamp_created(entity)
            session.add(entity)
            session.commit()
            session.refresh(entity)
            session.expunge(entity)

        logger.info("Created %s %s (version %d)", entity_type.value, entity.id, entity.version)
        return entity

    def get_entity(self, entity_type: EntityType, entity_id: int) -> LedgerEntity | None:
        """Get a live entity by ID.

        Args:
            entity_type: Type of entity.
            entity_id: Entity ID.

        Returns:
            The entity if found and not deleted, None otherwise.
        """
        with self._session() as session:
            try:
                entity = self._load(session, entity_type, entity_id)
            except EntityNotFoundError:
                return None
            session.expunge(entity)
            return entity

    def list_entities(
        self,
        entity_type: EntityType,
        active_only: bool = False,
    ) -> list[LedgerEntity]:
        """List live entities ordered by ID.

        Args:
            entity_type: Type of entity.
            active_only: Only return rows whose ``is_active`` flag is set
                (ignored for types without the flag).

        Returns:
            List of entities.
        """
        model = ENTITY_MODELS[entity_type]
        with self._session() as session:
            stmt = select(model).where(model.deleted_at.is_(None))
            if active_only and hasattr(model, "is_active"):
                stmt = stmt.where(model.is_active.is_(True))
            stmt = stmt.order_by(model.id)
            entities = list(session.execute(stmt).scalars().all())
            for entity in entities:
                session.expunge(entity)
            return entities

    def update_entity(
        self,
        entity_type: EntityType,
        entity_id: int,
        changes: Mapping[str, Any],
        client_version: int | None = None,
    ) -> LedgerEntity:
        """Update an entity with conflict detection.

        The version comparison, field assignment and version increment are
        committed as one transaction. The UPDATE is conditional on the version
        that was loaded, so if another writer commits first this update
        matches no row and is reported as a conflict.

        Args:
            entity_type: Type of entity.
            entity_id: Entity ID.
            changes: Field name -> new value.
            client_version: Version the client last observed (None = unchecked).

        Returns:
            Updated entity (detached).

        Raises:
            EntityNotFoundError: If the entity does not exist.
            VersionConflictError: If client_version is stale, or a concurrent
                update won the race.
            IntegrityError: On unique or foreign key violations.
        """
        with self._session() as session:
            entity = self._load(session, entity_type, entity_id)
            loaded_version = entity.version

            check_version(client_version, entity)
            changed = apply_changes(entity, changes)

            try:
                session.commit()
            except StaleDataError as e:
                session.rollback()
                current = self._load(session, entity_type, entity_id)
                logger.warning(
                    "Concurrent update of %s %s: version %d superseded by %d",
                    entity_type.value,
                    entity_id,
                    loaded_version,
                    current.version,
                )
                raise VersionConflictError(
                    client_version=client_version if client_version is not None else loaded_version,
                    server_version=current.version,
                    current_data=serialize_entity(current),
                ) from e

            session.refresh(entity)
            session.expunge(entity)

        if changed:
            logger.info(
                "Updated %s %s to version %d", entity_type.value, entity_id, entity.version
            )
        return entity

    def delete_entity(self, entity_type: EntityType, entity_id: int) -> LedgerEntity:
        """Soft-delete an entity.

        Deletion is a mutation like any other and bumps the version. It is
        unconditional: if another writer commits first, the delete is applied
        on top of the newer version.

        Args:
            entity_type: Type of entity.
            entity_id: Entity ID.

        Returns:
            The deleted entity (detached).

        Raises:
            EntityNotFoundError: If the entity does not exist, or a concurrent
                delete won the race.
        """
        with self._session() as session:
            while True:
                entity = self._load(session, entity_type, entity_id)
                loaded_version = entity.version
                apply_changes(entity, {"deleted_at": datetime.now(UTC)})
                try:
                    session.commit()
                    break
                except StaleDataError:
                    session.rollback()
                    logger.info(
                        "Concurrent update of %s %s during delete (version %d superseded), retrying",
                        entity_type.value,
                        entity_id,
                        loaded_version,
                    )

            session.refresh(entity)
            session.expunge(entity)

        logger.info("Deleted %s %s", entity_type.value, entity_id)
        return entity
