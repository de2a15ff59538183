"""Ledger entity API routes.

One router per EntityType, all sharing the same shape:

    GET    /api/{plural}            list live entities
    POST   /api/{plural}            create (version 1)
    GET    /api/{plural}/{id}       fetch one
    PUT    /api/{plural}/{id}       version-checked update
    PATCH  /api/{plural}/{id}       same as PUT
    DELETE /api/{plural}/{id}       soft delete

A stale ``version`` on PUT/PATCH raises VersionConflictError, which the
application turns into the HTTP 409 conflict body.
"""

# Request bodies are annotated with per-type schema classes chosen at router
# build time, so annotations must be evaluated eagerly (no postponed
# evaluation in this module).

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError

from ledgersync.core.entities import EntityType
from ledgersync.server.api.deps import get_db
from ledgersync.server.database import Database, EntityNotFoundError
from ledgersync.server.schemas import (
    CREATE_SCHEMAS,
    UPDATE_SCHEMAS,
    EntityEnvelope,
    EntityListEnvelope,
    SyncMetadata,
    entity_fields,
    serialize_entity,
)

logger = logging.getLogger(__name__)


def _log_sync_origin(action: str, entity_type: EntityType, request: SyncMetadata) -> None:
    """Record which device replayed an offline mutation."""
    if request.client_id is not None:
        logger.info(
            "%s %s from client %s (queued at %s)",
            action,
            entity_type.value,
            request.client_id,
            request.sync_timestamp,
        )


def _constraint_violation(e: IntegrityError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"Constraint violation: {e.orig}",
    )


def build_entity_router(entity_type: EntityType) -> APIRouter:
    """Build the CRUD router for one entity type.

    Args:
        entity_type: Entity type served by the router.

    Returns:
        Router mounted at /api/{plural}.
    """
    create_schema = CREATE_SCHEMAS[entity_type]
    update_schema = UPDATE_SCHEMAS[entity_type]
    label = entity_type.value.capitalize()

    router = APIRouter(prefix=f"/api/{entity_type.plural}", tags=[entity_type.plural])

    def not_found(entity_id: int) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{label} not found: {entity_id}",
        )

    @router.get("", response_model=EntityListEnvelope)
    def list_entities(
        active_only: bool = False,
        db: Database = Depends(get_db),
    ) -> EntityListEnvelope:
        """List live entities."""
        entities = db.list_entities(entity_type, active_only=active_only)
        return EntityListEnvelope(data=[serialize_entity(e) for e in entities])

    @router.post("", response_model=EntityEnvelope, status_code=status.HTTP_201_CREATED)
    def create_entity(
        request: create_schema,  # type: ignore[valid-type]
        db: Database = Depends(get_db),
    ) -> EntityEnvelope:
        """Create an entity."""
        _log_sync_origin("Create", entity_type, request)
        try:
            entity = db.create_entity(entity_type, entity_fields(request))
        except IntegrityError as e:
            raise _constraint_violation(e) from e
        return EntityEnvelope(
            message=f"{label} created successfully",
            data=serialize_entity(entity),
        )

    @router.get("/{entity_id}", response_model=EntityEnvelope)
    def get_entity(
        entity_id: int,
        db: Database = Depends(get_db),
    ) -> EntityEnvelope:
        """Get an entity by ID."""
        entity = db.get_entity(entity_type, entity_id)
        if entity is None:
            raise not_found(entity_id)
        return EntityEnvelope(data=serialize_entity(entity))

    @router.put("/{entity_id}", response_model=EntityEnvelope)
    @router.patch("/{entity_id}", response_model=EntityEnvelope)
    def update_entity(
        entity_id: int,
        request: update_schema,  # type: ignore[valid-type]
        db: Database = Depends(get_db),
    ) -> EntityEnvelope:
        """Update an entity with version conflict detection."""
        _log_sync_origin("Update", entity_type, request)
        try:
            entity = db.update_entity(
                entity_type,
                entity_id,
                entity_fields(request, exclude_unset=True),
                client_version=request.version,
            )
        except EntityNotFoundError as e:
            raise not_found(entity_id) from e
        except IntegrityError as e:
            raise _constraint_violation(e) from e
        return EntityEnvelope(
            message=f"{label} updated successfully",
            data=serialize_entity(entity),
        )

    @router.delete("/{entity_id}", response_model=EntityEnvelope)
    def delete_entity(
        entity_id: int,
        db: Database = Depends(get_db),
    ) -> EntityEnvelope:
        """Soft-delete an entity."""
        try:
            entity = db.delete_entity(entity_type, entity_id)
        except EntityNotFoundError as e:
            raise not_found(entity_id) from e
        return EntityEnvelope(
            message=f"{label} deleted successfully",
            data=serialize_entity(entity),
        )

    return router
