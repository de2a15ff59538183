"""Main API router that includes all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from ledgersync.core.entities import EntityType
from ledgersync.server.api import health
from ledgersync.server.api.entities import build_entity_router

router = APIRouter()

router.include_router(health.router)
for _entity_type in EntityType:
    router.include_router(build_entity_router(_entity_type))
