"""Core module - Shared entity variants and configuration."""

from ledgersync.core.config import ServerConfig
from ledgersync.core.entities import (
    REFRESHED_TYPES,
    VARIANTS,
    EntityType,
    EntityVariant,
    MutationAction,
    RequiredField,
    validate_payload,
)

__all__ = [
    # Config
    "ServerConfig",
    # Entities
    "EntityType",
    "EntityVariant",
    "MutationAction",
    "REFRESHED_TYPES",
    "RequiredField",
    "VARIANTS",
    "validate_payload",
]
