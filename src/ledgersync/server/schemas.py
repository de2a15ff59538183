"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field
from sqlalchemy import inspect

from ledgersync.core.entities import EntityType
from ledgersync.server.models import LedgerEntity

# Request keys that describe the sync attempt rather than the entity
SYNC_METADATA_FIELDS = frozenset({"version", "sync_timestamp", "client_id"})

PaymentType = Literal["advance", "partial", "full", "adjustment"]


class SyncMetadata(BaseModel):
    """Fields every mutation request may carry.

    ``version`` is the version the client last observed. ``sync_timestamp``
    and ``client_id`` identify the replayed offline mutation for auditing and
    play no part in conflict detection.
    """

    version: int | None = None
    sync_timestamp: float | None = None
    client_id: str | None = None


# === Supplier schemas ===


class SupplierCreate(SyncMetadata):
    """Request body for supplier creation."""

    name: str = Field(min_length=1, max_length=255)
    code: str = Field(min_length=1, max_length=50)
    contact_person: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    region: str | None = None
    is_active: bool = True


class SupplierUpdate(SyncMetadata):
    """Request body for supplier update."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    code: str | None = Field(default=None, min_length=1, max_length=50)
    contact_person: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    region: str | None = None
    is_active: bool | None = None


# === Product schemas ===


class ProductCreate(SyncMetadata):
    """Request body for product creation."""

    name: str = Field(min_length=1, max_length=255)
    base_unit: str = Field(min_length=1, max_length=50)
    code: str | None = None
    description: str | None = None
    is_active: bool = True


class ProductUpdate(SyncMetadata):
    """Request body for product update."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    base_unit: str | None = Field(default=None, min_length=1, max_length=50)
    code: str | None = None
    description: str | None = None
    is_active: bool | None = None


# === Rate schemas ===


class RateCreate(SyncMetadata):
    """Request body for rate creation."""

    product_id: int
    rate: float = Field(gt=0)
    unit: str = Field(min_length=1, max_length=50)
    effective_from: date
    effective_to: date | None = None
    is_active: bool = True


class RateUpdate(SyncMetadata):
    """Request body for rate update."""

    product_id: int | None = None
    rate: float | None = Field(default=None, gt=0)
    unit: str | None = Field(default=None, min_length=1, max_length=50)
    effective_from: date | None = None
    effective_to: date | None = None
    is_active: bool | None = None


# === Collection schemas ===


class CollectionCreate(SyncMetadata):
    """Request body for collection creation."""

    supplier_id: int
    product_id: int
    quantity: float = Field(gt=0)
    collection_date: date | None = None
    unit: str | None = None
    notes: str | None = None


class CollectionUpdate(SyncMetadata):
    """Request body for collection update."""

    supplier_id: int | None = None
    product_id: int | None = None
    quantity: float | None = Field(default=None, gt=0)
    collection_date: date | None = None
    unit: str | None = None
    notes: str | None = None


# === Payment schemas ===


class PaymentCreate(SyncMetadata):
    """Request body for payment creation."""

    supplier_id: int
    amount: float = Field(gt=0)
    type: PaymentType
    payment_date: date | None = None
    reference_number: str | None = None
    payment_method: str | None = None
    notes: str | None = None


class PaymentUpdate(SyncMetadata):
    """Request body for payment update."""

    supplier_id: int | None = None
    amount: float | None = Field(default=None, gt=0)
    type: PaymentType | None = None
    payment_date: date | None = None
    reference_number: str | None = None
    payment_method: str | None = None
    notes: str | None = None


CREATE_SCHEMAS: dict[EntityType, type[SyncMetadata]] = {
    EntityType.SUPPLIER: SupplierCreate,
    EntityType.PRODUCT: ProductCreate,
    EntityType.RATE: RateCreate,
    EntityType.COLLECTION: CollectionCreate,
    EntityType.PAYMENT: PaymentCreate,
}

UPDATE_SCHEMAS: dict[EntityType, type[SyncMetadata]] = {
    EntityType.SUPPLIER: SupplierUpdate,
    EntityType.PRODUCT: ProductUpdate,
    EntityType.RATE: RateUpdate,
    EntityType.COLLECTION: CollectionUpdate,
    EntityType.PAYMENT: PaymentUpdate,
}


def entity_fields(request: SyncMetadata, *, exclude_unset: bool = False) -> dict[str, Any]:
    """Extract entity field values from a request, dropping sync metadata.

    Dates and None values are kept; on create a None date lets the column
    default apply.
    """
    fields = request.model_dump(exclude_unset=exclude_unset, exclude=set(SYNC_METADATA_FIELDS))
    return {k: v for k, v in fields.items() if not (v is None and k.endswith("_date"))}


# === Response schemas ===


class EntityEnvelope(BaseModel):
    """Single entity response."""

    success: bool = True
    message: str = "Success"
    data: dict[str, Any]


class EntityListEnvelope(BaseModel):
    """Entity list response."""

    success: bool = True
    message: str = "Success"
    data: list[dict[str, Any]]


class ConflictData(BaseModel):
    """Details of a version conflict."""

    client_version: int
    server_version: int
    current_data: dict[str, Any]


class ConflictEnvelope(BaseModel):
    """HTTP 409 body returned when a client's version is stale."""

    success: bool = False
    message: str = "Version conflict detected"
    error: str = "The record has been modified by another user"
    conflict: bool = True
    data: ConflictData


class HealthResponse(BaseModel):
    """Response for health check."""

    status: str


# === Converters ===


def serialize_entity(entity: LedgerEntity) -> dict[str, Any]:
    """Convert an entity to a JSON-compatible dict."""
    result: dict[str, Any] = {}
    for attr in inspect(type(entity)).column_attrs:
        value = getattr(entity, attr.key)
        if isinstance(value, datetime | date):
            value = value.isoformat()
        result[attr.key] = value
    return result
