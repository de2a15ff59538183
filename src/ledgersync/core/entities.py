"""Entity variants shared by client and server.

Every versioned record belongs to exactly one EntityType. Each type has a
single EntityVariant describing the fields a queued mutation must carry
before it may be sent to the server.

Validation messages are part of the user-visible contract (they are shown
next to the failed mutation), so keep them stable:

    collection -> "Missing supplier_id", "Missing product_id", "Invalid quantity"
    payment    -> "Missing supplier_id", "Invalid amount", "Missing payment type"
    supplier   -> "Missing supplier name", "Missing supplier code"
    product    -> "Missing product name", "Missing base unit"
    rate       -> "Missing product_id", "Invalid rate", "Missing unit",
                  "Missing effective_from date"
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any


class EntityType(str, Enum):
    """Versioned ledger entity types."""

    SUPPLIER = "supplier"
    PRODUCT = "product"
    RATE = "rate"
    COLLECTION = "collection"
    PAYMENT = "payment"

    @property
    def plural(self) -> str:
        """Collection name used in API paths (e.g. "suppliers")."""
        return f"{self.value}s"

    @property
    def variant(self) -> EntityVariant:
        """Validation rules for this entity type."""
        return VARIANTS[self]


class MutationAction(str, Enum):
    """Kind of queued mutation."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class RequiredField:
    """A field that must be present (and optionally positive) in a payload."""

    name: str
    message: str
    positive: bool = False

    def check(self, payload: Mapping[str, Any]) -> str | None:
        """Return the error message if the payload violates this rule."""
        value = payload.get(self.name)
        if not self.positive:
            return None if value else self.message

        if value is None or isinstance(value, bool):
            return self.message
        try:
            number = float(value)
        except (TypeError, ValueError):
            return self.message
        return None if number > 0 else self.message


@dataclass(frozen=True)
class EntityVariant:
    """Per-type payload rules."""

    entity_type: EntityType
    required: tuple[RequiredField, ...]

    def validate(self, payload: Mapping[str, Any]) -> list[str]:
        """Check required fields.

        Args:
            payload: Entity snapshot to validate.

        Returns:
            List of error messages (empty if valid).
        """
        errors = []
        for rule in self.required:
            error = rule.check(payload)
            if error:
                errors.append(error)
        return errors


VARIANTS: dict[EntityType, EntityVariant] = {
    EntityType.SUPPLIER: EntityVariant(
        EntityType.SUPPLIER,
        (
            RequiredField("name", "Missing supplier name"),
            RequiredField("code", "Missing supplier code"),
        ),
    ),
    EntityType.PRODUCT: EntityVariant(
        EntityType.PRODUCT,
        (
            RequiredField("name", "Missing product name"),
            RequiredField("base_unit", "Missing base unit"),
        ),
    ),
    EntityType.RATE: EntityVariant(
        EntityType.RATE,
        (
            RequiredField("product_id", "Missing product_id"),
            RequiredField("rate", "Invalid rate", positive=True),
            RequiredField("unit", "Missing unit"),
            RequiredField("effective_from", "Missing effective_from date"),
        ),
    ),
    EntityType.COLLECTION: EntityVariant(
        EntityType.COLLECTION,
        (
            RequiredField("supplier_id", "Missing supplier_id"),
            RequiredField("product_id", "Missing product_id"),
            RequiredField("quantity", "Invalid quantity", positive=True),
        ),
    ),
    EntityType.PAYMENT: EntityVariant(
        EntityType.PAYMENT,
        (
            RequiredField("supplier_id", "Missing supplier_id"),
            RequiredField("amount", "Invalid amount", positive=True),
            RequiredField("type", "Missing payment type"),
        ),
    ),
}

# Every entity type needs a variant; fail at import rather than at sync time.
_missing_variants = set(EntityType) - set(VARIANTS)
if _missing_variants:
    raise RuntimeError(f"No variant defined for: {sorted(t.value for t in _missing_variants)}")

# Entity types whose read cache is refreshed on every full sync
REFRESHED_TYPES: tuple[EntityType, ...] = (EntityType.SUPPLIER, EntityType.PRODUCT)


def validate_payload(
    entity_type: EntityType,
    action: MutationAction,
    payload: Mapping[str, Any],
) -> list[str]:
    """Validate a mutation payload before it is sent.

    Updates and deletes must identify the record. Deletes only need the id;
    creates and updates must satisfy the variant's required fields.

    Args:
        entity_type: Type of the entity being mutated.
        action: Mutation kind.
        payload: Entity snapshot.

    Returns:
        List of error messages (empty if valid).
    """
    errors: list[str] = []

    if action in (MutationAction.UPDATE, MutationAction.DELETE):
        entity_id = payload.get("id")
        if entity_id is None or entity_id == "":
            errors.append("Missing entity ID")

    if action is not MutationAction.DELETE:
        errors.extend(entity_type.variant.validate(payload))

    return errors
