"""Qualified field names and canonical timestamp mapping."""

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

if TYPE_CHECKING:
    from reportlens.core.catalog import SchemaCatalog


def qualify(object_name: str, field_name: str) -> str:
    """Create a qualified field name (e.g., "charge.amount")."""
    return f"{object_name}.{field_name}"


def unqualify(qualified: str) -> tuple[str, str]:
    """Split a qualified field name into (object, field).

    Examples:
        >>> unqualify("subscription.current_period_start")
        ('subscription', 'current_period_start')
        >>> unqualify("amount")
        ('', 'amount')
    """
    head, sep, tail = qualified.partition(".")
    if not sep:
        return "", qualified
    return head, tail


class FieldRef(BaseModel):
    """Reference to a field of a catalog object.

    Accepts either ``{"object": ..., "field": ...}`` or the qualified string
    ``"object.field"``.
    """

    model_config = ConfigDict(frozen=True)

    object: str = Field(..., description="Object (entity) name")
    field: str = Field(..., description="Field name within the object")

    @model_validator(mode="before")
    @classmethod
    def parse_qualified(cls, data):
        if isinstance(data, str):
            object_name, field_name = unqualify(data)
            if not object_name or not field_name:
                raise ValueError(f"Expected a qualified field name like 'object.field', got '{data}'")
            return {"object": object_name, "field": field_name}
        return data

    @property
    def qualified(self) -> str:
        return qualify(self.object, self.field)

    def __str__(self) -> str:
        return self.qualified


# Candidate timestamp fields per object, in priority order
TIMESTAMP_FIELD_BY_OBJECT: dict[str, list[str]] = {
    "customer": ["created"],
    "product": ["created"],
    "price": ["created"],
    "subscription": ["current_period_start", "created"],
    "subscription_item": ["created"],
    "subscription_schedule": ["created", "current_phase_start"],
    "invoice": ["created", "period_start"],
    "invoice_item": ["created", "period_start"],
    "coupon": ["created"],
    "discount": ["start"],
    "payment": ["created"],
    "payment_method": ["created"],
    "payment_intent": ["created"],
    "charge": ["created"],
    "refund": ["created"],
    "balance_transaction": ["created", "available_on"],
    "customer_balance_transaction": ["created"],
    "customer_tax_id": ["created"],
    "quote": ["created"],
    "credit_note": ["created"],
    "dispute": ["created"],
    "checkout_session": ["created", "expires_at"],
    "plan": ["created"],
    "payout": ["arrival_date", "created"],
}


def timestamp_candidates(object_name: str, catalog: "SchemaCatalog | None" = None) -> list[str]:
    """Get the ordered timestamp candidates for an object.

    A catalog object with explicit ``timestamp_fields`` overrides the built-in
    table. Plural entity names (``charges``) resolve to their singular entry.
    """
    if catalog is not None:
        obj = catalog.get_object(object_name)
        if obj is not None and obj.timestamp_fields:
            return list(obj.timestamp_fields)

    if object_name in TIMESTAMP_FIELD_BY_OBJECT:
        return TIMESTAMP_FIELD_BY_OBJECT[object_name]
    if object_name.endswith("s"):
        return TIMESTAMP_FIELD_BY_OBJECT.get(object_name[:-1], [])
    return []


def pick_timestamp(
    object_name: str, record: dict[str, Any], catalog: "SchemaCatalog | None" = None
) -> str | None:
    """Pick the canonical timestamp of a record.

    Returns the value of the first candidate field that is present and
    non-empty, or None.

    Example:
        >>> pick_timestamp("subscription", {"created": "2025-02-15", "current_period_start": "2025-03-01"})
        '2025-03-01'
    """
    for field_name in timestamp_candidates(object_name, catalog):
        value = record.get(field_name)
        if value not in (None, ""):
            return value
    return None


def primary_timestamp_field(object_name: str, catalog: "SchemaCatalog | None" = None) -> str:
    """Get the highest priority timestamp field name, defaulting to ``created``."""
    candidates = timestamp_candidates(object_name, catalog)
    return candidates[0] if candidates else "created"


def is_timestamp_field(object_name: str, field_name: str, catalog: "SchemaCatalog | None" = None) -> bool:
    return field_name in timestamp_candidates(object_name, catalog)
