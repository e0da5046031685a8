"""Validation rules for material items and list payloads."""
from __future__ import annotations
from typing import Any, Dict, Optional

from supplylist.domain.common.result import Result

# Fields a caller may change on an existing item; id, created_at and
# approval bookkeeping are owned by the engine.
EDITABLE_FIELDS = {
    "name", "quantity", "isbn", "brand", "price", "category", "subject",
    "description", "mandatory", "purchasable", "validated", "approved",
    "catalog_link_state", "catalog_ref",
}

# Fields that keep their value when an edit sends null
NON_NULLABLE_FIELDS = {
    "name", "quantity", "mandatory", "purchasable", "validated", "approved", "catalog_link_state",
}

CLASSIFICATION_FIELDS = ("category", "subject")


def validate_item_content(data: Dict[str, Any], require_name: bool = True) -> Result[dict]:
    """Checks a draft (name required) or a partial edit (name checked only if sent)."""
    if require_name or "name" in data:
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            return Result.fail("Material 'name' is required and cannot be empty.")

    quantity = data.get("quantity")
    if quantity is not None:
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            return Result.fail(f"'quantity' must be an integer, got {quantity!r}.")
        if quantity < 0:
            return Result.fail("'quantity' cannot be negative.")

    price = data.get("price")
    if price is not None:
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            return Result.fail(f"'price' must be a number, got {price!r}.")
        if price < 0:
            return Result.fail("'price' cannot be negative.")

    return Result.ok(data)


def validate_requested_ordinal(ordinal: Any) -> Result[Optional[int]]:
    """Ordinals are clamped later; here we only reject non-integers."""
    if ordinal is None:
        return Result.ok(None)
    if isinstance(ordinal, bool) or not isinstance(ordinal, int):
        return Result.fail(f"'ordinal' must be an integer, got {ordinal!r}.")
    return Result.ok(ordinal)


def validate_reorder_payload(ordered_ids: Any, overrides: Any) -> Result[tuple]:
    if not isinstance(ordered_ids, (list, tuple)):
        return Result.fail("'ordered_ids' must be a list of item ids.")
    for item_id in ordered_ids:
        if not isinstance(item_id, str) or not item_id:
            return Result.fail(f"Every ordered id must be a non-empty string, got {item_id!r}.")

    overrides = overrides or {}
    if not isinstance(overrides, dict):
        return Result.fail("'overrides' must map item ids to {category, subject}.")
    for item_id, change in overrides.items():
        if not isinstance(change, dict):
            return Result.fail(f"Override for '{item_id}' must be an object.")
        unknown = set(change) - set(CLASSIFICATION_FIELDS)
        if unknown:
            return Result.fail(
                f"Override for '{item_id}' has unsupported fields {sorted(unknown)}; "
                f"only {list(CLASSIFICATION_FIELDS)} may be overridden."
            )
    return Result.ok((list(ordered_ids), overrides))
