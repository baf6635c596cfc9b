# Overview: Service-layer operations for manual stock adjustments and stock reads.

# backend/backoffice/services/inventory_service.py

from ..errors import ValidationError
from ..models import StockRecord, StockMovement
from ..models.inventory import MOVEMENT_ADJUSTMENT_IN, MOVEMENT_ADJUSTMENT_OUT
from ..validation import require_positive_int, require_text
from .ledger_service import adjust_stock, append_movement
from .store import Transaction, store
"""
Stock Adjustment Rules

- IN creates the stock record on first stocking of a product at a location,
  otherwise increments it.
- OUT requires an existing record holding at least the requested quantity;
  shortfalls are rejected with InsufficientStock (never clamped).
- Every adjustment appends exactly one StockMovement in the same transaction.
"""


DIRECTION_IN = "IN"
DIRECTION_OUT = "OUT"

_DIRECTION_ALIASES = {
    "IN": DIRECTION_IN,
    "ENTRADA": DIRECTION_IN,
    "OUT": DIRECTION_OUT,
    "SALIDA": DIRECTION_OUT,
}


def normalize_direction(value) -> str:
    key = str(value or "").strip().upper()
    try:
        return _DIRECTION_ALIASES[key]
    except KeyError:
        raise ValidationError("direction must be IN or OUT", field="direction")


def get_quantity_on_hand(product_id: str, location_id: str) -> int:
    rows = store.query("stock", {"product_id": product_id, "location_id": location_id}, limit=1)
    return rows[0].quantity if rows else 0


def _apply_adjustment(
    tx: Transaction,
    *,
    product_id: str,
    location_id: str,
    direction: str,
    quantity: int,
    reason: str,
    actor: str,
) -> StockMovement:
    delta = quantity if direction == DIRECTION_IN else -quantity
    adjust_stock(tx, product_id=product_id, location_id=location_id, delta=delta)

    if direction == DIRECTION_IN:
        return append_movement(
            tx,
            kind=MOVEMENT_ADJUSTMENT_IN,
            product_id=product_id,
            quantity=quantity,
            to_location_id=location_id,
            reason=reason,
            actor=actor,
        )
    return append_movement(
        tx,
        kind=MOVEMENT_ADJUSTMENT_OUT,
        product_id=product_id,
        quantity=quantity,
        from_location_id=location_id,
        reason=reason,
        actor=actor,
    )


def record_adjustment(
    *,
    product_id: str,
    location_id: str,
    direction: str,
    quantity: int,
    reason: str,
    actor: str,
) -> StockMovement:
    """
    Record a manual inventory correction (breakage, shrinkage, surplus...).

    Args:
        product_id: Product being corrected
        location_id: Warehouse/depot holding the stock
        direction: IN (surplus) or OUT (loss)
        quantity: Positive number of units
        reason: Free-text justification (required)
        actor: User recording the adjustment

    Returns:
        StockMovement: The audit entry for the adjustment

    Raises:
        ValidationError: missing/invalid fields
        InsufficientStock: OUT larger than the quantity on hand
    """
    product_id = require_text(product_id, "product_id")
    location_id = require_text(location_id, "location_id")
    direction = normalize_direction(direction)
    quantity = require_positive_int(quantity, "quantity")
    reason = require_text(reason, "reason")
    actor = require_text(actor, "actor")

    def _op(tx: Transaction) -> StockMovement:
        return _apply_adjustment(
            tx,
            product_id=product_id,
            location_id=location_id,
            direction=direction,
            quantity=quantity,
            reason=reason,
            actor=actor,
        )

    return store.run_transaction(_op)


def list_stock(*, product_id: str | None = None, location_id: str | None = None) -> list[StockRecord]:
    filters = {}
    if product_id:
        filters["product_id"] = product_id
    if location_id:
        filters["location_id"] = location_id
    return store.query("stock", filters, ["location_id", "product_id"])
