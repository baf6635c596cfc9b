# backend/backoffice/services/transfer_service.py
"""
Inter-warehouse stock transfer service.

WHY: A transfer observed half-applied (stock gone from the source but not
yet at the destination) is a correctness violation. The three writes of a
transfer therefore run as one unit of work:

1. Decrement the source StockRecord (fails with InsufficientStock)
2. Create-or-increment the destination StockRecord
3. Append one TRANSFER StockMovement

If any step raises, none of them is committed.
"""
from __future__ import annotations

from ..errors import ValidationError
from ..models import StockMovement
from ..models.inventory import MOVEMENT_TRANSFER
from ..validation import require_positive_int, require_text
from .ledger_service import adjust_stock, append_movement
from .store import Transaction, store


def transfer_stock(
    *,
    product_id: str,
    from_location_id: str,
    to_location_id: str,
    quantity: int,
    reason: str,
    actor: str,
) -> StockMovement:
    """
    Move quantity of a product between two locations atomically.

    Args:
        product_id: Product being moved
        from_location_id: Source warehouse/depot
        to_location_id: Destination warehouse/depot
        quantity: Positive number of units
        reason: Free-text justification (required)
        actor: User performing the transfer

    Returns:
        StockMovement: The TRANSFER audit entry

    Raises:
        ValidationError: missing fields or source == destination
        InsufficientStock: source holds less than quantity
    """
    product_id = require_text(product_id, "product_id")
    from_location_id = require_text(from_location_id, "from_location_id")
    to_location_id = require_text(to_location_id, "to_location_id")
    quantity = require_positive_int(quantity, "quantity")
    reason = require_text(reason, "reason")
    actor = require_text(actor, "actor")

    if from_location_id == to_location_id:
        raise ValidationError(
            "Source and destination locations cannot be the same",
            field="to_location_id",
            reason="InvalidTransfer",
        )

    def _op(tx: Transaction) -> StockMovement:
        adjust_stock(tx, product_id=product_id, location_id=from_location_id, delta=-quantity)
        adjust_stock(tx, product_id=product_id, location_id=to_location_id, delta=quantity)
        return append_movement(
            tx,
            kind=MOVEMENT_TRANSFER,
            product_id=product_id,
            quantity=quantity,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            reason=reason,
            actor=actor,
        )

    return store.run_transaction(_op)
