# Overview: Ledger primitives; the only code that mutates stock quantities and payable balances.

from __future__ import annotations

from ..errors import InsufficientStock, NotFound, ValidationError
from ..models import StockRecord, StockMovement, Payable
from backoffice.time_utils import utcnow
from .store import Transaction
"""
Ledger Invariants (authoritative)

- StockRecord.quantity >= 0 at every commit. A decrement is applied only
  after reading the current quantity in the same transaction; if it would go
  negative the primitive raises and the whole enclosing transaction rolls
  back, including sibling writes (audit rows, note documents).
- A StockRecord is created on first positive stocking of a product at a
  location; a decrement never creates one.
- Payable.outstanding_balance >= 0. Credit notes lower it, debit notes
  raise both it and total_amount.
- Primitives never commit; callers run them inside store.run_transaction.
"""


PAYABLE_STATUS_PENDING = "PENDING"
PAYABLE_STATUS_PARTIALLY_PAID = "PARTIALLY_PAID"
PAYABLE_STATUS_PAID = "PAID"


def find_stock(tx: Transaction, product_id: str, location_id: str, *, lock: bool = False) -> StockRecord | None:
    return tx.first(
        StockRecord,
        {"product_id": product_id, "location_id": location_id},
        lock=lock,
    )


def adjust_stock(
    tx: Transaction,
    *,
    product_id: str,
    location_id: str,
    delta: int,
) -> StockRecord:
    """
    Apply a signed quantity change to one (product, location) stock record.

    Raises:
        ValidationError: delta is zero
        InsufficientStock: a negative delta exceeds the quantity on hand
    """
    if delta == 0:
        raise ValidationError("Stock delta must be non-zero")

    record = find_stock(tx, product_id, location_id, lock=True)
    now = utcnow()

    if record is None:
        if delta < 0:
            raise InsufficientStock(product_id, location_id, available=0, requested=-delta)
        return tx.create(
            StockRecord,
            product_id=product_id,
            location_id=location_id,
            quantity=delta,
            last_updated=now,
        )

    if delta < 0 and record.quantity < -delta:
        raise InsufficientStock(product_id, location_id, available=record.quantity, requested=-delta)

    return tx.update(record, quantity=record.quantity + delta, last_updated=now)


def append_movement(
    tx: Transaction,
    *,
    kind: str,
    product_id: str,
    quantity: int,
    actor: str,
    from_location_id: str | None = None,
    to_location_id: str | None = None,
    reason: str | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
) -> StockMovement:
    """
    Append-only stock movement.

    - No domain logic here.
    - Written in the same transaction as the stock change it records.
    """
    return tx.create(
        StockMovement,
        kind=kind,
        product_id=product_id,
        quantity=quantity,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        reason=reason,
        actor=actor,
        reference_type=reference_type,
        reference_id=reference_id,
        occurred_at=utcnow(),
    )


def derive_payable_status(outstanding_balance: int, paid_amount: int) -> str:
    if outstanding_balance <= 0:
        return PAYABLE_STATUS_PAID
    if paid_amount > 0:
        return PAYABLE_STATUS_PARTIALLY_PAID
    return PAYABLE_STATUS_PENDING


def adjust_payable(
    tx: Transaction,
    payable_id: int,
    *,
    delta: int,
    total_delta: int = 0,
) -> Payable:
    """
    Apply a signed change to a payable's outstanding balance.

    Args:
        delta: change to outstanding_balance (credit notes < 0, debit notes > 0)
        total_delta: change to total_amount (debit notes only)

    Raises:
        NotFound: payable does not exist
        ValidationError: the balance would go negative
    """
    payable = tx.get(Payable, payable_id, lock=True)
    if payable is None:
        raise NotFound("Payable", payable_id)

    new_balance = payable.outstanding_balance + delta
    if new_balance < 0:
        raise ValidationError(
            f"Amount {-delta} exceeds the outstanding balance {payable.outstanding_balance} "
            f"of payable {payable_id}",
            payable_id=payable_id,
            outstanding_balance=payable.outstanding_balance,
        )

    return tx.update(
        payable,
        outstanding_balance=new_balance,
        total_amount=payable.total_amount + total_delta,
        status=derive_payable_status(new_balance, payable.paid_amount or 0),
    )
