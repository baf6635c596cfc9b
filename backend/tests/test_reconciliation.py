"""
Purchase registration and credit/debit note reconciliation tests.
"""

from datetime import date
from decimal import Decimal

import pytest

from backoffice.errors import InsufficientStock, InvalidStateTransition, NotFound, ValidationError
from backoffice.models import CreditNote, DebitNote, Payable, StockMovement, VatLedgerEntry
from backoffice.services import inventory_service, purchase_service, reconciliation_service


def _credit(invoice_id, note_number="NC-1", lines=None):
    return reconciliation_service.apply_credit_note(
        purchase_invoice_id=invoice_id,
        note_number=note_number,
        note_date="2026-01-15",
        reason="Damaged units returned",
        line_items=lines if lines is not None else [{"product_id": "P2", "quantity_adjusted": 3, "unit_price": 1000}],
        actor="u1",
    )


def _debit(invoice_id, note_number="ND-1", breakdown=None):
    return reconciliation_service.apply_debit_note(
        purchase_invoice_id=invoice_id,
        note_number=note_number,
        note_date="2026-01-20",
        reason="Freight",
        vat_breakdown=breakdown if breakdown is not None else {"gravada_10": 1100, "gravada_5": 0, "exenta": 0},
        actor="u1",
    )


def _payable(db_session, invoice_id) -> Payable:
    return db_session.query(Payable).filter_by(purchase_invoice_id=invoice_id).one()


def _assert_payable_invariant(db_session, invoice_id):
    payable = _payable(db_session, invoice_id)
    credits = sum(note.total for note in db_session.query(CreditNote).filter_by(purchase_invoice_id=invoice_id))
    debits = sum(note.total for note in db_session.query(DebitNote).filter_by(purchase_invoice_id=invoice_id))
    assert payable.outstanding_balance == payable.invoice_total - credits + debits - payable.paid_amount
    assert payable.total_amount == payable.invoice_total + debits


# Purchase registration

def test_register_purchase_creates_invoice_payable_vat_and_stock(purchase_invoice, quantity_of, db_session):
    payable = purchase_invoice.payable

    assert purchase_invoice.total == 10000
    assert purchase_invoice.gravada_10 == 10000
    assert purchase_invoice.iva_10 == Decimal("909.09")
    assert payable.total_amount == 10000
    assert payable.outstanding_balance == 10000
    assert payable.status == "PENDING"
    assert payable.due_date == date(2026, 2, 9)
    assert quantity_of("P2", "L1") == 10
    assert purchase_invoice.purchase_order.status == "RECEIVED"

    entry = db_session.query(VatLedgerEntry).filter_by(purchase_invoice_id=purchase_invoice.id).one()
    assert entry.document_type == "INVOICE"
    assert entry.debit_note_id is None


def test_partial_receipt_then_over_receipt(db_session, quantity_of):
    order = purchase_service.create_purchase_order(
        supplier_id="SUP-1",
        location_id="L1",
        line_items=[
            {"product_id": "P1", "quantity": 5, "unit_price": 2100, "vat_rate": 5},
            {"product_id": "P3", "quantity": 2, "unit_price": 500, "vat_rate": 0},
        ],
        actor="u1",
    )

    invoice = purchase_service.register_purchase(
        purchase_order_id=order.id,
        invoice_number="F-1",
        invoice_date="2026-03-01",
        received_items=[{"product_id": "P1", "quantity": 2}, {"product_id": "P3", "quantity": 0}],
        actor="u1",
    )
    assert invoice.total == 4200
    assert invoice.iva_5 == Decimal("200.00")
    assert order.status == "PARTIALLY_RECEIVED"
    assert quantity_of("P1", "L1") == 2

    with pytest.raises(ValidationError):
        purchase_service.register_purchase(
            purchase_order_id=order.id,
            invoice_number="F-2",
            invoice_date="2026-03-02",
            received_items=[{"product_id": "P1", "quantity": 4}],
            actor="u1",
        )
    assert quantity_of("P1", "L1") == 2


def test_duplicate_invoice_number_for_supplier(purchase_invoice):
    order = purchase_service.create_purchase_order(
        supplier_id="SUP-1",
        location_id="L1",
        line_items=[{"product_id": "P9", "quantity": 1, "unit_price": 100, "vat_rate": 10}],
        actor="u1",
    )

    with pytest.raises(ValidationError):
        purchase_service.register_purchase(
            purchase_order_id=order.id,
            invoice_number=purchase_invoice.invoice_number,
            invoice_date="2026-03-01",
            received_items=[{"product_id": "P9", "quantity": 1}],
            actor="u1",
        )


def test_cancel_only_before_receipt(purchase_invoice):
    order = purchase_service.create_purchase_order(
        supplier_id="SUP-2",
        location_id="L1",
        line_items=[{"product_id": "P9", "quantity": 1, "unit_price": 100, "vat_rate": 10}],
        actor="u1",
    )
    cancelled = purchase_service.cancel_purchase_order(purchase_order_id=order.id, actor="u1")
    assert cancelled.status == "CANCELLED"

    with pytest.raises(InvalidStateTransition):
        purchase_service.cancel_purchase_order(purchase_order_id=purchase_invoice.purchase_order_id, actor="u1")

    with pytest.raises(InvalidStateTransition):
        purchase_service.register_purchase(
            purchase_order_id=order.id,
            invoice_number="F-X",
            invoice_date="2026-03-01",
            received_items=[{"product_id": "P9", "quantity": 1}],
            actor="u1",
        )


# Credit notes

def test_credit_note_scenario(purchase_invoice, quantity_of, db_session):
    note = _credit(purchase_invoice.id)

    assert note.total == 3000
    assert _payable(db_session, purchase_invoice.id).outstanding_balance == 7000
    assert quantity_of("P2", "L1") == 7

    movement = db_session.query(StockMovement).filter_by(kind="SUPPLIER_RETURN").one()
    assert movement.reference_id == note.id
    assert movement.from_location_id == "L1"
    _assert_payable_invariant(db_session, purchase_invoice.id)


def test_credit_note_unit_price_defaults_to_invoice_price(purchase_invoice):
    note = _credit(purchase_invoice.id, lines=[{"product_id": "P2", "quantity_adjusted": 2}])

    assert note.total == 2000


def test_credit_note_over_return_is_rejected(purchase_invoice, quantity_of, db_session):
    _credit(purchase_invoice.id, "NC-1", [{"product_id": "P2", "quantity_adjusted": 8}])

    with pytest.raises(ValidationError):
        _credit(purchase_invoice.id, "NC-2", [{"product_id": "P2", "quantity_adjusted": 3}])

    assert quantity_of("P2", "L1") == 2
    assert _payable(db_session, purchase_invoice.id).outstanding_balance == 2000


def test_credit_note_fails_atomically_when_goods_were_consumed(purchase_invoice, quantity_of, db_session):
    inventory_service.record_adjustment(
        product_id="P2", location_id="L1", direction="OUT", quantity=9, reason="sold", actor="u1"
    )

    with pytest.raises(InsufficientStock):
        _credit(purchase_invoice.id)

    assert db_session.query(CreditNote).count() == 0
    assert _payable(db_session, purchase_invoice.id).outstanding_balance == 10000
    assert quantity_of("P2", "L1") == 1


def test_credit_note_duplicate_number(purchase_invoice):
    _credit(purchase_invoice.id, "NC-1", [{"product_id": "P2", "quantity_adjusted": 1}])

    with pytest.raises(ValidationError):
        _credit(purchase_invoice.id, "NC-1", [{"product_id": "P2", "quantity_adjusted": 1}])


def test_credit_note_requires_a_returned_quantity(purchase_invoice):
    with pytest.raises(ValidationError):
        _credit(purchase_invoice.id, lines=[{"product_id": "P2", "quantity_adjusted": 0}])


def test_credit_note_unknown_product(purchase_invoice):
    with pytest.raises(ValidationError):
        _credit(purchase_invoice.id, lines=[{"product_id": "P404", "quantity_adjusted": 1}])


def test_credit_note_unknown_invoice(db_session):
    with pytest.raises(NotFound):
        _credit(999)


# Debit notes

def test_debit_note_scenario(purchase_invoice, db_session):
    note = _debit(purchase_invoice.id)

    assert note.iva_10 == Decimal("100.00")
    assert note.total == 1100

    payable = _payable(db_session, purchase_invoice.id)
    assert payable.outstanding_balance == 11100
    assert payable.total_amount == 11100

    entry = db_session.query(VatLedgerEntry).filter_by(debit_note_id=note.id).one()
    assert entry.purchase_invoice_id == purchase_invoice.id
    assert entry.document_type == "DEBIT_NOTE"
    assert entry.iva_10 == Decimal("100.00")
    _assert_payable_invariant(db_session, purchase_invoice.id)


def test_debit_note_five_percent_and_exempt(purchase_invoice):
    note = _debit(purchase_invoice.id, breakdown={"gravada_10": 0, "gravada_5": 2100, "exenta": 400})

    assert note.iva_5 == Decimal("100.00")
    assert note.iva_10 == Decimal("0.00")
    assert note.total == 2500


def test_resubmitted_debit_note_is_rejected_not_applied_twice(purchase_invoice, db_session):
    _debit(purchase_invoice.id)

    with pytest.raises(ValidationError):
        _debit(purchase_invoice.id)

    assert db_session.query(DebitNote).count() == 1
    assert _payable(db_session, purchase_invoice.id).outstanding_balance == 11100


@pytest.mark.parametrize("breakdown", [
    {"gravada_10": 0, "gravada_5": 0, "exenta": 0},
    {"gravada_10": -100, "gravada_5": 0, "exenta": 200},
    {},
])
def test_debit_note_invalid_amounts(purchase_invoice, breakdown):
    with pytest.raises(ValidationError):
        _debit(purchase_invoice.id, breakdown=breakdown)


def test_mixed_notes_keep_payable_invariant(purchase_invoice, db_session):
    _credit(purchase_invoice.id, "NC-1", [{"product_id": "P2", "quantity_adjusted": 2}])
    _debit(purchase_invoice.id, "ND-1", {"gravada_10": 550})
    _credit(purchase_invoice.id, "NC-2", [{"product_id": "P2", "quantity_adjusted": 1}])
    _debit(purchase_invoice.id, "ND-2", {"exenta": 300})

    payable = _payable(db_session, purchase_invoice.id)
    assert payable.outstanding_balance == 10000 - 3000 + 850
    _assert_payable_invariant(db_session, purchase_invoice.id)
