"""
Command boundary tests: typed Results instead of exceptions, and the
single automatic retry on write conflicts.
"""

import pytest

from sqlalchemy import update

from backoffice import commands
from backoffice.commands import (
    ApplyDebitNoteCommand,
    CompleteWorkCommand,
    RecordAdjustmentCommand,
    TransferStockCommand,
    execute,
)
from backoffice.errors import TransactionConflict
from backoffice.extensions import db
from backoffice.models import StockRecord
from backoffice.services import service_order_service, transfer_service


def test_success_returns_value(put_stock, quantity_of):
    put_stock("P1", "L1", 20)

    result = execute(RecordAdjustmentCommand(
        product_id="P1", location_id="L1", direction="IN", quantity=5, reason="restock", actor="u1",
    ))

    assert result.ok
    assert result.value.kind == "ADJUSTMENT_IN"
    assert quantity_of("P1", "L1") == 25


def test_business_failure_is_returned_not_raised(put_stock, quantity_of):
    put_stock("P1", "L1", 20)

    result = execute(RecordAdjustmentCommand(
        product_id="P1", location_id="L1", direction="OUT", quantity=25, reason="breakage", actor="u1",
    ))

    assert not result.ok
    assert result.error.kind == "InsufficientStock"
    assert "Available: 20" in result.error.message
    assert quantity_of("P1", "L1") == 20


def test_invalid_transfer_is_a_validation_result(db_session):
    result = execute(TransferStockCommand(
        product_id="P1", from_location_id="A", to_location_id="A", quantity=1, reason="x", actor="u1",
    ))

    assert result.error.kind == "ValidationError"
    assert result.error.details["reason"] == "InvalidTransfer"


def test_completing_unapproved_quote_is_invalid_state(diagnosed_item):
    quote = service_order_service.create_quote(
        service_item_id=diagnosed_item.id,
        line_items=[{"ref_id": "L-1", "kind": "LABOR", "quantity": 1, "unit_price": 1000}],
        actor="u1",
    )

    result = execute(CompleteWorkCommand(
        quote_id=quote.id, technician_id="TEC-1", hours=1, actor="u1", items_used=[{"ref_id": "L-1"}],
    ))

    assert result.error.kind == "InvalidStateTransition"


def test_duplicate_debit_note_command_is_rejected(purchase_invoice):
    command = ApplyDebitNoteCommand(
        purchase_invoice_id=purchase_invoice.id,
        note_number="ND-7",
        note_date="2026-01-20",
        reason="Freight",
        vat_breakdown={"gravada_10": 1100, "gravada_5": 0, "exenta": 0},
        actor="u1",
    )

    first = execute(command)
    second = execute(command)

    assert first.ok
    assert second.error.kind == "ValidationError"


def test_conflict_is_retried_once_with_fresh_reads(db_session, monkeypatch):
    calls = []

    def flaky(**kwargs):
        calls.append(kwargs)
        if len(calls) == 1:
            raise TransactionConflict()
        return "done"

    monkeypatch.setitem(commands.HANDLERS, TransferStockCommand, flaky)

    result = execute(TransferStockCommand(
        product_id="P1", from_location_id="A", to_location_id="B", quantity=1, reason="x", actor="u1",
    ))

    assert result.ok
    assert result.value == "done"
    assert len(calls) == 2


def test_repeated_conflict_surfaces_as_try_again(db_session, monkeypatch):
    calls = []

    def always_conflicts(**kwargs):
        calls.append(kwargs)
        raise TransactionConflict()

    monkeypatch.setitem(commands.HANDLERS, TransferStockCommand, always_conflicts)

    result = execute(TransferStockCommand(
        product_id="P1", from_location_id="A", to_location_id="B", quantity=1, reason="x", actor="u1",
    ))

    assert result.error.kind == "TransactionConflict"
    assert "try again" in result.error.message
    assert len(calls) == 2


def test_unknown_command_type(db_session):
    with pytest.raises(TypeError):
        execute(object())


def test_unwrap_raises_the_error(db_session):
    result = execute(TransferStockCommand(
        product_id="", from_location_id="A", to_location_id="B", quantity=1, reason="x", actor="u1",
    ))

    with pytest.raises(Exception) as exc_info:
        result.unwrap()

    assert exc_info.value is result.error


def _load_stale_source(product_id, location_id, taken, monkeypatch):
    """
    Load a stock row into the session, then let another writer take units
    and commit without the loaded row noticing.
    """
    session = db.session()
    monkeypatch.setattr(session, "expire_on_commit", False)
    cached = session.query(StockRecord).filter_by(product_id=product_id, location_id=location_id).one()
    session.execute(
        update(StockRecord)
        .where(StockRecord.id == cached.id)
        .values(quantity=StockRecord.quantity - taken, version_id=StockRecord.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    return cached


def _count_attempts(monkeypatch):
    attempts = []

    def counted(**kwargs):
        attempts.append(kwargs)
        return transfer_service.transfer_stock(**kwargs)

    monkeypatch.setitem(commands.HANDLERS, TransferStockCommand, counted)
    return attempts


def test_stale_version_is_retried_against_committed_state(put_stock, quantity_of, monkeypatch):
    put_stock("P1", "A", 10)
    cached = _load_stale_source("P1", "A", 3, monkeypatch)
    assert cached.quantity == 10
    attempts = _count_attempts(monkeypatch)

    result = execute(TransferStockCommand(
        product_id="P1", from_location_id="A", to_location_id="B", quantity=5, reason="x", actor="u1",
    ))

    assert result.ok
    assert len(attempts) == 2
    assert quantity_of("P1", "A") == 2
    assert quantity_of("P1", "B") == 5


def test_retry_rechecks_stock_against_fresh_reads(put_stock, quantity_of, monkeypatch):
    put_stock("P1", "A", 10)
    _load_stale_source("P1", "A", 3, monkeypatch)
    attempts = _count_attempts(monkeypatch)

    result = execute(TransferStockCommand(
        product_id="P1", from_location_id="A", to_location_id="B", quantity=8, reason="x", actor="u1",
    ))

    assert result.error.kind == "InsufficientStock"
    assert result.error.details["available"] == 7
    assert len(attempts) == 2
    assert quantity_of("P1", "A") == 7
    assert quantity_of("P1", "B") == 0
