import pytest

from backoffice.errors import NotFound
from backoffice.services import reconciliation_service, resolver_service, service_order_service as orders
from backoffice.services.store import store


def test_purchase_chain(purchase_invoice):
    reconciliation_service.apply_credit_note(
        purchase_invoice_id=purchase_invoice.id,
        note_number="NC-1",
        note_date="2026-01-15",
        reason="Return",
        line_items=[{"product_id": "P2", "quantity_adjusted": 1}],
        actor="u1",
    )
    reconciliation_service.apply_debit_note(
        purchase_invoice_id=purchase_invoice.id,
        note_number="ND-1",
        note_date="2026-01-16",
        reason="Freight",
        vat_breakdown={"gravada_10": 2200},
        actor="u1",
    )

    chain = resolver_service.resolve_purchase_chain(purchase_invoice.id)

    assert chain["purchase_order"]["status"] == "RECEIVED"
    assert chain["invoice"]["invoice_number"] == "001-001-0000123"
    assert chain["payable"]["outstanding_balance"] == 10000 - 1000 + 2200
    assert [note["note_number"] for note in chain["credit_notes"]] == ["NC-1"]
    assert [note["note_number"] for note in chain["debit_notes"]] == ["ND-1"]
    assert [entry["document_type"] for entry in chain["vat_entries"]] == ["INVOICE", "DEBIT_NOTE"]
    assert chain["credited_total"] == 1000
    assert chain["debited_total"] == 2200


def test_purchase_chain_unknown_invoice(db_session):
    with pytest.raises(NotFound):
        resolver_service.resolve_purchase_chain(12345)


def test_service_item_chain_follows_quote_work_pickup_warranty(approved_quote):
    item_id = approved_quote.service_item_id
    orders.complete_work(
        quote_id=approved_quote.id,
        technician_id="TEC-1",
        hours=2,
        items_used=[{"ref_id": "P-FUSER"}],
        actor="u1",
    )
    orders.register_pickup(
        service_item_id=item_id,
        recipient_name="Client",
        recipient_id="123",
        amount_charged=150000,
        payment_ref="PAY-1",
        actor="u1",
    )
    warranty_id = resolver_service.resolve_service_item_chain(item_id)["warranty"]["id"]
    child = orders.file_warranty_claim(warranty_id=warranty_id, reported_problem="Again", actor="u1")

    chain = resolver_service.resolve_service_item_chain(item_id)

    assert chain["service_item"]["state"] == "PICKED_UP"
    assert [quote["status"] for quote in chain["quotes"]] == ["APPROVED"]
    assert chain["open_quote_id"] == approved_quote.id
    assert chain["work_record"]["service_quote_id"] == approved_quote.id
    assert chain["pickup"]["repaired"] is True
    assert chain["warranty"]["status"] == "CLAIMED"
    assert [item["id"] for item in chain["warranty_claim_items"]] == [child.id]

    child_chain = resolver_service.resolve_service_item_chain(child.id)
    assert child_chain["warranty_origin"]["id"] == warranty_id
    assert child_chain["quotes"] == []
    assert child_chain["work_record"] is None


def test_open_quote_lookup(diagnosed_item):
    assert resolver_service.find_open_quote(store, diagnosed_item.id) is None

    quote = orders.create_quote(
        service_item_id=diagnosed_item.id,
        line_items=[{"ref_id": "L-1", "kind": "LABOR", "quantity": 1, "unit_price": 1000}],
        actor="u1",
    )
    assert resolver_service.find_open_quote(store, diagnosed_item.id).id == quote.id

    orders.resolve_quote(quote_id=quote.id, decision="REJECTED", actor="u1")
    assert resolver_service.find_open_quote(store, diagnosed_item.id) is None
    assert resolver_service.find_last_quote(store, diagnosed_item.id).status == "REJECTED"


def test_service_item_chain_unknown_item(db_session):
    with pytest.raises(NotFound):
        resolver_service.resolve_service_item_chain(999)
