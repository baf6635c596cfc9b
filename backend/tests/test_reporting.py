import pytest

from backoffice.errors import ValidationError
from backoffice.services import reconciliation_service, reporting_service
from backoffice.services import service_order_service as orders


LABOR = [{"ref_id": "L-1", "kind": "LABOR", "quantity": 1, "unit_price": 1000}]


def _quoted_item(client_id):
    item = orders.register_reception(
        client_id=client_id,
        equipments=[{"equipment_description": "Printer", "reported_problem": "Jam"}],
        actor="u1",
    )[0]
    orders.diagnose(
        service_item_id=item.id, technician_id="T", diagnosis="d", recommended_work="w", actor="u1"
    )
    return orders.create_quote(service_item_id=item.id, line_items=LABOR, actor="u1")


def test_quote_analysis_approval_rate(db_session):
    approved = _quoted_item("C1")
    rejected = _quoted_item("C2")
    _quoted_item("C3")
    orders.resolve_quote(quote_id=approved.id, decision="APPROVED", actor="u1")
    orders.resolve_quote(quote_id=rejected.id, decision="REJECTED", actor="u1")

    report = reporting_service.quote_analysis()

    assert report["total_quotes"] == 3
    assert report["by_status"] == {"PENDING_APPROVAL": 1, "APPROVED": 1, "REJECTED": 1}
    assert report["total_quoted_amount"] == 3000
    assert report["approval_rate"] == 50.0


def test_quote_analysis_rejects_inverted_range(db_session):
    with pytest.raises(ValidationError):
        reporting_service.quote_analysis(date_from="2026-02-01", date_to="2026-01-01")


def test_reception_statistics(diagnosed_item):
    orders.register_reception(
        client_id="C9",
        equipments=[{"equipment_description": "Scanner", "reported_problem": "Dead"}],
        actor="u1",
    )

    stats = reporting_service.reception_statistics()

    assert stats["total_items"] == 2
    assert stats["awaiting_diagnosis"] == 1
    assert stats["diagnosed_without_quote"] == 1
    assert stats["by_state"]["PICKED_UP"] == 0


@pytest.mark.parametrize("as_of, bucket", [
    ("2026-02-01", "current"),
    ("2026-02-09", "current"),
    ("2026-02-10", "1_30"),
    ("2026-04-10", "31_60"),
    ("2026-05-05", "61_90"),
    ("2026-06-01", "over_90"),
])
def test_payables_aging_buckets(purchase_invoice, as_of, bucket):
    report = reporting_service.payables_aging(as_of=as_of)

    assert report["buckets"][bucket]["count"] == 1
    assert report["buckets"][bucket]["amount"] == 10000
    assert report["total_outstanding"] == 10000


def test_settled_payables_are_not_aged(purchase_invoice):
    reconciliation_service.apply_credit_note(
        purchase_invoice_id=purchase_invoice.id,
        note_number="NC-ALL",
        note_date="2026-01-12",
        reason="Full return",
        line_items=[{"product_id": "P2", "quantity_adjusted": 10}],
        actor="u1",
    )

    assert reporting_service.payables_aging(as_of="2026-06-01")["total_outstanding"] == 0


def test_stock_movements_newest_first(put_stock):
    put_stock("P1", "L1", 1)
    put_stock("P1", "L1", 2)

    movements = reporting_service.stock_movements(product_id="P1")

    assert [movement["quantity"] for movement in movements] == [2, 1]


def test_technician_performance(approved_quote):
    orders.complete_work(
        quote_id=approved_quote.id,
        technician_id="TEC-1",
        hours="2.5",
        items_used=[{"ref_id": "P-FUSER"}, {"ref_id": "L-REPAIR"}],
        actor="u1",
    )

    report = reporting_service.technician_performance()

    assert report["total_completed"] == 1
    assert report["technicians"] == [{
        "technician_id": "TEC-1",
        "completed_repairs": 1,
        "hours": "2.50",
        "billed_cost": 200000,
        "average_days_in_shop": 0.0,
    }]
    assert reporting_service.technician_performance(technician_id="TEC-9")["technicians"] == []


def test_diagnosis_history_search(diagnosed_item):
    orders.register_reception(
        client_id="C9",
        equipments=[{"equipment_description": "Scanner", "reported_problem": "Dead"}],
        actor="u1",
    )

    history = reporting_service.diagnosis_history()
    assert [entry["service_item_id"] for entry in history] == [diagnosed_item.id]
    assert history[0]["diagnosis"] == "Worn fuser unit"

    assert len(reporting_service.diagnosis_history(search="FUSER")) == 1
    assert reporting_service.diagnosis_history(search="scanner") == []


def test_vat_purchase_book_totals(purchase_invoice):
    reconciliation_service.apply_debit_note(
        purchase_invoice_id=purchase_invoice.id,
        note_number="ND-1",
        note_date="2026-01-20",
        reason="Freight",
        vat_breakdown={"gravada_10": 1100, "gravada_5": 2100},
        actor="u1",
    )

    book = reporting_service.vat_purchase_book()

    assert [entry["document_type"] for entry in book["entries"]] == ["DEBIT_NOTE", "INVOICE"]
    assert book["totals"] == {
        "gravada_10": 11100,
        "iva_10": "1009.09",
        "gravada_5": 2100,
        "iva_5": "100.00",
        "exenta": 0,
        "total": 13200,
    }

    january_tenth = reporting_service.vat_purchase_book(date_from="2026-01-10", date_to="2026-01-10")
    assert [entry["document_number"] for entry in january_tenth["entries"]] == ["001-001-0000123"]
