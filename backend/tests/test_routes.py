"""
HTTP boundary tests: request parsing, actor resolution and error mapping.
"""


def test_health(client, db_session):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.get_json()["checks"]["database"]["status"] == "healthy"


def test_adjustment_uses_actor_header(client, db_session):
    response = client.post(
        "/api/inventory/adjustments",
        json={"product_id": "P1", "location_id": "L1", "direction": "IN", "quantity": 5, "reason": "restock"},
        headers={"X-Actor": "clerk-7"},
    )

    assert response.status_code == 201
    body = response.get_json()
    assert body["kind"] == "ADJUSTMENT_IN"
    assert body["actor"] == "clerk-7"


def test_actor_defaults_to_demo_user(client, db_session):
    response = client.post(
        "/api/inventory/adjustments",
        json={"product_id": "P1", "location_id": "L1", "direction": "IN", "quantity": 1, "reason": "restock"},
    )

    assert response.get_json()["actor"] == "user-demo"


def test_insufficient_stock_maps_to_409(client, put_stock):
    put_stock("P1", "L1", 20)

    response = client.post(
        "/api/inventory/adjustments",
        json={"product_id": "P1", "location_id": "L1", "direction": "OUT", "quantity": 25, "reason": "breakage"},
    )

    assert response.status_code == 409
    error = response.get_json()["error"]
    assert error["kind"] == "InsufficientStock"
    assert error["details"]["available"] == 20


def test_validation_error_maps_to_400(client, db_session):
    response = client.post(
        "/api/inventory/transfers",
        json={"product_id": "P1", "from_location_id": "A", "to_location_id": "A", "quantity": 1, "reason": "x"},
    )

    assert response.status_code == 400
    assert response.get_json()["error"]["kind"] == "ValidationError"


def test_transfer_and_stock_listing(client, put_stock):
    put_stock("P1", "A", 10)

    response = client.post(
        "/api/inventory/transfers",
        json={"product_id": "P1", "from_location_id": "A", "to_location_id": "B", "quantity": 4, "reason": "x"},
    )
    assert response.status_code == 201

    stock = client.get("/api/inventory/stock?product_id=P1").get_json()["items"]
    assert {(row["location_id"], row["quantity"]) for row in stock} == {("A", 6), ("B", 4)}

    movements = client.get("/api/inventory/movements?location_id=B").get_json()["items"]
    assert [movement["kind"] for movement in movements] == ["TRANSFER"]


def test_purchase_flow_over_http(client, db_session):
    order = client.post("/api/purchasing/orders", json={
        "supplier_id": "SUP-1",
        "location_id": "L1",
        "line_items": [{"product_id": "P2", "quantity": 10, "unit_price": 1000, "vat_rate": 10}],
    })
    assert order.status_code == 201
    order_id = order.get_json()["id"]

    invoice = client.post(f"/api/purchasing/orders/{order_id}/invoices", json={
        "invoice_number": "F-1",
        "invoice_date": "2026-01-10",
        "received_items": [{"product_id": "P2", "quantity": 10}],
    })
    assert invoice.status_code == 201
    invoice_body = invoice.get_json()
    assert invoice_body["payable"]["outstanding_balance"] == 10000

    credit = client.post(f"/api/purchasing/invoices/{invoice_body['id']}/credit-notes", json={
        "note_number": "NC-1",
        "note_date": "2026-01-15",
        "reason": "Return",
        "line_items": [{"product_id": "P2", "quantity_adjusted": 3, "unit_price": 1000}],
    })
    assert credit.status_code == 201
    assert credit.get_json()["total"] == 3000

    debit = client.post(f"/api/purchasing/invoices/{invoice_body['id']}/debit-notes", json={
        "note_number": "ND-1",
        "note_date": "2026-01-16",
        "reason": "Freight",
        "vat_breakdown": {"gravada_10": 1100},
    })
    assert debit.status_code == 201
    assert debit.get_json()["vat_breakdown"]["iva_10"] == "100.00"

    chain = client.get(f"/api/purchasing/invoices/{invoice_body['id']}/chain").get_json()
    assert chain["payable"]["outstanding_balance"] == 8100


def test_unknown_documents_map_to_404(client, db_session):
    assert client.get("/api/purchasing/invoices/999/chain").status_code == 404
    assert client.get("/api/services/items/999").status_code == 404

    response = client.post("/api/services/items/999/diagnosis", json={
        "technician_id": "T", "diagnosis": "d", "recommended_work": "w",
    })
    assert response.status_code == 404
    assert response.get_json()["error"]["kind"] == "NotFound"


def test_service_flow_over_http(client, put_stock):
    put_stock("P-FUSER", "deposito-servicio", 2)

    reception = client.post("/api/services/receptions", json={
        "client_id": "CLI-1",
        "equipments": [{"equipment_description": "Printer", "reported_problem": "Jam"}],
    })
    assert reception.status_code == 201
    item_id = reception.get_json()["items"][0]["id"]

    assert client.post(f"/api/services/items/{item_id}/diagnosis", json={
        "technician_id": "TEC-1", "diagnosis": "Fuser", "recommended_work": "Replace",
    }).status_code == 200

    quote = client.post(f"/api/services/items/{item_id}/quotes", json={
        "line_items": [{"ref_id": "P-FUSER", "kind": "PART", "quantity": 1, "unit_price": 150000}],
    })
    assert quote.status_code == 201
    quote_id = quote.get_json()["id"]

    early = client.post(f"/api/services/quotes/{quote_id}/work", json={
        "technician_id": "TEC-1", "hours": 1, "items_used": [{"ref_id": "P-FUSER"}],
    })
    assert early.status_code == 409
    assert early.get_json()["error"]["kind"] == "InvalidStateTransition"

    assert client.post(f"/api/services/quotes/{quote_id}/resolution", json={"decision": "APPROVED"}).status_code == 200

    work = client.post(f"/api/services/quotes/{quote_id}/work", json={
        "technician_id": "TEC-1", "hours": 1, "items_used": [{"ref_id": "P-FUSER"}],
    })
    assert work.status_code == 201
    assert work.get_json()["computed_cost"] == 150000

    pickup = client.post(f"/api/services/items/{item_id}/pickup", json={
        "recipient_name": "Client", "recipient_id": "123", "amount_charged": 150000, "payment_ref": "PAY-1",
    })
    assert pickup.status_code == 201
    warranty = pickup.get_json()["warranty"]
    assert warranty["covered_items"] == ["P-FUSER"]

    claim = client.post(f"/api/services/warranties/{warranty['id']}/claims", json={"reported_problem": "Jam again"})
    assert claim.status_code == 201
    assert claim.get_json()["warranty_origin_id"] == warranty["id"]

    detail = client.get(f"/api/services/items/{item_id}").get_json()
    assert detail["service_item"]["state"] == "PICKED_UP"
    assert detail["warranty"]["status"] == "CLAIMED"


def test_reports_endpoints(client, purchase_invoice):
    assert client.get("/api/reports/stock-levels").get_json()["total_quantity"] == 10
    assert client.get("/api/reports/quotes").get_json()["total_quotes"] == 0
    assert client.get("/api/reports/receptions").get_json()["total_items"] == 0

    aging = client.get("/api/reports/payables-aging?as_of=2026-03-01").get_json()
    assert aging["buckets"]["1_30"]["amount"] == 10000

    assert client.get("/api/reports/payables-aging?as_of=not-a-date").status_code == 400


def test_malformed_line_items_map_to_400(client, purchase_invoice):
    credit = client.post(f"/api/purchasing/invoices/{purchase_invoice.id}/credit-notes", json={
        "note_number": "NC-9",
        "note_date": "2026-01-15",
        "reason": "Return",
        "line_items": ["P2"],
    })
    assert credit.status_code == 400
    assert credit.get_json()["error"]["details"]["field"] == "line_items[0]"

    debit = client.post(f"/api/purchasing/invoices/{purchase_invoice.id}/debit-notes", json={
        "note_number": "ND-9",
        "note_date": "2026-01-16",
        "reason": "Freight",
        "vat_breakdown": [1100],
    })
    assert debit.status_code == 400
    assert debit.get_json()["error"]["kind"] == "ValidationError"


def test_malformed_service_payloads_map_to_400(client, diagnosed_item):
    reception = client.post("/api/services/receptions", json={"client_id": "CLI-1", "equipments": ["Printer"]})
    assert reception.status_code == 400

    quote = client.post(f"/api/services/items/{diagnosed_item.id}/quotes", json={"line_items": [["P-FUSER", 1]]})
    assert quote.status_code == 400
    assert quote.get_json()["error"]["kind"] == "ValidationError"


def test_order_from_supplier_quote_over_http(client, db_session):
    quote = client.post("/api/purchasing/quotes", json={
        "supplier_id": "SUP-1",
        "location_id": "L1",
        "line_items": [{"product_id": "P2", "quantity": 3, "unit_price": 1000, "vat_rate": 10}],
    })
    assert quote.status_code == 201
    quote_id = quote.get_json()["id"]

    early = client.post("/api/purchasing/orders", json={
        "supplier_id": "SUP-1", "location_id": "L1", "supplier_quote_id": quote_id,
    })
    assert early.status_code == 409

    resolved = client.post(f"/api/purchasing/quotes/{quote_id}/resolution", json={"decision": "APPROVED"})
    assert resolved.get_json()["status"] == "APPROVED"

    order = client.post("/api/purchasing/orders", json={
        "supplier_id": "SUP-1", "location_id": "L1", "supplier_quote_id": quote_id,
    })
    assert order.status_code == 201
    assert order.get_json()["total"] == 3000

    assert client.get(f"/api/purchasing/quotes/{quote_id}").get_json()["status"] == "PROCESSED"
    assert client.get("/api/purchasing/quotes/999").status_code == 404


def test_service_and_vat_reports_endpoints(client, purchase_invoice):
    assert client.get("/api/reports/technicians").get_json()["total_completed"] == 0
    assert client.get("/api/reports/diagnoses?q=printer").get_json()["items"] == []

    book = client.get("/api/reports/vat-purchases?date_from=2026-01-01&date_to=2026-01-31").get_json()
    assert book["totals"]["total"] == 10000

    assert client.get("/api/reports/vat-purchases?date_from=2026-02-01&date_to=2026-01-01").status_code == 400
