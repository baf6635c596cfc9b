# backend/backoffice/routes/purchasing.py
"""
Supplier quote, purchase order, invoice and credit/debit note endpoints.
"""
from flask import Blueprint, g, jsonify

from ..commands import (
    ApplyCreditNoteCommand,
    ApplyDebitNoteCommand,
    CancelPurchaseOrderCommand,
    CreatePurchaseOrderCommand,
    CreateSupplierQuoteCommand,
    RegisterPurchaseCommand,
    ResolveSupplierQuoteCommand,
    execute,
)
from ..decorators import error_response, json_body, result_response, with_actor
from ..errors import NotFound
from ..models import PurchaseOrder, SupplierQuote
from ..services import resolver_service
from ..services.store import store


purchasing_bp = Blueprint("purchasing", __name__, url_prefix="/api/purchasing")


def _to_dict(document):
    return document.to_dict()


@purchasing_bp.post("/quotes")
@with_actor
def create_supplier_quote():
    """
    Register a supplier quotation.

    Request body:
    {
        "supplier_id": str,
        "location_id": str,
        "quote_date": "YYYY-MM-DD" (optional, default today),
        "notes": str (optional),
        "line_items": [{"product_id", "quantity", "unit_price", "vat_rate"}]
    }
    """
    data = json_body()
    result = execute(CreateSupplierQuoteCommand(
        supplier_id=data.get("supplier_id"),
        location_id=data.get("location_id"),
        line_items=data.get("line_items") or [],
        quote_date=data.get("quote_date"),
        notes=data.get("notes"),
        actor=g.actor,
    ))
    return result_response(result, _to_dict, 201)


@purchasing_bp.get("/quotes/<int:quote_id>")
def get_supplier_quote(quote_id: int):
    quote = store.get(SupplierQuote, quote_id)
    if quote is None:
        return error_response(NotFound("SupplierQuote", quote_id))
    return jsonify(quote.to_dict()), 200


@purchasing_bp.post("/quotes/<int:quote_id>/resolution")
@with_actor
def resolve_supplier_quote(quote_id: int):
    """Request body: {"decision": "APPROVED" | "REJECTED"}"""
    data = json_body()
    result = execute(ResolveSupplierQuoteCommand(
        supplier_quote_id=quote_id,
        decision=data.get("decision"),
        actor=g.actor,
    ))
    return result_response(result, _to_dict)


@purchasing_bp.post("/orders")
@with_actor
def create_order():
    """
    Create a purchase order.

    Request body:
    {
        "supplier_id": str,
        "location_id": str,
        "supplier_quote_id": int (optional, must be APPROVED),
        "line_items": [{"product_id", "quantity", "unit_price", "vat_rate"}]
            (optional when supplier_quote_id is given)
    }
    """
    data = json_body()
    result = execute(CreatePurchaseOrderCommand(
        supplier_id=data.get("supplier_id"),
        location_id=data.get("location_id"),
        line_items=data.get("line_items") or [],
        supplier_quote_id=data.get("supplier_quote_id"),
        actor=g.actor,
    ))
    return result_response(result, _to_dict, 201)


@purchasing_bp.get("/orders/<int:order_id>")
def get_order(order_id: int):
    order = store.get(PurchaseOrder, order_id)
    if order is None:
        return error_response(NotFound("PurchaseOrder", order_id))
    return jsonify(order.to_dict()), 200


@purchasing_bp.post("/orders/<int:order_id>/cancel")
@with_actor
def cancel_order(order_id: int):
    result = execute(CancelPurchaseOrderCommand(purchase_order_id=order_id, actor=g.actor))
    return result_response(result, _to_dict)


@purchasing_bp.post("/orders/<int:order_id>/invoices")
@with_actor
def register_purchase(order_id: int):
    """
    Register the supplier invoice for goods received against an order.

    Request body:
    {
        "invoice_number": str,
        "invoice_date": "YYYY-MM-DD",
        "received_items": [{"product_id", "quantity"}]
    }

    Returns:
        201: Invoice with its payable
    """
    data = json_body()
    result = execute(RegisterPurchaseCommand(
        purchase_order_id=order_id,
        invoice_number=data.get("invoice_number"),
        invoice_date=data.get("invoice_date"),
        received_items=data.get("received_items") or [],
        actor=g.actor,
    ))
    return result_response(
        result,
        lambda invoice: {**invoice.to_dict(), "payable": invoice.payable.to_dict()},
        201,
    )


@purchasing_bp.get("/invoices/<int:invoice_id>/chain")
def purchase_chain(invoice_id: int):
    try:
        chain = resolver_service.resolve_purchase_chain(invoice_id)
    except NotFound as exc:
        return error_response(exc)
    return jsonify(chain), 200


@purchasing_bp.post("/invoices/<int:invoice_id>/credit-notes")
@with_actor
def apply_credit_note(invoice_id: int):
    """
    Request body:
    {
        "note_number": str,
        "note_date": "YYYY-MM-DD",
        "reason": str,
        "line_items": [{"product_id", "quantity_adjusted", "unit_price"?}]
    }
    """
    data = json_body()
    result = execute(ApplyCreditNoteCommand(
        purchase_invoice_id=invoice_id,
        note_number=data.get("note_number"),
        note_date=data.get("note_date"),
        reason=data.get("reason"),
        line_items=data.get("line_items") or [],
        actor=g.actor,
    ))
    return result_response(result, _to_dict, 201)


@purchasing_bp.post("/invoices/<int:invoice_id>/debit-notes")
@with_actor
def apply_debit_note(invoice_id: int):
    """
    Request body:
    {
        "note_number": str,
        "note_date": "YYYY-MM-DD",
        "reason": str,
        "vat_breakdown": {"gravada_10", "gravada_5", "exenta"}
    }
    """
    data = json_body()
    result = execute(ApplyDebitNoteCommand(
        purchase_invoice_id=invoice_id,
        note_number=data.get("note_number"),
        note_date=data.get("note_date"),
        reason=data.get("reason"),
        vat_breakdown=data.get("vat_breakdown") or {},
        actor=g.actor,
    ))
    return result_response(result, _to_dict, 201)
