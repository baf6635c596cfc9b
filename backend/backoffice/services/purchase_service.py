# Overview: Service-layer operations for purchase orders and purchase registration.

"""
Purchase Service

WHY: Goods enter inventory against a purchase order. Registering the
supplier invoice is the moment the payable, the VAT book and the stock all
change, so they change together.

SUPPLIER QUOTE LIFECYCLE:
1. RECEIVED: Registered from the supplier
2. APPROVED / REJECTED: Decision recorded
3. PROCESSED: Purchase order created from it (same transaction)

PURCHASE ORDER LIFECYCLE:
1. PENDING_RECEIPT: Created
2. PARTIALLY_RECEIVED: Some ordered quantity still pending
3. RECEIVED: Fully received (terminal)
4. CANCELLED: Cancelled before any receipt (terminal)

REGISTER PURCHASE (one transaction):
- PurchaseInvoice + lines (PO price and VAT rate per line)
- VatLedgerEntry for the invoice
- Payable (due = invoice date + PAYABLE_DUE_DAYS)
- Stock increment per received line at the PO location (PURCHASE_RECEIPT)
- Order status from cumulative receipts
"""

from __future__ import annotations

from datetime import date

from flask import current_app

from ..errors import InvalidStateTransition, NotFound, ValidationError
from ..models import (
    SupplierQuote,
    SupplierQuoteLine,
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseInvoice,
    PurchaseInvoiceLine,
    Payable,
    VatLedgerEntry,
)
from ..models.inventory import MOVEMENT_PURCHASE_RECEIPT
from ..validation import (
    normalize_decision,
    optional_text,
    require_date,
    require_mapping,
    require_non_negative_int,
    require_positive_int,
    require_text,
    require_vat_rate,
    vat_from_gross,
)
from backoffice.time_utils import add_days, today, utcnow
from .ledger_service import PAYABLE_STATUS_PENDING, adjust_stock, append_movement
from .store import Transaction, store


PO_STATUS_PENDING_RECEIPT = "PENDING_RECEIPT"
PO_STATUS_PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
PO_STATUS_RECEIVED = "RECEIVED"
PO_STATUS_CANCELLED = "CANCELLED"

RECEIVABLE_STATUSES = {PO_STATUS_PENDING_RECEIPT, PO_STATUS_PARTIALLY_RECEIVED}

SUPPLIER_QUOTE_STATUS_RECEIVED = "RECEIVED"
SUPPLIER_QUOTE_STATUS_APPROVED = "APPROVED"
SUPPLIER_QUOTE_STATUS_REJECTED = "REJECTED"
SUPPLIER_QUOTE_STATUS_PROCESSED = "PROCESSED"


def _parse_order_lines(line_items) -> list[dict]:
    if not line_items:
        raise ValidationError("At least one line item is required", field="line_items")

    lines = []
    seen = set()
    for index, item in enumerate(line_items):
        item = require_mapping(item, f"line_items[{index}]")
        product_id = require_text(item.get("product_id"), f"line_items[{index}].product_id")
        if product_id in seen:
            raise ValidationError(f"Product {product_id} appears more than once", field="line_items")
        seen.add(product_id)
        lines.append({
            "product_id": product_id,
            "quantity": require_positive_int(item.get("quantity"), f"line_items[{index}].quantity"),
            "unit_price": require_non_negative_int(item.get("unit_price"), f"line_items[{index}].unit_price"),
            "vat_rate": require_vat_rate(item.get("vat_rate"), f"line_items[{index}].vat_rate"),
        })
    return lines


def _order_total(lines: list[dict]) -> int:
    return sum(line["quantity"] * line["unit_price"] for line in lines)


def create_supplier_quote(
    *,
    supplier_id: str,
    location_id: str,
    line_items: list[dict],
    actor: str,
    quote_date: date | str | None = None,
    notes: str | None = None,
) -> SupplierQuote:
    """
    Register a quotation received from a supplier (status: RECEIVED).

    Args:
        supplier_id: Supplier that sent the quotation
        location_id: Warehouse the goods would be delivered to
        line_items: [{"product_id", "quantity", "unit_price", "vat_rate"}]
        actor: User registering the quotation
        quote_date: Quotation date (default: today)
        notes: Free-text observations
    """
    supplier_id = require_text(supplier_id, "supplier_id")
    location_id = require_text(location_id, "location_id")
    actor = require_text(actor, "actor")
    quote_date = today() if quote_date is None else require_date(quote_date, "quote_date")
    lines = _parse_order_lines(line_items)

    def _op(tx: Transaction) -> SupplierQuote:
        quote = SupplierQuote(
            supplier_id=supplier_id,
            location_id=location_id,
            quote_date=quote_date,
            status=SUPPLIER_QUOTE_STATUS_RECEIVED,
            total=_order_total(lines),
            notes=optional_text(notes),
            created_by=actor,
        )
        for line in lines:
            quote.lines.append(SupplierQuoteLine(**line))
        return tx.add(quote)

    return store.run_transaction(_op)


def resolve_supplier_quote(*, supplier_quote_id: int, decision: str, actor: str) -> SupplierQuote:
    """Approve or reject a RECEIVED supplier quotation."""
    decision = normalize_decision(decision)
    actor = require_text(actor, "actor")

    def _op(tx: Transaction) -> SupplierQuote:
        quote = tx.get(SupplierQuote, supplier_quote_id, lock=True)
        if quote is None:
            raise NotFound("SupplierQuote", supplier_quote_id)
        if quote.status != SUPPLIER_QUOTE_STATUS_RECEIVED:
            raise InvalidStateTransition("SupplierQuote", quote.status, "resolve")
        return tx.update(quote, status=decision, resolved_by=actor, resolved_at=utcnow())

    return store.run_transaction(_op)


def create_purchase_order(
    *,
    supplier_id: str,
    location_id: str,
    actor: str,
    line_items: list[dict] | None = None,
    supplier_quote_id: int | None = None,
) -> PurchaseOrder:
    """
    Create a purchase order (status: PENDING_RECEIPT).

    When supplier_quote_id is given the quotation must be APPROVED and from
    the same supplier; it becomes PROCESSED in the same transaction. Its
    lines are used when line_items is omitted.

    Args:
        supplier_id: Supplier the order is placed with
        location_id: Warehouse that will receive the goods
        actor: User creating the order
        line_items: [{"product_id", "quantity", "unit_price", "vat_rate"}]
        supplier_quote_id: Approved supplier quotation the order comes from

    Raises:
        ValidationError: missing fields, empty or duplicated lines, quote
            from another supplier
        NotFound: quotation does not exist
        InvalidStateTransition: quotation not APPROVED
    """
    supplier_id = require_text(supplier_id, "supplier_id")
    location_id = require_text(location_id, "location_id")
    actor = require_text(actor, "actor")
    if supplier_quote_id is not None:
        supplier_quote_id = require_positive_int(supplier_quote_id, "supplier_quote_id")
    if supplier_quote_id is None or line_items:
        lines = _parse_order_lines(line_items)
    else:
        lines = None

    def _op(tx: Transaction) -> PurchaseOrder:
        quote = None
        if supplier_quote_id is not None:
            quote = tx.get(SupplierQuote, supplier_quote_id, lock=True)
            if quote is None:
                raise NotFound("SupplierQuote", supplier_quote_id)
            if quote.status != SUPPLIER_QUOTE_STATUS_APPROVED:
                raise InvalidStateTransition(
                    "SupplierQuote", quote.status, "order from", reason="the quotation is not approved"
                )
            if quote.supplier_id != supplier_id:
                raise ValidationError(
                    f"Quotation {quote.id} belongs to supplier {quote.supplier_id}",
                    field="supplier_quote_id",
                )

        order_lines = lines if lines is not None else [line.to_item() for line in quote.lines]
        order = PurchaseOrder(
            supplier_id=supplier_id,
            location_id=location_id,
            supplier_quote_id=quote.id if quote is not None else None,
            status=PO_STATUS_PENDING_RECEIPT,
            total=_order_total(order_lines),
            created_by=actor,
        )
        for line in order_lines:
            order.lines.append(PurchaseOrderLine(received_quantity=0, **line))
        tx.add(order)

        if quote is not None:
            tx.update(quote, status=SUPPLIER_QUOTE_STATUS_PROCESSED)
        return order

    return store.run_transaction(_op)


def cancel_purchase_order(*, purchase_order_id: int, actor: str) -> PurchaseOrder:
    """Cancel an order that has not received anything yet."""
    require_text(actor, "actor")

    def _op(tx: Transaction) -> PurchaseOrder:
        order = tx.get(PurchaseOrder, purchase_order_id, lock=True)
        if order is None:
            raise NotFound("PurchaseOrder", purchase_order_id)
        if order.status != PO_STATUS_PENDING_RECEIPT:
            raise InvalidStateTransition("PurchaseOrder", order.status, "cancel")
        return tx.update(order, status=PO_STATUS_CANCELLED)

    return store.run_transaction(_op)


def _vat_breakdown(lines: list[dict]) -> dict:
    gross = {10: 0, 5: 0, 0: 0}
    for line in lines:
        gross[line["vat_rate"]] += line["quantity"] * line["unit_price"]
    return {
        "gravada_10": gross[10],
        "gravada_5": gross[5],
        "exenta": gross[0],
        "iva_10": vat_from_gross(gross[10], 10),
        "iva_5": vat_from_gross(gross[5], 5),
    }


def register_purchase(
    *,
    purchase_order_id: int,
    invoice_number: str,
    invoice_date: date | str,
    received_items: list[dict],
    actor: str,
) -> PurchaseInvoice:
    """
    Register a supplier invoice for goods received against a purchase order.

    Args:
        purchase_order_id: Order being received
        invoice_number: Supplier invoice number (unique per supplier)
        invoice_date: Invoice date (ISO-8601)
        received_items: [{"product_id", "quantity"}]; quantity may be 0 for
            lines not received this time
        actor: User registering the purchase

    Returns:
        PurchaseInvoice: The new invoice (payable reachable via .payable)

    Raises:
        NotFound: order does not exist
        InvalidStateTransition: order cancelled or fully received
        ValidationError: duplicate invoice number, over-receipt, nothing received
    """
    invoice_number = require_text(invoice_number, "invoice_number")
    invoice_date = require_date(invoice_date, "invoice_date")
    actor = require_text(actor, "actor")

    received: dict[str, int] = {}
    for index, item in enumerate(received_items or []):
        item = require_mapping(item, f"received_items[{index}]")
        product_id = require_text(item.get("product_id"), f"received_items[{index}].product_id")
        quantity = require_non_negative_int(item.get("quantity"), f"received_items[{index}].quantity")
        received[product_id] = received.get(product_id, 0) + quantity

    if sum(received.values()) == 0:
        raise ValidationError("At least one product must be received", field="received_items")

    due_days = current_app.config["PAYABLE_DUE_DAYS"]

    def _op(tx: Transaction) -> PurchaseInvoice:
        order = tx.get(PurchaseOrder, purchase_order_id, lock=True)
        if order is None:
            raise NotFound("PurchaseOrder", purchase_order_id)
        if order.status not in RECEIVABLE_STATUSES:
            raise InvalidStateTransition("PurchaseOrder", order.status, "receive")

        duplicate = tx.first(
            PurchaseInvoice,
            {"supplier_id": order.supplier_id, "invoice_number": invoice_number},
        )
        if duplicate is not None:
            raise ValidationError(
                f"Invoice {invoice_number} is already registered for supplier {order.supplier_id}",
                field="invoice_number",
            )

        lines_by_product = {line.product_id: line for line in order.lines}
        unknown = set(received) - set(lines_by_product)
        if unknown:
            raise ValidationError(
                f"Products not on the purchase order: {', '.join(sorted(unknown))}",
                field="received_items",
            )

        invoice_lines = []
        for order_line in order.lines:
            quantity = received.get(order_line.product_id, 0)
            if quantity == 0:
                continue
            if quantity > order_line.pending_quantity:
                raise ValidationError(
                    f"Cannot receive {quantity} of product {order_line.product_id}; "
                    f"pending: {order_line.pending_quantity}",
                    field="received_items",
                    product_id=order_line.product_id,
                )
            invoice_lines.append({
                "product_id": order_line.product_id,
                "quantity": quantity,
                "unit_price": order_line.unit_price,
                "vat_rate": order_line.vat_rate,
            })
            order_line.received_quantity = (order_line.received_quantity or 0) + quantity

        breakdown = _vat_breakdown(invoice_lines)
        total = breakdown["gravada_10"] + breakdown["gravada_5"] + breakdown["exenta"]

        invoice = PurchaseInvoice(
            purchase_order_id=order.id,
            supplier_id=order.supplier_id,
            location_id=order.location_id,
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            total=total,
            created_by=actor,
            **breakdown,
        )
        for line in invoice_lines:
            invoice.lines.append(PurchaseInvoiceLine(**line))
        tx.add(invoice)

        tx.create(
            VatLedgerEntry,
            purchase_invoice_id=invoice.id,
            supplier_id=order.supplier_id,
            document_type="INVOICE",
            document_number=invoice_number,
            document_date=invoice_date,
            total=total,
            **breakdown,
        )

        tx.create(
            Payable,
            purchase_invoice_id=invoice.id,
            supplier_id=order.supplier_id,
            invoice_total=total,
            total_amount=total,
            outstanding_balance=total,
            paid_amount=0,
            due_date=add_days(invoice_date, due_days),
            status=PAYABLE_STATUS_PENDING,
        )

        for line in invoice_lines:
            adjust_stock(
                tx,
                product_id=line["product_id"],
                location_id=order.location_id,
                delta=line["quantity"],
            )
            append_movement(
                tx,
                kind=MOVEMENT_PURCHASE_RECEIPT,
                product_id=line["product_id"],
                quantity=line["quantity"],
                to_location_id=order.location_id,
                reason=f"Invoice {invoice_number}",
                actor=actor,
                reference_type="purchase_invoice",
                reference_id=invoice.id,
            )

        fully_received = all(line.pending_quantity == 0 for line in order.lines)
        tx.update(order, status=PO_STATUS_RECEIVED if fully_received else PO_STATUS_PARTIALLY_RECEIVED)

        return invoice

    return store.run_transaction(_op)
