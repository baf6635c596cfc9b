# Overview: Read-side resolution of related document chains; no mutation.

"""
Document Reference Resolver

SERVICE ITEM CHAIN:
    item -> quotes -> work record -> pickup -> warranty
    (+ the warranty the item re-entered under, + items spawned by claims)

PURCHASE CHAIN:
    supplier quote -> purchase order -> invoice -> payable
    -> credit notes / debit notes
    (+ VAT book entries)

The quote lookups take a reader (a Transaction or the store) so mutating
operations can check their preconditions against the same unit of work.
"""

from __future__ import annotations

from ..errors import NotFound
from ..models import (
    PickupRecord,
    PurchaseInvoice,
    ServiceItem,
    ServiceQuote,
    VatLedgerEntry,
    Warranty,
)
from .store import store


QUOTE_STATUS_PENDING_APPROVAL = "PENDING_APPROVAL"
QUOTE_STATUS_APPROVED = "APPROVED"
QUOTE_STATUS_REJECTED = "REJECTED"

# A quote in one of these statuses blocks creating another one
BLOCKING_QUOTE_STATUSES = (QUOTE_STATUS_PENDING_APPROVAL, QUOTE_STATUS_APPROVED)


def _first(reader, collection, filters, order=None):
    rows = reader.query(collection, filters, order, limit=1)
    return rows[0] if rows else None


def find_open_quote(reader, service_item_id: int) -> ServiceQuote | None:
    """Pending or approved quote of an item, if any."""
    return _first(
        reader,
        ServiceQuote,
        [("service_item_id", "==", service_item_id), ("status", "in", BLOCKING_QUOTE_STATUSES)],
        ["-id"],
    )


def find_approved_quote(reader, service_item_id: int) -> ServiceQuote | None:
    return _first(
        reader,
        ServiceQuote,
        {"service_item_id": service_item_id, "status": QUOTE_STATUS_APPROVED},
        ["-id"],
    )


def find_last_quote(reader, service_item_id: int) -> ServiceQuote | None:
    return _first(reader, ServiceQuote, {"service_item_id": service_item_id}, ["-id"])


def resolve_service_item_chain(service_item_id: int) -> dict:
    """
    Everything needed to render a service item's detail view.

    Raises:
        NotFound: the item does not exist
    """
    item = store.get(ServiceItem, service_item_id)
    if item is None:
        raise NotFound("ServiceItem", service_item_id)

    quotes = store.query(ServiceQuote, {"service_item_id": item.id})
    approved = next((quote for quote in quotes if quote.status == QUOTE_STATUS_APPROVED), None)
    work_record = approved.work_record if approved is not None else None
    pickup = _first(store, PickupRecord, {"service_item_id": item.id})
    warranty = _first(store, Warranty, {"service_item_id": item.id}, ["-id"])

    origin_warranty = None
    if item.warranty_origin_id is not None:
        origin_warranty = store.get(Warranty, item.warranty_origin_id)

    claim_items = []
    if warranty is not None:
        claim_items = store.query(ServiceItem, {"warranty_origin_id": warranty.id})

    return {
        "service_item": item.to_dict(),
        "quotes": [quote.to_dict() for quote in quotes],
        "open_quote_id": next(
            (quote.id for quote in quotes if quote.status in BLOCKING_QUOTE_STATUSES), None
        ),
        "work_record": work_record.to_dict() if work_record else None,
        "pickup": pickup.to_dict() if pickup else None,
        "warranty": warranty.to_dict() if warranty else None,
        "warranty_origin": origin_warranty.to_dict() if origin_warranty else None,
        "warranty_claim_items": [child.to_dict() for child in claim_items],
    }


def resolve_purchase_chain(purchase_invoice_id: int) -> dict:
    """
    Supplier quote, purchase order, invoice, payable and notes of one invoice.

    Raises:
        NotFound: the invoice does not exist
    """
    invoice = store.get(PurchaseInvoice, purchase_invoice_id)
    if invoice is None:
        raise NotFound("PurchaseInvoice", purchase_invoice_id)

    credit_notes = sorted(invoice.credit_notes, key=lambda note: note.id)
    debit_notes = sorted(invoice.debit_notes, key=lambda note: note.id)
    vat_entries = store.query(VatLedgerEntry, {"purchase_invoice_id": invoice.id})

    order = invoice.purchase_order
    quote = order.supplier_quote if order is not None else None

    return {
        "supplier_quote": quote.to_dict() if quote is not None else None,
        "purchase_order": order.to_dict() if order is not None else None,
        "invoice": invoice.to_dict(),
        "payable": invoice.payable.to_dict() if invoice.payable else None,
        "credit_notes": [note.to_dict() for note in credit_notes],
        "debit_notes": [note.to_dict() for note in debit_notes],
        "vat_entries": [entry.to_dict() for entry in vat_entries],
        "credited_total": sum(note.total for note in credit_notes),
        "debited_total": sum(note.total for note in debit_notes),
    }
