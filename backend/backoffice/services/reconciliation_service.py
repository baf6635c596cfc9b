# Overview: Service-layer operations for supplier credit and debit notes against purchase invoices.

"""
Purchase Reconciliation

CREDIT NOTE (goods returned to the supplier), one transaction:
- CreditNote + lines; total = sum(quantity_adjusted * unit_price)
- Payable.outstanding_balance -= total
- Stock at the invoice location -= quantity_adjusted per line (SUPPLIER_RETURN)

DEBIT NOTE (extra charges), one transaction:
- DebitNote with gross-per-rate breakdown and contained VAT
- Payable.outstanding_balance and total_amount += total
- VatLedgerEntry referencing the invoice and the note

Note numbers are unique per supplier for each note type.
"""

from __future__ import annotations

from datetime import date

from ..errors import NotFound, ValidationError
from ..models import CreditNote, CreditNoteLine, DebitNote, PurchaseInvoice, VatLedgerEntry
from ..models.inventory import MOVEMENT_SUPPLIER_RETURN
from ..validation import (
    require_date,
    require_mapping,
    require_non_negative_int,
    require_text,
    vat_from_gross,
)
from .ledger_service import adjust_payable, adjust_stock, append_movement
from .store import Transaction, store


def _load_invoice(tx: Transaction, purchase_invoice_id: int) -> PurchaseInvoice:
    invoice = tx.get(PurchaseInvoice, purchase_invoice_id)
    if invoice is None:
        raise NotFound("PurchaseInvoice", purchase_invoice_id)
    if invoice.payable is None:
        raise NotFound("Payable", f"for invoice {purchase_invoice_id}")
    return invoice


def _credited_quantities(invoice: PurchaseInvoice) -> dict[str, int]:
    credited: dict[str, int] = {}
    for note in invoice.credit_notes:
        for line in note.lines:
            credited[line.product_id] = credited.get(line.product_id, 0) + line.quantity_adjusted
    return credited


def _parse_credit_lines(line_items) -> list[dict]:
    lines = []
    for index, item in enumerate(line_items or []):
        item = require_mapping(item, f"line_items[{index}]")
        product_id = require_text(item.get("product_id"), f"line_items[{index}].product_id")
        quantity = require_non_negative_int(
            item.get("quantity_adjusted"), f"line_items[{index}].quantity_adjusted"
        )
        unit_price = item.get("unit_price")
        if unit_price is not None:
            unit_price = require_non_negative_int(unit_price, f"line_items[{index}].unit_price")
        if quantity == 0:
            continue
        lines.append({"product_id": product_id, "quantity_adjusted": quantity, "unit_price": unit_price})

    if not lines:
        raise ValidationError("At least one line must return a quantity greater than zero", field="line_items")
    return lines


def apply_credit_note(
    *,
    purchase_invoice_id: int,
    note_number: str,
    note_date: date | str,
    reason: str,
    line_items: list[dict],
    actor: str,
) -> CreditNote:
    """
    Register a supplier credit note for returned goods.

    Args:
        purchase_invoice_id: Invoice being credited
        note_number: Supplier's credit note number
        note_date: Note date (ISO-8601)
        reason: Free-text justification
        line_items: [{"product_id", "quantity_adjusted", "unit_price"?}];
            unit_price defaults to the invoice line price
        actor: User registering the note

    Raises:
        NotFound: invoice (or its payable) does not exist
        ValidationError: duplicate note number, over-return, credit larger
            than the outstanding balance
        InsufficientStock: returned goods are no longer on hand
    """
    note_number = require_text(note_number, "note_number")
    note_date = require_date(note_date, "note_date")
    reason = require_text(reason, "reason")
    actor = require_text(actor, "actor")
    lines = _parse_credit_lines(line_items)

    def _op(tx: Transaction) -> CreditNote:
        invoice = _load_invoice(tx, purchase_invoice_id)

        duplicate = tx.first(CreditNote, {"supplier_id": invoice.supplier_id, "note_number": note_number})
        if duplicate is not None:
            raise ValidationError(
                f"Credit note {note_number} is already registered for supplier {invoice.supplier_id}",
                field="note_number",
            )

        purchased: dict[str, int] = {}
        prices: dict[str, int] = {}
        for invoice_line in invoice.lines:
            purchased[invoice_line.product_id] = purchased.get(invoice_line.product_id, 0) + invoice_line.quantity
            prices.setdefault(invoice_line.product_id, invoice_line.unit_price)
        credited = _credited_quantities(invoice)

        requested: dict[str, int] = {}
        for line in lines:
            product_id = line["product_id"]
            if product_id not in purchased:
                raise ValidationError(
                    f"Product {product_id} is not on invoice {invoice.invoice_number}",
                    field="line_items",
                    product_id=product_id,
                )
            requested[product_id] = requested.get(product_id, 0) + line["quantity_adjusted"]
            returnable = purchased[product_id] - credited.get(product_id, 0)
            if requested[product_id] > returnable:
                raise ValidationError(
                    f"Cannot return {requested[product_id]} of product {product_id}; "
                    f"purchased {purchased[product_id]}, returnable {returnable}",
                    field="line_items",
                    product_id=product_id,
                )
            if line["unit_price"] is None:
                line["unit_price"] = prices[product_id]

        total = sum(line["quantity_adjusted"] * line["unit_price"] for line in lines)

        note = CreditNote(
            purchase_invoice_id=invoice.id,
            supplier_id=invoice.supplier_id,
            note_number=note_number,
            note_date=note_date,
            reason=reason,
            total=total,
            created_by=actor,
        )
        for line in lines:
            note.lines.append(CreditNoteLine(**line))
        tx.add(note)

        adjust_payable(tx, invoice.payable.id, delta=-total)

        for line in lines:
            adjust_stock(
                tx,
                product_id=line["product_id"],
                location_id=invoice.location_id,
                delta=-line["quantity_adjusted"],
            )
            append_movement(
                tx,
                kind=MOVEMENT_SUPPLIER_RETURN,
                product_id=line["product_id"],
                quantity=line["quantity_adjusted"],
                from_location_id=invoice.location_id,
                reason=f"Credit note {note_number}",
                actor=actor,
                reference_type="credit_note",
                reference_id=note.id,
            )

        return note

    return store.run_transaction(_op)


def _parse_breakdown(vat_breakdown) -> dict:
    vat_breakdown = require_mapping(vat_breakdown or {}, "vat_breakdown")
    breakdown = {
        field: require_non_negative_int(vat_breakdown.get(field, 0), f"vat_breakdown.{field}")
        for field in ("gravada_10", "gravada_5", "exenta")
    }
    breakdown["iva_10"] = vat_from_gross(breakdown["gravada_10"], 10)
    breakdown["iva_5"] = vat_from_gross(breakdown["gravada_5"], 5)
    return breakdown


def apply_debit_note(
    *,
    purchase_invoice_id: int,
    note_number: str,
    note_date: date | str,
    reason: str,
    vat_breakdown: dict,
    actor: str,
) -> DebitNote:
    """
    Register a supplier debit note (additional charges on an invoice).

    Args:
        vat_breakdown: {"gravada_10", "gravada_5", "exenta"} VAT-inclusive
            gross amounts; VAT is derived as gravada_10 / 11 and gravada_5 / 21

    Raises:
        NotFound: invoice (or its payable) does not exist
        ValidationError: duplicate note number for the supplier, negative
            amounts, zero total
    """
    note_number = require_text(note_number, "note_number")
    note_date = require_date(note_date, "note_date")
    reason = require_text(reason, "reason")
    actor = require_text(actor, "actor")
    breakdown = _parse_breakdown(vat_breakdown)

    total = breakdown["gravada_10"] + breakdown["gravada_5"] + breakdown["exenta"]
    if total <= 0:
        raise ValidationError("Debit note total must be greater than zero", field="vat_breakdown")

    def _op(tx: Transaction) -> DebitNote:
        invoice = _load_invoice(tx, purchase_invoice_id)

        duplicate = tx.first(DebitNote, {"supplier_id": invoice.supplier_id, "note_number": note_number})
        if duplicate is not None:
            raise ValidationError(
                f"Debit note {note_number} is already registered for supplier {invoice.supplier_id}",
                field="note_number",
            )

        note = tx.create(
            DebitNote,
            purchase_invoice_id=invoice.id,
            supplier_id=invoice.supplier_id,
            note_number=note_number,
            note_date=note_date,
            reason=reason,
            total=total,
            created_by=actor,
            **breakdown,
        )

        adjust_payable(tx, invoice.payable.id, delta=total, total_delta=total)

        tx.create(
            VatLedgerEntry,
            purchase_invoice_id=invoice.id,
            debit_note_id=note.id,
            supplier_id=invoice.supplier_id,
            document_type="DEBIT_NOTE",
            document_number=note_number,
            document_date=note_date,
            total=total,
            **breakdown,
        )

        return note

    return store.run_transaction(_op)
