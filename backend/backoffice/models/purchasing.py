from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z, to_iso_date


def _money(value) -> str | None:
    # Decimal VAT amounts serialize as strings to keep exact cents
    return str(value) if value is not None else None


class SupplierQuote(db.Model):
    """
    Quotation received from a supplier; purchase orders are placed from
    approved quotes.

    LIFECYCLE:
    1. RECEIVED: Registered, awaiting a decision
    2. APPROVED: Accepted; a purchase order may be created from it
    3. REJECTED: Declined (terminal)
    4. PROCESSED: A purchase order was created from it (terminal)
    """
    __tablename__ = "supplier_quotes"
    __table_args__ = (
        db.Index("ix_supplier_quotes_supplier_status", "supplier_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.String(64), nullable=False)
    location_id = db.Column(db.String(64), nullable=False)
    quote_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="RECEIVED", index=True)
    total = db.Column(db.BigInteger, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    resolved_by = db.Column(db.String(64), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    lines = db.relationship(
        "SupplierQuoteLine",
        backref="supplier_quote",
        lazy=True,
        order_by="SupplierQuoteLine.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "location_id": self.location_id,
            "quote_date": to_iso_date(self.quote_date),
            "status": self.status,
            "total": self.total,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "resolved_by": self.resolved_by,
            "resolved_at": to_utc_z(self.resolved_at),
            "version_id": self.version_id,
            "lines": [line.to_dict() for line in self.lines],
        }


class SupplierQuoteLine(db.Model):
    __tablename__ = "supplier_quote_lines"
    __table_args__ = (
        db.UniqueConstraint("supplier_quote_id", "product_id", name="uq_supplier_quote_lines_quote_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_quote_id = db.Column(db.Integer, db.ForeignKey("supplier_quotes.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.BigInteger, nullable=False)
    vat_rate = db.Column(db.Integer, nullable=False)

    def to_item(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "vat_rate": self.vat_rate,
        }

    def to_dict(self) -> dict:
        return {"id": self.id, **self.to_item()}


class PurchaseOrder(db.Model):
    """
    Order placed with a supplier, received (possibly in parts) into one location.

    LIFECYCLE:
    1. PENDING_RECEIPT: Created, nothing received yet
    2. PARTIALLY_RECEIVED: At least one purchase registered, quantities still pending
    3. RECEIVED: Every ordered quantity received
    4. CANCELLED: Cancelled before any receipt
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_supplier_status", "supplier_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.String(64), nullable=False)
    location_id = db.Column(db.String(64), nullable=False)

    # Approved supplier quotation the order was placed from, if any
    supplier_quote_id = db.Column(
        db.Integer, db.ForeignKey("supplier_quotes.id"), nullable=True, unique=True, index=True
    )

    status = db.Column(db.String(24), nullable=False, default="PENDING_RECEIPT", index=True)
    total = db.Column(db.BigInteger, nullable=False, default=0)

    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    supplier_quote = db.relationship("SupplierQuote", backref=db.backref("purchase_order", uselist=False))
    lines = db.relationship(
        "PurchaseOrderLine",
        backref="purchase_order",
        lazy=True,
        order_by="PurchaseOrderLine.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "location_id": self.location_id,
            "supplier_quote_id": self.supplier_quote_id,
            "status": self.status,
            "total": self.total,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
            "lines": [line.to_dict() for line in self.lines],
        }


class PurchaseOrderLine(db.Model):
    __tablename__ = "purchase_order_lines"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "product_id", name="uq_po_lines_order_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.BigInteger, nullable=False)
    vat_rate = db.Column(db.Integer, nullable=False)  # 10, 5 or 0 (exempt)
    received_quantity = db.Column(db.Integer, nullable=False, default=0)

    @property
    def pending_quantity(self) -> int:
        return self.quantity - (self.received_quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "vat_rate": self.vat_rate,
            "received_quantity": self.received_quantity,
            "pending_quantity": self.pending_quantity,
        }


class PurchaseInvoice(db.Model):
    """
    Supplier invoice registered when goods of a purchase order are received.

    IMMUTABLE after creation: later corrections happen only through credit
    and debit notes. VAT breakdown amounts (gravada_*) are VAT-inclusive
    gross amounts per rate; iva_* are the VAT contained in them.
    """
    __tablename__ = "purchase_invoices"
    __table_args__ = (
        db.UniqueConstraint("supplier_id", "invoice_number", name="uq_purchase_invoices_supplier_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    supplier_id = db.Column(db.String(64), nullable=False, index=True)
    location_id = db.Column(db.String(64), nullable=False)
    invoice_number = db.Column(db.String(64), nullable=False)
    invoice_date = db.Column(db.Date, nullable=False, index=True)

    total = db.Column(db.BigInteger, nullable=False)
    gravada_10 = db.Column(db.BigInteger, nullable=False, default=0)
    gravada_5 = db.Column(db.BigInteger, nullable=False, default=0)
    exenta = db.Column(db.BigInteger, nullable=False, default=0)
    iva_10 = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    iva_5 = db.Column(db.Numeric(16, 2), nullable=False, default=0)

    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase_order = db.relationship("PurchaseOrder", backref=db.backref("invoices", lazy=True))
    lines = db.relationship(
        "PurchaseInvoiceLine",
        backref="invoice",
        lazy=True,
        order_by="PurchaseInvoiceLine.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "supplier_id": self.supplier_id,
            "location_id": self.location_id,
            "invoice_number": self.invoice_number,
            "invoice_date": to_iso_date(self.invoice_date),
            "total": self.total,
            "vat_breakdown": {
                "gravada_10": self.gravada_10,
                "gravada_5": self.gravada_5,
                "exenta": self.exenta,
                "iva_10": _money(self.iva_10),
                "iva_5": _money(self.iva_5),
            },
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class PurchaseInvoiceLine(db.Model):
    __tablename__ = "purchase_invoice_lines"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    purchase_invoice_id = db.Column(db.Integer, db.ForeignKey("purchase_invoices.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.BigInteger, nullable=False)
    vat_rate = db.Column(db.Integer, nullable=False)

    @property
    def subtotal(self) -> int:
        return self.quantity * self.unit_price

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "vat_rate": self.vat_rate,
            "subtotal": self.subtotal,
        }


class Payable(db.Model):
    """
    Account payable created 1:1 with a purchase invoice.

    BALANCE INVARIANT:
        outstanding_balance = invoice_total - sum(credit notes)
                              + sum(debit notes) - paid_amount
        total_amount        = invoice_total + sum(debit notes)

    Mutated only through services.ledger_service.adjust_payable.
    """
    __tablename__ = "payables"
    __table_args__ = (
        db.CheckConstraint("outstanding_balance >= 0", name="ck_payables_outstanding_non_negative"),
        db.Index("ix_payables_supplier_status", "supplier_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_invoice_id = db.Column(
        db.Integer, db.ForeignKey("purchase_invoices.id"), nullable=False, unique=True, index=True
    )
    supplier_id = db.Column(db.String(64), nullable=False)

    invoice_total = db.Column(db.BigInteger, nullable=False)
    total_amount = db.Column(db.BigInteger, nullable=False)
    outstanding_balance = db.Column(db.BigInteger, nullable=False)
    paid_amount = db.Column(db.BigInteger, nullable=False, default=0)

    due_date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)  # PENDING, PARTIALLY_PAID, PAID

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    invoice = db.relationship("PurchaseInvoice", backref=db.backref("payable", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_invoice_id": self.purchase_invoice_id,
            "supplier_id": self.supplier_id,
            "invoice_total": self.invoice_total,
            "total_amount": self.total_amount,
            "outstanding_balance": self.outstanding_balance,
            "paid_amount": self.paid_amount,
            "due_date": to_iso_date(self.due_date),
            "status": self.status,
            "version_id": self.version_id,
        }


class CreditNote(db.Model):
    """
    Supplier credit note (goods returned): lowers the payable and takes the
    returned quantities out of stock at the invoice location.
    """
    __tablename__ = "credit_notes"
    __table_args__ = (
        db.UniqueConstraint("supplier_id", "note_number", name="uq_credit_notes_supplier_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_invoice_id = db.Column(db.Integer, db.ForeignKey("purchase_invoices.id"), nullable=False, index=True)
    supplier_id = db.Column(db.String(64), nullable=False)
    note_number = db.Column(db.String(64), nullable=False)
    note_date = db.Column(db.Date, nullable=False)
    reason = db.Column(db.Text, nullable=False)
    total = db.Column(db.BigInteger, nullable=False)

    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("PurchaseInvoice", backref=db.backref("credit_notes", lazy=True))
    lines = db.relationship(
        "CreditNoteLine",
        backref="credit_note",
        lazy=True,
        order_by="CreditNoteLine.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_invoice_id": self.purchase_invoice_id,
            "supplier_id": self.supplier_id,
            "note_number": self.note_number,
            "note_date": to_iso_date(self.note_date),
            "reason": self.reason,
            "total": self.total,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class CreditNoteLine(db.Model):
    __tablename__ = "credit_note_lines"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    credit_note_id = db.Column(db.Integer, db.ForeignKey("credit_notes.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False)
    quantity_adjusted = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.BigInteger, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity_adjusted": self.quantity_adjusted,
            "unit_price": self.unit_price,
            "subtotal": self.quantity_adjusted * self.unit_price,
        }


class DebitNote(db.Model):
    """
    Supplier debit note (extra charges): raises the payable and adds a VAT
    book entry. No stock effect.
    """
    __tablename__ = "debit_notes"
    __table_args__ = (
        db.UniqueConstraint("supplier_id", "note_number", name="uq_debit_notes_supplier_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_invoice_id = db.Column(db.Integer, db.ForeignKey("purchase_invoices.id"), nullable=False, index=True)
    supplier_id = db.Column(db.String(64), nullable=False)
    note_number = db.Column(db.String(64), nullable=False)
    note_date = db.Column(db.Date, nullable=False)
    reason = db.Column(db.Text, nullable=False)

    gravada_10 = db.Column(db.BigInteger, nullable=False, default=0)
    gravada_5 = db.Column(db.BigInteger, nullable=False, default=0)
    exenta = db.Column(db.BigInteger, nullable=False, default=0)
    iva_10 = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    iva_5 = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    total = db.Column(db.BigInteger, nullable=False)

    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("PurchaseInvoice", backref=db.backref("debit_notes", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_invoice_id": self.purchase_invoice_id,
            "supplier_id": self.supplier_id,
            "note_number": self.note_number,
            "note_date": to_iso_date(self.note_date),
            "reason": self.reason,
            "vat_breakdown": {
                "gravada_10": self.gravada_10,
                "gravada_5": self.gravada_5,
                "exenta": self.exenta,
                "iva_10": _money(self.iva_10),
                "iva_5": _money(self.iva_5),
            },
            "total": self.total,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class VatLedgerEntry(db.Model):
    """
    Purchase VAT book (libro IVA compras) line.

    One entry per registered invoice and one per debit note; debit-note
    entries reference both the original invoice and the note.
    """
    __tablename__ = "vat_ledger_entries"
    __table_args__ = (
        db.Index("ix_vat_ledger_document_date", "document_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_invoice_id = db.Column(db.Integer, db.ForeignKey("purchase_invoices.id"), nullable=False, index=True)
    debit_note_id = db.Column(db.Integer, db.ForeignKey("debit_notes.id"), nullable=True, index=True)
    supplier_id = db.Column(db.String(64), nullable=False)
    document_type = db.Column(db.String(16), nullable=False)  # INVOICE, DEBIT_NOTE
    document_number = db.Column(db.String(64), nullable=False)
    document_date = db.Column(db.Date, nullable=False)

    gravada_10 = db.Column(db.BigInteger, nullable=False, default=0)
    iva_10 = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    gravada_5 = db.Column(db.BigInteger, nullable=False, default=0)
    iva_5 = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    exenta = db.Column(db.BigInteger, nullable=False, default=0)
    total = db.Column(db.BigInteger, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_invoice_id": self.purchase_invoice_id,
            "debit_note_id": self.debit_note_id,
            "supplier_id": self.supplier_id,
            "document_type": self.document_type,
            "document_number": self.document_number,
            "document_date": to_iso_date(self.document_date),
            "gravada_10": self.gravada_10,
            "iva_10": _money(self.iva_10),
            "gravada_5": self.gravada_5,
            "iva_5": _money(self.iva_5),
            "exenta": self.exenta,
            "total": self.total,
            "created_at": to_utc_z(self.created_at),
        }
