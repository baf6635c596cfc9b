# Overview: Document-store facade over the SQLAlchemy session; the only persistence seam the core uses.

"""
Document Store

Collections are mapped classes, documents are rows. Operations read
current state through a Transaction, validate, and write; the store
commits the whole unit of work or rolls all of it back.

CONTRACT:
- get(collection, id) / query(collection, filters, order): plain reads
- run_transaction(fn): fn(tx) runs with tx.get/query/first/create/update;
  commit on return, rollback on any exception
- concurrency failures at flush/commit surface as TransactionConflict

FILTERS:
- mapping -> equality on every key: {"product_id": "P1"}
- list of (field, op, value) with op in == != < <= > >= in
ORDER:
- list of field names; "-field" sorts descending. Defaults to id ascending.
"""

from __future__ import annotations

import operator
from typing import Any, Callable, Iterable, Mapping, TypeVar

from ..extensions import db
from ..errors import TransactionConflict
from ..models import (
    StockRecord,
    StockMovement,
    SupplierQuote,
    PurchaseOrder,
    PurchaseInvoice,
    Payable,
    CreditNote,
    DebitNote,
    VatLedgerEntry,
    ServiceItem,
    ServiceQuote,
    WorkRecord,
    PickupRecord,
    Warranty,
    DocumentSequence,
)
from .concurrency import CONFLICT_ERRORS, lock_for_update

T = TypeVar("T")


COLLECTIONS = {
    "stock": StockRecord,
    "stock_movements": StockMovement,
    "supplier_quotes": SupplierQuote,
    "purchase_orders": PurchaseOrder,
    "purchase_invoices": PurchaseInvoice,
    "payables": Payable,
    "credit_notes": CreditNote,
    "debit_notes": DebitNote,
    "vat_ledger": VatLedgerEntry,
    "service_items": ServiceItem,
    "service_quotes": ServiceQuote,
    "work_records": WorkRecord,
    "pickups": PickupRecord,
    "warranties": Warranty,
    "document_sequences": DocumentSequence,
}

_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda column, value: column.in_(value),
}


def model_for(collection):
    if isinstance(collection, str):
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection {collection!r}")
    return collection


def _column(model, field: str):
    column = getattr(model, field, None)
    if column is None:
        raise ValueError(f"{model.__name__} has no field {field!r}")
    return column


def _normalize_filters(filters) -> Iterable[tuple[str, str, Any]]:
    if not filters:
        return []
    if isinstance(filters, Mapping):
        return [(field, "==", value) for field, value in filters.items()]
    return list(filters)


def build_query(session, collection, filters=None, order=None, *, lock: bool = False, limit: int | None = None):
    model = model_for(collection)
    query = session.query(model)

    for field, op, value in _normalize_filters(filters):
        try:
            compare = _OPERATORS[op]
        except KeyError:
            raise ValueError(f"Unsupported filter operator {op!r}")
        query = query.filter(compare(_column(model, field), value))

    if order:
        for field in order:
            descending = field.startswith("-")
            column = _column(model, field.lstrip("-"))
            query = query.order_by(column.desc() if descending else column.asc())
    else:
        query = query.order_by(model.id.asc())

    if limit is not None:
        query = query.limit(limit)
    if lock:
        query = lock_for_update(query)
    return query


class Transaction:
    """Reads and writes scoped to one unit of work."""

    def __init__(self, session):
        self.session = session

    def get(self, collection, doc_id, *, lock: bool = False):
        model = model_for(collection)
        query = self.session.query(model).filter(model.id == doc_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def query(self, collection, filters=None, order=None, *, lock: bool = False, limit: int | None = None) -> list:
        return build_query(self.session, collection, filters, order, lock=lock, limit=limit).all()

    def first(self, collection, filters=None, order=None, *, lock: bool = False):
        return build_query(self.session, collection, filters, order, lock=lock).first()

    def create(self, collection, **values):
        """Insert a new document and flush so its id is assigned."""
        model = model_for(collection)
        document = model(**values)
        self.session.add(document)
        self.session.flush()
        return document

    def add(self, document):
        self.session.add(document)
        self.session.flush()
        return document

    def update(self, document, **values):
        """
        Apply field changes and flush.

        Flushing here makes a version mismatch fail at the write that caused
        it, inside the same unit of work.
        """
        for field, value in values.items():
            _column(type(document), field)
            setattr(document, field, value)
        self.session.flush()
        return document


class DocumentStore:
    """Store bound to the Flask-SQLAlchemy scoped session."""

    @property
    def session(self):
        return db.session

    def get(self, collection, doc_id):
        return self.session.get(model_for(collection), doc_id)

    def query(self, collection, filters=None, order=None, *, limit: int | None = None) -> list:
        return build_query(self.session, collection, filters, order, limit=limit).all()

    def run_transaction(self, fn: Callable[[Transaction], T]) -> T:
        session = self.session
        tx = Transaction(session)
        try:
            result = fn(tx)
            session.commit()
        except CONFLICT_ERRORS as exc:
            session.rollback()
            raise TransactionConflict() from exc
        except Exception:
            session.rollback()
            raise
        return result


store = DocumentStore()
