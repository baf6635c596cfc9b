# Overview: Typed command objects and the dispatcher that turns core operations into Results.

"""
Command Boundary

Callers build one command per operation and hand it to execute(). The
dispatcher runs the matching service inside the retry policy and returns a
Result: business failures come back as typed errors, never as exceptions.

RETRY: a TransactionConflict is retried with fresh reads up to
TRANSACTION_ATTEMPTS (first try + one retry by default); if the last
attempt also conflicts the conflict itself is returned.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Optional

from flask import current_app

from .errors import CoreError, Result, TransactionConflict
from .services import (
    inventory_service,
    purchase_service,
    reconciliation_service,
    service_order_service,
    transfer_service,
)
from .services.concurrency import run_with_retry


# Inventory

@dataclass(frozen=True)
class RecordAdjustmentCommand:
    product_id: str
    location_id: str
    direction: str
    quantity: int
    reason: str
    actor: str


@dataclass(frozen=True)
class TransferStockCommand:
    product_id: str
    from_location_id: str
    to_location_id: str
    quantity: int
    reason: str
    actor: str


# Purchasing

@dataclass(frozen=True)
class CreateSupplierQuoteCommand:
    supplier_id: str
    location_id: str
    line_items: list
    actor: str
    quote_date: Any = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ResolveSupplierQuoteCommand:
    supplier_quote_id: int
    decision: str
    actor: str


@dataclass(frozen=True)
class CreatePurchaseOrderCommand:
    supplier_id: str
    location_id: str
    actor: str
    line_items: list = field(default_factory=list)
    supplier_quote_id: Optional[int] = None


@dataclass(frozen=True)
class RegisterPurchaseCommand:
    purchase_order_id: int
    invoice_number: str
    invoice_date: Any
    received_items: list
    actor: str


@dataclass(frozen=True)
class CancelPurchaseOrderCommand:
    purchase_order_id: int
    actor: str


@dataclass(frozen=True)
class ApplyCreditNoteCommand:
    purchase_invoice_id: int
    note_number: str
    note_date: Any
    reason: str
    line_items: list
    actor: str


@dataclass(frozen=True)
class ApplyDebitNoteCommand:
    purchase_invoice_id: int
    note_number: str
    note_date: Any
    reason: str
    vat_breakdown: dict
    actor: str


# Service orders

@dataclass(frozen=True)
class RegisterReceptionCommand:
    client_id: str
    equipments: list
    actor: str
    location_id: Optional[str] = None


@dataclass(frozen=True)
class DiagnoseCommand:
    service_item_id: int
    technician_id: str
    diagnosis: str
    recommended_work: str
    actor: str


@dataclass(frozen=True)
class CreateQuoteCommand:
    service_item_id: int
    line_items: list
    actor: str
    notes: Optional[str] = None


@dataclass(frozen=True)
class ResolveQuoteCommand:
    quote_id: int
    decision: str
    actor: str


@dataclass(frozen=True)
class CompleteWorkCommand:
    quote_id: int
    technician_id: str
    hours: Any
    actor: str
    items_used: list = field(default_factory=list)
    items_added: list = field(default_factory=list)
    warranty_covered_item_ids: list = field(default_factory=list)
    notes: Optional[str] = None


@dataclass(frozen=True)
class RegisterPickupCommand:
    service_item_id: int
    recipient_name: str
    recipient_id: str
    actor: str
    amount_charged: Any = 0
    payment_ref: Optional[str] = None
    validity_days: Any = None
    covered_items: Optional[list] = None


@dataclass(frozen=True)
class FileWarrantyClaimCommand:
    warranty_id: int
    reported_problem: str
    actor: str
    accessories: Optional[str] = None


HANDLERS = {
    RecordAdjustmentCommand: inventory_service.record_adjustment,
    TransferStockCommand: transfer_service.transfer_stock,
    CreateSupplierQuoteCommand: purchase_service.create_supplier_quote,
    ResolveSupplierQuoteCommand: purchase_service.resolve_supplier_quote,
    CreatePurchaseOrderCommand: purchase_service.create_purchase_order,
    RegisterPurchaseCommand: purchase_service.register_purchase,
    CancelPurchaseOrderCommand: purchase_service.cancel_purchase_order,
    ApplyCreditNoteCommand: reconciliation_service.apply_credit_note,
    ApplyDebitNoteCommand: reconciliation_service.apply_debit_note,
    RegisterReceptionCommand: service_order_service.register_reception,
    DiagnoseCommand: service_order_service.diagnose,
    CreateQuoteCommand: service_order_service.create_quote,
    ResolveQuoteCommand: service_order_service.resolve_quote,
    CompleteWorkCommand: service_order_service.complete_work,
    RegisterPickupCommand: service_order_service.register_pickup,
    FileWarrantyClaimCommand: service_order_service.file_warranty_claim,
}


def _arguments(command) -> dict:
    return {f.name: getattr(command, f.name) for f in fields(command)}


def execute(command) -> Result:
    """
    Run a command and return its Result.

    Raises:
        TypeError: command type has no handler (programming error)
    """
    name = type(command).__name__
    handler = HANDLERS.get(type(command))
    if handler is None:
        raise TypeError(f"No handler registered for {name}")

    logger = current_app.logger
    kwargs = _arguments(command)
    logger.info("Executing %s (actor=%s)", name, kwargs.get("actor"))

    try:
        value = run_with_retry(
            lambda: handler(**kwargs),
            attempts=current_app.config["TRANSACTION_ATTEMPTS"],
        )
    except TransactionConflict as exc:
        logger.warning("%s gave up after repeated write conflicts", name)
        return Result.failure(exc)
    except CoreError as exc:
        logger.info("%s rejected: %s: %s", name, exc.kind, exc.message)
        return Result.failure(exc)

    return Result.success(value)
