from .inventory import StockRecord, StockMovement
from .purchasing import (
    SupplierQuote, SupplierQuoteLine,
    PurchaseOrder, PurchaseOrderLine, PurchaseInvoice, PurchaseInvoiceLine,
    Payable, CreditNote, CreditNoteLine, DebitNote, VatLedgerEntry,
)
from .service import ServiceItem, ServiceQuote, ServiceQuoteLine, WorkRecord, Warranty, PickupRecord
from .documents import DocumentSequence

__all__ = [
    'StockRecord', 'StockMovement',
    'SupplierQuote', 'SupplierQuoteLine',
    'PurchaseOrder', 'PurchaseOrderLine', 'PurchaseInvoice', 'PurchaseInvoiceLine',
    'Payable', 'CreditNote', 'CreditNoteLine', 'DebitNote', 'VatLedgerEntry',
    'ServiceItem', 'ServiceQuote', 'ServiceQuoteLine', 'WorkRecord', 'Warranty', 'PickupRecord',
    'DocumentSequence',
]
