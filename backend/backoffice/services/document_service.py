# Overview: Service-layer operations for document numbering.

from __future__ import annotations

from sqlalchemy import update

from ..errors import ValidationError
from ..models import DocumentSequence
from .store import Transaction


def next_document_number(
    tx: Transaction,
    *,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Allocate the next document number for a type inside the caller's transaction.

    The increment is a single UPDATE ... SET next_number = next_number + 1,
    so two concurrent allocations serialize on the row; the first allocation
    for a type inserts the row and a concurrent duplicate insert fails the
    unique constraint, which the store reports as a TransactionConflict.
    """
    if not document_type:
        raise ValidationError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = tx.session.execute(stmt)
    if result.rowcount:
        current = (
            tx.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        tx.create(DocumentSequence, document_type=document_type, next_number=2)
        next_num = 1

    return f"{prefix}-{next_num:0{pad}d}"
