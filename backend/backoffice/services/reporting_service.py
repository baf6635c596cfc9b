# Overview: Service-layer read models for stock, quotes, receptions, technicians, the VAT book and payables aging.

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import func, or_

from ..errors import ValidationError
from ..extensions import db
from ..models import (
    Payable,
    ServiceItem,
    ServiceQuote,
    StockMovement,
    StockRecord,
    VatLedgerEntry,
    WorkRecord,
)
from ..validation import quantize_money
from backoffice.time_utils import parse_iso_date, to_utc_z, today
from .resolver_service import (
    QUOTE_STATUS_APPROVED,
    QUOTE_STATUS_PENDING_APPROVAL,
    QUOTE_STATUS_REJECTED,
)
from .service_order_service import SERVICE_STATES, STATE_DIAGNOSED, STATE_RECEIVED


AGING_BUCKETS = (
    ("current", None, 0),
    ("1_30", 1, 30),
    ("31_60", 31, 60),
    ("61_90", 61, 90),
    ("over_90", 91, None),
)


def _parse_date(value, field: str) -> date | None:
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 date", field=field)


def _parse_dates(date_from, date_to) -> tuple[date | None, date | None]:
    start = _parse_date(date_from, "date_from")
    end = _parse_date(date_to, "date_to")
    if start and end and start > end:
        raise ValidationError("date_from must not be after date_to", field="date_from")
    return start, end


def _parse_range(date_from, date_to) -> tuple[datetime | None, datetime | None]:
    start, end = _parse_dates(date_from, date_to)
    # date_to is inclusive: compare against the start of the next day
    start_dt = datetime.combine(start, time.min) if start else None
    end_dt = datetime.combine(end + timedelta(days=1), time.min) if end else None
    return start_dt, end_dt


def stock_levels(*, location_id: str | None = None, product_id: str | None = None) -> dict:
    query = db.session.query(StockRecord)
    if location_id:
        query = query.filter(StockRecord.location_id == location_id)
    if product_id:
        query = query.filter(StockRecord.product_id == product_id)
    records = query.order_by(StockRecord.location_id.asc(), StockRecord.product_id.asc()).all()

    return {
        "items": [record.to_dict() for record in records],
        "total_quantity": sum(record.quantity for record in records),
    }


def stock_movements(
    *,
    product_id: str | None = None,
    location_id: str | None = None,
    date_from=None,
    date_to=None,
    limit: int = 500,
) -> list[dict]:
    """Movement history, newest first. A location matches either side of a transfer."""
    start_dt, end_dt = _parse_range(date_from, date_to)

    query = db.session.query(StockMovement)
    if product_id:
        query = query.filter(StockMovement.product_id == product_id)
    if location_id:
        query = query.filter(
            or_(StockMovement.from_location_id == location_id, StockMovement.to_location_id == location_id)
        )
    if start_dt:
        query = query.filter(StockMovement.occurred_at >= start_dt)
    if end_dt:
        query = query.filter(StockMovement.occurred_at < end_dt)

    movements = query.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc()).limit(limit).all()
    return [movement.to_dict() for movement in movements]


def quote_analysis(*, date_from=None, date_to=None) -> dict:
    start_dt, end_dt = _parse_range(date_from, date_to)

    query = db.session.query(
        ServiceQuote.status,
        func.count(ServiceQuote.id),
        func.coalesce(func.sum(ServiceQuote.total), 0),
    )
    if start_dt:
        query = query.filter(ServiceQuote.created_at >= start_dt)
    if end_dt:
        query = query.filter(ServiceQuote.created_at < end_dt)
    rows = query.group_by(ServiceQuote.status).all()

    counts = {
        QUOTE_STATUS_PENDING_APPROVAL: 0,
        QUOTE_STATUS_APPROVED: 0,
        QUOTE_STATUS_REJECTED: 0,
    }
    amounts = dict(counts)
    for status, count, amount in rows:
        counts[status] = int(count)
        amounts[status] = int(amount)

    decided = counts[QUOTE_STATUS_APPROVED] + counts[QUOTE_STATUS_REJECTED]
    approval_rate = round(counts[QUOTE_STATUS_APPROVED] * 100 / decided, 2) if decided else 0.0

    return {
        "total_quotes": sum(counts.values()),
        "by_status": counts,
        "amount_by_status": amounts,
        "total_quoted_amount": sum(amounts.values()),
        "approval_rate": approval_rate,
    }


def reception_statistics() -> dict:
    rows = (
        db.session.query(ServiceItem.state, func.count(ServiceItem.id))
        .group_by(ServiceItem.state)
        .all()
    )
    by_state = {state: 0 for state in SERVICE_STATES}
    for state, count in rows:
        by_state[state] = int(count)

    return {
        "total_items": sum(by_state.values()),
        "by_state": by_state,
        "awaiting_diagnosis": by_state[STATE_RECEIVED],
        "diagnosed_without_quote": by_state[STATE_DIAGNOSED],
        "warranty_reentries": (
            db.session.query(func.count(ServiceItem.id))
            .filter(ServiceItem.warranty_origin_id.isnot(None))
            .scalar()
        ),
    }

def _days_between(start, end) -> int:
    return (end.date() - start.date()).days


def technician_performance(*, date_from=None, date_to=None, technician_id: str | None = None) -> dict:
    """
    Completed repairs per technician, with hours booked, cost billed and
    the average days from reception to completion.
    """
    start_dt, end_dt = _parse_range(date_from, date_to)

    query = db.session.query(WorkRecord, ServiceItem).join(
        ServiceItem, ServiceItem.id == WorkRecord.service_item_id
    )
    if technician_id:
        query = query.filter(WorkRecord.technician_id == technician_id)
    if start_dt:
        query = query.filter(WorkRecord.completed_at >= start_dt)
    if end_dt:
        query = query.filter(WorkRecord.completed_at < end_dt)

    stats: dict[str, dict] = {}
    for record, item in query.order_by(WorkRecord.id.asc()).all():
        entry = stats.setdefault(record.technician_id, {
            "technician_id": record.technician_id,
            "completed_repairs": 0,
            "hours": Decimal("0"),
            "billed_cost": 0,
            "days_in_shop": 0,
        })
        entry["completed_repairs"] += 1
        entry["hours"] += Decimal(record.hours)
        entry["billed_cost"] += record.computed_cost
        entry["days_in_shop"] += _days_between(item.received_at, record.completed_at)

    technicians = []
    for entry in stats.values():
        days = entry.pop("days_in_shop")
        entry["hours"] = str(quantize_money(entry["hours"]))
        entry["average_days_in_shop"] = round(days / entry["completed_repairs"], 1)
        technicians.append(entry)
    technicians.sort(key=lambda entry: (-entry["completed_repairs"], entry["technician_id"]))

    return {
        "total_completed": sum(entry["completed_repairs"] for entry in technicians),
        "technicians": technicians,
    }


def diagnosis_history(*, search: str | None = None, technician_id: str | None = None, limit: int = 500) -> list[dict]:
    """Diagnosed items, newest diagnosis first; search matches equipment, client, reception or diagnosis."""
    query = db.session.query(ServiceItem).filter(ServiceItem.diagnosis.isnot(None))
    if technician_id:
        query = query.filter(ServiceItem.technician_id == technician_id)
    if search and search.strip():
        term = f"%{search.strip()}%"
        query = query.filter(or_(
            ServiceItem.equipment_description.ilike(term),
            ServiceItem.client_id.ilike(term),
            ServiceItem.reception_number.ilike(term),
            ServiceItem.diagnosis.ilike(term),
        ))

    items = query.order_by(ServiceItem.diagnosed_at.desc(), ServiceItem.id.desc()).limit(limit).all()
    return [
        {
            "service_item_id": item.id,
            "reception_number": item.reception_number,
            "client_id": item.client_id,
            "equipment_description": item.equipment_description,
            "reported_problem": item.reported_problem,
            "diagnosis": item.diagnosis,
            "recommended_work": item.recommended_work,
            "technician_id": item.technician_id,
            "diagnosed_at": to_utc_z(item.diagnosed_at),
            "state": item.state,
        }
        for item in items
    ]


def vat_purchase_book(*, date_from=None, date_to=None) -> dict:
    """Purchase VAT book entries by document date (newest first) with column totals."""
    start, end = _parse_dates(date_from, date_to)

    query = db.session.query(VatLedgerEntry)
    if start:
        query = query.filter(VatLedgerEntry.document_date >= start)
    if end:
        query = query.filter(VatLedgerEntry.document_date <= end)
    entries = query.order_by(VatLedgerEntry.document_date.desc(), VatLedgerEntry.id.desc()).all()

    iva_10 = sum((Decimal(entry.iva_10) for entry in entries), Decimal("0"))
    iva_5 = sum((Decimal(entry.iva_5) for entry in entries), Decimal("0"))
    return {
        "entries": [entry.to_dict() for entry in entries],
        "totals": {
            "gravada_10": sum(entry.gravada_10 for entry in entries),
            "iva_10": str(quantize_money(iva_10)),
            "gravada_5": sum(entry.gravada_5 for entry in entries),
            "iva_5": str(quantize_money(iva_5)),
            "exenta": sum(entry.exenta for entry in entries),
            "total": sum(entry.total for entry in entries),
        },
    }



def _bucket_for(days_overdue: int) -> str:
    for name, low, high in AGING_BUCKETS:
        if (low is None or days_overdue >= low) and (high is None or days_overdue <= high):
            return name
    return AGING_BUCKETS[-1][0]


def payables_aging(*, as_of=None) -> dict:
    """Outstanding payables grouped by days past due as of a date (default: today)."""
    as_of_date = _parse_date(as_of, "as_of") or today()

    payables = (
        db.session.query(Payable)
        .filter(Payable.outstanding_balance > 0)
        .order_by(Payable.due_date.asc(), Payable.id.asc())
        .all()
    )

    buckets = {name: {"count": 0, "amount": 0, "payables": []} for name, _, _ in AGING_BUCKETS}
    for payable in payables:
        days_overdue = (as_of_date - payable.due_date).days
        bucket = buckets[_bucket_for(days_overdue)]
        bucket["count"] += 1
        bucket["amount"] += payable.outstanding_balance
        bucket["payables"].append({**payable.to_dict(), "days_overdue": max(days_overdue, 0)})

    return {
        "as_of": as_of_date.isoformat(),
        "buckets": buckets,
        "total_outstanding": sum(bucket["amount"] for bucket in buckets.values()),
    }
