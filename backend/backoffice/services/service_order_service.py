# Overview: Service-layer operations for the repair workflow (reception to warranty).

"""
Service Order State Machine

ITEM STATES:
    RECEIVED --diagnose--> DIAGNOSED --quote--> QUOTED --approve--> IN_REPAIR
    IN_REPAIR --complete work--> REPAIRED --pickup--> PICKED_UP
    QUOTED --reject--> QUOTED (no repair; may be re-quoted or picked up)

WARRANTY:
    ACTIVE --claim--> CLAIMED, spawning a new item in RECEIVED that carries
    only the equipment identity (client, description, location).

Every transition reads the current state inside the transaction that
writes the new one; the version counter on items, quotes and warranties
turns a concurrent transition into a TransactionConflict.
"""

from __future__ import annotations

from flask import current_app

from ..errors import InvalidStateTransition, NotFound, ValidationError
from ..models import (
    PickupRecord,
    ServiceItem,
    ServiceQuote,
    ServiceQuoteLine,
    Warranty,
    WorkRecord,
)
from ..models.inventory import MOVEMENT_SERVICE_CONSUMPTION
from ..validation import (
    DECISION_APPROVED,
    normalize_decision,
    optional_text,
    require_int,
    require_mapping,
    require_non_negative_int,
    require_positive_decimal,
    require_positive_int,
    require_text,
)
from backoffice.time_utils import add_days, today, utcnow
from .document_service import next_document_number
from .ledger_service import adjust_stock, append_movement
from .resolver_service import (
    QUOTE_STATUS_APPROVED,
    QUOTE_STATUS_PENDING_APPROVAL,
    QUOTE_STATUS_REJECTED,
    find_approved_quote,
    find_last_quote,
    find_open_quote,
)
from .store import Transaction, store


STATE_RECEIVED = "RECEIVED"
STATE_DIAGNOSED = "DIAGNOSED"
STATE_QUOTED = "QUOTED"
STATE_IN_REPAIR = "IN_REPAIR"
STATE_REPAIRED = "REPAIRED"
STATE_PICKED_UP = "PICKED_UP"

SERVICE_STATES = (
    STATE_RECEIVED,
    STATE_DIAGNOSED,
    STATE_QUOTED,
    STATE_IN_REPAIR,
    STATE_REPAIRED,
    STATE_PICKED_UP,
)

WARRANTY_STATUS_ACTIVE = "ACTIVE"
WARRANTY_STATUS_CLAIMED = "CLAIMED"

LINE_KIND_PART = "PART"
LINE_KIND_LABOR = "LABOR"
LINE_KINDS = (LINE_KIND_PART, LINE_KIND_LABOR)

RECEPTION_DOCUMENT_TYPE = "SERVICE_RECEPTION"
RECEPTION_PREFIX = "REC"


def _load_item(tx: Transaction, service_item_id: int) -> ServiceItem:
    item = tx.get(ServiceItem, service_item_id, lock=True)
    if item is None:
        raise NotFound("ServiceItem", service_item_id)
    return item


def _load_quote(tx: Transaction, quote_id: int) -> ServiceQuote:
    quote = tx.get(ServiceQuote, quote_id, lock=True)
    if quote is None:
        raise NotFound("ServiceQuote", quote_id)
    return quote


def _parse_line(item, label: str) -> dict:
    item = require_mapping(item, label)
    kind = str(item.get("kind") or "").strip().upper()
    if kind not in LINE_KINDS:
        raise ValidationError(f"{label}.kind must be PART or LABOR", field=f"{label}.kind")
    return {
        "ref_id": require_text(item.get("ref_id"), f"{label}.ref_id"),
        "kind": kind,
        "description": optional_text(item.get("description")),
        "quantity": require_positive_int(item.get("quantity"), f"{label}.quantity"),
        "unit_price": require_non_negative_int(item.get("unit_price"), f"{label}.unit_price"),
    }


def _parse_lines(line_items, field: str, *, required: bool) -> list[dict]:
    if not line_items:
        if required:
            raise ValidationError("At least one line item is required", field=field)
        return []

    lines = []
    seen = set()
    for index, item in enumerate(line_items):
        line = _parse_line(item, f"{field}[{index}]")
        if line["ref_id"] in seen:
            raise ValidationError(f"Item {line['ref_id']} appears more than once", field=field)
        seen.add(line["ref_id"])
        lines.append(line)
    return lines


def register_reception(
    *,
    client_id: str,
    equipments: list[dict],
    actor: str,
    location_id: str | None = None,
) -> list[ServiceItem]:
    """
    Receive one or more pieces of equipment from a client under one
    reception number.

    Args:
        client_id: Client handing over the equipment
        equipments: [{"equipment_description", "reported_problem", "accessories"?}]
        actor: User at the reception desk
        location_id: Location whose stock repairs consume
            (default: SERVICE_LOCATION_ID)

    Returns:
        list[ServiceItem]: New items in RECEIVED
    """
    client_id = require_text(client_id, "client_id")
    actor = require_text(actor, "actor")
    location_id = optional_text(location_id) or current_app.config["SERVICE_LOCATION_ID"]

    if not equipments:
        raise ValidationError("At least one equipment is required", field="equipments")

    parsed = []
    for index, equipment in enumerate(equipments):
        equipment = require_mapping(equipment, f"equipments[{index}]")
        parsed.append({
            "equipment_description": require_text(
                equipment.get("equipment_description"), f"equipments[{index}].equipment_description"
            ),
            "reported_problem": require_text(
                equipment.get("reported_problem"), f"equipments[{index}].reported_problem"
            ),
            "accessories": optional_text(equipment.get("accessories")),
        })

    def _op(tx: Transaction) -> list[ServiceItem]:
        reception_number = next_document_number(
            tx, document_type=RECEPTION_DOCUMENT_TYPE, prefix=RECEPTION_PREFIX
        )
        now = utcnow()
        return [
            tx.create(
                ServiceItem,
                reception_number=reception_number,
                client_id=client_id,
                location_id=location_id,
                state=STATE_RECEIVED,
                received_by=actor,
                received_at=now,
                **equipment,
            )
            for equipment in parsed
        ]

    return store.run_transaction(_op)


def diagnose(
    *,
    service_item_id: int,
    technician_id: str,
    diagnosis: str,
    recommended_work: str,
    actor: str,
) -> ServiceItem:
    """
    Record (or edit) the technician's diagnosis.

    Legal from RECEIVED, and re-entrant from DIAGNOSED.
    """
    technician_id = require_text(technician_id, "technician_id")
    diagnosis = require_text(diagnosis, "diagnosis")
    recommended_work = require_text(recommended_work, "recommended_work")
    require_text(actor, "actor")

    def _op(tx: Transaction) -> ServiceItem:
        item = _load_item(tx, service_item_id)
        if item.state not in (STATE_RECEIVED, STATE_DIAGNOSED):
            raise InvalidStateTransition("ServiceItem", item.state, "diagnose")
        return tx.update(
            item,
            state=STATE_DIAGNOSED,
            technician_id=technician_id,
            diagnosis=diagnosis,
            recommended_work=recommended_work,
            diagnosed_at=utcnow(),
        )

    return store.run_transaction(_op)


def create_quote(
    *,
    service_item_id: int,
    line_items: list[dict],
    actor: str,
    notes: str | None = None,
) -> ServiceQuote:
    """
    Quote the repair of a diagnosed item.

    Legal from DIAGNOSED, or from QUOTED after the previous quote was
    rejected. At most one pending/approved quote per item.

    Args:
        line_items: [{"ref_id", "kind" (PART|LABOR), "description"?, "quantity", "unit_price"}]
    """
    lines = _parse_lines(line_items, "line_items", required=True)
    actor = require_text(actor, "actor")

    def _op(tx: Transaction) -> ServiceQuote:
        item = _load_item(tx, service_item_id)
        if item.state not in (STATE_DIAGNOSED, STATE_QUOTED):
            raise InvalidStateTransition("ServiceItem", item.state, "quote")

        open_quote = find_open_quote(tx, item.id)
        if open_quote is not None:
            raise InvalidStateTransition(
                "ServiceItem",
                item.state,
                "quote",
                reason=f"quote {open_quote.id} is already {open_quote.status}",
            )

        quote = ServiceQuote(
            service_item_id=item.id,
            status=QUOTE_STATUS_PENDING_APPROVAL,
            total=sum(line["quantity"] * line["unit_price"] for line in lines),
            notes=optional_text(notes),
            created_by=actor,
            created_at=utcnow(),
        )
        for line in lines:
            quote.lines.append(ServiceQuoteLine(**line))
        tx.add(quote)

        tx.update(item, state=STATE_QUOTED)
        return quote

    return store.run_transaction(_op)


def resolve_quote(*, quote_id: int, decision: str, actor: str) -> ServiceQuote:
    """
    Record the client's answer to a pending quote.

    APPROVED moves the item to IN_REPAIR; REJECTED leaves it QUOTED.
    """
    decision = normalize_decision(decision)
    actor = require_text(actor, "actor")

    def _op(tx: Transaction) -> ServiceQuote:
        quote = _load_quote(tx, quote_id)
        if quote.status != QUOTE_STATUS_PENDING_APPROVAL:
            raise InvalidStateTransition("ServiceQuote", quote.status, "resolve")

        item = _load_item(tx, quote.service_item_id)
        if item.state != STATE_QUOTED:
            raise InvalidStateTransition("ServiceItem", item.state, "resolve quote for")

        tx.update(quote, status=decision, resolved_by=actor, resolved_at=utcnow())
        if decision == DECISION_APPROVED:
            tx.update(item, state=STATE_IN_REPAIR)
        return quote

    return store.run_transaction(_op)


def _parse_used_items(items_used, quote: ServiceQuote) -> list[dict]:
    quoted = {line.ref_id: line for line in quote.lines}
    used = []
    seen = set()
    for index, entry in enumerate(items_used or []):
        label = f"items_used[{index}]"
        entry = require_mapping(entry, label)
        ref_id = require_text(entry.get("ref_id"), f"{label}.ref_id")
        if ref_id not in quoted:
            raise ValidationError(f"Item {ref_id} is not on quote {quote.id}", field="items_used")
        if ref_id in seen:
            raise ValidationError(f"Item {ref_id} appears more than once", field="items_used")
        seen.add(ref_id)

        line = quoted[ref_id].to_item()
        if entry.get("quantity") is not None:
            line["quantity"] = require_positive_int(entry.get("quantity"), f"{label}.quantity")
        used.append(line)
    return used


def _covered_refs(tx: Transaction, item: ServiceItem, warranty_covered_item_ids, lines) -> list[str]:
    covered = []
    for value in warranty_covered_item_ids or []:
        ref_id = require_text(value, "warranty_covered_item_ids")
        if ref_id not in covered:
            covered.append(ref_id)
    if not covered:
        return []

    if item.warranty_origin_id is None:
        raise ValidationError(
            "Warranty coverage applies only to items received under a warranty claim",
            field="warranty_covered_item_ids",
        )
    origin = tx.get(Warranty, item.warranty_origin_id)
    if origin is None:
        raise NotFound("Warranty", item.warranty_origin_id)

    allowed = set(origin.covered_items or [])
    refs_in_work = {line["ref_id"] for line in lines}
    for ref_id in covered:
        if ref_id not in allowed:
            raise ValidationError(
                f"Item {ref_id} is not covered by warranty {origin.id}",
                field="warranty_covered_item_ids",
            )
        if ref_id not in refs_in_work:
            raise ValidationError(
                f"Item {ref_id} is not part of this work",
                field="warranty_covered_item_ids",
            )
    return covered


def complete_work(
    *,
    quote_id: int,
    technician_id: str,
    hours,
    actor: str,
    items_used: list[dict] | None = None,
    items_added: list[dict] | None = None,
    warranty_covered_item_ids: list[str] | None = None,
    notes: str | None = None,
) -> WorkRecord:
    """
    Record the repair performed against an approved quote.

    Args:
        quote_id: Approved quote being executed
        items_used: [{"ref_id", "quantity"?}] lines of the quote actually used
            (quantity defaults to the quoted quantity)
        items_added: extra lines not on the quote, same shape as quote lines
        warranty_covered_item_ids: refs charged to the origin warranty; their
            full quantity is excluded from computed_cost

    PART lines consume stock at the item's location (SERVICE_CONSUMPTION).

    Raises:
        InvalidStateTransition: quote not APPROVED, or item not IN_REPAIR
        InsufficientStock: a part is not on hand
    """
    technician_id = require_text(technician_id, "technician_id")
    hours = require_positive_decimal(hours, "hours")
    actor = require_text(actor, "actor")
    added = _parse_lines(items_added, "items_added", required=False)

    def _op(tx: Transaction) -> WorkRecord:
        quote = _load_quote(tx, quote_id)
        if quote.status != QUOTE_STATUS_APPROVED:
            raise InvalidStateTransition("ServiceQuote", quote.status, "complete work for")

        item = _load_item(tx, quote.service_item_id)
        if item.state != STATE_IN_REPAIR:
            raise InvalidStateTransition("ServiceItem", item.state, "complete work for")

        used = _parse_used_items(items_used, quote)
        lines = used + added
        if not lines:
            raise ValidationError("At least one used or added item is required", field="items_used")

        covered = _covered_refs(tx, item, warranty_covered_item_ids, lines)
        computed_cost = sum(
            line["quantity"] * line["unit_price"] for line in lines if line["ref_id"] not in covered
        )

        record = tx.create(
            WorkRecord,
            service_quote_id=quote.id,
            service_item_id=item.id,
            technician_id=technician_id,
            hours=hours,
            notes=optional_text(notes),
            items_used=used,
            items_added=added,
            warranty_covered_items=covered,
            computed_cost=computed_cost,
            created_by=actor,
            completed_at=utcnow(),
        )

        for line in lines:
            if line["kind"] != LINE_KIND_PART:
                continue
            adjust_stock(tx, product_id=line["ref_id"], location_id=item.location_id, delta=-line["quantity"])
            append_movement(
                tx,
                kind=MOVEMENT_SERVICE_CONSUMPTION,
                product_id=line["ref_id"],
                quantity=line["quantity"],
                from_location_id=item.location_id,
                reason=f"Repair {item.reception_number}",
                actor=actor,
                reference_type="work_record",
                reference_id=record.id,
            )

        tx.update(item, state=STATE_REPAIRED)
        return record

    return store.run_transaction(_op)


def register_pickup(
    *,
    service_item_id: int,
    recipient_name: str,
    recipient_id: str,
    actor: str,
    amount_charged=0,
    payment_ref: str | None = None,
    validity_days=None,
    covered_items: list[str] | None = None,
) -> PickupRecord:
    """
    Hand an item back to the client.

    From REPAIRED a Warranty is issued (validity_days defaults to
    WARRANTY_VALIDITY_DAYS, covered_items to the parts consumed). From
    QUOTED with a rejected last quote the item leaves unrepaired, with no
    warranty.

    Raises:
        ValidationError: missing recipient identity, charge without payment_ref
        InvalidStateTransition: item not ready for pickup
    """
    recipient_name = require_text(recipient_name, "recipient_name")
    recipient_id = require_text(recipient_id, "recipient_id")
    actor = require_text(actor, "actor")
    amount_charged = require_non_negative_int(amount_charged or 0, "amount_charged")
    payment_ref = optional_text(payment_ref)
    if amount_charged > 0 and payment_ref is None:
        raise ValidationError("payment_ref is required when an amount is charged", field="payment_ref")

    def _op(tx: Transaction) -> PickupRecord:
        item = _load_item(tx, service_item_id)

        if item.state == STATE_REPAIRED:
            repaired = True
        elif item.state == STATE_QUOTED:
            last_quote = find_last_quote(tx, item.id)
            if last_quote is None or last_quote.status != QUOTE_STATUS_REJECTED:
                raise InvalidStateTransition(
                    "ServiceItem", item.state, "pick up", reason="the quote has not been rejected"
                )
            repaired = False
        else:
            raise InvalidStateTransition("ServiceItem", item.state, "pick up")

        warranty = None
        if repaired:
            days = validity_days
            if days is None:
                days = current_app.config["WARRANTY_VALIDITY_DAYS"]
            days = require_int(days, "validity_days", minimum=1)
            approved = find_approved_quote(tx, item.id)
            work_record = approved.work_record if approved is not None else None
            if covered_items is None:
                consumed = (work_record.items_used + work_record.items_added) if work_record else []
                items = [line["ref_id"] for line in consumed if line["kind"] == LINE_KIND_PART]
            else:
                items = [require_text(ref, "covered_items") for ref in covered_items]
            start = today()
            warranty = tx.create(
                Warranty,
                service_item_id=item.id,
                work_record_id=work_record.id if work_record else None,
                start_date=start,
                end_date=add_days(start, days),
                validity_days=days,
                covered_items=items,
                status=WARRANTY_STATUS_ACTIVE,
            )

        pickup = tx.create(
            PickupRecord,
            service_item_id=item.id,
            recipient_name=recipient_name,
            recipient_id_number=recipient_id,
            amount_charged=amount_charged,
            payment_ref=payment_ref,
            repaired=repaired,
            warranty_id=warranty.id if warranty else None,
            created_by=actor,
            picked_up_at=utcnow(),
        )
        tx.update(item, state=STATE_PICKED_UP)
        return pickup

    return store.run_transaction(_op)


def file_warranty_claim(
    *,
    warranty_id: int,
    reported_problem: str,
    actor: str,
    accessories: str | None = None,
) -> ServiceItem:
    """
    Claim an active warranty: the warranty becomes CLAIMED and a new item
    enters the workflow in RECEIVED.

    Only the equipment identity (client, description, location) carries
    over; diagnosis, technician and state start fresh.
    """
    reported_problem = require_text(reported_problem, "reported_problem")
    actor = require_text(actor, "actor")

    def _op(tx: Transaction) -> ServiceItem:
        warranty = tx.get(Warranty, warranty_id, lock=True)
        if warranty is None:
            raise NotFound("Warranty", warranty_id)
        if warranty.status != WARRANTY_STATUS_ACTIVE:
            raise InvalidStateTransition("Warranty", warranty.status, "claim")
        if warranty.end_date < today():
            raise InvalidStateTransition(
                "Warranty", warranty.status, "claim", reason=f"expired on {warranty.end_date.isoformat()}"
            )

        original = tx.get(ServiceItem, warranty.service_item_id)
        if original is None:
            raise NotFound("ServiceItem", warranty.service_item_id)

        now = utcnow()
        child = tx.create(
            ServiceItem,
            reception_number=next_document_number(
                tx, document_type=RECEPTION_DOCUMENT_TYPE, prefix=RECEPTION_PREFIX
            ),
            client_id=original.client_id,
            equipment_description=original.equipment_description,
            location_id=original.location_id,
            reported_problem=reported_problem,
            accessories=optional_text(accessories),
            state=STATE_RECEIVED,
            warranty_origin_id=warranty.id,
            received_by=actor,
            received_at=now,
        )
        tx.update(
            warranty,
            status=WARRANTY_STATUS_CLAIMED,
            claimed_at=now,
            claim_service_item_id=child.id,
        )
        return child

    return store.run_transaction(_op)
