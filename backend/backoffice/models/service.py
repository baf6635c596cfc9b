from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z, to_iso_date


class ServiceItem(db.Model):
    """
    Equipment received for repair.

    LIFECYCLE (state):
    RECEIVED -> DIAGNOSED -> QUOTED -> IN_REPAIR -> REPAIRED -> PICKED_UP
    QUOTED stays QUOTED when the quote is rejected; the item may then be
    picked up without repair.

    A warranty claim never reopens an item: it spawns a new ServiceItem in
    RECEIVED with warranty_origin_id pointing at the claimed Warranty.
    """
    __tablename__ = "service_items"
    __table_args__ = (
        db.Index("ix_service_items_state_received", "state", "received_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    reception_number = db.Column(db.String(32), nullable=False, index=True)
    client_id = db.Column(db.String(64), nullable=False, index=True)

    # Equipment identity (carried over to warranty re-entries)
    equipment_description = db.Column(db.String(255), nullable=False)
    reported_problem = db.Column(db.Text, nullable=False)
    accessories = db.Column(db.Text, nullable=True)

    # Stock consumed by the repair is taken from this location
    location_id = db.Column(db.String(64), nullable=False)

    state = db.Column(db.String(16), nullable=False, default="RECEIVED", index=True)

    diagnosis = db.Column(db.Text, nullable=True)
    recommended_work = db.Column(db.Text, nullable=True)
    technician_id = db.Column(db.String(64), nullable=True, index=True)
    diagnosed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Warranty.id this item re-entered under (no FK: warranties point back here)
    warranty_origin_id = db.Column(db.Integer, nullable=True, index=True)

    received_by = db.Column(db.String(64), nullable=False)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reception_number": self.reception_number,
            "client_id": self.client_id,
            "equipment_description": self.equipment_description,
            "reported_problem": self.reported_problem,
            "accessories": self.accessories,
            "location_id": self.location_id,
            "state": self.state,
            "diagnosis": self.diagnosis,
            "recommended_work": self.recommended_work,
            "technician_id": self.technician_id,
            "diagnosed_at": to_utc_z(self.diagnosed_at),
            "warranty_origin_id": self.warranty_origin_id,
            "received_by": self.received_by,
            "received_at": to_utc_z(self.received_at),
            "version_id": self.version_id,
        }


class ServiceQuote(db.Model):
    """
    Repair quote for a ServiceItem.

    LIFECYCLE:
    1. PENDING_APPROVAL: Sent to the client (the "open" quote)
    2. APPROVED: Client accepted; item goes IN_REPAIR
    3. REJECTED: Client declined; item can be picked up unrepaired
    """
    __tablename__ = "service_quotes"
    __table_args__ = (
        db.Index("ix_service_quotes_item_status", "service_item_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    service_item_id = db.Column(db.Integer, db.ForeignKey("service_items.id"), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="PENDING_APPROVAL", index=True)
    total = db.Column(db.BigInteger, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    resolved_by = db.Column(db.String(64), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    service_item = db.relationship("ServiceItem", backref=db.backref("quotes", lazy=True, order_by="ServiceQuote.id"))
    lines = db.relationship(
        "ServiceQuoteLine",
        backref="quote",
        lazy=True,
        order_by="ServiceQuoteLine.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_item_id": self.service_item_id,
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


class ServiceQuoteLine(db.Model):
    __tablename__ = "service_quote_lines"
    __table_args__ = (
        db.UniqueConstraint("service_quote_id", "ref_id", name="uq_service_quote_lines_quote_ref"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    service_quote_id = db.Column(db.Integer, db.ForeignKey("service_quotes.id"), nullable=False, index=True)

    # PART -> product id (consumes stock); LABOR -> service catalogue id
    ref_id = db.Column(db.String(64), nullable=False)
    kind = db.Column(db.String(8), nullable=False)  # PART, LABOR
    description = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.BigInteger, nullable=False)

    def to_item(self) -> dict:
        return {
            "ref_id": self.ref_id,
            "kind": self.kind,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
        }

    def to_dict(self) -> dict:
        return {"id": self.id, **self.to_item(), "subtotal": self.quantity * self.unit_price}


class WorkRecord(db.Model):
    """
    Repair actually performed against an approved quote (one per quote).

    items_used / items_added / warranty_covered_items are stored as JSON
    snapshots: [{"ref_id", "kind", "description", "quantity", "unit_price"}]
    and ["ref_id", ...] respectively.
    """
    __tablename__ = "work_records"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    service_quote_id = db.Column(
        db.Integer, db.ForeignKey("service_quotes.id"), nullable=False, unique=True, index=True
    )
    service_item_id = db.Column(db.Integer, db.ForeignKey("service_items.id"), nullable=False, index=True)
    technician_id = db.Column(db.String(64), nullable=False, index=True)
    hours = db.Column(db.Numeric(8, 2), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    items_used = db.Column(db.JSON, nullable=False, default=list)
    items_added = db.Column(db.JSON, nullable=False, default=list)
    warranty_covered_items = db.Column(db.JSON, nullable=False, default=list)
    computed_cost = db.Column(db.BigInteger, nullable=False)

    created_by = db.Column(db.String(64), nullable=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    quote = db.relationship("ServiceQuote", backref=db.backref("work_record", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_quote_id": self.service_quote_id,
            "service_item_id": self.service_item_id,
            "technician_id": self.technician_id,
            "hours": str(self.hours) if self.hours is not None else None,
            "notes": self.notes,
            "items_used": self.items_used,
            "items_added": self.items_added,
            "warranty_covered_items": self.warranty_covered_items,
            "computed_cost": self.computed_cost,
            "created_by": self.created_by,
            "completed_at": to_utc_z(self.completed_at),
        }


class Warranty(db.Model):
    """
    Warranty granted when a repaired item is picked up.

    ACTIVE -> CLAIMED (one claim per warranty; the claim spawns a new
    ServiceItem recorded in claim_service_item_id).
    """
    __tablename__ = "warranties"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    service_item_id = db.Column(db.Integer, db.ForeignKey("service_items.id"), nullable=False, index=True)
    work_record_id = db.Column(db.Integer, db.ForeignKey("work_records.id"), nullable=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    validity_days = db.Column(db.Integer, nullable=False)
    covered_items = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)

    claimed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    claim_service_item_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_item_id": self.service_item_id,
            "work_record_id": self.work_record_id,
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "validity_days": self.validity_days,
            "covered_items": self.covered_items,
            "status": self.status,
            "claimed_at": to_utc_z(self.claimed_at),
            "claim_service_item_id": self.claim_service_item_id,
            "version_id": self.version_id,
        }


class PickupRecord(db.Model):
    """Hand-over of a service item back to the client."""
    __tablename__ = "pickup_records"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    service_item_id = db.Column(
        db.Integer, db.ForeignKey("service_items.id"), nullable=False, unique=True, index=True
    )
    recipient_name = db.Column(db.String(255), nullable=False)
    recipient_id_number = db.Column(db.String(64), nullable=False)
    amount_charged = db.Column(db.BigInteger, nullable=False, default=0)
    payment_ref = db.Column(db.String(64), nullable=True)
    repaired = db.Column(db.Boolean, nullable=False, default=False)
    warranty_id = db.Column(db.Integer, db.ForeignKey("warranties.id"), nullable=True)

    created_by = db.Column(db.String(64), nullable=False)
    picked_up_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    warranty = db.relationship("Warranty", foreign_keys=[warranty_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_item_id": self.service_item_id,
            "recipient_name": self.recipient_name,
            "recipient_id_number": self.recipient_id_number,
            "amount_charged": self.amount_charged,
            "payment_ref": self.payment_ref,
            "repaired": self.repaired,
            "warranty_id": self.warranty_id,
            "created_by": self.created_by,
            "picked_up_at": to_utc_z(self.picked_up_at),
        }
