from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


# Movement kinds (StockMovement.kind)
MOVEMENT_ADJUSTMENT_IN = "ADJUSTMENT_IN"
MOVEMENT_ADJUSTMENT_OUT = "ADJUSTMENT_OUT"
MOVEMENT_TRANSFER = "TRANSFER"
MOVEMENT_PURCHASE_RECEIPT = "PURCHASE_RECEIPT"
MOVEMENT_SUPPLIER_RETURN = "SUPPLIER_RETURN"
MOVEMENT_SERVICE_CONSUMPTION = "SERVICE_CONSUMPTION"

MOVEMENT_KINDS = {
    MOVEMENT_ADJUSTMENT_IN,
    MOVEMENT_ADJUSTMENT_OUT,
    MOVEMENT_TRANSFER,
    MOVEMENT_PURCHASE_RECEIPT,
    MOVEMENT_SUPPLIER_RETURN,
    MOVEMENT_SERVICE_CONSUMPTION,
}


class StockRecord(db.Model):
    """
    Quantity on hand of one product at one location (warehouse/depot).

    INVARIANTS:
    - Exactly one record per (product_id, location_id)
    - quantity is never negative (enforced by the ledger primitives and
      backed by a CHECK constraint)
    - Mutated only through services.ledger_service.adjust_stock

    product_id / location_id reference master data owned by the catalogue
    screens, so they are opaque strings here.
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", name="uq_stock_product_location"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.String(64), nullable=False, index=True)
    location_id = db.Column(db.String(64), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockRecord product={self.product_id!r} location={self.location_id!r} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "quantity": self.quantity,
            "last_updated": to_utc_z(self.last_updated),
            "version_id": self.version_id,
        }


class StockMovement(db.Model):
    """
    Append-only audit trail of every stock mutation.

    Adjustments set only one side: IN -> to_location_id, OUT -> from_location_id.
    Transfers set both. Purchase receipts, supplier returns and service
    consumption point back at the originating document via
    reference_type/reference_id.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(32), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    from_location_id = db.Column(db.String(64), nullable=True, index=True)
    to_location_id = db.Column(db.String(64), nullable=True, index=True)

    reason = db.Column(db.String(255), nullable=True)
    actor = db.Column(db.String(64), nullable=False)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    @property
    def direction(self) -> str | None:
        if self.kind == MOVEMENT_ADJUSTMENT_IN:
            return "IN"
        if self.kind == MOVEMENT_ADJUSTMENT_OUT:
            return "OUT"
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "direction": self.direction,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "reason": self.reason,
            "actor": self.actor,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
