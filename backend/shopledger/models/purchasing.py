from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z, utcnow


class PurchaseOrder(db.Model):
    """
    Supplier order delivered to one location.

    WHY: Tracks ordered vs. received quantities so stock can be received in
    several deliveries, each with its own expiration batches.

    DESIGN:
    - status DRAFT -> SENT -> PARTIAL -> RECEIVED, or CANCELLED
    - status is derived from item quantities after every receive/void and
      stored in the same transaction (read-model convenience)
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("org_id", "po_number", name="uq_purchase_orders_org_number"),
        db.Index("ix_purchase_orders_location_status", "location_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)

    po_number = db.Column(db.String(32), nullable=False)
    supplier_name = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="DRAFT")
    expected_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "PurchaseOrderItem",
        backref="purchase_order",
        order_by="PurchaseOrderItem.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    receiving_records = db.relationship(
        "ReceivingRecord",
        backref="purchase_order",
        order_by="ReceivingRecord.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_cost_cents(self) -> int:
        return sum(item.ordered_quantity * item.unit_cost_cents for item in self.items)

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "location_id": self.location_id,
            "po_number": self.po_number,
            "supplier_name": self.supplier_name,
            "status": self.status,
            "expected_date": to_iso_date(self.expected_date),
            "notes": self.notes,
            "total_cost_cents": self.total_cost_cents,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "sent_at": to_utc_z(self.sent_at),
            "received_at": to_utc_z(self.received_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    """Ordered line. Invariant: 0 <= received_quantity <= ordered_quantity."""
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("received_quantity >= 0", name="ck_po_items_received_non_negative"),
        db.CheckConstraint("received_quantity <= ordered_quantity", name="ck_po_items_received_within_ordered"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    ordered_quantity = db.Column(db.Integer, nullable=False)
    received_quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product")

    @property
    def remaining_quantity(self) -> int:
        return self.ordered_quantity - self.received_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "ordered_quantity": self.ordered_quantity,
            "received_quantity": self.received_quantity,
            "remaining_quantity": self.remaining_quantity,
            "unit_cost_cents": self.unit_cost_cents,
        }


class ReceivingRecord(db.Model):
    """
    Immutable snapshot of one delivery against a purchase order.

    WHY: Audit trail and the exact undo-set for voiding. Lines are never
    edited; a void flips status to VOIDED and records who and why.
    """
    __tablename__ = "receiving_records"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "sequence", name="uq_receiving_records_po_seq"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)
    receipt_number = db.Column(db.String(32), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="ACTIVE")  # ACTIVE, VOIDED
    po_status_before = db.Column(db.String(16), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    received_by_user_id = db.Column(db.Integer, nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    voided_by_user_id = db.Column(db.Integer, nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.Text, nullable=True)

    lines = db.relationship(
        "ReceivingRecordLine",
        backref="receiving_record",
        order_by="ReceivingRecordLine.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "sequence": self.sequence,
            "receipt_number": self.receipt_number,
            "status": self.status,
            "notes": self.notes,
            "received_by_user_id": self.received_by_user_id,
            "received_at": to_utc_z(self.received_at),
            "voided_by_user_id": self.voided_by_user_id,
            "voided_at": to_utc_z(self.voided_at),
            "void_reason": self.void_reason,
            "total_quantity": self.total_quantity,
            "lines": [line.to_dict() for line in self.lines],
        }


class ReceivingRecordLine(db.Model):
    __tablename__ = "receiving_record_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    receiving_record_id = db.Column(db.Integer, db.ForeignKey("receiving_records.id"), nullable=False, index=True)
    purchase_order_item_id = db.Column(db.Integer, db.ForeignKey("purchase_order_items.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    expiration_date = db.Column(db.Date, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_item_id": self.purchase_order_item_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "expiration_date": to_iso_date(self.expiration_date),
        }
