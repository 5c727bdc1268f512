from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z, utcnow


class TransferOrder(db.Model):
    """
    Stock movement between two locations of the same organization.

    WHY: Moving stock from the warehouse to a shop has to leave the source
    and arrive at the destination with its expiration batches intact.

    DESIGN:
    - status DRAFT -> APPROVED -> IN_TRANSIT -> RECEIVED, or CANCELLED
      before shipping
    - Shipping consumes FEFO at the source and records the exact batches per
      line; receiving adds those same batches at the destination
    - While IN_TRANSIT the units belong to neither location
    """
    __tablename__ = "transfer_orders"
    __table_args__ = (
        db.UniqueConstraint("org_id", "transfer_number", name="uq_transfer_orders_org_number"),
        db.CheckConstraint("from_location_id <> to_location_id", name="ck_transfer_orders_distinct_locations"),
        db.Index("ix_transfer_orders_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    from_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    to_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)

    transfer_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="DRAFT")
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    approved_by_user_id = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    shipped_by_user_id = db.Column(db.Integer, nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_by_user_id = db.Column(db.Integer, nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "TransferLine",
        backref="transfer",
        order_by="TransferLine.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "transfer_number": self.transfer_number,
            "status": self.status,
            "notes": self.notes,
            "total_quantity": self.total_quantity,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at),
            "shipped_by_user_id": self.shipped_by_user_id,
            "shipped_at": to_utc_z(self.shipped_at),
            "received_by_user_id": self.received_by_user_id,
            "received_at": to_utc_z(self.received_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancel_reason": self.cancel_reason,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class TransferLine(db.Model):
    """One product on a transfer. Quantity is fixed once the transfer leaves DRAFT."""
    __tablename__ = "transfer_lines"
    __table_args__ = (
        db.UniqueConstraint("transfer_id", "product_id", name="uq_transfer_lines_product"),
        db.CheckConstraint("quantity > 0", name="ck_transfer_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("transfer_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")
    batches = db.relationship(
        "TransferLineBatch",
        backref="line",
        order_by="TransferLineBatch.sequence",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "batches": [batch.to_dict() for batch in self.batches],
        }


class TransferLineBatch(db.Model):
    """Batch shipped from the source for one line, in FEFO order."""
    __tablename__ = "transfer_line_batches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transfer_line_id = db.Column(db.Integer, db.ForeignKey("transfer_lines.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)
    expiration_date = db.Column(db.Date, nullable=True)
    quantity = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "sequence": self.sequence,
            "expiration_date": to_iso_date(self.expiration_date),
            "quantity": self.quantity,
        }
