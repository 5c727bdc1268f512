from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Return(db.Model):
    """
    Customer return against a completed sale.

    WHY: Puts goods back into sellable stock (or writes them off) and
    reverses the money side of the original settlement, with a reason.

    DESIGN:
    - refund_cents = SUM(line quantity x original unit price), discounts ignored
    - credit_refund_cents reduced the customer's balance (ADJUSTMENT entry);
      cash_refund_cents was paid out (drawer RETURN_REFUND for cash)
    - Linked immutably to the original sale; never edited after creation
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.UniqueConstraint("org_id", "return_number", name="uq_returns_org_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)

    return_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="COMPLETED")
    reason = db.Column(db.Text, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    refund_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_refund_cents = db.Column(db.Integer, nullable=False, default=0)
    cash_refund_cents = db.Column(db.Integer, nullable=False, default=0)
    refund_method = db.Column(db.String(32), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sale = db.relationship("Sale", backref=db.backref("returns", lazy=True))
    lines = db.relationship(
        "ReturnLine",
        backref="return_doc",
        order_by="ReturnLine.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "location_id": self.location_id,
            "sale_id": self.sale_id,
            "customer_id": self.customer_id,
            "return_number": self.return_number,
            "status": self.status,
            "reason": self.reason,
            "notes": self.notes,
            "refund_cents": self.refund_cents,
            "credit_refund_cents": self.credit_refund_cents,
            "cash_refund_cents": self.cash_refund_cents,
            "refund_method": self.refund_method,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class ReturnLine(db.Model):
    """
    Returned quantity of one sale line.

    condition: GOOD, DAMAGED, EXPIRED, DEFECTIVE (informational)
    disposition: RETURN_TO_STOCK, DISPOSE, QUARANTINE
    """
    __tablename__ = "return_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    sale_line_id = db.Column(db.Integer, db.ForeignKey("sale_lines.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    condition = db.Column(db.String(16), nullable=False, default="GOOD")
    disposition = db.Column(db.String(32), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    refund_cents = db.Column(db.Integer, nullable=False)
    restocked_quantity = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_line_id": self.sale_line_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "condition": self.condition,
            "disposition": self.disposition,
            "unit_price_cents": self.unit_price_cents,
            "refund_cents": self.refund_cents,
            "restocked_quantity": self.restocked_quantity,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-organization document sequences.

    WHY: Prevent race conditions when generating document numbers
    (sales, invoices, purchase orders, receipts, returns, expenses,
    transfers).
    A count() query would hand two concurrent creators the same number.

    `prefix` overrides the default prefix where the format allows it
    (invoice numbering is configurable per organization).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("org_id", "document_type", name="uq_doc_sequences_org_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    prefix = db.Column(db.String(16), nullable=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "document_type": self.document_type,
            "prefix": self.prefix,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }


class AuditEvent(db.Model):
    """Append-only audit trail of engine operations (who did what, when)."""
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_org_occurred", "org_id", "occurred_at"),
        db.Index("ix_audit_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    # What happened
    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., SALE_COMPLETED, PO_RECEIVED
    event_category = db.Column(db.String(32), nullable=False, index=True)  # sales, inventory, purchasing, cash_drawer, credit, returns, expenses

    # What it refers to (generic pointer)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    actor_user_id = db.Column(db.Integer, nullable=True, index=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    # Optional structured metadata (keep small; do not denormalize domain state)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "location_id": self.location_id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
            "payload": self.payload,
        }
