from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Customer(db.Model):
    """
    Credit account holder.

    MULTI-TENANT: Customers are scoped to organizations via org_id.

    WHY: Long-lived aggregate root for the customer credit ledger.

    DESIGN:
    - current_balance_cents == SUM(credit_transactions.delta_cents); it is only
      changed by ledger_service with an atomic SQL increment that appends a
      CreditTransaction in the same transaction
    - credit status (GOOD/WARNING/BLOCKED) is derived on read, never stored
    - No version_id: balance changes are bulk UPDATEs, not ORM flushes
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("org_id", "email", name="uq_customers_org_email"),
        db.Index("ix_customers_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    ledger_sequence = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_payment_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    organization = db.relationship("Organization", backref=db.backref("customers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "credit_limit_cents": self.credit_limit_cents,
            "current_balance_cents": self.current_balance_cents,
            "is_active": self.is_active,
            "last_payment_at": to_utc_z(self.last_payment_at),
            "created_at": to_utc_z(self.created_at),
        }


class CreditTransaction(db.Model):
    """
    Append-only customer ledger row.

    DESIGN:
    - type CREDIT (balance up), PAYMENT (balance down, money received),
      ADJUSTMENT (either direction, no money moved, e.g. a credit-sale return)
    - amount_cents is the magnitude; delta_cents is the signed change
    - balance_after_cents[n] == balance_after_cents[n-1] + delta_cents[n];
      `sequence` is allocated under the customer row lock and is unique per
      customer, which fixes the chain order to commit order
    """
    __tablename__ = "credit_transactions"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "sequence", name="uq_credit_transactions_customer_seq"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)

    type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    delta_cents = db.Column(db.Integer, nullable=False)
    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    method = db.Column(db.String(32), nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    reference = db.Column(db.String(128), nullable=True)
    description = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    customer = db.relationship(
        "Customer",
        backref=db.backref("credit_transactions", lazy="dynamic", order_by="CreditTransaction.sequence"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "sequence": self.sequence,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "delta_cents": self.delta_cents,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "method": self.method,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "reference": self.reference,
            "description": self.description,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
