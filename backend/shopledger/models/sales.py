from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z, utcnow


class Sale(db.Model):
    """
    Completed checkout.

    WHY: Created atomically with its lines, the inventory decrements and the
    financial postings. Immutable afterwards except for status transitions
    driven by returns.

    DESIGN:
    - subtotal - discount + tax == total (all integer cents, per-line rounding)
    - payment_type: CASH (settled in full by a tender), CREDIT (invoice for
      the whole total), PARTIAL (down payment + invoice balance)
    - status: COMPLETED -> PARTIALLY_RETURNED -> RETURNED
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sale_number", name="uq_sales_org_number"),
        db.Index("ix_sales_location_created", "location_id", "created_at"),
        db.Index("ix_sales_customer", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    drawer_session_id = db.Column(db.Integer, db.ForeignKey("cash_drawer_sessions.id"), nullable=True, index=True)

    sale_number = db.Column(db.String(32), nullable=False)
    payment_type = db.Column(db.String(16), nullable=False)  # CASH, CREDIT, PARTIAL
    payment_method = db.Column(db.String(32), nullable=False)  # CASH, CARD, MOBILE_MONEY, BANK_TRANSFER, CREDIT
    status = db.Column(db.String(32), nullable=False, default="COMPLETED")

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    change_given_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "SaleLine",
        backref="sale",
        order_by="SaleLine.line_number",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "location_id": self.location_id,
            "customer_id": self.customer_id,
            "drawer_session_id": self.drawer_session_id,
            "sale_number": self.sale_number,
            "payment_type": self.payment_type,
            "payment_method": self.payment_method,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "change_given_cents": self.change_given_cents,
            "credit_amount_cents": self.credit_amount_cents,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """
    One cart line. `line_total_cents` is the gross amount (unit price x qty);
    discount and tax are kept per line, already rounded.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "line_number", name="uq_sale_lines_sale_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    returned_quantity = db.Column(db.Integer, nullable=False, default=0)

    batches = db.relationship(
        "SaleLineBatch",
        backref="sale_line",
        order_by="SaleLineBatch.sequence",
        cascade="all, delete-orphan",
        lazy=True,
    )

    @property
    def net_total_cents(self) -> int:
        return self.line_total_cents - self.discount_cents + self.tax_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "returned_quantity": self.returned_quantity,
            "batches": [b.to_dict() for b in self.batches],
        }


class SaleLineBatch(db.Model):
    """
    Exact batch consumption of a sale line, in FEFO order.

    Returns put restocked units back into these batches (latest consumed
    first) so expiry tracking survives a round trip.
    """
    __tablename__ = "sale_line_batches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_line_id = db.Column(db.Integer, db.ForeignKey("sale_lines.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)
    stock_level_id = db.Column(db.Integer, db.ForeignKey("stock_levels.id"), nullable=False)
    expiration_date = db.Column(db.Date, nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    restocked_quantity = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "stock_level_id": self.stock_level_id,
            "expiration_date": to_iso_date(self.expiration_date),
            "quantity": self.quantity,
            "restocked_quantity": self.restocked_quantity,
        }


class Invoice(db.Model):
    """
    Receivable generated by a credit (or partially paid) sale.

    DESIGN:
    - balance_due_cents == total_cents - SUM(payments.amount_cents), kept in
      the same transaction as every payment insert
    - status: SENT (issued, nothing paid), PARTIAL, PAID, OVERDUE
      (DRAFT exists for invoices prepared outside checkout)
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("org_id", "invoice_number", name="uq_invoices_org_number"),
        db.UniqueConstraint("sale_id", name="uq_invoices_sale"),
        db.Index("ix_invoices_customer_status", "customer_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)

    invoice_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="SENT")
    total_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_due_cents = db.Column(db.Integer, nullable=False)

    due_date = db.Column(db.Date, nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship("Sale", backref=db.backref("invoice", uselist=False))
    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    payments = db.relationship("Payment", backref="invoice", order_by="Payment.id", lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "sale_id": self.sale_id,
            "customer_id": self.customer_id,
            "invoice_number": self.invoice_number,
            "status": self.status,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "balance_due_cents": self.balance_due_cents,
            "due_date": to_iso_date(self.due_date),
            "paid_at": to_utc_z(self.paid_at),
            "created_at": to_utc_z(self.created_at),
        }


class Payment(db.Model):
    """
    Immutable money-received (or money-returned) record.

    Linked to an invoice when it settles a receivable, to a sale when it is
    the tender of a direct sale, or both for a down payment. Refunds are new
    rows with a negative amount and kind REFUND; rows are never updated.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_session_method", "drawer_session_id", "method"),
        db.Index("ix_payments_customer", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    drawer_session_id = db.Column(db.Integer, db.ForeignKey("cash_drawer_sessions.id"), nullable=True)
    credit_transaction_id = db.Column(db.Integer, db.ForeignKey("credit_transactions.id"), nullable=True)

    kind = db.Column(db.String(16), nullable=False, default="PAYMENT")  # PAYMENT, REFUND, RETURN_CREDIT
    method = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "sale_id": self.sale_id,
            "customer_id": self.customer_id,
            "drawer_session_id": self.drawer_session_id,
            "kind": self.kind,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "reference": self.reference,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class GatewayCharge(db.Model):
    """
    Online payment initiated through the payment gateway for an invoice.

    PENDING until the gateway reports success; reconciliation is keyed on
    `reference` so a repeated webhook never applies the payment twice.
    """
    __tablename__ = "gateway_charges"
    __table_args__ = (
        db.UniqueConstraint("reference", name="uq_gateway_charges_reference"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    reference = db.Column(db.String(64), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(8), nullable=False)
    payer_email = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING")  # PENDING, SUCCESS, FAILED
    authorization_url = db.Column(db.String(512), nullable=True)
    access_code = db.Column(db.String(128), nullable=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "reference": self.reference,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "payer_email": self.payer_email,
            "status": self.status,
            "authorization_url": self.authorization_url,
            "payment_id": self.payment_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
        }
