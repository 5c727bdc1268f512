from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z, utcnow


class Expense(db.Model):
    """
    Operating expense (rent, transport, supplies).

    A PAID cash expense also takes cash out of the open drawer at its
    location; the drawer transaction references this row.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.UniqueConstraint("org_id", "expense_number", name="uq_expenses_org_number"),
        db.Index("ix_expenses_location_date", "location_id", "expense_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    drawer_session_id = db.Column(db.Integer, db.ForeignKey("cash_drawer_sessions.id"), nullable=True)

    expense_number = db.Column(db.String(32), nullable=False)
    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="CASH")
    payment_status = db.Column(db.String(16), nullable=False, default="PAID")  # PAID, PENDING
    vendor_name = db.Column(db.String(255), nullable=True)
    expense_date = db.Column(db.Date, nullable=False)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "location_id": self.location_id,
            "drawer_session_id": self.drawer_session_id,
            "expense_number": self.expense_number,
            "category": self.category,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "vendor_name": self.vendor_name,
            "expense_date": to_iso_date(self.expense_date),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
