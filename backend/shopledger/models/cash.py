from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class CashDrawer(db.Model):
    """
    Physical cash drawer at a location.

    WHY: Aggregate root for cash movements. Holds the running balance of the
    current session so every cash-in/out is an atomic increment.

    DESIGN:
    - status CLOSED -> OPEN -> (PAUSED <-> OPEN) -> CLOSED
    - At most one OPEN session; opening is a conditional UPDATE on status
    - current_balance_cents is only meaningful while a session is active and
      always equals opening float + SUM(session cash_transactions.delta_cents)
    - No version_id: balance and status change through bulk UPDATEs
    """
    __tablename__ = "cash_drawers"
    __table_args__ = (
        db.UniqueConstraint("location_id", "name", name="uq_cash_drawers_location_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="CLOSED")
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    ledger_sequence = db.Column(db.Integer, nullable=False, default=0)
    current_session_id = db.Column(db.Integer, nullable=True)
    opened_by_user_id = db.Column(db.Integer, nullable=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    location = db.relationship("Location", backref=db.backref("cash_drawers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "location_id": self.location_id,
            "name": self.name,
            "status": self.status,
            "current_balance_cents": self.current_balance_cents,
            "current_session_id": self.current_session_id,
            "opened_by_user_id": self.opened_by_user_id,
            "opened_at": to_utc_z(self.opened_at),
            "is_active": self.is_active,
        }


class CashDrawerSession(db.Model):
    """
    One open-to-close period of a drawer and its reconciliation result.

    expected_balance_cents is the drawer's running balance at close;
    discrepancy_cents = actual - expected (negative means cash short).
    """
    __tablename__ = "cash_drawer_sessions"
    __table_args__ = (
        db.Index("ix_cash_drawer_sessions_drawer_opened", "drawer_id", "opened_at"),
        # At most one active session per drawer
        db.Index(
            "uq_cash_drawer_sessions_one_open",
            "drawer_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    drawer_id = db.Column(db.Integer, db.ForeignKey("cash_drawers.id"), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="OPEN")  # OPEN, CLOSED

    opened_by_user_id = db.Column(db.Integer, nullable=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    opening_float_cents = db.Column(db.Integer, nullable=False, default=0)
    opening_notes = db.Column(db.Text, nullable=True)

    closed_by_user_id = db.Column(db.Integer, nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expected_balance_cents = db.Column(db.Integer, nullable=True)
    actual_balance_cents = db.Column(db.Integer, nullable=True)
    discrepancy_cents = db.Column(db.Integer, nullable=True)
    non_cash_summary = db.Column(db.JSON, nullable=True)
    closing_notes = db.Column(db.Text, nullable=True)

    drawer = db.relationship("CashDrawer", backref=db.backref("sessions", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "drawer_id": self.drawer_id,
            "status": self.status,
            "opened_by_user_id": self.opened_by_user_id,
            "opened_at": to_utc_z(self.opened_at),
            "opening_float_cents": self.opening_float_cents,
            "opening_notes": self.opening_notes,
            "closed_by_user_id": self.closed_by_user_id,
            "closed_at": to_utc_z(self.closed_at),
            "expected_balance_cents": self.expected_balance_cents,
            "actual_balance_cents": self.actual_balance_cents,
            "discrepancy_cents": self.discrepancy_cents,
            "non_cash_summary": self.non_cash_summary,
            "closing_notes": self.closing_notes,
        }


class CashTransaction(db.Model):
    """
    Append-only drawer ledger row.

    Types: OPENING_FLOAT, SALE_CASH_IN, PAYMENT_CASH_IN, CASH_IN, CASH_OUT,
    EXPENSE_CASH_OUT, RETURN_REFUND. delta_cents is signed; the chain
    balance_after[n] == balance_after[n-1] + delta[n] holds per session.
    """
    __tablename__ = "cash_transactions"
    __table_args__ = (
        db.UniqueConstraint("drawer_id", "sequence", name="uq_cash_transactions_drawer_seq"),
        db.Index("ix_cash_transactions_session", "session_id", "sequence"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    drawer_id = db.Column(db.Integer, db.ForeignKey("cash_drawers.id"), nullable=False)
    session_id = db.Column(db.Integer, db.ForeignKey("cash_drawer_sessions.id"), nullable=False)
    sequence = db.Column(db.Integer, nullable=False)

    type = db.Column(db.String(32), nullable=False)
    delta_cents = db.Column(db.Integer, nullable=False)
    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    description = db.Column(db.String(255), nullable=True)

    performed_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "drawer_id": self.drawer_id,
            "session_id": self.session_id,
            "sequence": self.sequence,
            "type": self.type,
            "delta_cents": self.delta_cents,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "description": self.description,
            "performed_by_user_id": self.performed_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
