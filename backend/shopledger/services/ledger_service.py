# Overview: Running-balance primitives for customer credit and cash drawers.

"""
Ledger Primitives

WHY: Customer balances and drawer balances are touched by checkout,
payments, returns and expenses, often concurrently. A read-modify-write of
the balance column would lose updates, and a balance change without a
matching ledger row would break the audit chain.

DESIGN PRINCIPLES:
- One atomic UPDATE adds the signed delta and bumps the per-aggregate
  ledger sequence in the same statement; the new values are read back
  under the row's write lock
- The ledger row records balance before/after and the sequence, so
  balance_after[n] == balance_after[n-1] + delta[n] holds in commit order
- Only this module writes Customer.current_balance_cents and
  CashDrawer.current_balance_cents
- Must run inside a unit of work (callers own the transaction)
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import update

from ..errors import NotFoundError, NotOpenError, ValidationError
from ..extensions import db
from ..models import (
    CashDrawer,
    CashDrawerSession,
    CashTransaction,
    CreditTransaction,
    Customer,
)
from ..time_utils import utcnow


CREDIT_TRANSACTION_TYPES = {"CREDIT", "PAYMENT", "ADJUSTMENT"}

CASH_TRANSACTION_TYPES = {
    "OPENING_FLOAT",
    "SALE_CASH_IN",
    "PAYMENT_CASH_IN",
    "CASH_IN",
    "CASH_OUT",
    "EXPENSE_CASH_OUT",
    "RETURN_REFUND",
}
_CASH_INFLOWS = {"OPENING_FLOAT", "SALE_CASH_IN", "PAYMENT_CASH_IN", "CASH_IN"}
_CASH_OUTFLOWS = {"CASH_OUT", "EXPENSE_CASH_OUT", "RETURN_REFUND"}


def _check_credit_sign(txn_type: str, delta_cents: int) -> None:
    if txn_type not in CREDIT_TRANSACTION_TYPES:
        raise ValidationError(f"Unknown credit transaction type: {txn_type}")
    if delta_cents == 0:
        raise ValidationError("Ledger amount must be non-zero")
    if txn_type == "CREDIT" and delta_cents < 0:
        raise ValidationError("CREDIT entries must increase the balance")
    if txn_type == "PAYMENT" and delta_cents > 0:
        raise ValidationError("PAYMENT entries must decrease the balance")


def _check_cash_sign(txn_type: str, delta_cents: int) -> None:
    if txn_type not in CASH_TRANSACTION_TYPES:
        raise ValidationError(f"Unknown cash transaction type: {txn_type}")
    if delta_cents == 0:
        raise ValidationError("Ledger amount must be non-zero")
    if txn_type in _CASH_INFLOWS and delta_cents < 0:
        raise ValidationError(f"{txn_type} must add cash to the drawer")
    if txn_type in _CASH_OUTFLOWS and delta_cents > 0:
        raise ValidationError(f"{txn_type} must remove cash from the drawer")


# =============================================================================
# CUSTOMER CREDIT
# =============================================================================

def post_credit_transaction(
    *,
    customer_id: int,
    txn_type: str,
    delta_cents: int,
    method: str | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    reference: str | None = None,
    description: str | None = None,
    actor_user_id: int | None = None,
) -> CreditTransaction:
    """
    Apply a signed delta to a customer's balance and append the ledger row.

    CREDIT raises the balance, PAYMENT lowers it, ADJUSTMENT may do either.
    """
    _check_credit_sign(txn_type, delta_cents)

    values = {
        "current_balance_cents": Customer.current_balance_cents + delta_cents,
        "ledger_sequence": Customer.ledger_sequence + 1,
    }
    if txn_type == "PAYMENT":
        values["last_payment_at"] = utcnow()

    result = db.session.execute(
        update(Customer)
        .where(Customer.id == customer_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFoundError("Customer not found", {"customer_id": customer_id})

    customer = db.session.get(Customer, customer_id, populate_existing=True)
    balance_after = customer.current_balance_cents

    txn = CreditTransaction(
        org_id=customer.org_id,
        customer_id=customer_id,
        sequence=customer.ledger_sequence,
        type=txn_type,
        amount_cents=abs(delta_cents),
        delta_cents=delta_cents,
        balance_before_cents=balance_after - delta_cents,
        balance_after_cents=balance_after,
        method=method,
        reference_type=reference_type,
        reference_id=reference_id,
        reference=reference,
        description=description,
        created_by_user_id=actor_user_id,
    )
    db.session.add(txn)
    db.session.flush()
    return txn


# =============================================================================
# CASH DRAWER
# =============================================================================

def post_cash_transaction(
    *,
    drawer_id: int,
    txn_type: str,
    delta_cents: int,
    reference_type: str | None = None,
    reference_id: int | None = None,
    description: str | None = None,
    actor_user_id: int | None = None,
) -> CashTransaction:
    """
    Apply a signed delta to an OPEN drawer's balance and append the ledger row.

    The UPDATE only matches while the drawer is OPEN, so a concurrent close
    either happens entirely before (NotOpenError) or after this posting.
    """
    _check_cash_sign(txn_type, delta_cents)

    result = db.session.execute(
        update(CashDrawer)
        .where(CashDrawer.id == drawer_id, CashDrawer.status == "OPEN")
        .values(
            current_balance_cents=CashDrawer.current_balance_cents + delta_cents,
            ledger_sequence=CashDrawer.ledger_sequence + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotOpenError("Cash drawer is not open", {"drawer_id": drawer_id})

    drawer = db.session.get(CashDrawer, drawer_id, populate_existing=True)
    balance_after = drawer.current_balance_cents

    txn = CashTransaction(
        drawer_id=drawer_id,
        session_id=drawer.current_session_id,
        sequence=drawer.ledger_sequence,
        type=txn_type,
        delta_cents=delta_cents,
        balance_before_cents=balance_after - delta_cents,
        balance_after_cents=balance_after,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        performed_by_user_id=actor_user_id,
    )
    db.session.add(txn)
    db.session.flush()
    return txn


# =============================================================================
# CHAIN VERIFICATION
# =============================================================================

@dataclass
class ChainReport:
    entity_type: str
    entity_id: int
    entries: int = 0
    final_balance_cents: int = 0
    expected_balance_cents: int | None = None
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems

    def to_dict(self) -> dict:
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entries": self.entries,
            "final_balance_cents": self.final_balance_cents,
            "expected_balance_cents": self.expected_balance_cents,
            "ok": self.ok,
            "problems": list(self.problems),
        }


def _walk_chain(report: ChainReport, rows) -> None:
    running = 0
    for row in rows:
        report.entries += 1
        if row.balance_before_cents != running:
            report.problems.append(
                f"seq {row.sequence}: balance_before {row.balance_before_cents} != previous balance_after {running}"
            )
        if row.balance_before_cents + row.delta_cents != row.balance_after_cents:
            report.problems.append(
                f"seq {row.sequence}: before {row.balance_before_cents} + delta {row.delta_cents} "
                f"!= after {row.balance_after_cents}"
            )
        running = row.balance_after_cents
    report.final_balance_cents = running
    if report.expected_balance_cents is not None and running != report.expected_balance_cents:
        report.problems.append(
            f"final balance_after {running} != stored balance {report.expected_balance_cents}"
        )


def verify_customer_chain(customer_id: int) -> ChainReport:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found", {"customer_id": customer_id})
    rows = (
        db.session.query(CreditTransaction)
        .filter_by(customer_id=customer_id)
        .order_by(CreditTransaction.sequence.asc())
        .all()
    )
    report = ChainReport("customer", customer_id, expected_balance_cents=customer.current_balance_cents)
    _walk_chain(report, rows)
    return report


def verify_drawer_session_chain(session_id: int) -> ChainReport:
    """
    Check one drawer session: entries chain from zero and end at the drawer's
    live balance (active session) or the recorded expected balance (closed).
    """
    session = db.session.get(CashDrawerSession, session_id)
    if session is None:
        raise NotFoundError("Drawer session not found", {"session_id": session_id})
    if session.status == "CLOSED":
        expected = session.expected_balance_cents
    else:
        expected = session.drawer.current_balance_cents
    rows = (
        db.session.query(CashTransaction)
        .filter_by(session_id=session_id)
        .order_by(CashTransaction.sequence.asc())
        .all()
    )
    report = ChainReport("cash_drawer_session", session_id, expected_balance_cents=expected)
    _walk_chain(report, rows)
    return report


def verify_drawer_chain(drawer_id: int) -> list[ChainReport]:
    """Verify every session of a drawer, oldest first."""
    drawer = db.session.get(CashDrawer, drawer_id)
    if drawer is None:
        raise NotFoundError("Cash drawer not found", {"drawer_id": drawer_id})
    sessions = (
        db.session.query(CashDrawerSession)
        .filter_by(drawer_id=drawer_id)
        .order_by(CashDrawerSession.id.asc())
        .all()
    )
    return [verify_drawer_session_chain(s.id) for s in sessions]
