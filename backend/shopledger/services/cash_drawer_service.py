"""
Cash Drawer Session Service

WHY: Track cash accountability per drawer: what went in, what went out,
what should be in the drawer at close, and how far the count is off.

DESIGN PRINCIPLES:
- One active session per drawer at a time (conditional UPDATE on status,
  backed by a partial unique index on open sessions)
- Opening float is the first ledger entry of the session, so
  current balance == float + SUM(signed cash transactions since open)
- Every cash movement goes through ledger_service.post_cash_transaction
- Closing always succeeds for an OPEN drawer; a discrepancy is recorded,
  never rejected
- Sessions are immutable once closed
"""

from __future__ import annotations

from sqlalchemy import func, update

from ..errors import (
    AlreadyOpenError,
    NotFoundError,
    NotOpenError,
    SerializationConflictError,
    StateError,
    ValidationError,
    require_non_negative_cents,
)
from ..extensions import db
from ..models import CashDrawer, CashDrawerSession, CashTransaction, Sale
from ..time_utils import utcnow
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import post_cash_transaction
from .payment_service import TENDER_CASH, get_tender_summary
from .tenant_service import require_drawer_in_org, require_location_in_org


DRAWER_CLOSED = "CLOSED"
DRAWER_OPEN = "OPEN"
DRAWER_PAUSED = "PAUSED"

MANUAL_MOVEMENT_TYPES = {"CASH_IN", "CASH_OUT"}


# =============================================================================
# DRAWER MANAGEMENT
# =============================================================================

def create_drawer(*, org_id: int, location_id: int, name: str) -> CashDrawer:
    """Register a physical drawer at a location (starts CLOSED)."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Drawer name is required")

    def _op() -> CashDrawer:
        require_location_in_org(location_id, org_id)
        existing = db.session.query(CashDrawer).filter_by(location_id=location_id, name=name).first()
        if existing:
            raise ValidationError(f"Drawer '{name}' already exists at this location")
        drawer = CashDrawer(org_id=org_id, location_id=location_id, name=name, status=DRAWER_CLOSED)
        db.session.add(drawer)
        db.session.flush()
        return drawer

    return run_in_transaction(_op)


def _lock_drawer(drawer_id: int, org_id: int) -> CashDrawer:
    require_drawer_in_org(drawer_id, org_id)
    return (
        lock_for_update(db.session.query(CashDrawer).filter_by(id=drawer_id))
        .populate_existing()
        .one()
    )


def find_active_drawer(
    *,
    org_id: int,
    location_id: int,
    actor_user_id: int | None = None,
    drawer_id: int | None = None,
) -> CashDrawer | None:
    """
    Resolve the drawer a cash movement should hit.

    Order: the explicitly named drawer (must be OPEN), else the drawer the
    actor opened at the location, else the most recently opened drawer at
    the location. Returns None when no drawer is open.
    """
    if drawer_id is not None:
        drawer = require_drawer_in_org(drawer_id, org_id)
        db.session.refresh(drawer)
        if drawer.location_id != location_id:
            raise ValidationError(
                "Drawer belongs to a different location",
                {"drawer_id": drawer_id, "location_id": location_id},
            )
        if drawer.status != DRAWER_OPEN:
            raise NotOpenError("Cash drawer is not open", {"drawer_id": drawer_id})
        return drawer

    query = db.session.query(CashDrawer).filter_by(
        org_id=org_id, location_id=location_id, status=DRAWER_OPEN
    )
    if actor_user_id is not None:
        mine = (
            query.filter_by(opened_by_user_id=actor_user_id)
            .order_by(CashDrawer.opened_at.desc(), CashDrawer.id.desc())
            .populate_existing()
            .first()
        )
        if mine is not None:
            return mine
    return query.order_by(CashDrawer.opened_at.desc(), CashDrawer.id.desc()).populate_existing().first()


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

def open_drawer(
    *,
    org_id: int,
    drawer_id: int,
    opening_float_cents: int,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> CashDrawerSession:
    """
    Start a session with a counted opening float.

    Raises AlreadyOpenError when the drawer already has an active (OPEN or
    PAUSED) session.
    """
    opening_float = require_non_negative_cents(opening_float_cents, "opening_float_cents")

    def _op() -> CashDrawerSession:
        drawer = _lock_drawer(drawer_id, org_id)
        if not drawer.is_active:
            raise StateError("Cash drawer is deactivated", {"drawer_id": drawer_id})
        if drawer.status != DRAWER_CLOSED:
            raise AlreadyOpenError(
                "Cash drawer already has an open session",
                {"drawer_id": drawer_id, "session_id": drawer.current_session_id},
            )

        now = utcnow()
        session = CashDrawerSession(
            drawer_id=drawer_id,
            status="OPEN",
            opened_by_user_id=actor_user_id,
            opened_at=now,
            opening_float_cents=opening_float,
            opening_notes=notes,
        )
        db.session.add(session)
        db.session.flush()

        result = db.session.execute(
            update(CashDrawer)
            .where(CashDrawer.id == drawer_id, CashDrawer.status == DRAWER_CLOSED)
            .values(
                status=DRAWER_OPEN,
                current_session_id=session.id,
                current_balance_cents=0,
                opened_by_user_id=actor_user_id,
                opened_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise AlreadyOpenError("Cash drawer already has an open session", {"drawer_id": drawer_id})

        if opening_float > 0:
            post_cash_transaction(
                drawer_id=drawer_id,
                txn_type="OPENING_FLOAT",
                delta_cents=opening_float,
                reference_type="cash_drawer_session",
                reference_id=session.id,
                description="Opening float",
                actor_user_id=actor_user_id,
            )
        db.session.expire(drawer)

        append_audit_event(
            org_id=org_id,
            location_id=drawer.location_id,
            event_type="DRAWER_OPENED",
            event_category="cash_drawer",
            entity_type="cash_drawer_session",
            entity_id=session.id,
            actor_user_id=actor_user_id,
            note=notes,
            payload={"drawer_id": drawer_id, "opening_float_cents": opening_float},
        )
        return session

    return run_in_transaction(_op)


def close_drawer(
    *,
    org_id: int,
    drawer_id: int,
    actual_balance_cents: int,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> CashDrawerSession:
    """
    Close the session with the counted cash.

    expected = running drawer balance; discrepancy = actual - expected.
    Non-cash takings of the session are summarized for the shift report.
    """
    actual = require_non_negative_cents(actual_balance_cents, "actual_balance_cents")

    def _op() -> CashDrawerSession:
        drawer = _lock_drawer(drawer_id, org_id)
        if drawer.status != DRAWER_OPEN:
            raise NotOpenError("Cash drawer is not open", {"drawer_id": drawer_id, "status": drawer.status})

        expected = drawer.current_balance_cents
        seen_sequence = drawer.ledger_sequence
        session = db.session.get(CashDrawerSession, drawer.current_session_id)

        result = db.session.execute(
            update(CashDrawer)
            .where(
                CashDrawer.id == drawer_id,
                CashDrawer.status == DRAWER_OPEN,
                CashDrawer.ledger_sequence == seen_sequence,
            )
            .values(
                status=DRAWER_CLOSED,
                current_session_id=None,
                current_balance_cents=0,
                opened_by_user_id=None,
                opened_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise SerializationConflictError("Drawer changed while closing", {"drawer_id": drawer_id})
        db.session.expire(drawer)

        session.status = "CLOSED"
        session.closed_by_user_id = actor_user_id
        session.closed_at = utcnow()
        session.expected_balance_cents = expected
        session.actual_balance_cents = actual
        session.discrepancy_cents = actual - expected
        session.non_cash_summary = _non_cash_summary(session.id)
        session.closing_notes = notes
        db.session.flush()

        append_audit_event(
            org_id=org_id,
            location_id=drawer.location_id,
            event_type="DRAWER_CLOSED",
            event_category="cash_drawer",
            entity_type="cash_drawer_session",
            entity_id=session.id,
            actor_user_id=actor_user_id,
            note=notes,
            payload={
                "drawer_id": drawer_id,
                "expected_balance_cents": expected,
                "actual_balance_cents": actual,
                "discrepancy_cents": actual - expected,
            },
        )
        return session

    return run_in_transaction(_op)


def pause_drawer(*, org_id: int, drawer_id: int, actor_user_id: int | None = None) -> CashDrawer:
    """OPEN -> PAUSED. Cash postings are refused while paused."""
    return _transition(org_id, drawer_id, DRAWER_OPEN, DRAWER_PAUSED, "DRAWER_PAUSED", actor_user_id)


def resume_drawer(*, org_id: int, drawer_id: int, actor_user_id: int | None = None) -> CashDrawer:
    """PAUSED -> OPEN."""
    return _transition(org_id, drawer_id, DRAWER_PAUSED, DRAWER_OPEN, "DRAWER_RESUMED", actor_user_id)


def _transition(org_id, drawer_id, from_status, to_status, event_type, actor_user_id) -> CashDrawer:
    def _op() -> CashDrawer:
        drawer = _lock_drawer(drawer_id, org_id)
        result = db.session.execute(
            update(CashDrawer)
            .where(CashDrawer.id == drawer_id, CashDrawer.status == from_status)
            .values(status=to_status)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            if from_status == DRAWER_OPEN:
                raise NotOpenError("Cash drawer is not open", {"drawer_id": drawer_id, "status": drawer.status})
            raise StateError(
                f"Cash drawer is not {from_status.lower()}",
                {"drawer_id": drawer_id, "status": drawer.status},
            )
        db.session.expire(drawer)
        append_audit_event(
            org_id=org_id,
            location_id=drawer.location_id,
            event_type=event_type,
            event_category="cash_drawer",
            entity_type="cash_drawer",
            entity_id=drawer_id,
            actor_user_id=actor_user_id,
            payload={"session_id": drawer.current_session_id},
        )
        return drawer

    return run_in_transaction(_op)


# =============================================================================
# CASH MOVEMENTS
# =============================================================================

def record_cash_movement(
    *,
    org_id: int,
    drawer_id: int,
    movement_type: str,
    amount_cents: int,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> CashTransaction:
    """
    Manual pay-in (CASH_IN) or drop/payout (CASH_OUT).

    A CASH_OUT may not take the drawer below zero.
    """
    movement = (movement_type or "").strip().upper()
    if movement not in MANUAL_MOVEMENT_TYPES:
        raise ValidationError(f"movement_type must be one of {sorted(MANUAL_MOVEMENT_TYPES)}")
    amount = require_non_negative_cents(amount_cents, "amount_cents")
    if amount == 0:
        raise ValidationError("amount_cents must be positive")
    if movement == "CASH_OUT" and not (reason or "").strip():
        raise ValidationError("A reason is required for cash taken out of the drawer")

    def _op() -> CashTransaction:
        drawer = require_drawer_in_org(drawer_id, org_id)
        delta = amount if movement == "CASH_IN" else -amount
        txn = post_cash_transaction(
            drawer_id=drawer_id,
            txn_type=movement,
            delta_cents=delta,
            reference_type="manual",
            description=reason,
            actor_user_id=actor_user_id,
        )
        if txn.balance_after_cents < 0:
            raise ValidationError(
                "Cash out exceeds the drawer balance",
                {"balance_cents": txn.balance_before_cents, "requested_cents": amount},
            )
        append_audit_event(
            org_id=org_id,
            location_id=drawer.location_id,
            event_type=f"DRAWER_{movement}",
            event_category="cash_drawer",
            entity_type="cash_transaction",
            entity_id=txn.id,
            actor_user_id=actor_user_id,
            note=reason,
            payload={"drawer_id": drawer_id, "amount_cents": amount},
        )
        return txn

    return run_in_transaction(_op)


# =============================================================================
# REPORTING
# =============================================================================

def _non_cash_summary(session_id: int) -> dict:
    tenders = get_tender_summary(session_id)
    credit_sales = (
        db.session.query(
            func.coalesce(func.sum(Sale.credit_amount_cents), 0),
            func.count(Sale.id),
        )
        .filter(Sale.drawer_session_id == session_id, Sale.credit_amount_cents > 0)
        .one()
    )
    non_cash = {method: totals for method, totals in tenders.items() if method != TENDER_CASH}
    return {
        "tenders": non_cash,
        "non_cash_total_cents": sum(t["amount_cents"] for t in non_cash.values()),
        "credit_sales_cents": int(credit_sales[0] or 0),
        "credit_sales_count": int(credit_sales[1] or 0),
    }


def list_transactions(*, org_id: int, drawer_id: int, session_id: int | None = None) -> list[CashTransaction]:
    drawer = require_drawer_in_org(drawer_id, org_id)
    query = db.session.query(CashTransaction).filter_by(drawer_id=drawer.id)
    if session_id is not None:
        query = query.filter_by(session_id=session_id)
    elif drawer.current_session_id is not None:
        query = query.filter_by(session_id=drawer.current_session_id)
    return query.order_by(CashTransaction.sequence.asc()).all()


def get_session_summary(*, org_id: int, session_id: int) -> dict:
    """
    Shift summary: cash movements by type plus tender totals.

    Works for open and closed sessions; for an open session the expected
    balance is the live drawer balance.
    """
    session = db.session.get(CashDrawerSession, session_id)
    if session is None or session.drawer.org_id != org_id:
        raise NotFoundError("Drawer session not found", {"session_id": session_id})

    rows = (
        db.session.query(CashTransaction.type, func.sum(CashTransaction.delta_cents), func.count(CashTransaction.id))
        .filter(CashTransaction.session_id == session_id)
        .group_by(CashTransaction.type)
        .all()
    )
    by_type = {t: {"amount_cents": int(total or 0), "count": int(count)} for t, total, count in rows}
    expected = (
        session.expected_balance_cents
        if session.status == "CLOSED"
        else session.drawer.current_balance_cents
    )
    return {
        "session": session.to_dict(),
        "cash_movements": by_type,
        "expected_balance_cents": expected,
        "tenders": get_tender_summary(session_id),
        "non_cash": session.non_cash_summary if session.status == "CLOSED" else _non_cash_summary(session_id),
    }
