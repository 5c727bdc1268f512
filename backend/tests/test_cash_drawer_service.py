# Overview: Pytest coverage for cash drawer sessions and cash movements.

"""
Cash Drawer Session Tests

Covers:
- Expected balance = float + cash in - cash out; discrepancy = actual - expected
- One active session per drawer (double open rejected)
- Pause/resume and postings refused while paused
- Cash out cannot take the drawer below zero
- Non-cash takings summarized at close
- Cross-tenant drawer ids behave like missing ones
"""

import pytest

from shopledger.errors import AlreadyOpenError, NotFoundError, NotOpenError, ValidationError
from shopledger.models import CashDrawer, CashDrawerSession, CashTransaction
from shopledger.services import cash_drawer_service, sales_service


def _open(org, drawer, float_cents, user_id=1):
    return cash_drawer_service.open_drawer(
        org_id=org.id, drawer_id=drawer.id, opening_float_cents=float_cents, actor_user_id=user_id
    )


class TestSessionLifecycle:

    def test_close_computes_expected_and_discrepancy(self, db_session, org_a, location_a, drawer_a, product_a, stock):
        stock(product_a, location_a, 5)
        session = _open(org_a, drawer_a, 100)

        sales_service.checkout(
            org_id=org_a.id,
            location_id=location_a.id,
            items=[{"product_id": product_a.id, "quantity": 1, "unit_price_cents": 250}],
            payment_method="CASH",
            actor_user_id=1,
        )
        cash_drawer_service.record_cash_movement(
            org_id=org_a.id, drawer_id=drawer_a.id, movement_type="CASH_OUT", amount_cents=30, reason="Bank drop"
        )

        closed = cash_drawer_service.close_drawer(org_id=org_a.id, drawer_id=drawer_a.id, actual_balance_cents=300)

        assert closed.id == session.id
        assert closed.status == "CLOSED"
        assert closed.expected_balance_cents == 320
        assert closed.actual_balance_cents == 300
        assert closed.discrepancy_cents == -20

        drawer = db_session.get(CashDrawer, drawer_a.id)
        assert drawer.status == "CLOSED"
        assert drawer.current_session_id is None

        types = [
            t.type
            for t in db_session.query(CashTransaction).filter_by(session_id=session.id).order_by(CashTransaction.sequence)
        ]
        assert types == ["OPENING_FLOAT", "SALE_CASH_IN", "CASH_OUT"]

    def test_zero_float_posts_no_opening_entry(self, db_session, org_a, drawer_a):
        session = _open(org_a, drawer_a, 0)
        assert db_session.query(CashTransaction).filter_by(session_id=session.id).count() == 0

    def test_double_open_is_rejected(self, db_session, org_a, drawer_a):
        _open(org_a, drawer_a, 100)
        with pytest.raises(AlreadyOpenError):
            _open(org_a, drawer_a, 100)
        assert db_session.query(CashDrawerSession).count() == 1

    def test_close_requires_open_drawer(self, db_session, org_a, drawer_a):
        with pytest.raises(NotOpenError):
            cash_drawer_service.close_drawer(org_id=org_a.id, drawer_id=drawer_a.id, actual_balance_cents=0)

    def test_reopen_after_close_starts_from_new_float(self, db_session, org_a, drawer_a):
        _open(org_a, drawer_a, 1000)
        cash_drawer_service.close_drawer(org_id=org_a.id, drawer_id=drawer_a.id, actual_balance_cents=1000)
        second = _open(org_a, drawer_a, 200)

        summary = cash_drawer_service.get_session_summary(org_id=org_a.id, session_id=second.id)
        assert summary["expected_balance_cents"] == 200

    def test_pause_blocks_postings_until_resumed(self, db_session, org_a, drawer_a):
        _open(org_a, drawer_a, 100)
        cash_drawer_service.pause_drawer(org_id=org_a.id, drawer_id=drawer_a.id)

        with pytest.raises(NotOpenError):
            cash_drawer_service.record_cash_movement(
                org_id=org_a.id, drawer_id=drawer_a.id, movement_type="CASH_IN", amount_cents=50
            )

        cash_drawer_service.resume_drawer(org_id=org_a.id, drawer_id=drawer_a.id)
        txn = cash_drawer_service.record_cash_movement(
            org_id=org_a.id, drawer_id=drawer_a.id, movement_type="CASH_IN", amount_cents=50
        )
        assert txn.balance_after_cents == 150

    def test_foreign_drawer_is_not_found(self, db_session, org_b, drawer_a):
        with pytest.raises(NotFoundError):
            cash_drawer_service.open_drawer(org_id=org_b.id, drawer_id=drawer_a.id, opening_float_cents=0)


class TestCashMovements:

    def test_cash_out_cannot_exceed_balance(self, db_session, org_a, drawer_a):
        _open(org_a, drawer_a, 100)

        with pytest.raises(ValidationError):
            cash_drawer_service.record_cash_movement(
                org_id=org_a.id, drawer_id=drawer_a.id, movement_type="CASH_OUT", amount_cents=150, reason="Payout"
            )

        drawer = db_session.get(CashDrawer, drawer_a.id)
        db_session.refresh(drawer)
        assert drawer.current_balance_cents == 100
        assert db_session.query(CashTransaction).count() == 1

    def test_cash_out_requires_reason(self, db_session, org_a, drawer_a):
        _open(org_a, drawer_a, 100)
        with pytest.raises(ValidationError):
            cash_drawer_service.record_cash_movement(
                org_id=org_a.id, drawer_id=drawer_a.id, movement_type="CASH_OUT", amount_cents=10
            )

    def test_unknown_movement_type(self, db_session, org_a, drawer_a):
        _open(org_a, drawer_a, 100)
        with pytest.raises(ValidationError):
            cash_drawer_service.record_cash_movement(
                org_id=org_a.id, drawer_id=drawer_a.id, movement_type="SALE_CASH_IN", amount_cents=10
            )


class TestShiftSummary:

    def test_non_cash_takings_are_summarized_at_close(self, db_session, org_a, location_a, drawer_a, product_a, stock):
        stock(product_a, location_a, 10)
        _open(org_a, drawer_a, 500)
        sales_service.checkout(
            org_id=org_a.id,
            location_id=location_a.id,
            items=[{"product_id": product_a.id, "quantity": 2}],
            payment_method="CARD",
            actor_user_id=1,
        )
        sales_service.checkout(
            org_id=org_a.id,
            location_id=location_a.id,
            items=[{"product_id": product_a.id, "quantity": 1}],
            payment_method="CASH",
            amount_paid_cents=2000,
            actor_user_id=1,
        )

        session = cash_drawer_service.close_drawer(org_id=org_a.id, drawer_id=drawer_a.id, actual_balance_cents=1500)

        # Change is netted out: only the 10.00 sale total stays in the drawer
        assert session.expected_balance_cents == 1500
        assert session.discrepancy_cents == 0
        assert session.non_cash_summary["tenders"] == {"CARD": {"amount_cents": 2000, "count": 1}}
        assert session.non_cash_summary["non_cash_total_cents"] == 2000

    def test_active_drawer_prefers_the_actors_own(self, db_session, org_a, location_a, drawer_a):
        other = cash_drawer_service.create_drawer(org_id=org_a.id, location_id=location_a.id, name="Till 2")
        _open(org_a, drawer_a, 0, user_id=1)
        _open(org_a, other, 0, user_id=2)

        found = cash_drawer_service.find_active_drawer(org_id=org_a.id, location_id=location_a.id, actor_user_id=1)
        assert found.id == drawer_a.id
