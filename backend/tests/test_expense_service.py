# Overview: Pytest coverage for expenses and their drawer cash-out postings.

import pytest

from shopledger.errors import NotFoundError, ValidationError
from shopledger.models import CashDrawer, CashTransaction, Expense
from shopledger.services import cash_drawer_service, expense_service


def _expense(org, location, amount_cents, **kwargs):
    return expense_service.create_expense(
        org_id=org.id,
        location_id=location.id,
        category=kwargs.pop("category", "Utilities"),
        amount_cents=amount_cents,
        actor_user_id=1,
        **kwargs,
    )


class TestExpenses:

    def test_paid_cash_expense_leaves_drawer(self, db_session, org_a, location_a, drawer_a):
        cash_drawer_service.open_drawer(org_id=org_a.id, drawer_id=drawer_a.id, opening_float_cents=1000, actor_user_id=1)

        expense = _expense(org_a, location_a, 400, description="Generator fuel", expense_date="2026-03-02")

        assert expense.expense_number == "EXP-ACM-000001"
        assert expense.payment_status == "PAID"
        assert expense.drawer_session_id is not None
        txn = db_session.query(CashTransaction).filter_by(type="EXPENSE_CASH_OUT").one()
        assert txn.delta_cents == -400
        assert txn.balance_after_cents == 600
        assert db_session.get(CashDrawer, drawer_a.id).current_balance_cents == 600

    def test_expense_larger_than_drawer_is_rejected(self, db_session, org_a, location_a, drawer_a):
        cash_drawer_service.open_drawer(org_id=org_a.id, drawer_id=drawer_a.id, opening_float_cents=100, actor_user_id=1)

        with pytest.raises(ValidationError):
            _expense(org_a, location_a, 500)

        assert db_session.query(Expense).count() == 0
        assert db_session.query(CashTransaction).filter_by(type="EXPENSE_CASH_OUT").count() == 0

    def test_pending_expense_posts_nothing_to_drawer(self, db_session, org_a, location_a, drawer_a):
        cash_drawer_service.open_drawer(org_id=org_a.id, drawer_id=drawer_a.id, opening_float_cents=100, actor_user_id=1)

        expense = _expense(org_a, location_a, 5000, payment_status="pending", vendor_name="Landlord")

        assert expense.payment_status == "PENDING"
        assert expense.drawer_session_id is None
        assert db_session.query(CashTransaction).filter_by(type="EXPENSE_CASH_OUT").count() == 0

    def test_non_cash_expense_skips_drawer(self, db_session, org_a, location_a, drawer_a):
        cash_drawer_service.open_drawer(org_id=org_a.id, drawer_id=drawer_a.id, opening_float_cents=100, actor_user_id=1)
        expense = _expense(org_a, location_a, 5000, payment_method="BANK_TRANSFER")
        assert expense.drawer_session_id is None

    def test_validation(self, db_session, org_a, location_a):
        with pytest.raises(ValidationError):
            _expense(org_a, location_a, 100, category=" ")
        with pytest.raises(ValidationError):
            _expense(org_a, location_a, 0)
        with pytest.raises(ValidationError):
            _expense(org_a, location_a, 100, expense_date="02/03/2026")

    def test_listing_is_tenant_scoped(self, db_session, org_a, org_b, location_a):
        expense = _expense(org_a, location_a, 250, payment_method="CARD")

        assert [e.id for e in expense_service.list_expenses(org_id=org_a.id)] == [expense.id]
        assert expense_service.list_expenses(org_id=org_b.id) == []
        with pytest.raises(NotFoundError):
            expense_service.get_expense(org_id=org_b.id, expense_id=expense.id)
