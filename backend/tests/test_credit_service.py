# Overview: Pytest coverage for the customer credit ledger and FIFO payments.

"""
Customer Credit Tests

Covers:
- credit_status thresholds (GOOD / WARNING / BLOCKED)
- Limit enforcement at checkout, landing exactly on the limit allowed
- FIFO allocation over open invoices with one aggregate PAYMENT entry
- Overpayment kept on account (negative balance)
- Direct invoice payments, cash payments into the open drawer
- Supervisor override policy and overdue marking
"""

from datetime import date, timedelta

import pytest

from shopledger.errors import CreditLimitExceededError, NotFoundError, ValidationError
from shopledger.models import AuditEvent, CashTransaction, CreditTransaction, Invoice, Payment
from shopledger.services import cash_drawer_service, credit_service, sales_service
from shopledger.services.credit_service import (
    CREDIT_BLOCKED,
    CREDIT_GOOD,
    CREDIT_WARNING,
    ApprovedOverridePolicy,
    credit_status,
)


def _credit_sale(org, location, customer, product, price_cents, **kwargs):
    return sales_service.checkout(
        org_id=org.id,
        location_id=location.id,
        items=[{"product_id": product.id, "quantity": 1, "unit_price_cents": price_cents}],
        is_credit=True,
        customer_id=customer.id,
        actor_user_id=1,
        **kwargs,
    )


class TestCreditStatus:

    @pytest.mark.parametrize(
        "balance, limit, expected",
        [
            (0, 5000, CREDIT_GOOD),
            (4000, 5000, CREDIT_GOOD),
            (4001, 5000, CREDIT_WARNING),
            (4999, 5000, CREDIT_WARNING),
            (5000, 5000, CREDIT_BLOCKED),
            (6000, 5000, CREDIT_BLOCKED),
            (0, 0, CREDIT_BLOCKED),
            (-200, 5000, CREDIT_GOOD),
        ],
    )
    def test_thresholds(self, balance, limit, expected):
        assert credit_status(balance, limit) == expected


class TestCreditLimit:

    def test_sale_past_limit_is_rejected_and_exact_limit_allowed(
        self, db_session, org_a, location_a, customer_a, product_a, stock
    ):
        stock(product_a, location_a, 10)
        credit_service.apply_credit(customer_id=customer_a.id, amount_cents=4900)

        with pytest.raises(CreditLimitExceededError) as exc_info:
            _credit_sale(org_a, location_a, customer_a, product_a, 150)
        assert exc_info.value.details["available_cents"] == 100

        result = _credit_sale(org_a, location_a, customer_a, product_a, 100)

        db_session.refresh(customer_a)
        assert customer_a.current_balance_cents == 5000
        assert result.invoice.balance_due_cents == 100
        # The rejected sale moved no stock
        assert db_session.query(Invoice).count() == 1

    def test_override_policy_allows_and_audits(self, db_session, org_a, location_a, customer_a, product_a, stock):
        stock(product_a, location_a, 10)

        _credit_sale(
            org_a, location_a, customer_a, product_a, 6000,
            credit_policy=ApprovedOverridePolicy(approved_by_user_id=99),
        )

        db_session.refresh(customer_a)
        assert customer_a.current_balance_cents == 6000
        event = db_session.query(AuditEvent).filter_by(event_type="CREDIT_LIMIT_OVERRIDE").one()
        assert event.payload["approved_by_user_id"] == 99

    def test_override_policy_caps_the_excess(self, db_session, org_a, location_a, customer_a, product_a, stock):
        stock(product_a, location_a, 10)
        with pytest.raises(CreditLimitExceededError):
            _credit_sale(
                org_a, location_a, customer_a, product_a, 6000,
                credit_policy=ApprovedOverridePolicy(approved_by_user_id=99, max_over_limit_cents=500),
            )


class TestPayments:

    def test_fifo_allocation_oldest_invoice_first(self, db_session, org_a, location_a, customer_a, product_a, stock):
        stock(product_a, location_a, 10)
        first = _credit_sale(org_a, location_a, customer_a, product_a, 100).invoice
        second = _credit_sale(org_a, location_a, customer_a, product_a, 80).invoice

        application = credit_service.apply_payment(
            org_id=org_a.id, customer_id=customer_a.id, amount_cents=120, method="CASH"
        )

        db_session.refresh(first)
        db_session.refresh(second)
        assert (first.balance_due_cents, first.status) == (0, "PAID")
        assert (second.balance_due_cents, second.status) == (60, "PARTIAL")
        assert [(p.invoice_id, p.amount_cents) for p in application.payments] == [(first.id, 100), (second.id, 20)]
        assert application.unapplied_cents == 0

        # One aggregate ledger entry for the whole payment
        payments = db_session.query(CreditTransaction).filter_by(customer_id=customer_a.id, type="PAYMENT").all()
        assert len(payments) == 1
        assert payments[0].delta_cents == -120
        assert payments[0].balance_after_cents == 60

    def test_overpayment_stays_on_account(self, db_session, org_a, location_a, customer_a, product_a, stock):
        stock(product_a, location_a, 10)
        invoice = _credit_sale(org_a, location_a, customer_a, product_a, 100).invoice

        application = credit_service.apply_payment(
            org_id=org_a.id, customer_id=customer_a.id, amount_cents=300, method="MOBILE_MONEY"
        )

        assert application.unapplied_cents == 200
        assert application.credit_transaction.balance_after_cents == -200
        unapplied = db_session.query(Payment).filter(Payment.invoice_id.is_(None), Payment.kind == "PAYMENT").one()
        assert unapplied.amount_cents == 200
        db_session.refresh(invoice)
        assert invoice.status == "PAID"

    def test_direct_invoice_payment_cannot_exceed_balance(
        self, db_session, org_a, location_a, customer_a, product_a, stock
    ):
        stock(product_a, location_a, 10)
        invoice = _credit_sale(org_a, location_a, customer_a, product_a, 100).invoice

        with pytest.raises(ValidationError):
            credit_service.pay_invoice(org_id=org_a.id, invoice_id=invoice.id, amount_cents=101, method="CASH")

        application = credit_service.pay_invoice(org_id=org_a.id, invoice_id=invoice.id, amount_cents=40, method="CARD")
        assert application.payments[0].invoice_id == invoice.id
        db_session.refresh(invoice)
        assert invoice.balance_due_cents == 60

    def test_cash_payment_goes_into_open_drawer(
        self, db_session, org_a, location_a, customer_a, drawer_a, product_a, stock
    ):
        stock(product_a, location_a, 10)
        _credit_sale(org_a, location_a, customer_a, product_a, 100)
        cash_drawer_service.open_drawer(org_id=org_a.id, drawer_id=drawer_a.id, opening_float_cents=500, actor_user_id=1)

        application = credit_service.apply_payment(
            org_id=org_a.id,
            customer_id=customer_a.id,
            amount_cents=100,
            method="CASH",
            location_id=location_a.id,
            actor_user_id=1,
        )

        assert application.cash_transaction.type == "PAYMENT_CASH_IN"
        assert application.cash_transaction.balance_after_cents == 600
        assert db_session.query(CashTransaction).filter_by(type="PAYMENT_CASH_IN").count() == 1

    def test_online_tender_requires_gateway(self, db_session, org_a, customer_a):
        with pytest.raises(ValidationError):
            credit_service.apply_payment(org_id=org_a.id, customer_id=customer_a.id, amount_cents=100, method="ONLINE")

    def test_foreign_customer_is_not_found(self, db_session, org_b, customer_a):
        with pytest.raises(NotFoundError):
            credit_service.apply_payment(org_id=org_b.id, customer_id=customer_a.id, amount_cents=100, method="CASH")


class TestInvoices:

    def test_mark_overdue(self, db_session, org_a, customer_a):
        past = credit_service.create_invoice(
            org_id=org_a.id, customer_id=customer_a.id, total_cents=500, due_date=date(2026, 1, 1)
        )
        future = credit_service.create_invoice(
            org_id=org_a.id, customer_id=customer_a.id, total_cents=500, due_date=date(2026, 1, 1) + timedelta(days=60)
        )

        count = credit_service.mark_overdue_invoices(org_id=org_a.id, as_of=date(2026, 1, 15))

        assert count == 1
        assert db_session.get(Invoice, past.id).status == "OVERDUE"
        assert db_session.get(Invoice, future.id).status == "SENT"

    def test_credit_summary(self, db_session, org_a, location_a, customer_a, product_a, stock):
        stock(product_a, location_a, 10)
        _credit_sale(org_a, location_a, customer_a, product_a, 4500)

        summary = credit_service.customer_credit_summary(org_id=org_a.id, customer_id=customer_a.id)

        assert summary["current_balance_cents"] == 4500
        assert summary["available_credit_cents"] == 500
        assert summary["credit_status"] == CREDIT_WARNING
        assert summary["open_invoice_count"] == 1
        assert summary["open_invoice_total_cents"] == 4500
