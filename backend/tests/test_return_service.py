# Overview: Pytest coverage for customer returns (restock, refunds, credit reversal).

"""
Return Processing Tests

Covers:
- Restock into the batches the sale consumed (latest consumed first)
- DISPOSE / QUARANTINE leave sellable stock alone
- Over-return rejected, sale status PARTIALLY_RETURNED -> RETURNED
- Cash refund out of the open drawer, refund as a negative payment
- Credit sales: refund clears the invoice balance through an ADJUSTMENT
- Partial sales: credit part first, remainder paid out in the sale's tender
"""

from datetime import date

import pytest

from shopledger.errors import NotFoundError, ValidationError
from shopledger.models import CashTransaction, CreditTransaction, Invoice, Payment, Sale
from shopledger.services import cash_drawer_service, inventory_service, return_service, sales_service


JAN = date(2026, 1, 20)
MAR = date(2026, 3, 20)


def _cash_sale(org, location, product, quantity, **kwargs):
    return sales_service.checkout(
        org_id=org.id,
        location_id=location.id,
        items=[{"product_id": product.id, "quantity": quantity, **kwargs}],
        actor_user_id=1,
    ).sale


def _return(org, sale, items, **kwargs):
    return return_service.process_return(
        org_id=org.id, sale_id=sale.id, items=items, reason=kwargs.pop("reason", "Customer changed mind"),
        actor_user_id=1, **kwargs,
    )


class TestRestock:

    def test_restock_goes_back_to_consumed_batches(self, db_session, org_a, location_a, product_a, stock):
        stock(product_a, location_a, 1, JAN)
        stock(product_a, location_a, 5, MAR)
        sale = _cash_sale(org_a, location_a, product_a, 3)
        line_id = sale.lines[0].id

        _return(org_a, sale, [{"sale_line_id": line_id, "quantity": 2}])
        assert inventory_service.get_batch(product_a.id, location_a.id, MAR).quantity == 5
        assert inventory_service.get_batch(product_a.id, location_a.id, JAN).quantity == 0

        _return(org_a, sale, [{"sale_line_id": line_id, "quantity": 1}])
        assert inventory_service.get_batch(product_a.id, location_a.id, JAN).quantity == 1
        assert inventory_service.get_batch(product_a.id, location_a.id, None) is None

    def test_dispose_does_not_restock(self, db_session, org_a, location_a, product_a, stock):
        stock(product_a, location_a, 5)
        sale = _cash_sale(org_a, location_a, product_a, 2)

        ret = _return(
            org_a, sale,
            [{"product_id": product_a.id, "quantity": 2, "condition": "damaged", "disposition": "DISPOSE"}],
        )

        assert ret.lines[0].restocked_quantity == 0
        assert ret.lines[0].condition == "DAMAGED"
        assert inventory_service.get_available(product_a.id, location_a.id) == 3


class TestReturnRules:

    def test_over_return_is_rejected(self, db_session, org_a, location_a, product_a, stock):
        stock(product_a, location_a, 5)
        sale = _cash_sale(org_a, location_a, product_a, 2)
        _return(org_a, sale, [{"product_id": product_a.id, "quantity": 1}])

        with pytest.raises(ValidationError) as exc_info:
            _return(org_a, sale, [{"product_id": product_a.id, "quantity": 2}])
        assert exc_info.value.details["returnable"] == 1

    def test_sale_status_follows_returned_quantity(self, db_session, org_a, location_a, product_a, stock):
        stock(product_a, location_a, 5)
        sale = _cash_sale(org_a, location_a, product_a, 2)

        _return(org_a, sale, [{"product_id": product_a.id, "quantity": 1}])
        assert db_session.get(Sale, sale.id).status == "PARTIALLY_RETURNED"

        _return(org_a, sale, [{"product_id": product_a.id, "quantity": 1}])
        assert db_session.get(Sale, sale.id).status == "RETURNED"

    def test_reason_is_required(self, db_session, org_a, location_a, product_a, stock):
        stock(product_a, location_a, 5)
        sale = _cash_sale(org_a, location_a, product_a, 1)
        with pytest.raises(ValidationError):
            _return(org_a, sale, [{"product_id": product_a.id, "quantity": 1}], reason="  ")

    def test_product_not_on_sale(self, db_session, org_a, location_a, product_a, taxed_product, stock):
        stock(product_a, location_a, 5)
        sale = _cash_sale(org_a, location_a, product_a, 1)
        with pytest.raises(ValidationError):
            _return(org_a, sale, [{"product_id": taxed_product.id, "quantity": 1}])

    def test_foreign_org_cannot_return(self, db_session, org_a, org_b, location_a, product_a, stock):
        stock(product_a, location_a, 5)
        sale = _cash_sale(org_a, location_a, product_a, 1)
        with pytest.raises(NotFoundError):
            _return(org_b, sale, [{"product_id": product_a.id, "quantity": 1}])


class TestRefunds:

    def test_cash_refund_ignores_discount_and_leaves_drawer(
        self, db_session, org_a, location_a, drawer_a, product_a, stock
    ):
        stock(product_a, location_a, 5)
        cash_drawer_service.open_drawer(org_id=org_a.id, drawer_id=drawer_a.id, opening_float_cents=500, actor_user_id=1)
        sale = _cash_sale(org_a, location_a, product_a, 2, discount_cents=200)

        ret = _return(org_a, sale, [{"product_id": product_a.id, "quantity": 1}])

        assert ret.return_number == "RET-ACM-000001"
        assert ret.refund_cents == 1000
        assert ret.cash_refund_cents == 1000
        assert ret.credit_refund_cents == 0
        assert ret.refund_method == "CASH"
        refund_txn = db_session.query(CashTransaction).filter_by(type="RETURN_REFUND").one()
        assert refund_txn.delta_cents == -1000
        assert refund_txn.balance_after_cents == 500 + 1800 - 1000
        refund_payment = db_session.query(Payment).filter_by(kind="REFUND").one()
        assert refund_payment.amount_cents == -1000
        assert refund_payment.sale_id == sale.id

    def test_drawer_short_of_cash_rejects_refund(self, db_session, org_a, location_a, drawer_a, product_a, stock):
        stock(product_a, location_a, 5)
        sale = _cash_sale(org_a, location_a, product_a, 1)
        cash_drawer_service.open_drawer(org_id=org_a.id, drawer_id=drawer_a.id, opening_float_cents=0, actor_user_id=1)

        with pytest.raises(ValidationError):
            _return(org_a, sale, [{"product_id": product_a.id, "quantity": 1}])
        assert inventory_service.get_available(product_a.id, location_a.id) == 4

    def test_credit_sale_return_reduces_balance(self, db_session, org_a, location_a, customer_a, product_a, stock):
        stock(product_a, location_a, 5)
        result = sales_service.checkout(
            org_id=org_a.id,
            location_id=location_a.id,
            items=[{"product_id": product_a.id, "quantity": 3}],
            is_credit=True,
            customer_id=customer_a.id,
        )

        ret = _return(org_a, result.sale, [{"product_id": product_a.id, "quantity": 1}])

        assert ret.credit_refund_cents == 1000
        assert ret.cash_refund_cents == 0
        assert ret.refund_method == "CREDIT"
        db_session.refresh(customer_a)
        assert customer_a.current_balance_cents == 2000
        invoice = db_session.get(Invoice, result.invoice.id)
        assert invoice.balance_due_cents == 2000
        adjustment = db_session.query(CreditTransaction).filter_by(type="ADJUSTMENT").one()
        assert adjustment.delta_cents == -1000
        assert db_session.query(Payment).filter_by(kind="RETURN_CREDIT").one().amount_cents == 1000
        assert db_session.query(Payment).filter_by(kind="REFUND").count() == 0

    def test_partial_sale_return_splits_credit_and_cash(
        self, db_session, org_a, location_a, customer_a, product_a, stock
    ):
        stock(product_a, location_a, 5)
        result = sales_service.checkout(
            org_id=org_a.id,
            location_id=location_a.id,
            items=[{"product_id": product_a.id, "quantity": 1}],
            is_credit=True,
            amount_paid_cents=400,
            payment_method="MOBILE_MONEY",
            customer_id=customer_a.id,
        )

        ret = _return(org_a, result.sale, [{"product_id": product_a.id, "quantity": 1}])

        assert ret.credit_refund_cents == 600
        assert ret.cash_refund_cents == 400
        assert ret.refund_method == "MOBILE_MONEY"
        db_session.refresh(customer_a)
        assert customer_a.current_balance_cents == 0
        invoice = db_session.get(Invoice, result.invoice.id)
        assert invoice.balance_due_cents == 0
        assert invoice.status == "PAID"
