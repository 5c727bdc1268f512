# Overview: Pytest coverage for atomic checkout, pricing and settlement modes.

"""
Checkout Tests

Covers:
- Cash sales with change, numbering, drawer cash-in
- Per-line tax rounding (half up) and line discounts
- Atomicity: short stock or short tender persists nothing
- CREDIT and PARTIAL settlement (invoice, ledger entry, down payment)
- Customer special prices and FEFO batches recorded on the line
- Cross-tenant products rejected
- Parallel checkouts against one stock row never oversell
"""

import threading
from datetime import date

import pytest

from shopledger import create_app
from shopledger.errors import (
    InsufficientPaymentError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from shopledger.extensions import db
from shopledger.models import CustomerPrice, Location, Organization, Payment, Product, Sale, SaleLineBatch
from shopledger.services import cash_drawer_service, inventory_service, sales_service


class TestCashCheckout:

    def test_cash_sale_with_change(self, db_session, org_a, location_a, drawer_a, product_a, stock):
        stock(product_a, location_a, 10)
        cash_drawer_service.open_drawer(org_id=org_a.id, drawer_id=drawer_a.id, opening_float_cents=1000, actor_user_id=1)

        result = sales_service.checkout(
            org_id=org_a.id,
            location_id=location_a.id,
            items=[{"product_id": product_a.id, "quantity": 2}],
            payment_method="cash",
            amount_paid_cents=5000,
            actor_user_id=1,
        )

        sale = result.sale
        assert sale.sale_number == "SAL-ACM-000001"
        assert sale.payment_type == "CASH"
        assert sale.total_cents == 2000
        assert sale.change_given_cents == 3000
        assert result.change_cents == 3000
        assert result.cash_transaction.delta_cents == 2000
        assert result.cash_transaction.balance_after_cents == 3000
        assert result.payment.amount_cents == 2000
        assert sale.drawer_session_id is not None
        assert inventory_service.get_available(product_a.id, location_a.id) == 8

    def test_sale_numbers_are_sequential(self, db_session, org_a, location_a, product_a, stock):
        stock(product_a, location_a, 10)
        numbers = [
            sales_service.checkout(
                org_id=org_a.id, location_id=location_a.id, items=[{"product_id": product_a.id, "quantity": 1}]
            ).sale.sale_number
            for _ in range(3)
        ]
        assert numbers == ["SAL-ACM-000001", "SAL-ACM-000002", "SAL-ACM-000003"]

    def test_no_open_drawer_still_records_sale(self, db_session, org_a, location_a, product_a, stock):
        stock(product_a, location_a, 1)
        result = sales_service.checkout(
            org_id=org_a.id, location_id=location_a.id, items=[{"product_id": product_a.id, "quantity": 1}]
        )
        assert result.cash_transaction is None
        assert result.sale.drawer_session_id is None

    def test_tax_is_rounded_per_line(self, db_session, org_a, location_a, taxed_product, stock):
        stock(taxed_product, location_a, 10)
        line = {"product_id": taxed_product.id, "quantity": 1, "unit_price_cents": 330}

        result = sales_service.checkout(org_id=org_a.id, location_id=location_a.id, items=[line, line, line])

        # 24.75 rounds to 25 on each line; rounding the 990 subtotal once would give 74
        assert result.sale.tax_cents == 75
        assert result.sale.total_cents == 1065

    def test_line_discount_reduces_total(self, db_session, org_a, location_a, product_a, stock):
        stock(product_a, location_a, 10)
        result = sales_service.checkout(
            org_id=org_a.id,
            location_id=location_a.id,
            items=[{"product_id": product_a.id, "quantity": 2, "discount_cents": 150}],
        )
        assert result.sale.subtotal_cents == 2000
        assert result.sale.discount_cents == 150
        assert result.sale.total_cents == 1850

    def test_discount_larger_than_line_is_rejected(self, db_session, org_a, location_a, product_a, stock):
        stock(product_a, location_a, 10)
        with pytest.raises(ValidationError):
            sales_service.checkout(
                org_id=org_a.id,
                location_id=location_a.id,
                items=[{"product_id": product_a.id, "quantity": 1, "discount_cents": 1001}],
            )


class TestAtomicity:

    def test_short_tender_persists_nothing(self, db_session, org_a, location_a, product_a, stock):
        stock(product_a, location_a, 10)
        with pytest.raises(InsufficientPaymentError):
            sales_service.checkout(
                org_id=org_a.id,
                location_id=location_a.id,
                items=[{"product_id": product_a.id, "quantity": 2}],
                amount_paid_cents=1999,
            )
        assert db_session.query(Sale).count() == 0
        assert inventory_service.get_available(product_a.id, location_a.id) == 10

    def test_short_second_line_restores_first_line(self, db_session, org_a, location_a, product_a, taxed_product, stock):
        stock(product_a, location_a, 10)
        stock(taxed_product, location_a, 1)

        with pytest.raises(InsufficientStockError):
            sales_service.checkout(
                org_id=org_a.id,
                location_id=location_a.id,
                items=[
                    {"product_id": product_a.id, "quantity": 4},
                    {"product_id": taxed_product.id, "quantity": 2},
                ],
            )

        assert inventory_service.get_available(product_a.id, location_a.id) == 10
        assert inventory_service.get_available(taxed_product.id, location_a.id) == 1
        assert db_session.query(Sale).count() == 0
        assert db_session.query(Payment).count() == 0

    def test_non_cash_tender_cannot_overpay(self, db_session, org_a, location_a, product_a, stock):
        stock(product_a, location_a, 10)
        with pytest.raises(ValidationError):
            sales_service.checkout(
                org_id=org_a.id,
                location_id=location_a.id,
                items=[{"product_id": product_a.id, "quantity": 1}],
                payment_method="CARD",
                amount_paid_cents=1500,
            )

    def test_empty_cart(self, db_session, org_a, location_a):
        with pytest.raises(ValidationError):
            sales_service.checkout(org_id=org_a.id, location_id=location_a.id, items=[])

    def test_foreign_product_is_not_found(self, db_session, org_a, location_a, product_b):
        with pytest.raises(NotFoundError):
            sales_service.checkout(
                org_id=org_a.id, location_id=location_a.id, items=[{"product_id": product_b.id, "quantity": 1}]
            )


class TestCreditCheckout:

    def test_credit_sale_requires_customer(self, db_session, org_a, location_a, product_a, stock):
        stock(product_a, location_a, 10)
        with pytest.raises(ValidationError):
            sales_service.checkout(
                org_id=org_a.id,
                location_id=location_a.id,
                items=[{"product_id": product_a.id, "quantity": 1}],
                is_credit=True,
            )

    def test_full_credit_sale(self, db_session, org_a, location_a, customer_a, product_a, stock):
        stock(product_a, location_a, 10)

        result = sales_service.checkout(
            org_id=org_a.id,
            location_id=location_a.id,
            items=[{"product_id": product_a.id, "quantity": 3}],
            is_credit=True,
            customer_id=customer_a.id,
        )

        assert result.sale.payment_type == "CREDIT"
        assert result.sale.payment_method == "CREDIT"
        assert result.sale.credit_amount_cents == 3000
        assert result.invoice.invoice_number == "INV-000001"
        assert result.invoice.balance_due_cents == 3000
        assert result.invoice.status == "SENT"
        assert result.credit_transaction.type == "CREDIT"
        assert result.credit_transaction.balance_after_cents == 3000
        assert result.payment is None

    def test_partial_sale_records_down_payment(self, db_session, org_a, location_a, customer_a, product_a, stock):
        stock(product_a, location_a, 10)

        result = sales_service.checkout(
            org_id=org_a.id,
            location_id=location_a.id,
            items=[{"product_id": product_a.id, "quantity": 1}],
            is_credit=True,
            amount_paid_cents=400,
            payment_method="MOBILE_MONEY",
            customer_id=customer_a.id,
        )

        assert result.sale.payment_type == "PARTIAL"
        assert result.sale.payment_method == "MOBILE_MONEY"
        assert result.sale.credit_amount_cents == 600
        assert result.invoice.total_cents == 1000
        assert result.invoice.balance_due_cents == 600
        assert result.invoice.status == "PARTIAL"
        assert result.payment.invoice_id == result.invoice.id
        db_session.refresh(customer_a)
        assert customer_a.current_balance_cents == 600

    def test_down_payment_covering_total_is_rejected(self, db_session, org_a, location_a, customer_a, product_a, stock):
        stock(product_a, location_a, 10)
        with pytest.raises(ValidationError):
            sales_service.checkout(
                org_id=org_a.id,
                location_id=location_a.id,
                items=[{"product_id": product_a.id, "quantity": 1}],
                is_credit=True,
                amount_paid_cents=1000,
                customer_id=customer_a.id,
            )

    def test_credit_payment_method_means_credit_sale(self, db_session, org_a, location_a, customer_a, product_a, stock):
        stock(product_a, location_a, 10)

        result = sales_service.checkout(
            org_id=org_a.id,
            location_id=location_a.id,
            items=[{"product_id": product_a.id, "quantity": 2}],
            payment_method="credit",
            customer_id=customer_a.id,
        )

        assert result.sale.payment_type == "CREDIT"
        assert result.sale.credit_amount_cents == 2000
        assert result.invoice.balance_due_cents == 2000
        assert result.payment is None

    def test_credit_payment_method_still_requires_customer(self, db_session, org_a, location_a, product_a, stock):
        stock(product_a, location_a, 10)
        with pytest.raises(ValidationError):
            sales_service.checkout(
                org_id=org_a.id,
                location_id=location_a.id,
                items=[{"product_id": product_a.id, "quantity": 1}],
                payment_method="CREDIT",
            )
        assert inventory_service.get_available(product_a.id, location_a.id) == 10


class TestPricingAndBatches:

    def test_customer_special_price_wins(self, db_session, org_a, location_a, customer_a, product_a, stock):
        stock(product_a, location_a, 10)
        db_session.add(CustomerPrice(customer_id=customer_a.id, product_id=product_a.id, price_cents=800))
        db_session.commit()

        quote = sales_service.quote_cart(
            org_id=org_a.id,
            items=[{"product_id": product_a.id, "quantity": 2, "unit_price_cents": 950}],
            customer_id=customer_a.id,
        )

        assert quote["lines"][0]["price_source"] == "CUSTOMER_PRICE"
        assert quote["total_cents"] == 1600
        # Quotes never touch stock
        assert inventory_service.get_available(product_a.id, location_a.id) == 10

    def test_consumed_batches_are_recorded_on_the_line(self, db_session, org_a, location_a, product_a, stock):
        stock(product_a, location_a, 2, date(2026, 2, 1))
        stock(product_a, location_a, 5, date(2026, 4, 1))

        result = sales_service.checkout(
            org_id=org_a.id, location_id=location_a.id, items=[{"product_id": product_a.id, "quantity": 4}]
        )

        batches = (
            db_session.query(SaleLineBatch)
            .filter_by(sale_line_id=result.sale.lines[0].id)
            .order_by(SaleLineBatch.sequence)
            .all()
        )
        assert [(b.expiration_date, b.quantity) for b in batches] == [
            (date(2026, 2, 1), 2),
            (date(2026, 4, 1), 2),
        ]


class TestConcurrentCheckout:

    def test_parallel_checkouts_never_oversell(self, tmp_path):
        app = create_app({
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'checkout.sqlite3'}",
            'TRANSACTION_RETRY_ATTEMPTS': 5,
            'TRANSACTION_TIMEOUT_SECONDS': 30,
        })
        with app.app_context():
            db.create_all()
            org = Organization(name="Threaded Org", code="THR", is_active=True)
            db.session.add(org)
            db.session.flush()
            location = Location(org_id=org.id, name="Busy Shop", code="BUSY")
            product = Product(org_id=org.id, sku="BREAD", name="Bread", selling_price_cents=500)
            db.session.add_all([location, product])
            db.session.commit()
            org_id, location_id, product_id = org.id, location.id, product.id
            inventory_service.increment(product_id=product_id, location_id=location_id, quantity=10)

        sale_numbers = []
        errors = []
        lock = threading.Lock()

        def worker():
            with app.app_context():
                try:
                    result = sales_service.checkout(
                        org_id=org_id,
                        location_id=location_id,
                        items=[{"product_id": product_id, "quantity": 3}],
                    )
                    with lock:
                        sale_numbers.append(result.sale.sale_number)
                except Exception as exc:  # surfaced through the errors list
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(sale_numbers) == 3
        assert len(set(sale_numbers)) == 3
        assert len(errors) == 3
        assert all(isinstance(exc, InsufficientStockError) for exc in errors)

        with app.app_context():
            assert inventory_service.get_available(product_id, location_id) == 1
            assert db.session.query(Sale).count() == 3
            db.session.remove()
            db.engine.dispose()
