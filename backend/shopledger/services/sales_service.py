"""
Sales Service - Atomic checkout

WHY: A sale moves stock and money together. Either the stock decrement,
the sale document, the tender, the drawer cash-in, the invoice and the
customer ledger entry all commit, or none of them do.

DESIGN PRINCIPLES:
- One unit of work per checkout; inventory, ledger and numbering calls join it
- Totals are integer cents; tax is rounded per line (half up) before summing
- Stock leaves batches First-Expired-First-Out and the consumed batches are
  stored with the line (SaleLineBatch) for later returns
- Settlement modes: CASH (tender covers the total), CREDIT (invoice for the
  whole total), PARTIAL (down payment + invoice for the remainder); one
  code path handles all three
- Customer special prices replace the line price; otherwise an explicit
  line price is kept, else the catalog price is used
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..errors import (
    InsufficientPaymentError,
    NotFoundError,
    ValidationError,
    require_non_negative_cents,
    require_positive_int,
)
from ..extensions import db
from ..models import (
    CashTransaction,
    CreditTransaction,
    CustomerPrice,
    Invoice,
    Payment,
    Product,
    Sale,
    SaleLine,
    SaleLineBatch,
)
from ..money import apply_bps
from .audit_service import append_audit_event
from .cash_drawer_service import find_active_drawer
from .concurrency import run_in_transaction
from .credit_service import CreditPolicy, apply_credit, check_credit_limit, create_invoice
from .document_service import next_document_number
from .inventory_service import BatchConsumption, decrement_fefo
from .ledger_service import post_cash_transaction
from .payment_service import TENDER_CASH, TENDER_CREDIT, normalize_tender, record_payment
from .tenant_service import require_customer_in_org, require_location_in_org


PAYMENT_TYPE_CASH = "CASH"
PAYMENT_TYPE_CREDIT = "CREDIT"
PAYMENT_TYPE_PARTIAL = "PARTIAL"


# =============================================================================
# PRICING
# =============================================================================

@dataclass
class PricedLine:
    product: Product
    quantity: int
    unit_price_cents: int
    discount_cents: int
    tax_cents: int
    price_source: str  # CUSTOMER_PRICE, OVERRIDE, CATALOG

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product.id,
            "sku": self.product.sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "price_source": self.price_source,
        }


@dataclass
class CartTotals:
    lines: list[PricedLine]

    @property
    def subtotal_cents(self) -> int:
        return sum(line.line_total_cents for line in self.lines)

    @property
    def discount_cents(self) -> int:
        return sum(line.discount_cents for line in self.lines)

    @property
    def tax_cents(self) -> int:
        return sum(line.tax_cents for line in self.lines)

    @property
    def total_cents(self) -> int:
        return self.subtotal_cents - self.discount_cents + self.tax_cents

    def to_dict(self) -> dict:
        return {
            "lines": [line.to_dict() for line in self.lines],
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
        }


def price_cart(*, org_id: int, items: list[dict], customer_id: int | None = None) -> CartTotals:
    """
    Validate cart lines and compute per-line price, discount and tax.

    Each item: {"product_id", "quantity", "unit_price_cents"?, "discount_cents"?}
    """
    if not items:
        raise ValidationError("Cart must contain at least one line")

    special_prices: dict[int, int] = {}
    if customer_id is not None:
        special_prices = {
            cp.product_id: cp.price_cents
            for cp in db.session.query(CustomerPrice).filter_by(customer_id=customer_id).all()
        }

    priced: list[PricedLine] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError("Each cart line must be an object", {"line": index})
        quantity = require_positive_int(item.get("quantity"))
        product = db.session.get(Product, item.get("product_id"))
        if product is None or product.org_id != org_id:
            raise NotFoundError("Product not found", {"line": index, "product_id": item.get("product_id")})
        if not product.is_active:
            raise ValidationError("Product is inactive", {"line": index, "product_id": product.id})

        if product.id in special_prices:
            unit_price, source = special_prices[product.id], "CUSTOMER_PRICE"
        elif item.get("unit_price_cents") is not None:
            unit_price, source = require_non_negative_cents(item["unit_price_cents"], "unit_price_cents"), "OVERRIDE"
        else:
            unit_price, source = product.selling_price_cents, "CATALOG"

        gross = unit_price * quantity
        discount = require_non_negative_cents(item.get("discount_cents") or 0, "discount_cents")
        if discount > gross:
            raise ValidationError("Line discount exceeds line amount", {"line": index, "product_id": product.id})

        priced.append(
            PricedLine(
                product=product,
                quantity=quantity,
                unit_price_cents=unit_price,
                discount_cents=discount,
                tax_cents=apply_bps(gross, product.tax_rate_bps),
                price_source=source,
            )
        )
    return CartTotals(priced)


def quote_cart(*, org_id: int, items: list[dict], customer_id: int | None = None) -> dict:
    """Read-only preview of checkout totals (same rounding as checkout)."""
    if customer_id is not None:
        require_customer_in_org(customer_id, org_id)
    return price_cart(org_id=org_id, items=items, customer_id=customer_id).to_dict()


# =============================================================================
# CHECKOUT
# =============================================================================

@dataclass
class CheckoutResult:
    sale: Sale
    change_cents: int = 0
    invoice: Invoice | None = None
    payment: Payment | None = None
    credit_transaction: CreditTransaction | None = None
    cash_transaction: CashTransaction | None = None
    consumptions: dict[int, list[BatchConsumption]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(),
            "change_cents": self.change_cents,
            "invoice": self.invoice.to_dict() if self.invoice else None,
            "payment": self.payment.to_dict() if self.payment else None,
            "credit_transaction": self.credit_transaction.to_dict() if self.credit_transaction else None,
            "cash_transaction": self.cash_transaction.to_dict() if self.cash_transaction else None,
        }


@dataclass
class _Settlement:
    payment_type: str
    method: str
    paid_cents: int
    change_cents: int
    credit_cents: int

    @property
    def received_cents(self) -> int:
        return self.paid_cents - self.change_cents


def _plan_settlement(total_cents: int, *, is_credit: bool, payment_method: str | None, amount_paid_cents) -> _Settlement:
    if not is_credit:
        method = normalize_tender(payment_method or TENDER_CASH)
        paid = (
            total_cents
            if amount_paid_cents is None
            else require_non_negative_cents(amount_paid_cents, "amount_paid_cents")
        )
        if paid < total_cents:
            raise InsufficientPaymentError(
                "Amount paid is less than the total due",
                {"total_cents": total_cents, "amount_paid_cents": paid},
            )
        if method != TENDER_CASH and paid > total_cents:
            raise ValidationError(
                "Non-cash tender cannot exceed the total due",
                {"total_cents": total_cents, "amount_paid_cents": paid},
            )
        return _Settlement(PAYMENT_TYPE_CASH, method, paid, max(0, paid - total_cents), 0)

    paid = 0 if amount_paid_cents is None else require_non_negative_cents(amount_paid_cents, "amount_paid_cents")
    if paid >= total_cents:
        raise ValidationError(
            "Down payment covers the whole total; settle it as a cash sale",
            {"total_cents": total_cents, "amount_paid_cents": paid},
        )
    if paid == 0:
        return _Settlement(PAYMENT_TYPE_CREDIT, TENDER_CREDIT, 0, 0, total_cents)
    method = TENDER_CASH if (payment_method or "").upper() in ("", TENDER_CREDIT) else normalize_tender(payment_method)
    return _Settlement(PAYMENT_TYPE_PARTIAL, method, paid, 0, total_cents - paid)


def checkout(
    *,
    org_id: int,
    location_id: int,
    items: list[dict],
    payment_method: str | None = None,
    is_credit: bool = False,
    amount_paid_cents: int | None = None,
    customer_id: int | None = None,
    drawer_id: int | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
    credit_policy: CreditPolicy | None = None,
) -> CheckoutResult:
    """
    Complete a sale atomically.

    Raises (nothing persisted in every case):
    - InvalidQuantityError / ValidationError / NotFoundError for bad input
    - CreditLimitExceededError when the on-account part exceeds the limit
    - InsufficientStockError when any line cannot be covered
    - InsufficientPaymentError when a non-credit tender is short

    payment_method="CREDIT" is a credit sale even without is_credit.
    """
    if not is_credit and (payment_method or "").strip().upper() == TENDER_CREDIT:
        is_credit = True

    def _op() -> CheckoutResult:
        location = require_location_in_org(location_id, org_id)

        customer = None
        if customer_id is not None:
            customer = require_customer_in_org(customer_id, org_id, lock=is_credit)
        elif is_credit:
            raise ValidationError("Credit sales require a customer")

        cart = price_cart(org_id=org_id, items=items, customer_id=customer_id)
        total = cart.total_cents

        settlement = _plan_settlement(
            total, is_credit=is_credit, payment_method=payment_method, amount_paid_cents=amount_paid_cents
        )
        if settlement.credit_cents > 0:
            check_credit_limit(customer, settlement.credit_cents, policy=credit_policy, actor_user_id=actor_user_id)

        # Stock first: a short line aborts before any money is recorded.
        consumptions: dict[int, list[BatchConsumption]] = {}
        for index, line in enumerate(cart.lines):
            consumptions[index] = decrement_fefo(
                product_id=line.product.id, location_id=location.id, quantity=line.quantity
            )

        drawer = find_active_drawer(
            org_id=org_id, location_id=location.id, actor_user_id=actor_user_id, drawer_id=drawer_id
        )
        session_id = drawer.current_session_id if drawer is not None else None

        sale = Sale(
            org_id=org_id,
            location_id=location.id,
            customer_id=customer.id if customer is not None else None,
            drawer_session_id=session_id,
            sale_number=next_document_number(org_id=org_id, document_type="SALE"),
            payment_type=settlement.payment_type,
            payment_method=settlement.method,
            status="COMPLETED",
            subtotal_cents=cart.subtotal_cents,
            discount_cents=cart.discount_cents,
            tax_cents=cart.tax_cents,
            total_cents=total,
            amount_paid_cents=settlement.paid_cents,
            change_given_cents=settlement.change_cents,
            credit_amount_cents=settlement.credit_cents,
            notes=notes,
            created_by_user_id=actor_user_id,
        )
        for index, line in enumerate(cart.lines):
            sale_line = SaleLine(
                line_number=index + 1,
                product_id=line.product.id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                line_total_cents=line.line_total_cents,
                discount_cents=line.discount_cents,
                tax_cents=line.tax_cents,
                unit_cost_cents=line.product.cost_price_cents,
            )
            for seq, step in enumerate(consumptions[index], start=1):
                sale_line.batches.append(
                    SaleLineBatch(
                        sequence=seq,
                        stock_level_id=step.stock_level_id,
                        expiration_date=step.expiration_date,
                        quantity=step.quantity,
                    )
                )
            sale.lines.append(sale_line)
        db.session.add(sale)
        db.session.flush()

        result = CheckoutResult(sale=sale, change_cents=settlement.change_cents, consumptions=consumptions)

        if settlement.received_cents > 0 and settlement.method == TENDER_CASH and drawer is not None:
            result.cash_transaction = post_cash_transaction(
                drawer_id=drawer.id,
                txn_type="SALE_CASH_IN",
                delta_cents=settlement.received_cents,
                reference_type="sale",
                reference_id=sale.id,
                description=f"Sale {sale.sale_number}",
                actor_user_id=actor_user_id,
            )

        if settlement.credit_cents > 0:
            result.invoice = create_invoice(
                org_id=org_id, customer_id=customer.id, total_cents=total, sale_id=sale.id
            )
            result.credit_transaction = apply_credit(
                customer_id=customer.id,
                amount_cents=settlement.credit_cents,
                reference_type="invoice",
                reference_id=result.invoice.id,
                reference=result.invoice.invoice_number,
                description=f"Credit sale {sale.sale_number}",
                actor_user_id=actor_user_id,
            )

        if settlement.received_cents > 0:
            result.payment = record_payment(
                org_id=org_id,
                amount_cents=settlement.received_cents,
                method=settlement.method,
                invoice=result.invoice,
                sale_id=sale.id,
                customer_id=sale.customer_id,
                drawer_session_id=session_id,
                notes="Down payment" if settlement.payment_type == PAYMENT_TYPE_PARTIAL else None,
                actor_user_id=actor_user_id,
            )

        append_audit_event(
            org_id=org_id,
            location_id=location.id,
            event_type="SALE_COMPLETED",
            event_category="sales",
            entity_type="sale",
            entity_id=sale.id,
            actor_user_id=actor_user_id,
            note=sale.sale_number,
            payload={
                "payment_type": settlement.payment_type,
                "payment_method": settlement.method,
                "total_cents": total,
                "credit_cents": settlement.credit_cents,
                "change_cents": settlement.change_cents,
                "invoice_id": result.invoice.id if result.invoice else None,
            },
        )
        return result

    return run_in_transaction(_op)


def get_sale(*, org_id: int, sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None or sale.org_id != org_id:
        raise NotFoundError("Sale not found", {"sale_id": sale_id})
    return sale
