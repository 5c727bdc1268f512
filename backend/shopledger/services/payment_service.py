# Overview: Tender constants, immutable payment rows and invoice settlement state.

"""
Payment Service

WHY: Every money-received event (sale tender, down payment, invoice
payment, gateway charge) and every money-returned event (refund, return
credit) is one Payment row. Invoice balances are derived from them.

DESIGN PRINCIPLES:
- Payments are never updated or deleted; a reversal is a new row with a
  negative amount (kind REFUND or RETURN_CREDIT)
- invoice.balance_due_cents == total_cents - SUM(linked payment amounts),
  maintained in the same transaction as the payment insert
- Invoice status is recomputed from amounts on every change
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Invoice, Payment
from ..time_utils import utcnow


# =============================================================================
# TENDER TYPES (CONSTANTS)
# =============================================================================

TENDER_CASH = "CASH"
TENDER_CARD = "CARD"
TENDER_MOBILE_MONEY = "MOBILE_MONEY"
TENDER_BANK_TRANSFER = "BANK_TRANSFER"
TENDER_ONLINE = "ONLINE"  # settled through the payment gateway

VALID_TENDER_TYPES = [
    TENDER_CASH,
    TENDER_CARD,
    TENDER_MOBILE_MONEY,
    TENDER_BANK_TRANSFER,
    TENDER_ONLINE,
]

# Method recorded on sales settled entirely on account
TENDER_CREDIT = "CREDIT"


# =============================================================================
# PAYMENT KINDS / INVOICE STATUS (CONSTANTS)
# =============================================================================

KIND_PAYMENT = "PAYMENT"
KIND_REFUND = "REFUND"
KIND_RETURN_CREDIT = "RETURN_CREDIT"

INVOICE_DRAFT = "DRAFT"
INVOICE_SENT = "SENT"
INVOICE_PARTIAL = "PARTIAL"
INVOICE_PAID = "PAID"
INVOICE_OVERDUE = "OVERDUE"

OPEN_INVOICE_STATUSES = (INVOICE_SENT, INVOICE_PARTIAL, INVOICE_OVERDUE)


def normalize_tender(method: str | None, *, allow_online: bool = False) -> str:
    value = (method or "").strip().upper()
    if value not in VALID_TENDER_TYPES or (value == TENDER_ONLINE and not allow_online):
        allowed = [t for t in VALID_TENDER_TYPES if allow_online or t != TENDER_ONLINE]
        raise ValidationError(f"Invalid payment method: {method}. Must be one of {allowed}")
    return value


def refresh_invoice_status(invoice: Invoice, *, today: date | None = None) -> str:
    """Derive status from amounts (and due date) and store it on the invoice."""
    if invoice.status == INVOICE_DRAFT:
        return invoice.status
    today = today or utcnow().date()
    if invoice.balance_due_cents <= 0:
        invoice.status = INVOICE_PAID
        if invoice.paid_at is None:
            invoice.paid_at = utcnow()
    elif invoice.due_date is not None and invoice.due_date < today:
        invoice.status = INVOICE_OVERDUE
        invoice.paid_at = None
    elif invoice.amount_paid_cents > 0:
        invoice.status = INVOICE_PARTIAL
        invoice.paid_at = None
    else:
        invoice.status = INVOICE_SENT
        invoice.paid_at = None
    return invoice.status


def record_payment(
    *,
    org_id: int,
    amount_cents: int,
    method: str,
    kind: str = KIND_PAYMENT,
    invoice: Invoice | None = None,
    sale_id: int | None = None,
    customer_id: int | None = None,
    drawer_session_id: int | None = None,
    credit_transaction_id: int | None = None,
    reference: str | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> Payment:
    """
    Insert one immutable payment row and, when linked to an invoice, move the
    invoice's paid/balance amounts by the same amount.

    Callers must hold the invoice row lock (unit of work + lock_for_update).
    """
    if amount_cents == 0:
        raise ValidationError("Payment amount must be non-zero")
    if invoice is not None:
        new_paid = invoice.amount_paid_cents + amount_cents
        if new_paid > invoice.total_cents:
            raise ValidationError(
                "Payment exceeds invoice balance",
                {"invoice_id": invoice.id, "balance_due_cents": invoice.balance_due_cents},
            )
        if new_paid < 0:
            raise ValidationError("Reversal exceeds amount paid", {"invoice_id": invoice.id})

    payment = Payment(
        org_id=org_id,
        invoice_id=invoice.id if invoice is not None else None,
        sale_id=sale_id,
        customer_id=customer_id,
        drawer_session_id=drawer_session_id,
        credit_transaction_id=credit_transaction_id,
        kind=kind,
        method=method,
        amount_cents=amount_cents,
        reference=reference,
        notes=notes,
        created_by_user_id=actor_user_id,
    )
    db.session.add(payment)

    if invoice is not None:
        invoice.amount_paid_cents = invoice.amount_paid_cents + amount_cents
        invoice.balance_due_cents = invoice.total_cents - invoice.amount_paid_cents
        refresh_invoice_status(invoice)

    db.session.flush()
    return payment


def invoice_payment_total(invoice_id: int) -> int:
    """SUM of every payment row linked to the invoice (reconciliation check)."""
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.invoice_id == invoice_id)
        .scalar()
    )
    return int(total or 0)


def get_tender_summary(drawer_session_id: int) -> dict:
    """
    Totals per payment method for a drawer session, refunds netted in.

    WHY: Shift report needs non-cash takings (card, mobile money, transfer)
    next to the counted cash.
    """
    rows = (
        db.session.query(Payment.method, func.sum(Payment.amount_cents), func.count(Payment.id))
        .filter(Payment.drawer_session_id == drawer_session_id)
        .group_by(Payment.method)
        .all()
    )
    totals: dict[str, dict] = defaultdict(lambda: {"amount_cents": 0, "count": 0})
    for method, amount, count in rows:
        totals[method]["amount_cents"] += int(amount or 0)
        totals[method]["count"] += int(count or 0)
    return dict(totals)
