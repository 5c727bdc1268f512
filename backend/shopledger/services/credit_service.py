"""
Customer Credit Ledger Service

WHY: Customers buy on account. Their balance must always equal unpaid
credit minus payments received, with every change recorded in an
append-only ledger, and payments must settle the oldest invoices first.

DESIGN PRINCIPLES:
- apply_credit / apply_payment / apply_adjustment are the only ways the
  balance moves (via ledger_service)
- FIFO allocation by invoice creation time; each invoice gets its own
  Payment row, the customer ledger gets ONE aggregate PAYMENT entry
- Overpayment is allowed: the unapplied remainder is kept as a payment row
  without an invoice and the balance goes negative (credit owed)
- credit_status() is a pure function; checkout's limit check and the
  status shown on read use the same thresholds
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta

from flask import current_app

from ..errors import (
    CreditLimitExceededError,
    NotFoundError,
    StateError,
    ValidationError,
    require_non_negative_cents,
)
from ..extensions import db
from ..models import CashTransaction, CreditTransaction, Customer, Invoice, Payment
from ..time_utils import to_utc_z, utcnow
from .audit_service import append_audit_event
from .cash_drawer_service import find_active_drawer
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_document_number
from .ledger_service import post_cash_transaction, post_credit_transaction
from .payment_service import (
    INVOICE_OVERDUE,
    INVOICE_PARTIAL,
    INVOICE_SENT,
    KIND_PAYMENT,
    OPEN_INVOICE_STATUSES,
    TENDER_CASH,
    normalize_tender,
    record_payment,
    refresh_invoice_status,
)
from .tenant_service import require_customer_in_org

logger = logging.getLogger(__name__)

CREDIT_GOOD = "GOOD"
CREDIT_WARNING = "WARNING"
CREDIT_BLOCKED = "BLOCKED"

DEFAULT_WARNING_THRESHOLD_BPS = 8000


# =============================================================================
# CREDIT STATUS / LIMIT POLICY
# =============================================================================

def credit_status(balance_cents: int, limit_cents: int, warning_bps: int = DEFAULT_WARNING_THRESHOLD_BPS) -> str:
    """
    GOOD     balance <= 80% of limit
    WARNING  80% < balance < limit
    BLOCKED  balance >= limit (a zero limit means no credit at all)
    """
    if balance_cents >= limit_cents:
        return CREDIT_BLOCKED
    if balance_cents * 10_000 <= limit_cents * warning_bps:
        return CREDIT_GOOD
    return CREDIT_WARNING


def _warning_bps() -> int:
    return int(current_app.config.get("CREDIT_WARNING_THRESHOLD_BPS", DEFAULT_WARNING_THRESHOLD_BPS))


class CreditPolicy:
    """
    Decides whether a credit sale may exceed the customer's limit.

    The default policy never allows it. Deployments that let a supervisor
    approve an over-limit sale pass their own policy to checkout.
    """

    def allow_over_limit(self, *, customer: Customer, projected_balance_cents: int, actor_user_id: int | None) -> bool:
        return False


class HardLimitPolicy(CreditPolicy):
    pass


class ApprovedOverridePolicy(CreditPolicy):
    """Allows the sale when a named approver signed off on it."""

    def __init__(self, approved_by_user_id: int, max_over_limit_cents: int | None = None):
        self.approved_by_user_id = approved_by_user_id
        self.max_over_limit_cents = max_over_limit_cents

    def allow_over_limit(self, *, customer: Customer, projected_balance_cents: int, actor_user_id: int | None) -> bool:
        if self.max_over_limit_cents is None:
            return True
        return projected_balance_cents - customer.credit_limit_cents <= self.max_over_limit_cents


def check_credit_limit(
    customer: Customer,
    amount_cents: int,
    *,
    policy: CreditPolicy | None = None,
    actor_user_id: int | None = None,
) -> int:
    """
    Reject a new charge that would push the balance past the limit.

    Returns the projected balance. Landing exactly on the limit is allowed.
    """
    if not customer.is_active:
        raise StateError("Customer account is inactive", {"customer_id": customer.id})
    projected = customer.current_balance_cents + amount_cents
    if projected <= customer.credit_limit_cents:
        return projected

    policy = policy or HardLimitPolicy()
    if policy.allow_over_limit(customer=customer, projected_balance_cents=projected, actor_user_id=actor_user_id):
        logger.info(
            "Credit limit override for customer %s: projected %s > limit %s",
            customer.id, projected, customer.credit_limit_cents,
        )
        append_audit_event(
            org_id=customer.org_id,
            event_type="CREDIT_LIMIT_OVERRIDE",
            event_category="credit",
            entity_type="customer",
            entity_id=customer.id,
            actor_user_id=actor_user_id,
            payload={
                "projected_balance_cents": projected,
                "credit_limit_cents": customer.credit_limit_cents,
                "approved_by_user_id": getattr(policy, "approved_by_user_id", None),
            },
        )
        return projected

    raise CreditLimitExceededError(
        "Credit limit exceeded",
        {
            "customer_id": customer.id,
            "credit_limit_cents": customer.credit_limit_cents,
            "current_balance_cents": customer.current_balance_cents,
            "requested_cents": amount_cents,
            "available_cents": max(customer.credit_limit_cents - customer.current_balance_cents, 0),
        },
    )


def customer_credit_summary(*, org_id: int, customer_id: int) -> dict:
    customer = require_customer_in_org(customer_id, org_id)
    open_invoices = list_open_invoices(customer_id)
    return {
        "customer_id": customer.id,
        "credit_limit_cents": customer.credit_limit_cents,
        "current_balance_cents": customer.current_balance_cents,
        "available_credit_cents": max(customer.credit_limit_cents - customer.current_balance_cents, 0),
        "credit_status": credit_status(customer.current_balance_cents, customer.credit_limit_cents, _warning_bps()),
        "open_invoice_count": len(open_invoices),
        "open_invoice_total_cents": sum(inv.balance_due_cents for inv in open_invoices),
        "last_payment_at": to_utc_z(customer.last_payment_at),
    }


# =============================================================================
# LEDGER OPERATIONS
# =============================================================================

def apply_credit(
    *,
    customer_id: int,
    amount_cents: int,
    reference_type: str | None = None,
    reference_id: int | None = None,
    reference: str | None = None,
    description: str | None = None,
    actor_user_id: int | None = None,
) -> CreditTransaction:
    """Raise the customer's balance (goods taken on account)."""
    amount = require_non_negative_cents(amount_cents, "amount_cents")
    if amount == 0:
        raise ValidationError("Credit amount must be positive")
    return run_in_transaction(
        lambda: post_credit_transaction(
            customer_id=customer_id,
            txn_type="CREDIT",
            delta_cents=amount,
            reference_type=reference_type,
            reference_id=reference_id,
            reference=reference,
            description=description,
            actor_user_id=actor_user_id,
        )
    )


def apply_adjustment(
    *,
    customer_id: int,
    delta_cents: int,
    reference_type: str | None = None,
    reference_id: int | None = None,
    description: str | None = None,
    actor_user_id: int | None = None,
) -> CreditTransaction:
    """Balance correction with no money moving (e.g. goods returned on a credit sale)."""
    return run_in_transaction(
        lambda: post_credit_transaction(
            customer_id=customer_id,
            txn_type="ADJUSTMENT",
            delta_cents=delta_cents,
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
            actor_user_id=actor_user_id,
        )
    )


def create_invoice(
    *,
    org_id: int,
    customer_id: int,
    total_cents: int,
    sale_id: int | None = None,
    due_date: date | None = None,
) -> Invoice:
    """Issue a receivable (status SENT, nothing paid yet)."""
    if total_cents <= 0:
        raise ValidationError("Invoice total must be positive")

    def _op() -> Invoice:
        invoice = Invoice(
            org_id=org_id,
            customer_id=customer_id,
            sale_id=sale_id,
            invoice_number=next_document_number(org_id=org_id, document_type="INVOICE"),
            status=INVOICE_SENT,
            total_cents=total_cents,
            amount_paid_cents=0,
            balance_due_cents=total_cents,
            due_date=due_date or (utcnow().date() + timedelta(days=int(current_app.config.get("INVOICE_DUE_DAYS", 30)))),
        )
        db.session.add(invoice)
        db.session.flush()
        return invoice

    return run_in_transaction(_op)


def list_open_invoices(customer_id: int, *, lock: bool = False) -> list[Invoice]:
    """Unpaid invoices, oldest first (FIFO order)."""
    query = db.session.query(Invoice).filter(
        Invoice.customer_id == customer_id,
        Invoice.status.in_(OPEN_INVOICE_STATUSES),
        Invoice.balance_due_cents > 0,
    )
    if lock:
        query = lock_for_update(query).populate_existing()
    return query.order_by(Invoice.created_at.asc(), Invoice.id.asc()).all()


@dataclass
class PaymentApplication:
    """Result of one customer payment: ledger entry, per-invoice rows, leftovers."""

    credit_transaction: CreditTransaction
    payments: list[Payment] = field(default_factory=list)
    unapplied_cents: int = 0
    cash_transaction: CashTransaction | None = None

    def to_dict(self) -> dict:
        return {
            "credit_transaction": self.credit_transaction.to_dict(),
            "payments": [p.to_dict() for p in self.payments],
            "allocations": [
                {"invoice_id": p.invoice_id, "amount_cents": p.amount_cents}
                for p in self.payments
                if p.invoice_id is not None
            ],
            "unapplied_cents": self.unapplied_cents,
            "cash_transaction": self.cash_transaction.to_dict() if self.cash_transaction else None,
            "balance_after_cents": self.credit_transaction.balance_after_cents,
        }


def allocate_fifo(invoices: list[Invoice], amount_cents: int) -> tuple[list[tuple[Invoice, int]], int]:
    """
    Split `amount_cents` over invoices in the given (oldest-first) order.

    Returns [(invoice, applied)] and the unapplied remainder.
    """
    allocations = []
    remaining = amount_cents
    for invoice in invoices:
        if remaining <= 0:
            break
        applied = min(invoice.balance_due_cents, remaining)
        if applied <= 0:
            continue
        allocations.append((invoice, applied))
        remaining -= applied
    return allocations, remaining


def _post_cash_in(*, org_id, location_id, drawer_id, actor_user_id, amount, reference_id, description):
    """Cash received for a customer payment goes into the active drawer, if any."""
    if location_id is None:
        return None, None
    drawer = find_active_drawer(
        org_id=org_id, location_id=location_id, actor_user_id=actor_user_id, drawer_id=drawer_id
    )
    if drawer is None:
        return None, None
    txn = post_cash_transaction(
        drawer_id=drawer.id,
        txn_type="PAYMENT_CASH_IN",
        delta_cents=amount,
        reference_type="credit_transaction",
        reference_id=reference_id,
        description=description,
        actor_user_id=actor_user_id,
    )
    return drawer, txn


def apply_payment(
    *,
    org_id: int,
    customer_id: int,
    amount_cents: int,
    method: str,
    reference: str | None = None,
    notes: str | None = None,
    invoice_id: int | None = None,
    location_id: int | None = None,
    drawer_id: int | None = None,
    actor_user_id: int | None = None,
    allow_online: bool = False,
) -> PaymentApplication:
    """
    Record money received from a customer.

    Without invoice_id the amount is spread FIFO over open invoices (oldest
    created first). With invoice_id it settles that invoice only and may
    not exceed its balance due. Cash payments taken at a location with an
    open drawer are posted to that drawer.
    """
    amount = require_non_negative_cents(amount_cents, "amount_cents")
    if amount == 0:
        raise ValidationError("Payment amount must be positive")
    tender = normalize_tender(method, allow_online=allow_online)

    def _op() -> PaymentApplication:
        customer = require_customer_in_org(customer_id, org_id)

        if invoice_id is not None:
            invoice = (
                lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id))
                .populate_existing()
                .first()
            )
            if invoice is None or invoice.org_id != org_id or invoice.customer_id != customer.id:
                raise NotFoundError("Invoice not found", {"invoice_id": invoice_id})
            if invoice.status not in OPEN_INVOICE_STATUSES or invoice.balance_due_cents <= 0:
                raise StateError("Invoice is not open for payment", {"invoice_id": invoice.id, "status": invoice.status})
            if amount > invoice.balance_due_cents:
                raise ValidationError(
                    "Payment exceeds invoice balance",
                    {"invoice_id": invoice.id, "balance_due_cents": invoice.balance_due_cents},
                )
            allocations, unapplied = [(invoice, amount)], 0
        else:
            allocations, unapplied = allocate_fifo(list_open_invoices(customer.id, lock=True), amount)

        ledger_entry = post_credit_transaction(
            customer_id=customer.id,
            txn_type="PAYMENT",
            delta_cents=-amount,
            method=tender,
            reference_type="invoice" if invoice_id is not None else "payment",
            reference_id=invoice_id,
            reference=reference,
            description=notes or "Customer payment",
            actor_user_id=actor_user_id,
        )

        drawer, cash_txn = (None, None)
        if tender == TENDER_CASH:
            drawer, cash_txn = _post_cash_in(
                org_id=org_id,
                location_id=location_id,
                drawer_id=drawer_id,
                actor_user_id=actor_user_id,
                amount=amount,
                reference_id=ledger_entry.id,
                description=f"Payment from {customer.name}",
            )
        elif location_id is not None:
            drawer = find_active_drawer(
                org_id=org_id, location_id=location_id, actor_user_id=actor_user_id, drawer_id=drawer_id
            )
        session_id = drawer.current_session_id if drawer is not None else None

        result = PaymentApplication(credit_transaction=ledger_entry, cash_transaction=cash_txn)
        for invoice, applied in allocations:
            result.payments.append(
                record_payment(
                    org_id=org_id,
                    amount_cents=applied,
                    method=tender,
                    kind=KIND_PAYMENT,
                    invoice=invoice,
                    customer_id=customer.id,
                    drawer_session_id=session_id,
                    credit_transaction_id=ledger_entry.id,
                    reference=reference,
                    notes=notes,
                    actor_user_id=actor_user_id,
                )
            )
        if unapplied > 0:
            result.payments.append(
                record_payment(
                    org_id=org_id,
                    amount_cents=unapplied,
                    method=tender,
                    kind=KIND_PAYMENT,
                    customer_id=customer.id,
                    drawer_session_id=session_id,
                    credit_transaction_id=ledger_entry.id,
                    reference=reference,
                    notes="Unapplied credit on account",
                    actor_user_id=actor_user_id,
                )
            )
        result.unapplied_cents = unapplied

        append_audit_event(
            org_id=org_id,
            location_id=location_id,
            event_type="CUSTOMER_PAYMENT_RECEIVED",
            event_category="credit",
            entity_type="credit_transaction",
            entity_id=ledger_entry.id,
            actor_user_id=actor_user_id,
            note=reference,
            payload={
                "customer_id": customer.id,
                "amount_cents": amount,
                "method": tender,
                "allocations": [{"invoice_id": inv.id, "amount_cents": a} for inv, a in allocations],
                "unapplied_cents": unapplied,
            },
        )
        return result

    return run_in_transaction(_op)


def pay_invoice(
    *,
    org_id: int,
    invoice_id: int,
    amount_cents: int,
    method: str,
    reference: str | None = None,
    notes: str | None = None,
    location_id: int | None = None,
    drawer_id: int | None = None,
    actor_user_id: int | None = None,
    allow_online: bool = False,
) -> PaymentApplication:
    """Direct payment against one invoice (amount <= balance due)."""
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None or invoice.org_id != org_id:
        raise NotFoundError("Invoice not found", {"invoice_id": invoice_id})
    return apply_payment(
        org_id=org_id,
        customer_id=invoice.customer_id,
        amount_cents=amount_cents,
        method=method,
        reference=reference,
        notes=notes,
        invoice_id=invoice_id,
        location_id=location_id,
        drawer_id=drawer_id,
        actor_user_id=actor_user_id,
        allow_online=allow_online,
    )


def mark_overdue_invoices(*, org_id: int, as_of: date | None = None) -> int:
    """Flag SENT/PARTIAL invoices past their due date as OVERDUE. Returns the count."""
    today = as_of or utcnow().date()

    def _op() -> int:
        invoices = (
            lock_for_update(
                db.session.query(Invoice).filter(
                    Invoice.org_id == org_id,
                    Invoice.status.in_((INVOICE_SENT, INVOICE_PARTIAL)),
                    Invoice.balance_due_cents > 0,
                    Invoice.due_date.isnot(None),
                    Invoice.due_date < today,
                )
            ).all()
        )
        for invoice in invoices:
            refresh_invoice_status(invoice, today=today)
        db.session.flush()
        return sum(1 for inv in invoices if inv.status == INVOICE_OVERDUE)

    return run_in_transaction(_op)


def get_customer_ledger(*, org_id: int, customer_id: int, limit: int = 200) -> list[CreditTransaction]:
    require_customer_in_org(customer_id, org_id)
    return (
        db.session.query(CreditTransaction)
        .filter_by(customer_id=customer_id)
        .order_by(CreditTransaction.sequence.desc())
        .limit(limit)
        .all()
    )
