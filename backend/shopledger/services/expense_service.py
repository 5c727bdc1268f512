# Overview: Operating expenses; paid cash expenses come out of the open drawer.

from __future__ import annotations

from ..errors import NotFoundError, ValidationError, require_non_negative_cents
from ..extensions import db
from ..models import Expense
from ..time_utils import parse_iso_date, utcnow
from .audit_service import append_audit_event
from .cash_drawer_service import find_active_drawer
from .concurrency import run_in_transaction
from .document_service import next_document_number
from .ledger_service import post_cash_transaction
from .payment_service import TENDER_CASH, normalize_tender
from .tenant_service import require_location_in_org


EXPENSE_PAID = "PAID"
EXPENSE_PENDING = "PENDING"


def create_expense(
    *,
    org_id: int,
    location_id: int,
    category: str,
    amount_cents: int,
    expense_date=None,
    payment_method: str | None = None,
    payment_status: str | None = None,
    description: str | None = None,
    vendor_name: str | None = None,
    drawer_id: int | None = None,
    actor_user_id: int | None = None,
) -> Expense:
    """
    Record an expense. A PAID cash expense posts EXPENSE_CASH_OUT to the
    active drawer at the location (when one is open); the drawer may not go
    below zero.
    """
    if not category or not str(category).strip():
        raise ValidationError("Expense category is required")
    amount = require_non_negative_cents(amount_cents, "amount_cents")
    if amount == 0:
        raise ValidationError("amount_cents must be positive")
    method = normalize_tender(payment_method or TENDER_CASH)
    status = (payment_status or EXPENSE_PAID).strip().upper()
    if status not in (EXPENSE_PAID, EXPENSE_PENDING):
        raise ValidationError(f"payment_status must be {EXPENSE_PAID} or {EXPENSE_PENDING}")
    try:
        spent_on = parse_iso_date(expense_date) or utcnow().date()
    except ValueError as exc:
        raise ValidationError("Invalid expense_date") from exc

    def _op() -> Expense:
        location = require_location_in_org(location_id, org_id)
        expense = Expense(
            org_id=org_id,
            location_id=location.id,
            expense_number=next_document_number(org_id=org_id, document_type="EXPENSE"),
            category=str(category).strip(),
            description=description,
            amount_cents=amount,
            payment_method=method,
            payment_status=status,
            vendor_name=vendor_name,
            expense_date=spent_on,
            created_by_user_id=actor_user_id,
        )
        db.session.add(expense)
        db.session.flush()

        if method == TENDER_CASH and status == EXPENSE_PAID:
            drawer = find_active_drawer(
                org_id=org_id, location_id=location.id, actor_user_id=actor_user_id, drawer_id=drawer_id
            )
            if drawer is not None:
                txn = post_cash_transaction(
                    drawer_id=drawer.id,
                    txn_type="EXPENSE_CASH_OUT",
                    delta_cents=-amount,
                    reference_type="expense",
                    reference_id=expense.id,
                    description=f"Expense: {expense.expense_number} - {description or 'No desc'}",
                    actor_user_id=actor_user_id,
                )
                if txn.balance_after_cents < 0:
                    raise ValidationError(
                        "Expense exceeds the drawer balance",
                        {"balance_cents": txn.balance_before_cents, "requested_cents": amount},
                    )
                expense.drawer_session_id = txn.session_id

        append_audit_event(
            org_id=org_id,
            location_id=location.id,
            event_type="EXPENSE_RECORDED",
            event_category="expenses",
            entity_type="expense",
            entity_id=expense.id,
            actor_user_id=actor_user_id,
            note=expense.expense_number,
            payload={"amount_cents": amount, "method": method, "status": status},
        )
        return expense

    return run_in_transaction(_op)


def list_expenses(*, org_id: int, location_id: int | None = None, limit: int = 100) -> list[Expense]:
    query = db.session.query(Expense).filter_by(org_id=org_id)
    if location_id is not None:
        query = query.filter_by(location_id=location_id)
    return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).limit(limit).all()


def get_expense(*, org_id: int, expense_id: int) -> Expense:
    expense = db.session.get(Expense, expense_id)
    if expense is None or expense.org_id != org_id:
        raise NotFoundError("Expense not found", {"expense_id": expense_id})
    return expense
