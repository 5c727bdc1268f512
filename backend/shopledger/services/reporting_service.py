# Overview: Read-only sales reporting for a location or the whole organization.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Expense, Return, Sale
from ..time_utils import parse_iso_datetime, to_utc_z
from .tenant_service import require_location_in_org


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError as exc:
        raise ValidationError("start/end must be ISO-8601 datetimes") from exc
    if start_dt and end_dt and end_dt < start_dt:
        raise ValidationError("end must not be before start")
    return start_dt, end_dt


def _in_range(query, column, start_dt, end_dt):
    if start_dt:
        query = query.filter(column >= start_dt)
    if end_dt:
        query = query.filter(column <= end_dt)
    return query


def sales_summary(
    *,
    org_id: int,
    location_id: int | None = None,
    start: str | None = None,
    end: str | None = None,
) -> dict:
    """
    Totals for completed sales in a window: count, gross/discount/tax/total,
    breakdown by payment method and settlement type, refunds from returns
    and expenses, all in integer cents.
    """
    start_dt, end_dt = _parse_range(start, end)
    if location_id is not None:
        require_location_in_org(location_id, org_id)

    def _scope(query, model):
        query = query.filter(model.org_id == org_id)
        if location_id is not None:
            query = query.filter(model.location_id == location_id)
        return query

    totals = _in_range(
        _scope(
            db.session.query(
                func.count(Sale.id),
                func.coalesce(func.sum(Sale.subtotal_cents), 0),
                func.coalesce(func.sum(Sale.discount_cents), 0),
                func.coalesce(func.sum(Sale.tax_cents), 0),
                func.coalesce(func.sum(Sale.total_cents), 0),
                func.coalesce(func.sum(Sale.credit_amount_cents), 0),
            ),
            Sale,
        ),
        Sale.created_at, start_dt, end_dt,
    ).one()

    by_method = _in_range(
        _scope(
            db.session.query(Sale.payment_method, func.count(Sale.id), func.coalesce(func.sum(Sale.total_cents), 0)),
            Sale,
        ),
        Sale.created_at, start_dt, end_dt,
    ).group_by(Sale.payment_method).all()

    by_type = _in_range(
        _scope(
            db.session.query(Sale.payment_type, func.count(Sale.id), func.coalesce(func.sum(Sale.total_cents), 0)),
            Sale,
        ),
        Sale.created_at, start_dt, end_dt,
    ).group_by(Sale.payment_type).all()

    refunds = _in_range(
        _scope(
            db.session.query(
                func.count(Return.id),
                func.coalesce(func.sum(Return.refund_cents), 0),
                func.coalesce(func.sum(Return.cash_refund_cents), 0),
                func.coalesce(func.sum(Return.credit_refund_cents), 0),
            ),
            Return,
        ),
        Return.created_at, start_dt, end_dt,
    ).one()

    expenses = _in_range(
        _scope(db.session.query(func.coalesce(func.sum(Expense.amount_cents), 0)), Expense),
        Expense.created_at, start_dt, end_dt,
    ).scalar()

    total_cents = int(totals[4] or 0)
    refund_cents = int(refunds[1] or 0)
    return {
        "org_id": org_id,
        "location_id": location_id,
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "sales_count": int(totals[0] or 0),
        "subtotal_cents": int(totals[1] or 0),
        "discount_cents": int(totals[2] or 0),
        "tax_cents": int(totals[3] or 0),
        "total_cents": total_cents,
        "credit_cents": int(totals[5] or 0),
        "by_payment_method": {
            method: {"count": int(count), "total_cents": int(amount or 0)} for method, count, amount in by_method
        },
        "by_payment_type": {
            ptype: {"count": int(count), "total_cents": int(amount or 0)} for ptype, count, amount in by_type
        },
        "returns": {
            "count": int(refunds[0] or 0),
            "refund_cents": refund_cents,
            "cash_refund_cents": int(refunds[2] or 0),
            "credit_refund_cents": int(refunds[3] or 0),
        },
        "expenses_cents": int(expenses or 0),
        "net_sales_cents": total_cents - refund_cents,
    }
