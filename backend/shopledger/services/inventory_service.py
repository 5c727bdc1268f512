# Overview: Batch-level inventory store; FEFO consumption, exact reversal, manual adjustments and stock reports.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Sequence

from sqlalchemy import and_, func, update
from sqlalchemy.exc import IntegrityError

from ..errors import (
    InsufficientStockError,
    InvalidQuantityError,
    SerializationConflictError,
    ValidationError,
    require_positive_int,
)
from ..extensions import db
from ..models import Location, Product, StockLevel, batch_key_for
from ..time_utils import parse_iso_date, to_iso_date, utcnow
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_in_transaction
from .tenant_service import require_location_in_org, require_product_in_org
"""
Inventory Store Invariants (authoritative)

Stock model:
- Quantity is stored per (product, location, expiration batch) in StockLevel.
- A batch without expiration uses the GENERAL batch key and sorts after every
  dated batch (treated as the longest shelf life).
- quantity >= 0 always. Decrements are conditional UPDATEs
  (quantity = quantity - n WHERE quantity >= n), never read-then-write.

Operations:
- increment(): upsert on the exact batch key; a lost race on the first insert
  becomes a SerializationConflictError and the unit of work is retried.
- decrement_fefo(): plan first, mutate second. The whole plan is validated
  against locked rows before any row changes, so an insufficient request
  leaves every batch untouched.
- decrement_exact(): one named batch, used by void/reversal paths; never
  borrows from other batches.
- adjust_stock(): manual corrections go through the same three primitives
  and leave an INVENTORY_ADJUSTED audit event.

Reporting:
- low_stock() and expiring_soon() are read-only filters, not write-time rules.
"""


@dataclass(frozen=True)
class BatchConsumption:
    """One step of a FEFO plan: take `quantity` from one stock row."""

    stock_level_id: int
    expiration_date: date | None
    quantity: int

    def to_dict(self) -> dict:
        return {
            "stock_level_id": self.stock_level_id,
            "expiration_date": to_iso_date(self.expiration_date),
            "quantity": self.quantity,
        }


def _fefo_order():
    # Dated batches first (earliest expiry first), undated batches last.
    return (
        StockLevel.expiration_date.is_(None).asc(),
        StockLevel.expiration_date.asc(),
        StockLevel.id.asc(),
    )


def plan_fefo(batches: Sequence[StockLevel], quantity: int) -> list[BatchConsumption]:
    """
    Build the per-batch consumption set for `quantity` units.

    `batches` must already be in FEFO order. Raises InsufficientStockError
    when the batches cannot cover the request; nothing is mutated here.
    """
    plan: list[BatchConsumption] = []
    remaining = quantity
    for batch in batches:
        if remaining == 0:
            break
        if batch.quantity <= 0:
            continue
        take = min(batch.quantity, remaining)
        plan.append(BatchConsumption(batch.id, batch.expiration_date, take))
        remaining -= take

    if remaining > 0:
        available = sum(max(b.quantity, 0) for b in batches)
        raise InsufficientStockError(
            "Insufficient stock",
            {"requested": quantity, "available": available},
        )
    return plan


def _conditional_decrement(stock_level_id: int, quantity: int) -> None:
    result = db.session.execute(
        update(StockLevel)
        .where(StockLevel.id == stock_level_id, StockLevel.quantity >= quantity)
        .values(quantity=StockLevel.quantity - quantity, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Another transaction consumed the batch between plan and apply.
        raise SerializationConflictError(
            "Stock changed concurrently", {"stock_level_id": stock_level_id}
        )


def _expire_rows(rows: Iterable[StockLevel]) -> None:
    for row in rows:
        db.session.expire(row, ["quantity", "updated_at"])


# =============================================================================
# QUERIES
# =============================================================================

def get_available(product_id: int, location_id: int) -> int:
    """Sum of every batch row for the product at the location."""
    total = (
        db.session.query(func.coalesce(func.sum(StockLevel.quantity), 0))
        .filter(StockLevel.product_id == product_id, StockLevel.location_id == location_id)
        .scalar()
    )
    return int(total or 0)


def list_batches(product_id: int, location_id: int, *, include_empty: bool = False) -> list[StockLevel]:
    query = db.session.query(StockLevel).filter(
        StockLevel.product_id == product_id,
        StockLevel.location_id == location_id,
    )
    if not include_empty:
        query = query.filter(StockLevel.quantity > 0)
    return query.order_by(*_fefo_order()).all()


def get_batch(product_id: int, location_id: int, expiration_date=None) -> StockLevel | None:
    return (
        db.session.query(StockLevel)
        .filter_by(
            product_id=product_id,
            location_id=location_id,
            batch_key=batch_key_for(parse_iso_date(expiration_date)),
        )
        .first()
    )


# =============================================================================
# MUTATIONS
# =============================================================================

def increment(*, product_id: int, location_id: int, quantity, expiration_date=None) -> StockLevel:
    """Add stock to the exact (product, location, expiration) batch, creating it if needed."""
    qty = require_positive_int(quantity)
    exp = parse_iso_date(expiration_date)
    key = batch_key_for(exp)

    def _op() -> StockLevel:
        result = db.session.execute(
            update(StockLevel)
            .where(
                StockLevel.product_id == product_id,
                StockLevel.location_id == location_id,
                StockLevel.batch_key == key,
            )
            .values(quantity=StockLevel.quantity + qty, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            row = (
                db.session.query(StockLevel)
                .filter_by(product_id=product_id, location_id=location_id, batch_key=key)
                .populate_existing()
                .one()
            )
            return row

        row = StockLevel(
            product_id=product_id,
            location_id=location_id,
            expiration_date=exp,
            batch_key=key,
            quantity=qty,
        )
        db.session.add(row)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise SerializationConflictError(
                "Stock batch was created concurrently",
                {"product_id": product_id, "location_id": location_id, "batch": key},
            ) from exc
        return row

    return run_in_transaction(_op)


def decrement_fefo(*, product_id: int, location_id: int, quantity) -> list[BatchConsumption]:
    """
    Consume `quantity` units First-Expired-First-Out.

    Returns the exact per-batch consumption set; callers persist it when they
    need to replay or reverse the movement later.
    """
    qty = require_positive_int(quantity)

    def _op() -> list[BatchConsumption]:
        rows = (
            lock_for_update(
                db.session.query(StockLevel).filter(
                    StockLevel.product_id == product_id,
                    StockLevel.location_id == location_id,
                    StockLevel.quantity > 0,
                )
            )
            .order_by(*_fefo_order())
            .populate_existing()
            .all()
        )
        try:
            plan = plan_fefo(rows, qty)
        except InsufficientStockError as exc:
            exc.details.update({"product_id": product_id, "location_id": location_id})
            raise

        for step in plan:
            _conditional_decrement(step.stock_level_id, step.quantity)
        _expire_rows(rows)
        return plan

    return run_in_transaction(_op)


def decrement_exact(*, product_id: int, location_id: int, expiration_date, quantity) -> StockLevel:
    """Take `quantity` from one named batch only; fails if that batch holds less."""
    qty = require_positive_int(quantity)
    exp = parse_iso_date(expiration_date)
    key = batch_key_for(exp)

    def _op() -> StockLevel:
        row = (
            lock_for_update(
                db.session.query(StockLevel).filter_by(
                    product_id=product_id, location_id=location_id, batch_key=key
                )
            )
            .populate_existing()
            .first()
        )
        available = row.quantity if row is not None else 0
        if available < qty:
            raise InsufficientStockError(
                "Insufficient stock in batch",
                {
                    "product_id": product_id,
                    "location_id": location_id,
                    "expiration_date": to_iso_date(exp),
                    "requested": qty,
                    "available": available,
                },
            )
        _conditional_decrement(row.id, qty)
        _expire_rows([row])
        return row

    return run_in_transaction(_op)


# =============================================================================
# REPORTS
# =============================================================================

def low_stock(*, org_id: int, location_id: int) -> list[dict]:
    """
    Active products at or below their reorder point at a location.

    Products without a reorder point (0) are not monitored. A product with no
    stock rows at all counts as zero on hand.
    """
    on_hand = func.coalesce(func.sum(StockLevel.quantity), 0)
    rows = (
        db.session.query(Product, on_hand.label("on_hand"))
        .outerjoin(
            StockLevel,
            and_(StockLevel.product_id == Product.id, StockLevel.location_id == location_id),
        )
        .filter(Product.org_id == org_id, Product.is_active.is_(True), Product.reorder_point > 0)
        .group_by(Product.id)
        .having(on_hand <= Product.reorder_point)
        .order_by(Product.name.asc())
        .all()
    )
    return [
        {
            "product_id": product.id,
            "sku": product.sku,
            "name": product.name,
            "location_id": location_id,
            "quantity_on_hand": int(qty),
            "reorder_point": product.reorder_point,
            "reorder_quantity": product.reorder_quantity,
        }
        for product, qty in rows
    ]


def expiring_soon(
    *,
    org_id: int,
    location_id: int,
    as_of: date | None = None,
    within_days: int | None = None,
) -> list[dict]:
    """
    Non-empty dated batches expiring within the alert window.

    The window is `within_days` when given, else each product's
    expiry_alert_days. Already-expired batches are included and flagged.
    """
    today = as_of or utcnow().date()
    rows = (
        db.session.query(StockLevel, Product)
        .join(Product, Product.id == StockLevel.product_id)
        .join(Location, Location.id == StockLevel.location_id)
        .filter(
            Location.org_id == org_id,
            StockLevel.location_id == location_id,
            StockLevel.quantity > 0,
            StockLevel.expiration_date.isnot(None),
        )
        .order_by(StockLevel.expiration_date.asc(), StockLevel.id.asc())
        .all()
    )
    result = []
    for batch, product in rows:
        window = within_days if within_days is not None else product.expiry_alert_days
        if batch.expiration_date > today + timedelta(days=window):
            continue
        result.append(
            {
                "stock_level_id": batch.id,
                "product_id": product.id,
                "sku": product.sku,
                "name": product.name,
                "location_id": batch.location_id,
                "expiration_date": to_iso_date(batch.expiration_date),
                "quantity": batch.quantity,
                "days_until_expiry": (batch.expiration_date - today).days,
                "expired": batch.expiration_date < today,
            }
        )
    return result


# =============================================================================
# MANUAL ADJUSTMENTS
# =============================================================================

@dataclass(frozen=True)
class StockAdjustment:
    product_id: int
    location_id: int
    quantity_delta: int
    reason: str
    batches: list[BatchConsumption]
    available_after: int

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "location_id": self.location_id,
            "quantity_delta": self.quantity_delta,
            "reason": self.reason,
            "batches": [b.to_dict() for b in self.batches],
            "available_after": self.available_after,
        }


def adjust_stock(
    *,
    org_id: int,
    product_id: int,
    location_id: int,
    quantity_delta,
    reason: str,
    expiration_date=None,
    actor_user_id: int | None = None,
) -> StockAdjustment:
    """
    Count correction or write-off outside any purchase, sale or transfer.

    WHY: Shrinkage, damage and stock-take differences have to reach the
    stock rows without bypassing the non-negative rule.

    - Positive delta: added to the named batch (GENERAL when no expiration)
    - Negative delta with an expiration: taken from that batch only
    - Negative delta without one: consumed FEFO across the batches
    - A removal larger than the stock raises InsufficientStockError and
      changes nothing
    """
    if isinstance(quantity_delta, bool) or not isinstance(quantity_delta, int) or quantity_delta == 0:
        raise InvalidQuantityError(
            "quantity_delta must be a non-zero integer",
            {"field": "quantity_delta", "value": quantity_delta},
        )
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("reason is required")
    try:
        exp = parse_iso_date(expiration_date)
    except ValueError as exc:
        raise ValidationError("expiration_date must be YYYY-MM-DD") from exc

    def _op() -> StockAdjustment:
        require_product_in_org(product_id, org_id)
        require_location_in_org(location_id, org_id)

        if quantity_delta > 0:
            row = increment(
                product_id=product_id, location_id=location_id, quantity=quantity_delta, expiration_date=exp
            )
            batches = [BatchConsumption(row.id, exp, quantity_delta)]
        elif exp is not None:
            row = decrement_exact(
                product_id=product_id, location_id=location_id, expiration_date=exp, quantity=-quantity_delta
            )
            batches = [BatchConsumption(row.id, exp, -quantity_delta)]
        else:
            batches = decrement_fefo(product_id=product_id, location_id=location_id, quantity=-quantity_delta)

        available_after = get_available(product_id, location_id)
        append_audit_event(
            org_id=org_id,
            location_id=location_id,
            event_type="INVENTORY_ADJUSTED",
            event_category="inventory",
            entity_type="product",
            entity_id=product_id,
            actor_user_id=actor_user_id,
            note=reason.strip(),
            payload={
                "quantity_delta": quantity_delta,
                "batches": [b.to_dict() for b in batches],
                "available_after": available_after,
            },
        )
        return StockAdjustment(
            product_id=product_id,
            location_id=location_id,
            quantity_delta=quantity_delta,
            reason=reason.strip(),
            batches=batches,
            available_after=available_after,
        )

    return run_in_transaction(_op)
