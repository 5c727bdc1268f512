"""
Return Processing Service

WHY: A return undoes part of a completed sale. Goods either go back into
sellable stock or leave it for good, and the money side of the original
settlement is reversed the way it was taken: cash goes back out of the
drawer, credit reduces what the customer owes.

DESIGN PRINCIPLES:
- Returns reference the original Sale line; returned quantity per line can
  never exceed sold quantity minus what earlier returns already took back
- RETURN_TO_STOCK restocks into the batches the sale consumed (latest
  consumed first, SaleLineBatch), so expiry tracking survives the round
  trip; anything beyond that goes to the GENERAL batch
- DISPOSE / QUARANTINE never touch sellable stock
- Refund = SUM(quantity x original unit price); line discounts are ignored
- Credit sales: the refund first clears the invoice's open balance through an
  ADJUSTMENT ledger entry (no money moved), any remainder is paid out
- Completed returns are immutable; the sale moves to PARTIALLY_RETURNED or
  RETURNED in the same transaction
"""

from __future__ import annotations

from collections import defaultdict

from ..errors import NotFoundError, ValidationError, require_positive_int
from ..extensions import db
from ..models import Invoice, Return, ReturnLine, Sale, SaleLine
from .audit_service import append_audit_event
from .cash_drawer_service import find_active_drawer
from .concurrency import lock_for_update, run_in_transaction
from .credit_service import apply_adjustment
from .document_service import next_document_number
from .inventory_service import increment
from .ledger_service import post_cash_transaction
from .payment_service import (
    KIND_REFUND,
    KIND_RETURN_CREDIT,
    TENDER_CASH,
    TENDER_CREDIT,
    normalize_tender,
    record_payment,
)


# =============================================================================
# RETURN CONSTANTS
# =============================================================================

CONDITIONS = {"GOOD", "DAMAGED", "EXPIRED", "DEFECTIVE"}

DISPOSITION_RETURN_TO_STOCK = "RETURN_TO_STOCK"
DISPOSITION_DISPOSE = "DISPOSE"
DISPOSITION_QUARANTINE = "QUARANTINE"
DISPOSITIONS = {DISPOSITION_RETURN_TO_STOCK, DISPOSITION_DISPOSE, DISPOSITION_QUARANTINE}

SALE_PARTIALLY_RETURNED = "PARTIALLY_RETURNED"
SALE_RETURNED = "RETURNED"


def _lock_sale(org_id: int, sale_id: int) -> Sale:
    sale = (
        lock_for_update(db.session.query(Sale).filter_by(id=sale_id))
        .populate_existing()
        .first()
    )
    if sale is None or sale.org_id != org_id:
        raise NotFoundError("Sale not found", {"sale_id": sale_id})
    return sale


def _resolve_lines(sale: Sale, items: list[dict]) -> list[tuple[SaleLine, int, str, str]]:
    """
    Map requested items onto sale lines.

    An item names either a sale_line_id or a product_id; a product sold on
    several lines is taken from them in line order.
    """
    if not items:
        raise ValidationError("Return must contain at least one item")

    lines_by_id = {line.id: line for line in sale.lines}
    returnable = {line.id: line.quantity - line.returned_quantity for line in sale.lines}
    resolved: list[tuple[SaleLine, int, str, str]] = []

    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError("Each return item must be an object", {"item": index})
        quantity = require_positive_int(item.get("quantity"))
        condition = (item.get("condition") or "GOOD").upper()
        if condition not in CONDITIONS:
            raise ValidationError(f"Invalid condition: {condition}", {"item": index, "allowed": sorted(CONDITIONS)})
        disposition = (item.get("disposition") or DISPOSITION_RETURN_TO_STOCK).upper()
        if disposition not in DISPOSITIONS:
            raise ValidationError(
                f"Invalid disposition: {disposition}", {"item": index, "allowed": sorted(DISPOSITIONS)}
            )

        if item.get("sale_line_id") is not None:
            line = lines_by_id.get(item["sale_line_id"])
            if line is None:
                raise NotFoundError("Sale line not found", {"item": index, "sale_line_id": item["sale_line_id"]})
            candidates = [line]
        else:
            candidates = [line for line in sale.lines if line.product_id == item.get("product_id")]
            if not candidates:
                raise ValidationError(
                    "Product was not sold on this sale",
                    {"item": index, "product_id": item.get("product_id")},
                )

        available = sum(returnable[line.id] for line in candidates)
        if quantity > available:
            raise ValidationError(
                "Return quantity exceeds quantity sold",
                {
                    "item": index,
                    "product_id": candidates[0].product_id,
                    "requested": quantity,
                    "returnable": available,
                },
            )

        remaining = quantity
        for line in candidates:
            take = min(remaining, returnable[line.id])
            if take <= 0:
                continue
            returnable[line.id] -= take
            resolved.append((line, take, condition, disposition))
            remaining -= take
            if remaining == 0:
                break

    return resolved


def _restock(line: SaleLine, quantity: int, location_id: int) -> None:
    """Put units back into the batches this line consumed, latest consumed first."""
    remaining = quantity
    for batch in sorted(line.batches, key=lambda b: b.sequence, reverse=True):
        room = batch.quantity - batch.restocked_quantity
        take = min(room, remaining)
        if take <= 0:
            continue
        increment(
            product_id=line.product_id,
            location_id=location_id,
            quantity=take,
            expiration_date=batch.expiration_date,
        )
        batch.restocked_quantity = batch.restocked_quantity + take
        remaining -= take
        if remaining == 0:
            return
    if remaining > 0:
        increment(product_id=line.product_id, location_id=location_id, quantity=remaining)


def _refund_method(sale: Sale, refund_method: str | None) -> str:
    if refund_method:
        return normalize_tender(refund_method)
    if sale.payment_method == TENDER_CREDIT:
        return TENDER_CASH
    return sale.payment_method


# =============================================================================
# RETURN PROCESSING
# =============================================================================

def process_return(
    *,
    org_id: int,
    sale_id: int,
    items: list[dict],
    reason: str,
    notes: str | None = None,
    refund_method: str | None = None,
    drawer_id: int | None = None,
    actor_user_id: int | None = None,
) -> Return:
    """
    Process a customer return against a completed sale, atomically.

    Each item: {"sale_line_id" | "product_id", "quantity", "condition"?, "disposition"?}

    Raises:
        ValidationError: bad items, over-return, missing reason
        NotFoundError: sale or sale line not in this organization
        NotOpenError: an explicitly named drawer is not open
    """
    if not reason or not str(reason).strip():
        raise ValidationError("Return reason is required")

    def _op() -> Return:
        sale = _lock_sale(org_id, sale_id)
        resolved = _resolve_lines(sale, items)

        ret = Return(
            org_id=org_id,
            location_id=sale.location_id,
            sale_id=sale.id,
            customer_id=sale.customer_id,
            return_number=next_document_number(org_id=org_id, document_type="RETURN"),
            status="COMPLETED",
            reason=str(reason).strip(),
            notes=notes,
            created_by_user_id=actor_user_id,
        )

        refund = 0
        restocked_by_product: dict[int, int] = defaultdict(int)
        for line, quantity, condition, disposition in resolved:
            line_refund = quantity * line.unit_price_cents
            restocked = 0
            if disposition == DISPOSITION_RETURN_TO_STOCK:
                _restock(line, quantity, sale.location_id)
                restocked = quantity
                restocked_by_product[line.product_id] += quantity
            line.returned_quantity = line.returned_quantity + quantity
            refund += line_refund
            ret.lines.append(
                ReturnLine(
                    sale_line_id=line.id,
                    product_id=line.product_id,
                    quantity=quantity,
                    condition=condition,
                    disposition=disposition,
                    unit_price_cents=line.unit_price_cents,
                    refund_cents=line_refund,
                    restocked_quantity=restocked,
                )
            )

        ret.refund_cents = refund
        db.session.add(ret)
        db.session.flush()

        # Credit side: clear what is still owed on the sale's invoice first.
        invoice = None
        if sale.customer_id is not None and sale.credit_amount_cents > 0:
            invoice = (
                lock_for_update(db.session.query(Invoice).filter_by(sale_id=sale.id))
                .populate_existing()
                .first()
            )
        credit_refund = min(refund, invoice.balance_due_cents) if invoice is not None else 0
        cash_refund = refund - credit_refund

        if credit_refund > 0:
            adjustment = apply_adjustment(
                customer_id=sale.customer_id,
                delta_cents=-credit_refund,
                reference_type="return",
                reference_id=ret.id,
                description=f"Return {ret.return_number} on sale {sale.sale_number}",
                actor_user_id=actor_user_id,
            )
            record_payment(
                org_id=org_id,
                amount_cents=credit_refund,
                method=TENDER_CREDIT,
                kind=KIND_RETURN_CREDIT,
                invoice=invoice,
                sale_id=sale.id,
                customer_id=sale.customer_id,
                credit_transaction_id=adjustment.id,
                reference=ret.return_number,
                notes="Goods returned",
                actor_user_id=actor_user_id,
            )

        method = None
        if cash_refund > 0:
            method = _refund_method(sale, refund_method)
            drawer = find_active_drawer(
                org_id=org_id, location_id=sale.location_id, actor_user_id=actor_user_id, drawer_id=drawer_id
            )
            if method == TENDER_CASH and drawer is not None:
                if drawer.current_balance_cents < cash_refund:
                    raise ValidationError(
                        "Drawer holds less cash than the refund",
                        {"drawer_id": drawer.id, "balance_cents": drawer.current_balance_cents, "refund_cents": cash_refund},
                    )
                post_cash_transaction(
                    drawer_id=drawer.id,
                    txn_type="RETURN_REFUND",
                    delta_cents=-cash_refund,
                    reference_type="return",
                    reference_id=ret.id,
                    description=f"Refund {ret.return_number}",
                    actor_user_id=actor_user_id,
                )
            record_payment(
                org_id=org_id,
                amount_cents=-cash_refund,
                method=method,
                kind=KIND_REFUND,
                sale_id=sale.id,
                customer_id=sale.customer_id,
                drawer_session_id=drawer.current_session_id if drawer is not None else None,
                reference=ret.return_number,
                notes=ret.reason,
                actor_user_id=actor_user_id,
            )

        ret.credit_refund_cents = credit_refund
        ret.cash_refund_cents = cash_refund
        ret.refund_method = method if cash_refund > 0 else (TENDER_CREDIT if credit_refund > 0 else None)

        fully_returned = all(line.returned_quantity >= line.quantity for line in sale.lines)
        sale.status = SALE_RETURNED if fully_returned else SALE_PARTIALLY_RETURNED
        db.session.flush()

        append_audit_event(
            org_id=org_id,
            location_id=sale.location_id,
            event_type="RETURN_PROCESSED",
            event_category="returns",
            entity_type="return",
            entity_id=ret.id,
            actor_user_id=actor_user_id,
            note=ret.return_number,
            payload={
                "sale_id": sale.id,
                "refund_cents": refund,
                "credit_refund_cents": credit_refund,
                "cash_refund_cents": cash_refund,
                "restocked": {str(pid): qty for pid, qty in restocked_by_product.items()},
            },
        )
        return ret

    return run_in_transaction(_op)


def get_return(*, org_id: int, return_id: int) -> Return:
    ret = db.session.get(Return, return_id)
    if ret is None or ret.org_id != org_id:
        raise NotFoundError("Return not found", {"return_id": return_id})
    return ret
