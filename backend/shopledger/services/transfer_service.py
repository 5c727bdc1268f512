# Overview: Stock transfers between locations; approval, FEFO shipping and batch-preserving receipt.

"""
Inter-Location Transfer Service

WHY: Stock moves between a warehouse and the shops of one organization.
The units must leave the source and arrive at the destination with the
same expiration batches, or not move at all.

LIFECYCLE:
1. DRAFT: Created, lines added
2. APPROVED: Manager approved, lines frozen
3. IN_TRANSIT: Shipped; stock consumed FEFO at the source
4. RECEIVED: Received; the shipped batches are added at the destination
5. CANCELLED: Cancelled before shipping

DESIGN:
- Shipping is all-or-nothing: every line is consumed inside one unit of
  work, so one short line leaves every batch at the source untouched
- The consumed batches are stored per line (TransferLineBatch) and are the
  exact set receiving adds back, keeping expiry tracking intact
- Both locations must belong to the caller's organization
"""

from __future__ import annotations

from ..errors import (
    InsufficientStockError,
    NotFoundError,
    StateError,
    ValidationError,
    require_positive_int,
)
from ..extensions import db
from ..models import TransferLine, TransferLineBatch, TransferOrder
from ..time_utils import to_iso_date, utcnow
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_document_number
from .inventory_service import decrement_fefo, get_available, increment
from .tenant_service import require_location_in_org, require_product_in_org


STATUS_DRAFT = "DRAFT"
STATUS_APPROVED = "APPROVED"
STATUS_IN_TRANSIT = "IN_TRANSIT"
STATUS_RECEIVED = "RECEIVED"
STATUS_CANCELLED = "CANCELLED"

CANCELLABLE_STATUSES = {STATUS_DRAFT, STATUS_APPROVED}


def _lock_transfer(org_id: int, transfer_id: int) -> TransferOrder:
    transfer = (
        lock_for_update(db.session.query(TransferOrder).filter_by(id=transfer_id))
        .populate_existing()
        .first()
    )
    if transfer is None or transfer.org_id != org_id:
        raise NotFoundError("Transfer not found", {"transfer_id": transfer_id})
    return transfer


def _audit(transfer: TransferOrder, event_type: str, *, location_id: int, actor_user_id, note=None, payload=None):
    append_audit_event(
        org_id=transfer.org_id,
        location_id=location_id,
        event_type=event_type,
        event_category="transfers",
        entity_type="transfer",
        entity_id=transfer.id,
        actor_user_id=actor_user_id,
        note=note,
        payload=payload,
    )


def _add_line(transfer: TransferOrder, product_id, quantity) -> TransferLine:
    product = require_product_in_org(product_id, transfer.org_id)
    qty = require_positive_int(quantity)
    if any(line.product_id == product.id for line in transfer.lines):
        raise ValidationError("Product is already on this transfer", {"product_id": product.id})

    # Early feedback only; shipping re-checks against locked rows.
    available = get_available(product.id, transfer.from_location_id)
    if available < qty:
        raise InsufficientStockError(
            "Insufficient stock at the source location",
            {
                "product_id": product.id,
                "location_id": transfer.from_location_id,
                "requested": qty,
                "available": available,
            },
        )
    line = TransferLine(product_id=product.id, quantity=qty)
    transfer.lines.append(line)
    return line


# =============================================================================
# LIFECYCLE
# =============================================================================

def create_transfer(
    *,
    org_id: int,
    from_location_id: int,
    to_location_id: int,
    items: list[dict] | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> TransferOrder:
    """
    Create a DRAFT transfer, optionally with its lines.

    Each item: {"product_id", "quantity"}
    """

    def _op() -> TransferOrder:
        source = require_location_in_org(from_location_id, org_id)
        destination = require_location_in_org(to_location_id, org_id)
        if source.id == destination.id:
            raise ValidationError("Source and destination must be different locations")

        transfer = TransferOrder(
            org_id=org_id,
            from_location_id=source.id,
            to_location_id=destination.id,
            transfer_number=next_document_number(org_id=org_id, document_type="TRANSFER"),
            status=STATUS_DRAFT,
            notes=notes,
            created_by_user_id=actor_user_id,
        )
        for item in items or []:
            if not isinstance(item, dict):
                raise ValidationError("Each item must be an object")
            _add_line(transfer, item.get("product_id"), item.get("quantity"))
        db.session.add(transfer)
        db.session.flush()

        _audit(
            transfer,
            "TRANSFER_CREATED",
            location_id=source.id,
            actor_user_id=actor_user_id,
            note=transfer.transfer_number,
            payload={"to_location_id": destination.id},
        )
        return transfer

    return run_in_transaction(_op)


def add_transfer_line(
    *,
    org_id: int,
    transfer_id: int,
    product_id: int,
    quantity,
    actor_user_id: int | None = None,
) -> TransferLine:
    def _op() -> TransferLine:
        transfer = _lock_transfer(org_id, transfer_id)
        if transfer.status != STATUS_DRAFT:
            raise StateError(f"Cannot add lines to a {transfer.status} transfer", {"status": transfer.status})
        line = _add_line(transfer, product_id, quantity)
        db.session.flush()
        return line

    return run_in_transaction(_op)


def approve_transfer(*, org_id: int, transfer_id: int, actor_user_id: int | None = None) -> TransferOrder:
    """DRAFT -> APPROVED. A transfer without lines cannot be approved."""

    def _op() -> TransferOrder:
        transfer = _lock_transfer(org_id, transfer_id)
        if transfer.status != STATUS_DRAFT:
            raise StateError(f"Cannot approve a {transfer.status} transfer", {"status": transfer.status})
        if not transfer.lines:
            raise ValidationError("Cannot approve a transfer with no lines")
        transfer.status = STATUS_APPROVED
        transfer.approved_by_user_id = actor_user_id
        transfer.approved_at = utcnow()
        db.session.flush()
        _audit(transfer, "TRANSFER_APPROVED", location_id=transfer.from_location_id, actor_user_id=actor_user_id)
        return transfer

    return run_in_transaction(_op)


def ship_transfer(*, org_id: int, transfer_id: int, actor_user_id: int | None = None) -> TransferOrder:
    """
    APPROVED -> IN_TRANSIT. Consumes every line FEFO at the source.

    Raises InsufficientStockError (nothing changed) when any line cannot be
    covered by the stock currently at the source.
    """

    def _op() -> TransferOrder:
        transfer = _lock_transfer(org_id, transfer_id)
        if transfer.status != STATUS_APPROVED:
            raise StateError(f"Cannot ship a {transfer.status} transfer", {"status": transfer.status})

        shipped = []
        for line in transfer.lines:
            consumed = decrement_fefo(
                product_id=line.product_id,
                location_id=transfer.from_location_id,
                quantity=line.quantity,
            )
            for sequence, step in enumerate(consumed, start=1):
                line.batches.append(
                    TransferLineBatch(
                        sequence=sequence,
                        expiration_date=step.expiration_date,
                        quantity=step.quantity,
                    )
                )
                shipped.append(
                    {
                        "product_id": line.product_id,
                        "expiration_date": to_iso_date(step.expiration_date),
                        "quantity": step.quantity,
                    }
                )

        transfer.status = STATUS_IN_TRANSIT
        transfer.shipped_by_user_id = actor_user_id
        transfer.shipped_at = utcnow()
        db.session.flush()
        _audit(
            transfer,
            "TRANSFER_SHIPPED",
            location_id=transfer.from_location_id,
            actor_user_id=actor_user_id,
            note=transfer.transfer_number,
            payload={"batches": shipped},
        )
        return transfer

    return run_in_transaction(_op)


def receive_transfer(*, org_id: int, transfer_id: int, actor_user_id: int | None = None) -> TransferOrder:
    """IN_TRANSIT -> RECEIVED. Adds the shipped batches at the destination."""

    def _op() -> TransferOrder:
        transfer = _lock_transfer(org_id, transfer_id)
        if transfer.status != STATUS_IN_TRANSIT:
            raise StateError(f"Cannot receive a {transfer.status} transfer", {"status": transfer.status})

        for line in transfer.lines:
            for batch in line.batches:
                increment(
                    product_id=line.product_id,
                    location_id=transfer.to_location_id,
                    quantity=batch.quantity,
                    expiration_date=batch.expiration_date,
                )

        transfer.status = STATUS_RECEIVED
        transfer.received_by_user_id = actor_user_id
        transfer.received_at = utcnow()
        db.session.flush()
        _audit(
            transfer,
            "TRANSFER_RECEIVED",
            location_id=transfer.to_location_id,
            actor_user_id=actor_user_id,
            note=transfer.transfer_number,
        )
        return transfer

    return run_in_transaction(_op)


def cancel_transfer(
    *,
    org_id: int,
    transfer_id: int,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> TransferOrder:
    """DRAFT/APPROVED -> CANCELLED. Shipped stock cannot be cancelled back."""

    def _op() -> TransferOrder:
        transfer = _lock_transfer(org_id, transfer_id)
        if transfer.status not in CANCELLABLE_STATUSES:
            raise StateError(f"Cannot cancel a {transfer.status} transfer", {"status": transfer.status})
        transfer.status = STATUS_CANCELLED
        transfer.cancelled_at = utcnow()
        transfer.cancel_reason = reason
        db.session.flush()
        _audit(
            transfer,
            "TRANSFER_CANCELLED",
            location_id=transfer.from_location_id,
            actor_user_id=actor_user_id,
            note=reason,
        )
        return transfer

    return run_in_transaction(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_transfer(*, org_id: int, transfer_id: int) -> TransferOrder:
    transfer = db.session.get(TransferOrder, transfer_id)
    if transfer is None or transfer.org_id != org_id:
        raise NotFoundError("Transfer not found", {"transfer_id": transfer_id})
    return transfer


def list_transfers(*, org_id: int, status: str | None = None, limit: int = 50) -> list[TransferOrder]:
    query = db.session.query(TransferOrder).filter(TransferOrder.org_id == org_id)
    if status:
        query = query.filter(TransferOrder.status == status.upper())
    return query.order_by(TransferOrder.id.desc()).limit(limit).all()
