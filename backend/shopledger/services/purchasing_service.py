# Overview: Purchase orders, multi-batch receiving and exact receiving voids.

"""
Purchase Order Receiving Service

WHY: Suppliers deliver in several drops, each with its own expiration
batches. Receiving must add exactly what arrived, and a mistaken receipt
must be undone exactly, or not at all.

LIFECYCLE:
1. DRAFT: Created, lines editable
2. SENT: Sent to supplier, receivable
3. PARTIAL: Some quantity received
4. RECEIVED: Every item fully received
5. CANCELLED: Cancelled before anything was received

DESIGN:
- 0 <= received_quantity <= ordered_quantity per item (checked in code and
  by CHECK constraints)
- A receive request is validated as a whole before any stock moves; one
  batch over the remaining quantity rejects all of them (OverReceiptError)
- Every receive appends an immutable ReceivingRecord listing the exact
  batches applied; that list is the undo-set for voiding
- A void takes stock back from the same batches only (decrement_exact); if
  a later sale consumed them, the void fails with VoidConflictError
- PO status is derived from item quantities in the same transaction
"""

from __future__ import annotations

from collections import defaultdict

from ..errors import (
    InsufficientStockError,
    NotFoundError,
    OverReceiptError,
    StateError,
    ValidationError,
    VoidConflictError,
    require_non_negative_cents,
    require_positive_int,
)
from ..extensions import db
from ..models import (
    PurchaseOrder,
    PurchaseOrderItem,
    ReceivingRecord,
    ReceivingRecordLine,
)
from ..time_utils import parse_iso_date, to_iso_date, utcnow
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_document_number
from .inventory_service import decrement_exact, increment
from .tenant_service import require_location_in_org, require_product_in_org


STATUS_DRAFT = "DRAFT"
STATUS_SENT = "SENT"
STATUS_PARTIAL = "PARTIAL"
STATUS_RECEIVED = "RECEIVED"
STATUS_CANCELLED = "CANCELLED"

RECEIVABLE_STATUSES = {STATUS_SENT, STATUS_PARTIAL}


def derive_po_status(items) -> str:
    """RECEIVED when every item is complete, PARTIAL when anything arrived, else SENT."""
    if items and all(item.received_quantity >= item.ordered_quantity for item in items):
        return STATUS_RECEIVED
    if any(item.received_quantity > 0 for item in items):
        return STATUS_PARTIAL
    return STATUS_SENT


def _lock_po(org_id: int, po_id: int) -> PurchaseOrder:
    po = (
        lock_for_update(db.session.query(PurchaseOrder).filter_by(id=po_id))
        .populate_existing()
        .first()
    )
    if po is None or po.org_id != org_id:
        raise NotFoundError("Purchase order not found", {"purchase_order_id": po_id})
    return po


def _apply_derived_status(po: PurchaseOrder) -> str:
    po.status = derive_po_status(po.items)
    po.received_at = utcnow() if po.status == STATUS_RECEIVED else None
    return po.status


# =============================================================================
# PURCHASE ORDER LIFECYCLE
# =============================================================================

def create_purchase_order(
    *,
    org_id: int,
    location_id: int,
    items: list[dict],
    supplier_name: str | None = None,
    expected_date=None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> PurchaseOrder:
    """
    Create a DRAFT purchase order.

    Each item: {"product_id", "quantity", "unit_cost_cents"?}
    """
    if not items:
        raise ValidationError("Purchase order must have at least one item")
    try:
        expected = parse_iso_date(expected_date)
    except ValueError as exc:
        raise ValidationError("expected_date must be YYYY-MM-DD") from exc

    def _op() -> PurchaseOrder:
        require_location_in_org(location_id, org_id)
        po = PurchaseOrder(
            org_id=org_id,
            location_id=location_id,
            po_number=next_document_number(org_id=org_id, document_type="PURCHASE_ORDER"),
            supplier_name=supplier_name,
            status=STATUS_DRAFT,
            expected_date=expected,
            notes=notes,
            created_by_user_id=actor_user_id,
        )
        for index, item in enumerate(items):
            product = require_product_in_org(item.get("product_id"), org_id)
            unit_cost = item.get("unit_cost_cents")
            po.items.append(
                PurchaseOrderItem(
                    product_id=product.id,
                    ordered_quantity=require_positive_int(item.get("quantity")),
                    received_quantity=0,
                    unit_cost_cents=(
                        product.cost_price_cents
                        if unit_cost is None
                        else require_non_negative_cents(unit_cost, "unit_cost_cents")
                    ),
                )
            )
        db.session.add(po)
        db.session.flush()

        append_audit_event(
            org_id=org_id,
            location_id=location_id,
            event_type="PO_CREATED",
            event_category="purchasing",
            entity_type="purchase_order",
            entity_id=po.id,
            actor_user_id=actor_user_id,
            note=po.po_number,
        )
        return po

    return run_in_transaction(_op)


def send_purchase_order(*, org_id: int, po_id: int, actor_user_id: int | None = None) -> PurchaseOrder:
    """DRAFT -> SENT."""

    def _op() -> PurchaseOrder:
        po = _lock_po(org_id, po_id)
        if po.status != STATUS_DRAFT:
            raise StateError(f"Cannot send a {po.status} purchase order", {"status": po.status})
        po.status = STATUS_SENT
        po.sent_at = utcnow()
        db.session.flush()
        append_audit_event(
            org_id=org_id,
            location_id=po.location_id,
            event_type="PO_SENT",
            event_category="purchasing",
            entity_type="purchase_order",
            entity_id=po.id,
            actor_user_id=actor_user_id,
        )
        return po

    return run_in_transaction(_op)


def cancel_purchase_order(
    *,
    org_id: int,
    po_id: int,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> PurchaseOrder:
    """DRAFT/SENT -> CANCELLED. Anything already received must be voided first."""

    def _op() -> PurchaseOrder:
        po = _lock_po(org_id, po_id)
        if po.status not in (STATUS_DRAFT, STATUS_SENT):
            raise StateError(f"Cannot cancel a {po.status} purchase order", {"status": po.status})
        if any(item.received_quantity > 0 for item in po.items):
            raise StateError("Void received stock before cancelling")
        po.status = STATUS_CANCELLED
        po.cancelled_at = utcnow()
        db.session.flush()
        append_audit_event(
            org_id=org_id,
            location_id=po.location_id,
            event_type="PO_CANCELLED",
            event_category="purchasing",
            entity_type="purchase_order",
            entity_id=po.id,
            actor_user_id=actor_user_id,
            note=reason,
        )
        return po

    return run_in_transaction(_op)


def get_purchase_order(*, org_id: int, po_id: int) -> PurchaseOrder:
    po = db.session.get(PurchaseOrder, po_id)
    if po is None or po.org_id != org_id:
        raise NotFoundError("Purchase order not found", {"purchase_order_id": po_id})
    return po


# =============================================================================
# RECEIVING
# =============================================================================

def _normalize_batches(po: PurchaseOrder, batches: list[dict]) -> list[tuple[PurchaseOrderItem, int, object]]:
    if not batches:
        raise ValidationError("At least one batch is required")

    items_by_id = {item.id: item for item in po.items}
    normalized = []
    requested: dict[int, int] = defaultdict(int)
    for index, batch in enumerate(batches):
        if not isinstance(batch, dict):
            raise ValidationError("Each batch must be an object", {"batch": index})
        item = items_by_id.get(batch.get("item_id"))
        if item is None:
            raise NotFoundError(
                "Purchase order item not found",
                {"batch": index, "item_id": batch.get("item_id")},
            )
        quantity = require_positive_int(batch.get("quantity"))
        try:
            expiration = parse_iso_date(batch.get("expiration_date"))
        except ValueError as exc:
            raise ValidationError("Invalid expiration_date", {"batch": index}) from exc
        requested[item.id] += quantity
        normalized.append((item, quantity, expiration))

    over = [
        {
            "item_id": item_id,
            "requested": qty,
            "remaining": items_by_id[item_id].remaining_quantity,
        }
        for item_id, qty in requested.items()
        if qty > items_by_id[item_id].remaining_quantity
    ]
    if over:
        raise OverReceiptError("Receipt exceeds the remaining ordered quantity", {"items": over})
    return normalized


def receive_purchase_order(
    *,
    org_id: int,
    po_id: int,
    batches: list[dict],
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> ReceivingRecord:
    """
    Receive one delivery: [{"item_id", "quantity", "expiration_date"?}, ...].

    Several batches may target the same item with different expirations.
    """

    def _op() -> ReceivingRecord:
        po = _lock_po(org_id, po_id)
        if po.status not in RECEIVABLE_STATUSES:
            raise StateError(f"Cannot receive against a {po.status} purchase order", {"status": po.status})

        normalized = _normalize_batches(po, batches)
        status_before = po.status

        record = ReceivingRecord(
            sequence=len(po.receiving_records) + 1,
            receipt_number=next_document_number(org_id=org_id, document_type="RECEIPT"),
            po_status_before=status_before,
            notes=notes,
            received_by_user_id=actor_user_id,
        )
        for item, quantity, expiration in normalized:
            increment(
                product_id=item.product_id,
                location_id=po.location_id,
                quantity=quantity,
                expiration_date=expiration,
            )
            item.received_quantity = item.received_quantity + quantity
            record.lines.append(
                ReceivingRecordLine(
                    purchase_order_item_id=item.id,
                    product_id=item.product_id,
                    quantity=quantity,
                    expiration_date=expiration,
                )
            )
        po.receiving_records.append(record)
        status_after = _apply_derived_status(po)
        db.session.flush()

        append_audit_event(
            org_id=org_id,
            location_id=po.location_id,
            event_type="PO_RECEIVED",
            event_category="purchasing",
            entity_type="receiving_record",
            entity_id=record.id,
            actor_user_id=actor_user_id,
            note=record.receipt_number,
            payload={
                "purchase_order_id": po.id,
                "status_before": status_before,
                "status_after": status_after,
                "batches": [
                    {"item_id": item.id, "quantity": qty, "expiration_date": to_iso_date(exp)}
                    for item, qty, exp in normalized
                ],
            },
        )
        return record

    return run_in_transaction(_op)


def void_receiving_record(
    *,
    org_id: int,
    po_id: int,
    record_id: int,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> ReceivingRecord:
    """
    Undo exactly one receipt: same batches, same quantities.

    Fails with VoidConflictError (nothing changed) when any batch no longer
    holds the received quantity.
    """

    def _op() -> ReceivingRecord:
        po = _lock_po(org_id, po_id)
        record = db.session.get(ReceivingRecord, record_id)
        if record is None or record.purchase_order_id != po.id:
            raise NotFoundError("Receiving record not found", {"receiving_record_id": record_id})
        if record.status != "ACTIVE":
            raise StateError("Receiving record is already voided", {"receiving_record_id": record_id})

        items_by_id = {item.id: item for item in po.items}
        status_before = po.status
        for line in record.lines:
            try:
                decrement_exact(
                    product_id=line.product_id,
                    location_id=po.location_id,
                    expiration_date=line.expiration_date,
                    quantity=line.quantity,
                )
            except InsufficientStockError as exc:
                raise VoidConflictError(
                    "Received stock has since been consumed; reconcile manually",
                    {
                        "receiving_record_id": record.id,
                        "product_id": line.product_id,
                        "expiration_date": to_iso_date(line.expiration_date),
                        "required": line.quantity,
                        "available": exc.details.get("available"),
                    },
                ) from exc
            item = items_by_id[line.purchase_order_item_id]
            item.received_quantity = item.received_quantity - line.quantity

        record.status = "VOIDED"
        record.voided_at = utcnow()
        record.voided_by_user_id = actor_user_id
        record.void_reason = reason
        status_after = _apply_derived_status(po)
        db.session.flush()

        append_audit_event(
            org_id=org_id,
            location_id=po.location_id,
            event_type="PO_RECEIPT_VOIDED",
            event_category="purchasing",
            entity_type="receiving_record",
            entity_id=record.id,
            actor_user_id=actor_user_id,
            note=reason,
            payload={"purchase_order_id": po.id, "status_before": status_before, "status_after": status_after},
        )
        return record

    return run_in_transaction(_op)
