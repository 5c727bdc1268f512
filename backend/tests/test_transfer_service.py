# Overview: Pytest coverage for stock transfers between locations.

"""
Transfer Tests

Covers:
- DRAFT -> APPROVED -> IN_TRANSIT -> RECEIVED with TRF numbering
- Shipping consumes FEFO at the source; receiving restores the same batches
- A short line on ship leaves both locations untouched
- Lifecycle guards, cancellation and tenant isolation
"""

from datetime import date

import pytest

from shopledger.errors import InsufficientStockError, NotFoundError, StateError, ValidationError
from shopledger.models import Location, TransferLineBatch
from shopledger.services import inventory_service, transfer_service
from shopledger.services.audit_service import list_audit_events


JAN = date(2026, 1, 15)
MAR = date(2026, 3, 1)


@pytest.fixture
def warehouse(db_session, org_a):
    """Second location of Organization A."""
    location = Location(org_id=org_a.id, name="Warehouse", code="WH")
    db_session.add(location)
    db_session.commit()
    return location


def _transfer(org, source, destination, items):
    return transfer_service.create_transfer(
        org_id=org.id,
        from_location_id=source.id,
        to_location_id=destination.id,
        items=items,
        actor_user_id=1,
    )


def _advance(org, transfer, *steps):
    for step in steps:
        transfer = getattr(transfer_service, f"{step}_transfer")(
            org_id=org.id, transfer_id=transfer.id, actor_user_id=1
        )
    return transfer


class TestTransferLifecycle:

    def test_full_lifecycle_moves_batches(self, db_session, org_a, warehouse, location_a, product_a, stock):
        stock(product_a, warehouse, 3, JAN)
        stock(product_a, warehouse, 10, MAR)

        transfer = _transfer(org_a, warehouse, location_a, [{"product_id": product_a.id, "quantity": 5}])
        assert transfer.transfer_number == "TRF-ACM-000001"
        assert transfer.status == "DRAFT"

        transfer = _advance(org_a, transfer, "approve", "ship")
        assert transfer.status == "IN_TRANSIT"
        # In transit: gone from the source, not yet at the destination
        assert inventory_service.get_available(product_a.id, warehouse.id) == 8
        assert inventory_service.get_available(product_a.id, location_a.id) == 0
        batches = (
            db_session.query(TransferLineBatch)
            .filter_by(transfer_line_id=transfer.lines[0].id)
            .order_by(TransferLineBatch.sequence)
            .all()
        )
        assert [(b.expiration_date, b.quantity) for b in batches] == [(JAN, 3), (MAR, 2)]

        transfer = _advance(org_a, transfer, "receive")
        assert transfer.status == "RECEIVED"
        assert transfer.received_at is not None
        assert inventory_service.get_batch(product_a.id, location_a.id, JAN).quantity == 3
        assert inventory_service.get_batch(product_a.id, location_a.id, MAR).quantity == 2
        assert inventory_service.get_batch(product_a.id, warehouse.id, JAN).quantity == 0

        events = list_audit_events(org_id=org_a.id, entity_type="transfer", entity_id=transfer.id)
        assert sorted(e.event_type for e in events) == [
            "TRANSFER_APPROVED",
            "TRANSFER_CREATED",
            "TRANSFER_RECEIVED",
            "TRANSFER_SHIPPED",
        ]

    def test_short_line_on_ship_leaves_both_locations_untouched(
        self, db_session, org_a, warehouse, location_a, product_a, taxed_product, stock
    ):
        stock(product_a, warehouse, 5, JAN)
        stock(taxed_product, warehouse, 3)
        transfer = _transfer(
            org_a,
            warehouse,
            location_a,
            [{"product_id": product_a.id, "quantity": 4}, {"product_id": taxed_product.id, "quantity": 3}],
        )
        transfer = _advance(org_a, transfer, "approve")
        # Sold at the warehouse after approval
        inventory_service.decrement_fefo(product_id=taxed_product.id, location_id=warehouse.id, quantity=1)

        with pytest.raises(InsufficientStockError):
            _advance(org_a, transfer, "ship")

        assert inventory_service.get_batch(product_a.id, warehouse.id, JAN).quantity == 5
        assert inventory_service.get_available(taxed_product.id, warehouse.id) == 2
        assert inventory_service.get_available(product_a.id, location_a.id) == 0
        assert db_session.query(TransferLineBatch).count() == 0
        assert transfer_service.get_transfer(org_id=org_a.id, transfer_id=transfer.id).status == "APPROVED"

    def test_add_line_checks_source_stock(self, db_session, org_a, warehouse, location_a, product_a, stock):
        stock(product_a, warehouse, 2)
        transfer = _transfer(org_a, warehouse, location_a, [])

        with pytest.raises(InsufficientStockError):
            transfer_service.add_transfer_line(
                org_id=org_a.id, transfer_id=transfer.id, product_id=product_a.id, quantity=3
            )
        line = transfer_service.add_transfer_line(
            org_id=org_a.id, transfer_id=transfer.id, product_id=product_a.id, quantity=2
        )
        assert line.quantity == 2
        with pytest.raises(ValidationError):
            transfer_service.add_transfer_line(
                org_id=org_a.id, transfer_id=transfer.id, product_id=product_a.id, quantity=1
            )


class TestTransferGuards:

    def test_same_location_is_rejected(self, db_session, org_a, location_a):
        with pytest.raises(ValidationError):
            _transfer(org_a, location_a, location_a, [])

    def test_empty_transfer_cannot_be_approved(self, db_session, org_a, warehouse, location_a):
        transfer = _transfer(org_a, warehouse, location_a, [])
        with pytest.raises(ValidationError):
            _advance(org_a, transfer, "approve")

    def test_steps_cannot_be_skipped(self, db_session, org_a, warehouse, location_a, product_a, stock):
        stock(product_a, warehouse, 5)
        transfer = _transfer(org_a, warehouse, location_a, [{"product_id": product_a.id, "quantity": 1}])

        with pytest.raises(StateError):
            _advance(org_a, transfer, "ship")
        with pytest.raises(StateError):
            _advance(org_a, transfer, "receive")
        transfer = _advance(org_a, transfer, "approve")
        with pytest.raises(StateError):
            transfer_service.add_transfer_line(
                org_id=org_a.id, transfer_id=transfer.id, product_id=product_a.id, quantity=1
            )

    def test_cancel_before_shipping_only(self, db_session, org_a, warehouse, location_a, product_a, stock):
        stock(product_a, warehouse, 5)
        draft = _transfer(org_a, warehouse, location_a, [{"product_id": product_a.id, "quantity": 1}])
        shipped = _advance(
            org_a,
            _transfer(org_a, warehouse, location_a, [{"product_id": product_a.id, "quantity": 2}]),
            "approve",
            "ship",
        )

        cancelled = transfer_service.cancel_transfer(
            org_id=org_a.id, transfer_id=draft.id, reason="Raised twice", actor_user_id=1
        )
        assert cancelled.status == "CANCELLED"
        assert cancelled.cancel_reason == "Raised twice"
        with pytest.raises(StateError):
            transfer_service.cancel_transfer(org_id=org_a.id, transfer_id=shipped.id)
        assert inventory_service.get_available(product_a.id, warehouse.id) == 3

    def test_foreign_locations_and_transfers(self, db_session, org_a, org_b, warehouse, location_a, location_b, product_a, stock):
        with pytest.raises(NotFoundError):
            _transfer(org_a, warehouse, location_b, [])

        stock(product_a, warehouse, 5)
        transfer = _transfer(org_a, warehouse, location_a, [{"product_id": product_a.id, "quantity": 1}])
        with pytest.raises(NotFoundError):
            transfer_service.get_transfer(org_id=org_b.id, transfer_id=transfer.id)
        with pytest.raises(NotFoundError):
            _advance(org_b, transfer, "approve")
        assert transfer_service.list_transfers(org_id=org_b.id) == []


class TestTransferRoutes:

    def test_transfer_over_http(self, client, headers_a, warehouse, location_a, product_a, stock):
        stock(product_a, warehouse, 6, MAR)

        created = client.post(
            "/api/transfers",
            json={
                "from_location_id": warehouse.id,
                "to_location_id": location_a.id,
                "items": [{"product_id": product_a.id, "quantity": 4}],
            },
            headers=headers_a,
        )
        assert created.status_code == 201
        transfer_id = created.get_json()["transfer"]["id"]

        for action in ("approve", "ship", "receive"):
            response = client.post(f"/api/transfers/{transfer_id}/{action}", headers=headers_a)
            assert response.status_code == 200

        body = client.get(f"/api/transfers/{transfer_id}", headers=headers_a).get_json()
        assert body["transfer"]["status"] == "RECEIVED"
        assert body["transfer"]["lines"][0]["batches"] == [
            {"sequence": 1, "expiration_date": "2026-03-01", "quantity": 4}
        ]
        listed = client.get("/api/transfers?status=received", headers=headers_a).get_json()
        assert [t["id"] for t in listed["transfers"]] == [transfer_id]

    def test_receive_before_ship_is_conflict(self, client, headers_a, warehouse, location_a, product_a, stock):
        stock(product_a, warehouse, 6)
        created = client.post(
            "/api/transfers",
            json={
                "from_location_id": warehouse.id,
                "to_location_id": location_a.id,
                "items": [{"product_id": product_a.id, "quantity": 1}],
            },
            headers=headers_a,
        )

        response = client.post(f"/api/transfers/{created.get_json()['transfer']['id']}/receive", headers=headers_a)

        assert response.status_code == 409
        assert response.get_json()["kind"] == "StateError"
