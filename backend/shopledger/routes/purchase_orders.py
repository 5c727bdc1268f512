# Overview: Flask API routes for purchase orders and receiving; parses input and returns JSON responses.

from flask import Blueprint, jsonify, g, current_app

from ..decorators import require_actor, json_body
from ..errors import CoreError
from ..services import purchasing_service


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.post("")
@require_actor
def create_purchase_order_route():
    """
    Create a DRAFT purchase order.

    Request body:
    {
        "location_id": 1,
        "supplier_name": "Acme Wholesale",
        "expected_date": "2026-02-01",
        "items": [{"product_id": 10, "quantity": 50, "unit_cost_cents": 300}]
    }
    """
    try:
        data = json_body()
        po = purchasing_service.create_purchase_order(
            org_id=g.org_id,
            location_id=data.get("location_id"),
            items=data.get("items") or [],
            supplier_name=data.get("supplier_name"),
            expected_date=data.get("expected_date"),
            notes=data.get("notes"),
            actor_user_id=g.user_id,
        )
        return jsonify({"purchase_order": po.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.get("/<int:po_id>")
@require_actor
def get_purchase_order_route(po_id: int):
    try:
        po = purchasing_service.get_purchase_order(org_id=g.org_id, po_id=po_id)
        payload = po.to_dict()
        payload["receiving_records"] = [r.to_dict() for r in po.receiving_records]
        return jsonify({"purchase_order": payload}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("/<int:po_id>/send")
@require_actor
def send_purchase_order_route(po_id: int):
    try:
        po = purchasing_service.send_purchase_order(org_id=g.org_id, po_id=po_id, actor_user_id=g.user_id)
        return jsonify({"purchase_order": po.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to send purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("/<int:po_id>/cancel")
@require_actor
def cancel_purchase_order_route(po_id: int):
    try:
        data = json_body()
        po = purchasing_service.cancel_purchase_order(
            org_id=g.org_id, po_id=po_id, reason=data.get("reason"), actor_user_id=g.user_id
        )
        return jsonify({"purchase_order": po.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("/<int:po_id>/receive")
@require_actor
def receive_purchase_order_route(po_id: int):
    """
    Receive one delivery.

    Request body:
    {
        "batches": [
            {"item_id": 5, "quantity": 20, "expiration_date": "2026-06-30"},
            {"item_id": 5, "quantity": 10, "expiration_date": "2026-09-30"}
        ],
        "notes": "Driver: Kofi"
    }
    """
    try:
        data = json_body()
        record = purchasing_service.receive_purchase_order(
            org_id=g.org_id,
            po_id=po_id,
            batches=data.get("batches") or [],
            notes=data.get("notes"),
            actor_user_id=g.user_id,
        )
        return jsonify({
            "receiving_record": record.to_dict(),
            "purchase_order": record.purchase_order.to_dict(),
        }), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to receive purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("/<int:po_id>/receivings/<int:record_id>/void")
@require_actor
def void_receiving_route(po_id: int, record_id: int):
    try:
        data = json_body()
        record = purchasing_service.void_receiving_record(
            org_id=g.org_id,
            po_id=po_id,
            record_id=record_id,
            reason=data.get("reason"),
            actor_user_id=g.user_id,
        )
        return jsonify({
            "receiving_record": record.to_dict(),
            "purchase_order": record.purchase_order.to_dict(),
        }), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to void receiving record")
        return jsonify({"error": "Internal server error"}), 500
