# Overview: Flask API routes for stock transfers between locations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, json_body
from ..errors import CoreError
from ..services import transfer_service


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.get("")
@require_actor
def list_transfers_route():
    """?status=&limit="""
    try:
        transfers = transfer_service.list_transfers(
            org_id=g.org_id,
            status=request.args.get("status"),
            limit=min(request.args.get("limit", default=50, type=int) or 50, 500),
        )
        return jsonify({"transfers": [t.to_dict(include_lines=False) for t in transfers]}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list transfers")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.post("")
@require_actor
def create_transfer_route():
    """
    Create a DRAFT transfer.

    Request body:
    {
        "from_location_id": 1,
        "to_location_id": 2,
        "items": [{"product_id": 10, "quantity": 12}],
        "notes": "Weekend restock"
    }
    """
    try:
        data = json_body()
        transfer = transfer_service.create_transfer(
            org_id=g.org_id,
            from_location_id=data.get("from_location_id"),
            to_location_id=data.get("to_location_id"),
            items=data.get("items") or [],
            notes=data.get("notes"),
            actor_user_id=g.user_id,
        )
        return jsonify({"transfer": transfer.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.get("/<int:transfer_id>")
@require_actor
def get_transfer_route(transfer_id: int):
    try:
        transfer = transfer_service.get_transfer(org_id=g.org_id, transfer_id=transfer_id)
        return jsonify({"transfer": transfer.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.post("/<int:transfer_id>/lines")
@require_actor
def add_transfer_line_route(transfer_id: int):
    try:
        data = json_body()
        line = transfer_service.add_transfer_line(
            org_id=g.org_id,
            transfer_id=transfer_id,
            product_id=data.get("product_id"),
            quantity=data.get("quantity"),
            actor_user_id=g.user_id,
        )
        return jsonify({"line": line.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add transfer line")
        return jsonify({"error": "Internal server error"}), 500


_TRANSITIONS = {
    "approve": transfer_service.approve_transfer,
    "ship": transfer_service.ship_transfer,
    "receive": transfer_service.receive_transfer,
}


@transfers_bp.post("/<int:transfer_id>/<any(approve, ship, receive):action>")
@require_actor
def transition_transfer_route(transfer_id: int, action: str):
    """POST /approve, /ship or /receive."""
    try:
        transfer = _TRANSITIONS[action](org_id=g.org_id, transfer_id=transfer_id, actor_user_id=g.user_id)
        return jsonify({"transfer": transfer.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to %s transfer", action)
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.post("/<int:transfer_id>/cancel")
@require_actor
def cancel_transfer_route(transfer_id: int):
    try:
        data = json_body()
        transfer = transfer_service.cancel_transfer(
            org_id=g.org_id, transfer_id=transfer_id, reason=data.get("reason"), actor_user_id=g.user_id
        )
        return jsonify({"transfer": transfer.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel transfer")
        return jsonify({"error": "Internal server error"}), 500
