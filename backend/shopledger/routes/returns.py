# Overview: Flask API routes for returns; parses input and returns JSON responses.

from flask import Blueprint, jsonify, g, current_app

from ..decorators import require_actor, json_body
from ..errors import CoreError
from ..services import return_service


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@require_actor
def create_return_route():
    """
    Process a return against a completed sale.

    Request body:
    {
        "sale_id": 123,
        "items": [
            {"sale_line_id": 456, "quantity": 1, "condition": "GOOD", "disposition": "RETURN_TO_STOCK"},
            {"product_id": 10, "quantity": 2, "condition": "DAMAGED", "disposition": "DISPOSE"}
        ],
        "reason": "Customer not satisfied",
        "notes": "...",
        "refund_method": "CASH",   (optional; defaults to the sale's tender)
        "drawer_id": 1             (optional)
    }

    Returns:
        201: Return with refund split (credit_refund_cents / cash_refund_cents)
    """
    try:
        data = json_body()
        ret = return_service.process_return(
            org_id=g.org_id,
            sale_id=data.get("sale_id"),
            items=data.get("items") or [],
            reason=data.get("reason"),
            notes=data.get("notes"),
            refund_method=data.get("refund_method"),
            drawer_id=data.get("drawer_id"),
            actor_user_id=g.user_id,
        )
        return jsonify({"return": ret.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<int:return_id>")
@require_actor
def get_return_route(return_id: int):
    try:
        ret = return_service.get_return(org_id=g.org_id, return_id=return_id)
        return jsonify({"return": ret.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get return")
        return jsonify({"error": "Internal server error"}), 500
