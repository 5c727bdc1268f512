# Overview: Flask API routes for stock queries and manual adjustments; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, json_body
from ..errors import CoreError, ValidationError
from ..services import inventory_service
from ..services.tenant_service import require_location_in_org, require_product_in_org
from ..time_utils import parse_iso_date


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _required_int_arg(name: str) -> int:
    value = request.args.get(name, type=int)
    if value is None:
        raise ValidationError(f"{name} query parameter is required")
    return value


@inventory_bp.get("/available")
@require_actor
def available_route():
    """?product_id=&location_id= -> total on hand plus the batch breakdown (FEFO order)."""
    try:
        product = require_product_in_org(_required_int_arg("product_id"), g.org_id)
        location = require_location_in_org(_required_int_arg("location_id"), g.org_id)
        batches = inventory_service.list_batches(product.id, location.id)
        return jsonify({
            "product_id": product.id,
            "location_id": location.id,
            "available": inventory_service.get_available(product.id, location.id),
            "batches": [b.to_dict() for b in batches],
        }), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get available stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/low-stock")
@require_actor
def low_stock_route():
    try:
        location = require_location_in_org(_required_int_arg("location_id"), g.org_id)
        rows = inventory_service.low_stock(org_id=g.org_id, location_id=location.id)
        return jsonify({"items": rows}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get low stock report")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/expiring")
@require_actor
def expiring_route():
    """?location_id=&within_days=&as_of=YYYY-MM-DD"""
    try:
        location = require_location_in_org(_required_int_arg("location_id"), g.org_id)
        try:
            as_of = parse_iso_date(request.args.get("as_of"))
        except ValueError:
            raise ValidationError("as_of must be YYYY-MM-DD")
        rows = inventory_service.expiring_soon(
            org_id=g.org_id,
            location_id=location.id,
            as_of=as_of,
            within_days=request.args.get("within_days", type=int),
        )
        return jsonify({"items": rows}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get expiring stock")
        return jsonify({"error": "Internal server error"}), 500


_ADJUSTMENT_TYPES = {"ADD", "REMOVE", "SET"}


def _adjustment_delta(data: dict, product_id: int, location_id: int, expiration_date) -> int:
    """quantity_delta as sent, or derived from {"type": ADD|REMOVE|SET, "quantity"}."""
    if "quantity_delta" in data:
        return data.get("quantity_delta")
    adjustment_type = str(data.get("type") or "").upper()
    if adjustment_type not in _ADJUSTMENT_TYPES:
        raise ValidationError("Provide quantity_delta, or type ADD, REMOVE or SET with quantity")
    quantity = data.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValidationError("quantity must be a non-negative integer")
    if adjustment_type == "ADD":
        return quantity
    if adjustment_type == "REMOVE":
        return -quantity
    batch = inventory_service.get_batch(product_id, location_id, expiration_date)
    return quantity - (batch.quantity if batch is not None else 0)


@inventory_bp.post("/adjust")
@require_actor
def adjust_route():
    """
    Manual stock correction or write-off.

    Request body:
    {
        "product_id": 10,
        "location_id": 1,
        "quantity_delta": -2,
        "expiration_date": "2026-06-30",
        "reason": "Damaged in storage"
    }

    Instead of quantity_delta: "type": "ADD" | "REMOVE" | "SET" with "quantity".
    SET targets one batch (GENERAL when expiration_date is omitted).
    """
    try:
        data = json_body()
        product = require_product_in_org(data.get("product_id"), g.org_id)
        location = require_location_in_org(data.get("location_id"), g.org_id)
        try:
            expiration = parse_iso_date(data.get("expiration_date"))
        except ValueError:
            raise ValidationError("expiration_date must be YYYY-MM-DD")
        adjustment = inventory_service.adjust_stock(
            org_id=g.org_id,
            product_id=product.id,
            location_id=location.id,
            quantity_delta=_adjustment_delta(data, product.id, location.id, expiration),
            reason=data.get("reason"),
            expiration_date=expiration,
            actor_user_id=g.user_id,
        )
        return jsonify({"adjustment": adjustment.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500
