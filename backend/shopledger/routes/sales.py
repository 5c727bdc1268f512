# Overview: Flask API routes for checkout; parses input and returns JSON responses.

# backend/shopledger/routes/sales.py
"""
Sales API Routes

WHY: Expose atomic checkout and a read-only quote so the till can show
totals before taking payment.

DESIGN:
- One request == one checkout unit of work (stock, money, documents)
- Business-rule failures come back as {"error", "kind", "details"} with the
  error's status; nothing is persisted on failure
"""

from flask import Blueprint, jsonify, g, current_app

from ..decorators import require_actor, json_body
from ..errors import CoreError, ValidationError
from ..services import sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_actor
def checkout_route():
    """
    Complete a sale.

    Request body:
    {
        "location_id": 1,
        "items": [{"product_id": 10, "quantity": 2, "unit_price_cents": 500?, "discount_cents": 0?}],
        "payment_method": "CASH",         (CASH, CARD, MOBILE_MONEY, BANK_TRANSFER; CREDIT == is_credit)
        "is_credit": false,               (JSON boolean only)
        "amount_paid_cents": 2000,        (optional; defaults to the total for cash sales)
        "customer_id": 3,                 (required for credit sales)
        "drawer_id": 1,                   (optional)
        "notes": "..."
    }

    Returns:
        201: {"sale", "change_cents", "invoice", "payment", ...}
    """
    try:
        data = json_body()
        is_credit = data.get("is_credit")
        if is_credit is None:
            is_credit = False
        if not isinstance(is_credit, bool):
            raise ValidationError("is_credit must be a JSON boolean", {"is_credit": is_credit})
        result = sales_service.checkout(
            org_id=g.org_id,
            location_id=data.get("location_id"),
            items=data.get("items") or [],
            payment_method=data.get("payment_method"),
            is_credit=is_credit,
            amount_paid_cents=data.get("amount_paid_cents"),
            customer_id=data.get("customer_id"),
            drawer_id=data.get("drawer_id"),
            notes=data.get("notes"),
            actor_user_id=g.user_id,
        )
        return jsonify(result.to_dict()), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Checkout failed")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/quote")
@require_actor
def quote_route():
    """Preview totals without touching stock or money."""
    try:
        data = json_body()
        quote = sales_service.quote_cart(
            org_id=g.org_id,
            items=data.get("items") or [],
            customer_id=data.get("customer_id"),
        )
        return jsonify({"quote": quote}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to quote cart")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_actor
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(org_id=g.org_id, sale_id=sale_id)
        payload = sale.to_dict()
        payload["invoice"] = sale.invoice.to_dict() if sale.invoice else None
        payload["returns"] = [r.to_dict() for r in sale.returns]
        return jsonify({"sale": payload}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500
