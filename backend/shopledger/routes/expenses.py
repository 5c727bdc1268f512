# Overview: Flask API routes for expenses; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, json_body
from ..errors import CoreError
from ..services import expense_service


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.post("")
@require_actor
def create_expense_route():
    """
    Request body:
    {
        "location_id": 1,
        "category": "Transport",
        "amount_cents": 2500,
        "expense_date": "2026-01-15",
        "payment_method": "CASH",
        "payment_status": "PAID",
        "description": "Delivery van fuel",
        "vendor_name": "..."
    }
    """
    try:
        data = json_body()
        expense = expense_service.create_expense(
            org_id=g.org_id,
            location_id=data.get("location_id"),
            category=data.get("category"),
            amount_cents=data.get("amount_cents"),
            expense_date=data.get("expense_date"),
            payment_method=data.get("payment_method"),
            payment_status=data.get("payment_status"),
            description=data.get("description"),
            vendor_name=data.get("vendor_name"),
            drawer_id=data.get("drawer_id"),
            actor_user_id=g.user_id,
        )
        return jsonify({"expense": expense.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.get("")
@require_actor
def list_expenses_route():
    try:
        expenses = expense_service.list_expenses(
            org_id=g.org_id,
            location_id=request.args.get("location_id", type=int),
            limit=min(request.args.get("limit", default=100, type=int) or 100, 500),
        )
        return jsonify({"expenses": [e.to_dict() for e in expenses]}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list expenses")
        return jsonify({"error": "Internal server error"}), 500
