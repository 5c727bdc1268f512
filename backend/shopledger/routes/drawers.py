# Overview: Flask API routes for cash drawers and sessions; parses input and returns JSON responses.

# backend/shopledger/routes/drawers.py
"""
Cash Drawer API Routes

WHY: Cashiers open a drawer with a counted float, take cash through the
shift, and close with a counted balance. The server computes the expected
balance and records the discrepancy.

DESIGN:
- Open/close are conditional state changes; double-open -> 409 AlreadyOpenError
- Closing always succeeds for an OPEN drawer, whatever the count
- Manual pay-ins and drops go through /movements with a reason
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, json_body
from ..errors import CoreError
from ..services import cash_drawer_service


drawers_bp = Blueprint("drawers", __name__, url_prefix="/api/drawers")


@drawers_bp.post("")
@require_actor
def create_drawer_route():
    try:
        data = json_body()
        drawer = cash_drawer_service.create_drawer(
            org_id=g.org_id,
            location_id=data.get("location_id"),
            name=data.get("name"),
        )
        return jsonify({"drawer": drawer.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create drawer")
        return jsonify({"error": "Internal server error"}), 500


@drawers_bp.post("/<int:drawer_id>/open")
@require_actor
def open_drawer_route(drawer_id: int):
    """
    Request body: {"opening_float_cents": 10000, "notes": "..."}
    """
    try:
        data = json_body()
        session = cash_drawer_service.open_drawer(
            org_id=g.org_id,
            drawer_id=drawer_id,
            opening_float_cents=data.get("opening_float_cents", 0),
            notes=data.get("notes"),
            actor_user_id=g.user_id,
        )
        return jsonify({"session": session.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to open drawer")
        return jsonify({"error": "Internal server error"}), 500


@drawers_bp.post("/<int:drawer_id>/close")
@require_actor
def close_drawer_route(drawer_id: int):
    """
    Request body: {"actual_balance_cents": 30000, "notes": "..."}

    Returns:
        200: session with expected_balance_cents and discrepancy_cents
    """
    try:
        data = json_body()
        session = cash_drawer_service.close_drawer(
            org_id=g.org_id,
            drawer_id=drawer_id,
            actual_balance_cents=data.get("actual_balance_cents"),
            notes=data.get("notes"),
            actor_user_id=g.user_id,
        )
        return jsonify({"session": session.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to close drawer")
        return jsonify({"error": "Internal server error"}), 500


@drawers_bp.post("/<int:drawer_id>/pause")
@require_actor
def pause_drawer_route(drawer_id: int):
    try:
        drawer = cash_drawer_service.pause_drawer(org_id=g.org_id, drawer_id=drawer_id, actor_user_id=g.user_id)
        return jsonify({"drawer": drawer.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to pause drawer")
        return jsonify({"error": "Internal server error"}), 500


@drawers_bp.post("/<int:drawer_id>/resume")
@require_actor
def resume_drawer_route(drawer_id: int):
    try:
        drawer = cash_drawer_service.resume_drawer(org_id=g.org_id, drawer_id=drawer_id, actor_user_id=g.user_id)
        return jsonify({"drawer": drawer.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to resume drawer")
        return jsonify({"error": "Internal server error"}), 500


@drawers_bp.post("/<int:drawer_id>/movements")
@require_actor
def cash_movement_route(drawer_id: int):
    """
    Request body: {"movement_type": "CASH_OUT", "amount_cents": 5000, "reason": "Bank drop"}
    """
    try:
        data = json_body()
        txn = cash_drawer_service.record_cash_movement(
            org_id=g.org_id,
            drawer_id=drawer_id,
            movement_type=data.get("movement_type"),
            amount_cents=data.get("amount_cents"),
            reason=data.get("reason"),
            actor_user_id=g.user_id,
        )
        return jsonify({"transaction": txn.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record cash movement")
        return jsonify({"error": "Internal server error"}), 500


@drawers_bp.get("/<int:drawer_id>/transactions")
@require_actor
def list_transactions_route(drawer_id: int):
    """Current session's ledger (or ?session_id=)."""
    try:
        txns = cash_drawer_service.list_transactions(
            org_id=g.org_id,
            drawer_id=drawer_id,
            session_id=request.args.get("session_id", type=int),
        )
        return jsonify({"transactions": [t.to_dict() for t in txns]}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list drawer transactions")
        return jsonify({"error": "Internal server error"}), 500


@drawers_bp.get("/sessions/<int:session_id>/summary")
@require_actor
def session_summary_route(session_id: int):
    try:
        summary = cash_drawer_service.get_session_summary(org_id=g.org_id, session_id=session_id)
        return jsonify({"summary": summary}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get session summary")
        return jsonify({"error": "Internal server error"}), 500
