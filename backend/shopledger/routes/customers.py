# Overview: Flask API routes for customer credit and invoice payments; parses input and returns JSON responses.

# backend/shopledger/routes/customers.py
"""
Customer Credit API Routes

WHY: Customers buy on account and pay later, in cash or otherwise. Staff
need the balance, the credit status and the full ledger history.

DESIGN:
- A payment without invoice_id is spread FIFO over open invoices
- Cash payments taken at a location go into that location's open drawer
- The ledger is append-only; every row carries balance before and after
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, json_body
from ..errors import CoreError
from ..services import credit_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")
invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@customers_bp.get("/<int:customer_id>/credit")
@require_actor
def credit_summary_route(customer_id: int):
    try:
        summary = credit_service.customer_credit_summary(org_id=g.org_id, customer_id=customer_id)
        return jsonify({"credit": summary}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get credit summary")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/ledger")
@require_actor
def customer_ledger_route(customer_id: int):
    try:
        limit = min(request.args.get("limit", default=200, type=int) or 200, 1000)
        entries = credit_service.get_customer_ledger(org_id=g.org_id, customer_id=customer_id, limit=limit)
        return jsonify({"entries": [e.to_dict() for e in entries]}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get customer ledger")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/<int:customer_id>/payments")
@require_actor
def customer_payment_route(customer_id: int):
    """
    Record a customer payment.

    Request body:
    {
        "amount_cents": 12000,
        "method": "CASH",            (CASH, CARD, MOBILE_MONEY, BANK_TRANSFER)
        "invoice_id": 7,             (optional; otherwise FIFO over open invoices)
        "location_id": 1,            (optional; cash goes into the open drawer here)
        "drawer_id": 2,              (optional)
        "reference": "...", "notes": "..."
    }
    """
    try:
        data = json_body()
        result = credit_service.apply_payment(
            org_id=g.org_id,
            customer_id=customer_id,
            amount_cents=data.get("amount_cents"),
            method=data.get("method"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            invoice_id=data.get("invoice_id"),
            location_id=data.get("location_id"),
            drawer_id=data.get("drawer_id"),
            actor_user_id=g.user_id,
        )
        return jsonify({"payment": result.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record customer payment")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/payments")
@require_actor
def invoice_payment_route(invoice_id: int):
    """Pay one invoice directly (amount may not exceed its balance due)."""
    try:
        data = json_body()
        result = credit_service.pay_invoice(
            org_id=g.org_id,
            invoice_id=invoice_id,
            amount_cents=data.get("amount_cents"),
            method=data.get("method"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            location_id=data.get("location_id"),
            drawer_id=data.get("drawer_id"),
            actor_user_id=g.user_id,
        )
        return jsonify({"payment": result.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to pay invoice")
        return jsonify({"error": "Internal server error"}), 500
