# Overview: Flask API routes for online invoice payments and gateway webhooks.

# backend/shopledger/routes/payments.py
"""
Online Payment API Routes

WHY: Customers pay invoices through the payment gateway's hosted page.

SECURITY:
- /api/payments/initialize requires actor headers like every other route
- /api/webhooks/paystack is called by the gateway itself; it is
  authenticated only by the HMAC-SHA512 signature of the raw body
"""

import json

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, json_body
from ..errors import CoreError
from ..services import payment_gateway_service


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")
webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


@payments_bp.post("/initialize")
@require_actor
def initialize_payment_route():
    """
    Request body: {"invoice_id": 7, "email": "payer@example.com", "amount_cents": 5000?}

    Returns:
        201: {"charge": {..., "authorization_url": "..."}}
        502: gateway unreachable or rejected the request
    """
    try:
        data = json_body()
        charge = payment_gateway_service.initialize_invoice_payment(
            org_id=g.org_id,
            invoice_id=data.get("invoice_id"),
            payer_email=data.get("email"),
            amount_cents=data.get("amount_cents"),
            actor_user_id=g.user_id,
        )
        return jsonify({"charge": charge.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to initialize online payment")
        return jsonify({"error": "Internal server error"}), 500


@webhooks_bp.post("/paystack")
def paystack_webhook_route():
    raw_body = request.get_data()
    signature = request.headers.get("X-Paystack-Signature")
    secret = current_app.config.get("PAYSTACK_SECRET_KEY", "")
    if not payment_gateway_service.verify_webhook_signature(raw_body, signature, secret):
        current_app.logger.warning("Rejected payment webhook with invalid signature")
        return jsonify({"error": "Invalid signature"}), 401

    try:
        event = json.loads(raw_body or b"{}")
        charge = payment_gateway_service.reconcile_gateway_event(event)
        return jsonify({"status": "ok", "charge": charge.to_dict() if charge else None}), 200

    except ValueError:
        return jsonify({"error": "Malformed event body"}), 400
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to reconcile payment webhook")
        return jsonify({"error": "Internal server error"}), 500
