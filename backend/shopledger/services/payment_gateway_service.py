"""
Payment Gateway Service (Paystack-compatible)

WHY: Customers settle invoices online. The gateway hosts the card/transfer
page; we start a charge for an invoice, then apply the money when the
gateway's webhook confirms it.

DESIGN PRINCIPLES:
- Amounts go to the gateway in minor units (our integer cents as-is)
- The network call happens before anything is written; a gateway failure
  leaves no pending charge behind (PaymentGatewayError, HTTP 502)
- Webhooks are authenticated by HMAC-SHA512 of the raw body with the secret key
- Reconciliation is keyed on the charge reference and is idempotent: a
  repeated charge.success never applies the payment twice
- Confirmed money flows through the credit ledger like any other payment
  (method ONLINE, never touches a cash drawer)
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import uuid
from typing import Any, Optional

import httpx
from flask import current_app

from ..errors import (
    NotFoundError,
    PaymentGatewayError,
    StateError,
    ValidationError,
    require_non_negative_cents,
)
from ..extensions import db
from ..models import GatewayCharge, Invoice
from ..time_utils import utcnow
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_in_transaction
from .credit_service import apply_payment, pay_invoice
from .payment_service import OPEN_INVOICE_STATUSES, TENDER_ONLINE

logger = logging.getLogger(__name__)


CHARGE_PENDING = "PENDING"
CHARGE_SUCCESS = "SUCCESS"
CHARGE_FAILED = "FAILED"


# =============================================================================
# HTTP CLIENT
# =============================================================================

class PaystackClient:
    """Thin synchronous client for the transaction endpoints we use."""

    def __init__(
        self,
        secret_key: str,
        *,
        base_url: str = "https://api.paystack.co",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not secret_key:
            raise PaymentGatewayError("Payment gateway is not configured")
        self._secret_key = secret_key
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {secret_key}",
                "Content-Type": "application/json",
            },
        )

    @classmethod
    def from_config(cls, config, transport: Optional[httpx.BaseTransport] = None) -> "PaystackClient":
        return cls(
            config.get("PAYSTACK_SECRET_KEY", ""),
            base_url=config.get("PAYSTACK_BASE_URL", "https://api.paystack.co"),
            timeout=float(config.get("PAYMENT_GATEWAY_TIMEOUT_SECONDS", 10)),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        try:
            resp = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Payment gateway request %s %s failed: %s", method, path, exc)
            raise PaymentGatewayError("Payment gateway unreachable", {"path": path}) from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.status_code >= 400 or not body.get("status"):
            message = body.get("message") or "Payment gateway error"
            logger.warning("Payment gateway rejected %s %s (%s): %s", method, path, resp.status_code, message)
            raise PaymentGatewayError(message, {"path": path, "status_code": resp.status_code})
        return body.get("data") or {}

    def initialize_transaction(
        self,
        *,
        email: str,
        amount: int,
        currency: str,
        reference: str,
        callback_url: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "email": email,
            "amount": amount,
            "currency": currency,
            "reference": reference,
        }
        if callback_url:
            payload["callback_url"] = callback_url
        if metadata:
            payload["metadata"] = metadata
        return self._request("POST", "/transaction/initialize", json=payload)

    def verify_transaction(self, reference: str) -> dict[str, Any]:
        return self._request("GET", f"/transaction/verify/{reference}")


def verify_webhook_signature(raw_body: bytes, signature: str | None, secret_key: str) -> bool:
    """True when `signature` is the hex HMAC-SHA512 of the raw body."""
    if not signature or not secret_key:
        return False
    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")
    expected = hmac.new(secret_key.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()
    return hmac.compare_digest(expected, signature)


# =============================================================================
# INITIALIZE
# =============================================================================

def initialize_invoice_payment(
    *,
    org_id: int,
    invoice_id: int,
    payer_email: str,
    amount_cents: int | None = None,
    actor_user_id: int | None = None,
    client: PaystackClient | None = None,
) -> GatewayCharge:
    """
    Start an online payment for an open invoice.

    amount_cents defaults to the invoice's balance due and may not exceed it.
    """
    if not payer_email or "@" not in payer_email:
        raise ValidationError("A valid payer email is required")

    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None or invoice.org_id != org_id:
        raise NotFoundError("Invoice not found", {"invoice_id": invoice_id})
    if invoice.status not in OPEN_INVOICE_STATUSES or invoice.balance_due_cents <= 0:
        raise StateError("Invoice is not open for payment", {"invoice_id": invoice.id, "status": invoice.status})

    amount = invoice.balance_due_cents if amount_cents is None else require_non_negative_cents(amount_cents, "amount_cents")
    if amount == 0 or amount > invoice.balance_due_cents:
        raise ValidationError(
            "Amount must be positive and within the balance due",
            {"invoice_id": invoice.id, "balance_due_cents": invoice.balance_due_cents},
        )

    config = current_app.config
    currency = config.get("DEFAULT_CURRENCY", "NGN")
    reference = f"{invoice.invoice_number}-{uuid.uuid4().hex[:12]}"
    owns_client = client is None
    client = client or PaystackClient.from_config(config)
    try:
        data = client.initialize_transaction(
            email=payer_email,
            amount=amount,
            currency=currency,
            reference=reference,
            callback_url=config.get("PAYSTACK_CALLBACK_URL") or None,
            metadata={"payment_type": "INVOICE", "invoice_id": invoice.id, "org_id": org_id},
        )
    finally:
        if owns_client:
            client.close()

    def _op() -> GatewayCharge:
        charge = GatewayCharge(
            org_id=org_id,
            invoice_id=invoice.id,
            reference=data.get("reference") or reference,
            amount_cents=amount,
            currency=currency,
            payer_email=payer_email,
            status=CHARGE_PENDING,
            authorization_url=data.get("authorization_url"),
            access_code=data.get("access_code"),
            created_by_user_id=actor_user_id,
        )
        db.session.add(charge)
        db.session.flush()
        append_audit_event(
            org_id=org_id,
            event_type="GATEWAY_CHARGE_INITIALIZED",
            event_category="credit",
            entity_type="gateway_charge",
            entity_id=charge.id,
            actor_user_id=actor_user_id,
            note=charge.reference,
            payload={"invoice_id": invoice.id, "amount_cents": amount},
        )
        return charge

    return run_in_transaction(_op)


# =============================================================================
# WEBHOOK RECONCILIATION
# =============================================================================

def reconcile_gateway_event(event: dict[str, Any]) -> GatewayCharge | None:
    """
    Apply a gateway webhook event. Returns the affected charge, or None for
    events we do not handle.

    charge.success: pay the invoice (once). If the invoice was settled some
    other way in the meantime, the money is spread over the customer's open
    invoices and any remainder stays on account.
    """
    event_type = (event or {}).get("event")
    data = (event or {}).get("data") or {}
    if event_type not in ("charge.success", "charge.failed"):
        logger.info("Ignoring payment gateway event %s", event_type)
        return None
    reference = data.get("reference")
    if not reference:
        raise ValidationError("Gateway event has no reference")

    def _op() -> GatewayCharge:
        charge = (
            lock_for_update(db.session.query(GatewayCharge).filter_by(reference=reference))
            .populate_existing()
            .first()
        )
        if charge is None:
            raise NotFoundError("Gateway charge not found", {"reference": reference})
        if charge.status != CHARGE_PENDING:
            logger.info("Gateway charge %s already %s; event ignored", reference, charge.status)
            return charge

        if event_type == "charge.failed":
            charge.status = CHARGE_FAILED
            charge.completed_at = utcnow()
            db.session.flush()
            return charge

        amount = data.get("amount", charge.amount_cents)
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("Gateway event amount is invalid", {"reference": reference})

        invoice = (
            lock_for_update(db.session.query(Invoice).filter_by(id=charge.invoice_id))
            .populate_existing()
            .one()
        )
        if invoice.status in OPEN_INVOICE_STATUSES and amount <= invoice.balance_due_cents:
            application = pay_invoice(
                org_id=charge.org_id,
                invoice_id=invoice.id,
                amount_cents=amount,
                method=TENDER_ONLINE,
                reference=reference,
                notes="Online payment",
                allow_online=True,
            )
        else:
            logger.warning(
                "Gateway charge %s (%s) exceeds invoice %s balance %s; applying on account",
                reference, amount, invoice.invoice_number, invoice.balance_due_cents,
            )
            application = apply_payment(
                org_id=charge.org_id,
                customer_id=invoice.customer_id,
                amount_cents=amount,
                method=TENDER_ONLINE,
                reference=reference,
                notes="Online payment",
                allow_online=True,
            )

        charge.status = CHARGE_SUCCESS
        charge.completed_at = utcnow()
        charge.payment_id = application.payments[0].id if application.payments else None
        db.session.flush()

        append_audit_event(
            org_id=charge.org_id,
            event_type="GATEWAY_CHARGE_SUCCEEDED",
            event_category="credit",
            entity_type="gateway_charge",
            entity_id=charge.id,
            note=reference,
            payload={"invoice_id": invoice.id, "amount_cents": amount},
        )
        return charge

    return run_in_transaction(_op)
