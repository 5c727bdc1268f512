# Overview: Pytest coverage for online invoice payments (gateway client, webhook signature, reconciliation).

import hashlib
import hmac
import json

import httpx
import pytest

from shopledger.errors import PaymentGatewayError, ValidationError
from shopledger.models import GatewayCharge, Invoice, Payment
from shopledger.services import payment_gateway_service, sales_service
from shopledger.services.payment_gateway_service import PaystackClient, verify_webhook_signature


SECRET = "sk_test_secret"


def _sign(body: bytes) -> str:
    return hmac.new(SECRET.encode("utf-8"), body, hashlib.sha512).hexdigest()


def _gateway(handler):
    return PaystackClient(SECRET, base_url="https://gateway.test", transport=httpx.MockTransport(handler))


def _accepting_gateway(seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if seen is not None:
            seen.append((request, payload))
        return httpx.Response(200, json={
            "status": True,
            "message": "Authorization URL created",
            "data": {
                "authorization_url": f"https://checkout.gateway.test/{payload['reference']}",
                "access_code": "ac_123",
                "reference": payload["reference"],
            },
        })
    return _gateway(handler)


@pytest.fixture
def open_invoice(db_session, org_a, location_a, customer_a, product_a, stock):
    """SENT invoice of 30.00 from a credit sale."""
    stock(product_a, location_a, 10)
    result = sales_service.checkout(
        org_id=org_a.id,
        location_id=location_a.id,
        items=[{"product_id": product_a.id, "quantity": 3}],
        is_credit=True,
        customer_id=customer_a.id,
    )
    return result.invoice


def _initialize(org, invoice, client, amount_cents=None):
    return payment_gateway_service.initialize_invoice_payment(
        org_id=org.id,
        invoice_id=invoice.id,
        payer_email="ama@example.com",
        amount_cents=amount_cents,
        actor_user_id=1,
        client=client,
    )


def _event(event_type, charge, amount=None):
    return {
        "event": event_type,
        "data": {"reference": charge.reference, "amount": amount if amount is not None else charge.amount_cents},
    }


class TestSignature:

    def test_valid_and_invalid_signatures(self):
        body = b'{"event":"charge.success"}'
        assert verify_webhook_signature(body, _sign(body), SECRET)
        assert not verify_webhook_signature(body + b" ", _sign(body), SECRET)
        assert not verify_webhook_signature(body, None, SECRET)
        assert not verify_webhook_signature(body, _sign(body), "")


class TestInitialize:

    def test_creates_pending_charge_for_balance_due(self, db_session, org_a, open_invoice):
        seen = []
        charge = _initialize(org_a, open_invoice, _accepting_gateway(seen))

        assert charge.status == "PENDING"
        assert charge.amount_cents == 3000
        assert charge.authorization_url.endswith(charge.reference)
        request, payload = seen[0]
        assert request.headers["Authorization"] == f"Bearer {SECRET}"
        assert request.url.path == "/transaction/initialize"
        assert payload["amount"] == 3000
        assert payload["metadata"]["invoice_id"] == open_invoice.id

    def test_amount_above_balance_is_rejected(self, db_session, org_a, open_invoice):
        with pytest.raises(ValidationError):
            _initialize(org_a, open_invoice, _accepting_gateway(), amount_cents=3001)

    def test_gateway_rejection_leaves_no_charge(self, db_session, org_a, open_invoice):
        client = _gateway(lambda request: httpx.Response(400, json={"status": False, "message": "Invalid key"}))

        with pytest.raises(PaymentGatewayError) as exc_info:
            _initialize(org_a, open_invoice, client)

        assert exc_info.value.http_status == 502
        assert db_session.query(GatewayCharge).count() == 0

    def test_unreachable_gateway(self, db_session, org_a, open_invoice):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(PaymentGatewayError):
            _initialize(org_a, open_invoice, _gateway(handler))


class TestReconcile:

    def test_success_pays_invoice_once(self, db_session, org_a, customer_a, open_invoice):
        charge = _initialize(org_a, open_invoice, _accepting_gateway(), amount_cents=1200)

        first = payment_gateway_service.reconcile_gateway_event(_event("charge.success", charge))
        again = payment_gateway_service.reconcile_gateway_event(_event("charge.success", charge))

        assert first.status == "SUCCESS"
        assert again.status == "SUCCESS"
        invoice = db_session.get(Invoice, open_invoice.id)
        assert invoice.balance_due_cents == 1800
        payments = db_session.query(Payment).filter_by(method="ONLINE").all()
        assert len(payments) == 1
        assert payments[0].reference == charge.reference
        db_session.refresh(customer_a)
        assert customer_a.current_balance_cents == 1800

    def test_failed_event_marks_charge(self, db_session, org_a, open_invoice):
        charge = _initialize(org_a, open_invoice, _accepting_gateway())

        result = payment_gateway_service.reconcile_gateway_event(_event("charge.failed", charge))

        assert result.status == "FAILED"
        assert db_session.get(Invoice, open_invoice.id).balance_due_cents == 3000

    def test_other_events_are_ignored(self, db_session):
        assert payment_gateway_service.reconcile_gateway_event({"event": "transfer.success", "data": {}}) is None


class TestWebhookRoute:

    def test_signed_webhook_is_applied(self, client, db_session, org_a, open_invoice):
        charge = _initialize(org_a, open_invoice, _accepting_gateway())
        body = json.dumps(_event("charge.success", charge)).encode("utf-8")

        response = client.post(
            "/api/webhooks/paystack",
            data=body,
            headers={"X-Paystack-Signature": _sign(body), "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.get_json()["charge"]["status"] == "SUCCESS"
        assert db_session.get(Invoice, open_invoice.id).status == "PAID"

    def test_bad_signature_is_rejected(self, client, db_session, org_a, open_invoice):
        charge = _initialize(org_a, open_invoice, _accepting_gateway())
        body = json.dumps(_event("charge.success", charge)).encode("utf-8")

        response = client.post(
            "/api/webhooks/paystack",
            data=body,
            headers={"X-Paystack-Signature": "0" * 128, "Content-Type": "application/json"},
        )

        assert response.status_code == 401
        assert db_session.get(GatewayCharge, charge.id).status == "PENDING"
