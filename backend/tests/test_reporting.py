# Overview: Pytest coverage for the sales summary report and the audit trail listing.

import pytest

from shopledger.errors import NotFoundError, ValidationError
from shopledger.services import reporting_service, return_service, sales_service
from shopledger.services.audit_service import list_audit_events


@pytest.fixture
def trading_day(db_session, org_a, location_a, customer_a, product_a, stock):
    """One cash sale (2 units), one card sale (1 unit), one credit sale (3 units), one return."""
    stock(product_a, location_a, 20)

    def sell(quantity, **kwargs):
        return sales_service.checkout(
            org_id=org_a.id,
            location_id=location_a.id,
            items=[{"product_id": product_a.id, "quantity": quantity}],
            actor_user_id=1,
            **kwargs,
        )

    cash = sell(2)
    sell(1, payment_method="CARD")
    sell(3, is_credit=True, customer_id=customer_a.id)
    return_service.process_return(
        org_id=org_a.id,
        sale_id=cash.sale.id,
        items=[{"product_id": product_a.id, "quantity": 1}],
        reason="Expired on shelf",
        actor_user_id=1,
    )


class TestSalesSummary:

    def test_totals_and_breakdowns(self, db_session, org_a, location_a, trading_day):
        report = reporting_service.sales_summary(org_id=org_a.id, location_id=location_a.id)

        assert report["sales_count"] == 3
        assert report["total_cents"] == 6000
        assert report["credit_cents"] == 3000
        assert report["by_payment_method"]["CASH"] == {"count": 1, "total_cents": 2000}
        assert report["by_payment_method"]["CARD"] == {"count": 1, "total_cents": 1000}
        assert report["by_payment_type"]["CREDIT"]["total_cents"] == 3000
        assert report["returns"] == {
            "count": 1,
            "refund_cents": 1000,
            "cash_refund_cents": 1000,
            "credit_refund_cents": 0,
        }
        assert report["net_sales_cents"] == 5000

    def test_other_org_sees_nothing(self, db_session, org_b, trading_day):
        report = reporting_service.sales_summary(org_id=org_b.id)
        assert report["sales_count"] == 0
        assert report["total_cents"] == 0

    def test_foreign_location_is_not_found(self, db_session, org_b, location_a):
        with pytest.raises(NotFoundError):
            reporting_service.sales_summary(org_id=org_b.id, location_id=location_a.id)

    def test_bad_range(self, db_session, org_a):
        with pytest.raises(ValidationError):
            reporting_service.sales_summary(org_id=org_a.id, start="yesterday")
        with pytest.raises(ValidationError):
            reporting_service.sales_summary(
                org_id=org_a.id, start="2026-03-02T00:00:00Z", end="2026-03-01T00:00:00Z"
            )

    def test_report_route(self, client, headers_a, location_a, trading_day):
        response = client.get(f"/api/reports/sales?location_id={location_a.id}", headers=headers_a)
        assert response.status_code == 200
        assert response.get_json()["report"]["sales_count"] == 3


class TestAuditTrail:

    def test_return_is_audited(self, db_session, org_a, org_b, trading_day):
        events = list_audit_events(org_id=org_a.id, entity_type="return")
        assert [e.event_type for e in events] == ["RETURN_PROCESSED"]
        assert events[0].payload["cash_refund_cents"] == 1000
        assert list_audit_events(org_id=org_b.id, entity_type="return") == []
